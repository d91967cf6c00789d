import json
import logging
from typing import Any

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

logger = logging.getLogger("liveroom.events")

# payload fields that may carry interview content; only their size is logged
_REDACTED_KEYS = {"text", "transcript", "prompt", "suggestion", "signal", "response", "candidate_answer"}


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _sanitize_value(key: str, value: Any) -> Any:
    if str(key or "").lower() in _REDACTED_KEYS:
        text = value if isinstance(value, str) else json.dumps(value, default=str)
        return {"redacted": True, "length": len(text or "")}
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _sanitize_value(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_sanitize_value(key, item) for item in value]
    return str(value)


def log_event(component: str, event: str, session_id: str, **fields) -> None:
    """Emit one JSON line describing a session-scoped event."""
    payload = {
        "component": str(component or "liveroom"),
        "event": str(event or "unknown"),
        "session_id": str(session_id or ""),
    }
    payload.update({str(k): _sanitize_value(str(k), v) for k, v in fields.items()})
    logger.info(json.dumps(payload, ensure_ascii=False, default=str))
