import threading
import time
from typing import Any


_lock = threading.Lock()
_started_at = time.time()
_metrics: dict[str, float] = {
    "ws_connections_active": 0.0,
    "ws_rooms_active": 0.0,
    "ws_disconnects_total": 0.0,
    "ws_disconnect_client_disconnect": 0.0,
    "ws_disconnect_socket_error": 0.0,
    "ws_disconnect_other": 0.0,
    "signals_relayed": 0.0,
    "signals_rejected": 0.0,
    "sessions_started": 0.0,
    "sessions_completed": 0.0,
    "sessions_paused": 0.0,
    "sessions_resumed": 0.0,
    "sessions_cancelled": 0.0,
    "ai_provider_failures": 0.0,
    "ai_fallbacks_total": 0.0,
    "http_requests_total": 0.0,
    "http_errors_total": 0.0,
    "latency_total_ms": 0.0,
    "latency_samples": 0.0,
    "bus_publish_total_ms": 0.0,
    "bus_publish_samples": 0.0,
    "fanout_delay_total_ms": 0.0,
    "fanout_delay_samples": 0.0,
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def set_metric(name: str, value: float) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = max(0.0, float(value))


def _observe(total_key: str, samples_key: str, value: float) -> None:
    with _lock:
        _metrics[total_key] = float(_metrics.get(total_key, 0.0)) + max(0.0, float(value or 0.0))
        _metrics[samples_key] = float(_metrics.get(samples_key, 0.0)) + 1.0


def observe_latency_ms(value_ms: float) -> None:
    _observe("latency_total_ms", "latency_samples", value_ms)


def observe_bus_publish_latency_ms(value_ms: float) -> None:
    _observe("bus_publish_total_ms", "bus_publish_samples", value_ms)


def observe_fanout_delay_ms(value_ms: float) -> None:
    _observe("fanout_delay_total_ms", "fanout_delay_samples", value_ms)


def record_http_response(status_code: int, elapsed_ms: float) -> None:
    with _lock:
        _metrics["http_requests_total"] = float(_metrics.get("http_requests_total", 0.0)) + 1.0
        if int(status_code) >= 400:
            _metrics["http_errors_total"] = float(_metrics.get("http_errors_total", 0.0)) + 1.0
        status_key = f"http_status_{int(status_code)}"
        _metrics[status_key] = float(_metrics.get(status_key, 0.0)) + 1.0
    observe_latency_ms(elapsed_ms)


def record_transition(transition: str) -> None:
    key_map = {
        "started": "sessions_started",
        "completed": "sessions_completed",
        "paused": "sessions_paused",
        "resumed": "sessions_resumed",
        "cancelled": "sessions_cancelled",
    }
    metric_key = key_map.get(str(transition or "").strip().lower())
    if metric_key:
        increment_metric(metric_key)


def record_ws_disconnect(reason: str) -> None:
    normalized = str(reason or "").strip().lower().replace(" ", "_").replace("-", "_")
    key_map = {
        "client_disconnect": "ws_disconnect_client_disconnect",
        "socket_error": "ws_disconnect_socket_error",
    }
    metric_key = key_map.get(normalized, "ws_disconnect_other")
    with _lock:
        _metrics["ws_disconnects_total"] = float(_metrics.get("ws_disconnects_total", 0.0)) + 1.0
        _metrics[metric_key] = float(_metrics.get(metric_key, 0.0)) + 1.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    latency_samples = max(1.0, float(data.get("latency_samples") or 0.0))
    bus_publish_samples = max(1.0, float(data.get("bus_publish_samples") or 0.0))
    fanout_delay_samples = max(1.0, float(data.get("fanout_delay_samples") or 0.0))

    payload: dict[str, Any] = {
        "generated_at": time.time(),
        "uptime_sec": round(time.time() - _started_at, 2),
        "avg_latency_ms": round(float(data.get("latency_total_ms") or 0.0) / latency_samples, 2),
        "avg_bus_publish_latency_ms": round(float(data.get("bus_publish_total_ms") or 0.0) / bus_publish_samples, 2),
        "avg_fanout_delay_ms": round(float(data.get("fanout_delay_total_ms") or 0.0) / fanout_delay_samples, 2),
    }
    for key, value in data.items():
        payload[key] = round(value, 4) if key.endswith("_ms") else int(value)

    if extra:
        payload.update(extra)
    return payload
