import os
import uuid
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[2]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=True)


def _flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


ENVIRONMENT = str(os.getenv("ENV") or "development").strip().lower()
IS_PRODUCTION = ENVIRONMENT == "production"
INSTANCE_ID = str(os.getenv("INSTANCE_ID") or f"liveroom-{uuid.uuid4()}")

CORS_ALLOW_ORIGINS = str(os.getenv("CORS_ALLOW_ORIGINS") or "").strip()
CLIENT_URL = str(os.getenv("CLIENT_URL") or "http://localhost:4001").strip()

WS_MAX_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "65536")))

USE_REDIS_STORE = _flag("USE_REDIS_STORE")
ROOM_EVENT_BUS_ENABLED = _flag("ROOM_EVENT_BUS_ENABLED")
REDIS_URL = str(os.getenv("REDIS_URL") or "").strip()
STORE_KEY_PREFIX = str(os.getenv("STORE_KEY_PREFIX") or "liveroom").strip()
STORE_UPDATE_RETRIES = max(1, int(os.getenv("STORE_UPDATE_RETRIES", "8")))

SPEECH_LOG_LIMIT = max(1, int(os.getenv("SPEECH_LOG_LIMIT", "1000")))

OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
OPENAI_MODEL = str(os.getenv("OPENAI_MODEL") or "gpt-4o-mini").strip()
GEMINI_API_KEY = str(os.getenv("GEMINI_API_KEY") or "").strip()
GEMINI_MODEL = str(os.getenv("GEMINI_MODEL") or "gemini-1.5-flash").strip()
ANTHROPIC_API_KEY = str(os.getenv("ANTHROPIC_API_KEY") or "").strip()
ANTHROPIC_MODEL = str(os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-20240620").strip()
AI_TIMEOUT_SEC = max(1.0, float(os.getenv("AI_TIMEOUT_SEC", "20")))
AI_RETRIES = max(0, int(os.getenv("AI_RETRIES", "1")))

GATEWAY_PROXY_TIMEOUT_SEC = max(1.0, float(os.getenv("GATEWAY_PROXY_TIMEOUT_SEC", "10")))
AUTH_SERVICE_URL = str(os.getenv("AUTH_SERVICE_URL") or "http://localhost:6001").strip()
MOCK_INTERVIEW_SERVICE_URL = str(os.getenv("MOCK_INTERVIEW_SERVICE_URL") or "http://localhost:6002").strip()
ROOM_INTERVIEW_SERVICE_URL = str(os.getenv("ROOM_INTERVIEW_SERVICE_URL") or "http://localhost:6003").strip()
LIVE_INTERVIEW_SERVICE_URL = str(os.getenv("LIVE_INTERVIEW_SERVICE_URL") or "http://localhost:6004").strip()

RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_API_WINDOW_SEC = max(10, int(os.getenv("RATE_LIMIT_API_WINDOW_SEC", "900")))
RATE_LIMIT_API_MAX = max(1, int(os.getenv("RATE_LIMIT_API_MAX", "100")))
RATE_LIMIT_AUTH_WINDOW_SEC = max(10, int(os.getenv("RATE_LIMIT_AUTH_WINDOW_SEC", "900")))
RATE_LIMIT_AUTH_MAX = max(1, int(os.getenv("RATE_LIMIT_AUTH_MAX", "50")))
RATE_LIMIT_INTERVIEW_WINDOW_SEC = max(10, int(os.getenv("RATE_LIMIT_INTERVIEW_WINDOW_SEC", "3600")))
RATE_LIMIT_INTERVIEW_MAX = max(1, int(os.getenv("RATE_LIMIT_INTERVIEW_MAX", "30")))
