import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from liveroom.ai.assistant import InterviewAssistant
from liveroom.api.live_interviews import router as live_interviews_router
from liveroom.api.rooms import router as rooms_router
from liveroom.api.ws import router as ws_router
from liveroom.core.config import CLIENT_URL, CORS_ALLOW_ORIGINS, ENVIRONMENT, INSTANCE_ID, IS_PRODUCTION
from liveroom.core.logger import configure_logging
from liveroom.errors import ServiceError
from liveroom.realtime.connections import ConnectionRegistry
from liveroom.realtime.event_bus import build_room_event_bus
from liveroom.realtime.hub import RoomHub
from liveroom.realtime.live_relay import LiveInterviewRelay
from liveroom.realtime.relay import RoomRelay
from liveroom.services.live_interview_service import LiveInterviewService
from liveroom.services.room_service import RoomService
from liveroom.session.participants import ParticipantTracker
from liveroom.session.store import DocumentStore, build_document_store
from liveroom.system_metrics import get_metrics_snapshot, record_http_response

configure_logging()
logger = logging.getLogger("liveroom.main")


def _get_allowed_origins() -> list[str]:
    if not CORS_ALLOW_ORIGINS:
        return [CLIENT_URL, "http://localhost:3000", "http://127.0.0.1:3000"]
    return [item.strip() for item in CORS_ALLOW_ORIGINS.split(",") if item.strip()]


def _error_response(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if error:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


def create_app(store: DocumentStore | None = None, assistant: InterviewAssistant | None = None) -> FastAPI:
    app = FastAPI(title="Liveroom interview service")

    store = store or build_document_store()
    tracker = ParticipantTracker(store)
    rooms = RoomService(store, tracker)
    assistant = assistant or InterviewAssistant()
    live_interviews = LiveInterviewService(store, assistant)

    room_hub = RoomHub(ConnectionRegistry(), build_room_event_bus(INSTANCE_ID, namespace="room"), INSTANCE_ID)
    live_hub = RoomHub(ConnectionRegistry(), build_room_event_bus(INSTANCE_ID, namespace="live"), INSTANCE_ID)

    app.state.store = store
    app.state.tracker = tracker
    app.state.rooms = rooms
    app.state.live_interviews = live_interviews
    app.state.assistant = assistant
    app.state.room_relay = RoomRelay(room_hub, rooms)
    app.state.live_relay = LiveInterviewRelay(live_hub, live_interviews)

    allowed_origins = _get_allowed_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            record_http_response(500, (time.perf_counter() - started) * 1000.0)
            raise
        record_http_response(response.status_code, (time.perf_counter() - started) * 1000.0)
        return response

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return _error_response(exc.status_code, exc.message, type(exc).__name__)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid {field}: {first.get('msg')}" if field else "Validation failed"
        return _error_response(400, message, "ValidationFailed")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error | path=%s", request.url.path)
        return _error_response(500, "Internal Server Error", None if IS_PRODUCTION else str(exc))

    @app.on_event("startup")
    async def startup_banner():
        logger.info("[SYSTEM] env=%s instance_id=%s", ENVIRONMENT, INSTANCE_ID)
        logger.info("[SYSTEM] CORS allow_origins=%s", allowed_origins)
        await app.state.room_relay.hub.ensure_listener()
        await app.state.live_relay.hub.ensure_listener()

    @app.on_event("shutdown")
    async def shutdown_handler():
        try:
            closed = await tracker.close_all()
            completed = await live_interviews.complete_active()
            logger.info("[SYSTEM] shutdown cleanup participants_closed=%s interviews_completed=%s", closed, completed)
        except Exception as exc:
            logger.warning("[SYSTEM] shutdown cleanup failed: %s", exc)
        finally:
            await room_hub.close()
            await live_hub.close()
        logger.info("[SYSTEM] shutdown complete")

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "service": "liveroom",
            "environment": ENVIRONMENT,
            "instance_id": INSTANCE_ID,
        }

    @app.get("/api/system/metrics")
    async def system_metrics():
        return get_metrics_snapshot(
            {
                "room_channels_active": await room_hub.registry.room_count(),
                "interview_channels_active": await live_hub.registry.room_count(),
            }
        )

    app.include_router(rooms_router)
    app.include_router(live_interviews_router)
    app.include_router(ws_router)
    return app


app = create_app()
