import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from liveroom.core.config import WS_MAX_TEXT_BYTES
from liveroom.realtime.relay import BaseRelay

logger = logging.getLogger("api.ws")

router = APIRouter()


async def _serve(websocket: WebSocket, relay: BaseRelay) -> None:
    await websocket.accept()
    connection = await relay.connect(websocket)
    reason = "other"
    try:
        while True:
            text = await websocket.receive_text()
            size = len(text.encode("utf-8"))
            if size > WS_MAX_TEXT_BYTES:
                logger.warning("WS message too large | connection_id=%s bytes=%s", connection.connection_id, size)
                reason = "message_too_large"
                await websocket.close(code=1009, reason="Message too large")
                break
            await relay.handle_text(connection, text)
    except WebSocketDisconnect:
        reason = "client_disconnect"
    except Exception as exc:
        reason = "socket_error"
        logger.warning("WS receive failed | connection_id=%s err=%s", connection.connection_id, exc)
    finally:
        await relay.disconnect(connection, reason)


@router.websocket("/ws/room")
async def room_ws(websocket: WebSocket):
    await _serve(websocket, websocket.app.state.room_relay)


@router.websocket("/ws/live-interview")
async def live_interview_ws(websocket: WebSocket):
    await _serve(websocket, websocket.app.state.live_relay)
