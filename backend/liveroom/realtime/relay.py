from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from liveroom.core.logger import log_event
from liveroom.errors import InvalidSignal, MissingField, ServiceError, Unauthorized, ValidationFailed
from liveroom.realtime.connections import Connection
from liveroom.realtime.hub import RoomHub
from liveroom.services.room_service import RoomService
from liveroom.session.lifecycle import Transition
from liveroom.session.models import ParticipantStatus, Room, parse_role
from liveroom.system_metrics import increment_metric, record_ws_disconnect

logger = logging.getLogger("realtime.relay")

Handler = Callable[[Connection, dict], Awaitable[None]]


def text_field(data: dict, key: str) -> str:
    value = data.get(key)
    return str(value).strip() if value is not None else ""


def require_fields(data: dict, *keys: str) -> list[str]:
    values = [text_field(data, key) for key in keys]
    if not all(values):
        raise MissingField()
    return values


def parse_payload(model: type[BaseModel], data: dict) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailed(f"Invalid {field}: {first.get('msg', 'invalid value')}" if field else None) from None


class BaseRelay(ABC):
    """Event dispatch shared by the room and live interview channels.

    Subclasses register handlers by event name and map the events whose
    failures are reported back to the caller onto their error events.
    """

    channel = "relay"
    error_events: dict[str, str] = {}

    def __init__(self, hub: RoomHub):
        self.hub = hub
        self.registry = hub.registry
        self.handlers: dict[str, Handler] = {
            "signal": self.on_signal,
            "ping": self.on_ping,
        }

    async def connect(self, websocket) -> Connection:
        connection = Connection(websocket)
        await self.registry.add(connection)
        await self.hub.ensure_listener()
        increment_metric("ws_connections_total")
        logger.info("Connection opened | channel=%s connection_id=%s", self.channel, connection.connection_id)
        return connection

    async def handle_text(self, connection: Connection, text: str) -> None:
        try:
            message = json.loads(text)
        except ValueError:
            await self.hub.emit(connection, "error", {"error": "Malformed message"})
            return
        if not isinstance(message, dict):
            await self.hub.emit(connection, "error", {"error": "Malformed message"})
            return
        data = message.get("data")
        await self.dispatch(connection, str(message.get("event") or ""), data if isinstance(data, dict) else {})

    async def dispatch(self, connection: Connection, event: str, data: dict) -> None:
        handler = self.handlers.get(event)
        if handler is None:
            await self.hub.emit(connection, "error", {"error": f"Unknown event: {event or 'none'}"})
            return

        error_event = self.error_events.get(event)
        try:
            await handler(connection, data)
        except ServiceError as exc:
            logger.info("Relay event rejected | channel=%s event=%s err=%s", self.channel, event, exc.message)
            if error_event:
                await self.hub.emit(connection, error_event, {"error": exc.message})
        except Exception:
            logger.exception("Relay event failed | channel=%s event=%s", self.channel, event)
            if error_event:
                await self.hub.emit(connection, error_event, {"error": f"Failed to handle {event}"})

    @abstractmethod
    async def may_signal(self, room_id: str, user_id: str, connection: Connection) -> bool:
        ...

    async def on_signal(self, connection: Connection, data: dict) -> None:
        room_id = text_field(data, "roomId") or text_field(data, "interviewId")
        user_id = text_field(data, "userId")
        target_id = text_field(data, "targetId")
        signal = data.get("signal")

        if not room_id or not user_id or not await self.may_signal(room_id, user_id, connection):
            increment_metric("signals_rejected")
            raise Unauthorized()
        if not isinstance(signal, dict) or not (signal.get("sdp") or signal.get("candidate")):
            increment_metric("signals_rejected")
            raise InvalidSignal()

        payload = {"userId": user_id, "signal": signal}
        if target_id:
            delivered = await self.hub.send_to_user(room_id, target_id, "signal", payload, exclude=connection)
        else:
            delivered = await self.hub.broadcast(room_id, "signal", payload, exclude=connection)
        increment_metric("signals_relayed")
        log_event(
            self.channel,
            "signal_relayed",
            room_id,
            user_id=user_id,
            target_id=target_id or None,
            delivered=delivered,
            signal=signal,
        )

    async def on_ping(self, connection: Connection, data: dict) -> None:
        await self.hub.emit(connection, "pong", {"ts": time.time()})

    @abstractmethod
    async def on_member_disconnected(self, room_id: str, user_id: str) -> None:
        ...

    async def release_membership(self, room_id: str, user_id: str, connection: Connection) -> bool:
        """Drop the membership this connection holds for ``user_id``.

        Returns True when the user has no other live connection left in the room.
        """
        member = await self.registry.user_for(room_id, connection)
        if member != user_id:
            raise Unauthorized("Unauthorized leave attempt")
        await self.registry.leave(room_id, connection)
        return not await self.registry.connections_for_user(room_id, user_id)

    async def disconnect(self, connection: Connection, reason: str = "other") -> None:
        memberships = await self.registry.remove(connection)
        record_ws_disconnect(reason)
        logger.info(
            "Connection closed | channel=%s connection_id=%s reason=%s rooms=%s",
            self.channel,
            connection.connection_id,
            reason,
            len(memberships),
        )
        for room_id, user_id in memberships.items():
            if await self.registry.connections_for_user(room_id, user_id):
                continue
            try:
                await self.on_member_disconnected(room_id, user_id)
            except Exception as exc:
                logger.warning("Disconnect cleanup failed | room_id=%s user_id=%s err=%s", room_id, user_id, exc)


class RoomRelay(BaseRelay):
    channel = "room"
    error_events = {
        "join-room": "room-error",
        "leave-room": "room-error",
        "signal": "signal-error",
    }

    def __init__(self, hub: RoomHub, rooms: RoomService):
        super().__init__(hub)
        self.rooms = rooms
        self.handlers.update(
            {
                "join-room": self.on_join,
                "leave-room": self.on_leave,
            }
        )

    async def may_signal(self, room_id: str, user_id: str, connection: Connection) -> bool:
        return await self.rooms.tracker.is_joined(room_id, user_id)

    async def publish_state(self, room_id: str, room: Room | None = None, transition: Transition | None = None) -> None:
        participants = await self.rooms.active_participants(room_id)
        await self.hub.broadcast(room_id, "participants-update", [p.summary() for p in participants])
        if room is not None and transition is not None:
            await self.hub.broadcast(room_id, "room-update", room.state())

    async def on_join(self, connection: Connection, data: dict) -> None:
        room_id, user_id, name, role = require_fields(data, "roomId", "userId", "name", "role")
        room, _, transition = await self.rooms.join(room_id, user_id, name, parse_role(role))
        await self.registry.join(room_id, connection, user_id)
        logger.info("Joined room | room_id=%s user_id=%s role=%s", room_id, user_id, role)

        await self.publish_state(room_id, room, transition)
        joined = await self.rooms.joined_participants(room_id)
        await self.hub.emit(
            connection,
            "room-joined",
            {
                "success": True,
                "roomId": room_id,
                "userId": user_id,
                "participants": [p.summary() for p in joined],
                "room": room.state(),
                "questions": list(room.custom_questions),
            },
        )

    async def on_leave(self, connection: Connection, data: dict) -> None:
        room_id, user_id = require_fields(data, "roomId", "userId")
        if not await self.release_membership(room_id, user_id, connection):
            return
        room, _, transition = await self.rooms.leave(room_id, user_id)
        logger.info("Left room | room_id=%s user_id=%s", room_id, user_id)
        await self.publish_state(room_id, room, transition)

    async def on_member_disconnected(self, room_id: str, user_id: str) -> None:
        room, participant, transition = await self.rooms.leave(room_id, user_id, status=ParticipantStatus.DISCONNECTED)
        if participant is None:
            return
        logger.info("Participant disconnected | room_id=%s user_id=%s", room_id, user_id)
        await self.publish_state(room_id, room, transition)
