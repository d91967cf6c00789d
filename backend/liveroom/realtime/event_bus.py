from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Protocol

import redis.asyncio as redis_async

from liveroom.core.config import REDIS_URL, ROOM_EVENT_BUS_ENABLED

logger = logging.getLogger("realtime.event_bus")

RoomEventHandler = Callable[[str, dict, str], Awaitable[None]]


class RoomEventBus(Protocol):
    async def publish(self, room_id: str, message: dict) -> None:
        ...

    async def listen(self, handler: RoomEventHandler) -> None:
        ...

    async def close(self) -> None:
        ...


class LocalRoomEventBus:
    """Single-instance deployments: every member is connected here, nothing to fan out."""

    async def publish(self, room_id: str, message: dict) -> None:
        return

    async def listen(self, handler: RoomEventHandler) -> None:
        while True:
            await asyncio.sleep(3600)

    async def close(self) -> None:
        return


class RedisRoomEventBus:
    """Fans room messages out to the other service instances over Redis pub/sub.

    One channel per room, ``{namespace}:{room_id}:events``. Each envelope
    carries the publishing instance so listeners can skip their own echoes.
    """

    def __init__(self, redis_url: str, instance_id: str, namespace: str = "room"):
        self._redis = redis_async.from_url(redis_url, decode_responses=True)
        self._instance_id = str(instance_id or "instance-unknown")
        self._prefix = f"{namespace or 'room'}:"
        self._suffix = ":events"

    def _channel(self, room_id: str) -> str:
        return f"{self._prefix}{room_id}{self._suffix}"

    def _room_from_channel(self, channel: str) -> str:
        if not channel.startswith(self._prefix) or not channel.endswith(self._suffix):
            return ""
        return channel[len(self._prefix):-len(self._suffix)]

    async def publish(self, room_id: str, message: dict) -> None:
        if not room_id:
            return
        envelope = {
            "source_instance": self._instance_id,
            "published_at": time.time(),
            "message": dict(message or {}),
        }
        await self._redis.publish(self._channel(room_id), json.dumps(envelope, default=str))

    def _decode(self, raw: dict) -> tuple[str, dict, str] | None:
        if str(raw.get("type") or "") not in {"message", "pmessage"}:
            return None
        room_id = self._room_from_channel(str(raw.get("channel") or ""))
        if not room_id:
            return None
        try:
            envelope = json.loads(str(raw.get("data") or "{}"))
        except ValueError:
            logger.warning("Dropping malformed bus message | room_id=%s", room_id)
            return None
        message = envelope.get("message") if isinstance(envelope.get("message"), dict) else {}
        message["__bus_published_at"] = float(envelope.get("published_at") or 0.0)
        return room_id, message, str(envelope.get("source_instance") or "")

    async def listen(self, handler: RoomEventHandler) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(self._channel("*"))
        try:
            while True:
                raw = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if not raw:
                    continue
                decoded = self._decode(raw)
                if decoded is not None:
                    await handler(*decoded)
        finally:
            await pubsub.aclose()

    async def close(self) -> None:
        await self._redis.aclose()


def build_room_event_bus(instance_id: str, namespace: str = "room") -> RoomEventBus:
    if not ROOM_EVENT_BUS_ENABLED:
        return LocalRoomEventBus()

    if not REDIS_URL:
        raise RuntimeError("ROOM_EVENT_BUS_ENABLED=true requires REDIS_URL")

    logger.info("Room event bus enabled | namespace=%s", namespace)
    return RedisRoomEventBus(redis_url=REDIS_URL, instance_id=instance_id, namespace=namespace)
