from __future__ import annotations

import asyncio
import logging
import time

from liveroom.realtime.connections import Connection, ConnectionRegistry
from liveroom.realtime.event_bus import LocalRoomEventBus, RoomEventBus
from liveroom.system_metrics import observe_bus_publish_latency_ms, observe_fanout_delay_ms

logger = logging.getLogger("realtime.hub")


class RoomHub:
    """Delivers events to room members on this instance and, through the bus, on the others."""

    def __init__(self, registry: ConnectionRegistry, event_bus: RoomEventBus | None = None, instance_id: str = ""):
        self.registry = registry
        self.event_bus = event_bus or LocalRoomEventBus()
        self.instance_id = str(instance_id or "")
        self._listener_task: asyncio.Task | None = None
        self._listener_lock = asyncio.Lock()

    async def emit(self, connection: Connection, event: str, data) -> bool:
        if not connection.is_open:
            return False
        try:
            await connection.send(event, data)
            return True
        except Exception as exc:
            logger.warning("Send failed | connection_id=%s event=%s err=%s", connection.connection_id, event, exc)
            return False

    async def _deliver(self, targets: list[Connection], event: str, data, exclude: Connection | None) -> int:
        delivered = 0
        for connection in targets:
            if exclude is not None and connection.connection_id == exclude.connection_id:
                continue
            if await self.emit(connection, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, room_id: str, event: str, data, exclude: Connection | None = None) -> int:
        if not room_id:
            return 0
        delivered = await self._deliver(await self.registry.members(room_id), event, data, exclude)
        await self._publish(room_id, {"event": event, "data": data})
        return delivered

    async def send_to_user(
        self,
        room_id: str,
        user_id: str,
        event: str,
        data,
        exclude: Connection | None = None,
    ) -> int:
        if not room_id or not user_id:
            return 0
        targets = await self.registry.connections_for_user(room_id, user_id)
        delivered = await self._deliver(targets, event, data, exclude)
        await self._publish(room_id, {"event": event, "data": data, "target_user": user_id})
        return delivered

    async def _publish(self, room_id: str, message: dict) -> None:
        if isinstance(self.event_bus, LocalRoomEventBus):
            return
        publish_started = time.perf_counter()
        try:
            await self.event_bus.publish(room_id, message)
            observe_bus_publish_latency_ms((time.perf_counter() - publish_started) * 1000.0)
        except Exception as exc:
            logger.warning("Room event publish failed | room_id=%s err=%s", room_id, exc)

    async def handle_bus_message(self, room_id: str, message: dict, source_instance: str) -> None:
        if not room_id or str(source_instance or "") == self.instance_id:
            return
        published_at = float(message.pop("__bus_published_at", 0.0) or 0.0)
        if published_at > 0:
            observe_fanout_delay_ms((time.time() - published_at) * 1000.0)

        event = str(message.get("event") or "")
        if not event:
            return
        target_user = message.get("target_user")
        if target_user:
            targets = await self.registry.connections_for_user(room_id, str(target_user))
        else:
            targets = await self.registry.members(room_id)
        await self._deliver(targets, event, message.get("data"), exclude=None)

    async def _listener_loop(self) -> None:
        while True:
            try:
                await self.event_bus.listen(self.handle_bus_message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Room event listener failed; retrying: %s", exc)
                await asyncio.sleep(1.5)

    async def ensure_listener(self) -> None:
        if isinstance(self.event_bus, LocalRoomEventBus):
            return
        async with self._listener_lock:
            if self._listener_task and not self._listener_task.done():
                return
            self._listener_task = asyncio.create_task(self._listener_loop())

    async def close(self) -> None:
        task = self._listener_task
        self._listener_task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.event_bus.close()
