from __future__ import annotations

import asyncio
import json
import uuid
from collections import defaultdict

from starlette.websockets import WebSocketState

from liveroom.system_metrics import set_metric


class Connection:
    """One client transport plus the lock that serializes its outbound frames."""

    def __init__(self, websocket, connection_id: str | None = None):
        self.websocket = websocket
        self.connection_id = str(connection_id or uuid.uuid4())
        self._send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return getattr(self.websocket, "client_state", None) == WebSocketState.CONNECTED

    async def send(self, event: str, data) -> None:
        encoded = json.dumps({"event": event, "data": data}, default=str)
        async with self._send_lock:
            await self.websocket.send_text(encoded)


class ConnectionRegistry:
    """Maps connections to the (room, user) memberships they hold.

    The registry is the only place that knows which participant a transport
    speaks for, so disconnect cleanup can be attributed to a user.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, dict[str, str]] = defaultdict(dict)

    async def add(self, connection: Connection) -> None:
        async with self._lock:
            self._connections[connection.connection_id] = connection
            set_metric("ws_connections_active", float(len(self._connections)))

    async def remove(self, connection: Connection) -> dict[str, str]:
        """Forget a connection and return the room -> user memberships it held."""
        async with self._lock:
            self._connections.pop(connection.connection_id, None)
            memberships = self._memberships.pop(connection.connection_id, {})
            for room_id in memberships:
                self._discard_from_room(room_id, connection.connection_id)
            set_metric("ws_connections_active", float(len(self._connections)))
            set_metric("ws_rooms_active", float(len(self._rooms)))
            return dict(memberships)

    async def join(self, room_id: str, connection: Connection, user_id: str) -> None:
        async with self._lock:
            self._connections.setdefault(connection.connection_id, connection)
            self._rooms[room_id].add(connection.connection_id)
            self._memberships[connection.connection_id][room_id] = user_id
            set_metric("ws_rooms_active", float(len(self._rooms)))

    async def leave(self, room_id: str, connection: Connection) -> str | None:
        async with self._lock:
            user_id = self._memberships.get(connection.connection_id, {}).pop(room_id, None)
            if not self._memberships.get(connection.connection_id):
                self._memberships.pop(connection.connection_id, None)
            self._discard_from_room(room_id, connection.connection_id)
            set_metric("ws_rooms_active", float(len(self._rooms)))
            return user_id

    def _discard_from_room(self, room_id: str, connection_id: str) -> None:
        members = self._rooms.get(room_id)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            self._rooms.pop(room_id, None)

    async def members(self, room_id: str) -> list[Connection]:
        async with self._lock:
            ids = list(self._rooms.get(room_id, set()))
            return [self._connections[item] for item in ids if item in self._connections]

    async def connections_for_user(self, room_id: str, user_id: str) -> list[Connection]:
        async with self._lock:
            ids = list(self._rooms.get(room_id, set()))
            return [
                self._connections[item]
                for item in ids
                if item in self._connections and self._memberships.get(item, {}).get(room_id) == user_id
            ]

    async def user_for(self, room_id: str, connection: Connection) -> str | None:
        async with self._lock:
            return self._memberships.get(connection.connection_id, {}).get(room_id)

    async def room_count(self) -> int:
        async with self._lock:
            return len(self._rooms)
