from __future__ import annotations

from dataclasses import dataclass

from liveroom.core.config import (
    AUTH_SERVICE_URL,
    LIVE_INTERVIEW_SERVICE_URL,
    MOCK_INTERVIEW_SERVICE_URL,
    ROOM_INTERVIEW_SERVICE_URL,
)


@dataclass(frozen=True)
class ServiceRoute:
    name: str
    prefix: str
    upstream: str
    limiter: str

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix + "/")


def default_routes() -> list[ServiceRoute]:
    return [
        ServiceRoute("auth", "/auth", AUTH_SERVICE_URL, "auth"),
        ServiceRoute("mock-interview", "/mock-interview", MOCK_INTERVIEW_SERVICE_URL, "interview"),
        ServiceRoute("room", "/room", ROOM_INTERVIEW_SERVICE_URL, "api"),
        ServiceRoute("live-interview", "/live-interview", LIVE_INTERVIEW_SERVICE_URL, "interview"),
    ]


def resolve_route(routes: list[ServiceRoute], path: str) -> ServiceRoute | None:
    for route in sorted(routes, key=lambda item: len(item.prefix), reverse=True):
        if route.matches(path):
            return route
    return None
