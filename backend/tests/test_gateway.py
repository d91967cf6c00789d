import httpx
from fastapi.testclient import TestClient

from liveroom.gateway.app import create_gateway_app
from liveroom.gateway.rate_limit import RateLimitRule
from liveroom.gateway.routes import ServiceRoute, default_routes, resolve_route

ROUTES = [
    ServiceRoute("auth", "/auth", "http://auth.internal", "auth"),
    ServiceRoute("room", "/room", "http://room.internal", "api"),
    ServiceRoute("live-interview", "/live-interview", "http://live.internal", "interview"),
]

RULES = {
    "api": RateLimitRule(60, 2, "Too many requests from this IP, please try again later."),
    "auth": RateLimitRule(60, 50, "Too many authentication attempts, please try again later."),
    "interview": RateLimitRule(60, 30, "Interview creation rate limit exceeded, please try again later."),
}


def _echo(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"host": request.url.host, "path": request.url.path, "query": request.url.query.decode()})


def test_resolve_route_by_prefix():
    routes = default_routes()
    assert resolve_route(routes, "/room/create").name == "room"
    assert resolve_route(routes, "/live-interview/abc/join").name == "live-interview"
    assert resolve_route(routes, "/rooms") is None


def test_proxies_to_upstream_preserving_path_and_query():
    app = create_gateway_app(routes=ROUTES, transport=httpx.MockTransport(_echo), rate_limits=RULES)
    with TestClient(app) as client:
        response = client.get("/live-interview/history/u1?limit=5")
    assert response.status_code == 200
    assert response.json() == {"host": "live.internal", "path": "/live-interview/history/u1", "query": "limit=5"}
    assert response.headers["X-Frame-Options"] == "DENY"


def test_upstream_down_returns_503_envelope():
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    app = create_gateway_app(routes=ROUTES, transport=httpx.MockTransport(_refuse), rate_limits=RULES)
    with TestClient(app) as client:
        response = client.post("/room/create", json={"interviewType": "panel"})

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert body["message"] == "Service 'room' is currently unavailable"
    assert body["path"] == "/room/create"
    assert "timestamp" in body


def test_unknown_prefix_is_404():
    app = create_gateway_app(routes=ROUTES, transport=httpx.MockTransport(_echo), rate_limits=RULES)
    with TestClient(app) as client:
        response = client.get("/billing/invoices")
    assert response.status_code == 404
    assert response.json()["status"] == "error"


def test_rate_limit_per_group():
    app = create_gateway_app(
        routes=ROUTES,
        transport=httpx.MockTransport(_echo),
        rate_limits=RULES,
        rate_limit_enabled=True,
    )
    with TestClient(app) as client:
        assert client.get("/room/info/a").status_code == 200
        assert client.get("/room/info/b").status_code == 200
        limited = client.get("/room/info/c")
        assert client.get("/auth/me").status_code == 200

    assert limited.status_code == 429
    body = limited.json()
    assert body["details"] == "Rate limit exceeded"
    assert body["path"] == "/room/info/c"
    assert int(limited.headers["Retry-After"]) >= 1


def test_gateway_health():
    app = create_gateway_app(routes=ROUTES, transport=httpx.MockTransport(_echo))
    with TestClient(app) as client:
        assert client.get("/health").json()["status"] == "ok"
