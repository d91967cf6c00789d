"""API gateway: forwards requests by path prefix to the interview services."""

import logging
import time
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from liveroom.core.config import GATEWAY_PROXY_TIMEOUT_SEC, IS_PRODUCTION, RATE_LIMIT_ENABLED
from liveroom.core.logger import configure_logging
from liveroom.errors import UpstreamUnavailable
from liveroom.gateway.rate_limit import FixedWindowRateLimiter, RateLimitRule, build_limiters
from liveroom.gateway.routes import ServiceRoute, default_routes, resolve_route
from liveroom.system_metrics import increment_metric, record_http_response

configure_logging()
logger = logging.getLogger("gateway")

_HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(message: str, path: str, details: str | None = None) -> dict:
    body = {"status": "error", "timestamp": _timestamp(), "message": message, "path": path}
    if details:
        body["details"] = details
    return body


def _request_identity(request: Request) -> str:
    forwarded_for = str(request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or "unknown"
    if request.client and request.client.host:
        return str(request.client.host)
    return "unknown"


def _forward_headers(headers) -> dict[str, str]:
    return {key: value for key, value in headers.items() if key.lower() not in _HOP_BY_HOP_HEADERS}


async def _proxy(client: httpx.AsyncClient, route: ServiceRoute, request: Request) -> Response:
    url = route.upstream.rstrip("/") + request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    try:
        upstream = await client.request(
            request.method,
            url,
            headers=_forward_headers(request.headers),
            content=await request.body(),
        )
    except (httpx.ConnectError, httpx.TimeoutException) as exc:
        raise UpstreamUnavailable(f"Service '{route.name}' is currently unavailable") from exc

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=_forward_headers(upstream.headers),
    )


def create_gateway_app(
    routes: list[ServiceRoute] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    rate_limits: dict[str, RateLimitRule] | None = None,
    rate_limit_enabled: bool = RATE_LIMIT_ENABLED,
) -> FastAPI:
    app = FastAPI(title="Liveroom gateway")
    routes = list(routes or default_routes())
    limiters: dict[str, FixedWindowRateLimiter] = build_limiters(rate_limits)
    client = httpx.AsyncClient(transport=transport, timeout=GATEWAY_PROXY_TIMEOUT_SEC)
    app.state.http_client = client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        record_http_response(response.status_code, elapsed_ms)
        logger.info(
            "%s %s | status=%s elapsed_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.on_event("startup")
    async def startup_banner():
        for route in routes:
            logger.info("[SYSTEM] route %s -> %s (limiter=%s)", route.prefix, route.upstream, route.limiter)

    @app.on_event("shutdown")
    async def shutdown_handler():
        await client.aclose()

    @app.get("/health")
    async def health():
        return {"status": "ok", "message": "Gateway service is running"}

    @app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def dispatch(full_path: str, request: Request):
        path = request.url.path
        route = resolve_route(routes, path)
        if route is None:
            return JSONResponse(status_code=404, content=_error_body("Route not found", path))

        limiter = limiters.get(route.limiter)
        if rate_limit_enabled and limiter is not None and request.method != "OPTIONS":
            blocked, retry_after = await limiter.hit(_request_identity(request), time.time())
            if blocked:
                increment_metric("gateway_rate_limited")
                return JSONResponse(
                    status_code=429,
                    content=_error_body(limiter.rule.message, path, "Rate limit exceeded"),
                    headers={"Retry-After": str(retry_after)},
                )

        try:
            return await _proxy(client, route, request)
        except UpstreamUnavailable as exc:
            increment_metric("gateway_upstream_unavailable")
            logger.warning("Upstream unavailable | service=%s path=%s err=%s", route.name, path, exc.__cause__)
            return JSONResponse(
                status_code=exc.status_code,
                content=_error_body(exc.message, path, "The requested microservice is not responding"),
            )
        except httpx.HTTPError as exc:
            logger.exception("Proxy failure | service=%s path=%s", route.name, path)
            return JSONResponse(
                status_code=502,
                content=_error_body("Bad Gateway", path, None if IS_PRODUCTION else str(exc)),
            )

    return app


app = create_gateway_app()
