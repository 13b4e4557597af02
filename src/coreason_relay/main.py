# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Awaitable, Callable, Dict, Optional

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

import coreason_relay
from coreason_relay.config import RelaySettings
from coreason_relay.cors import OriginPolicy, OriginPredicate, PolicyCORSMiddleware
from coreason_relay.exceptions import PayloadTooLargeError
from coreason_relay.forwarder import create_upstream_client
from coreason_relay.ingress import read_inbound
from coreason_relay.logging_utils import format_access_log
from coreason_relay.proxy import ProxyService
from coreason_relay.rate_limit import RATE_LIMIT_MESSAGE, FixedWindowRateLimiter, RateLimiter, rate_limit_key
from coreason_relay.security import apply_security_headers
from coreason_relay.telemetry import configure_telemetry

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _build_proxy_router(settings: RelaySettings, rate_limiter: RateLimiter) -> APIRouter:
    router = APIRouter(prefix=settings.mount_prefix)

    async def relay(request: Request) -> Response:
        """
        Receives telemetry under the mount prefix, applies the rate limit
        and hands the request to the proxy service.
        """
        inbound = await read_inbound(request, settings)

        client_key = rate_limit_key(inbound, settings.trusted_proxy_hops)
        decision = rate_limiter.hit(client_key)
        if not decision.allowed:
            logger.bind(client=client_key).warning(
                f"Rate limit exceeded for {inbound.method} {inbound.path}"
            )
            return PlainTextResponse(
                RATE_LIMIT_MESSAGE,
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers=decision.headers(),
            )

        proxy_service: ProxyService = request.app.state.proxy_service
        response = await proxy_service.handle(inbound, receive=request.receive)
        response.headers.update(decision.headers())
        return response

    router.add_api_route("", relay, methods=PROXY_METHODS, include_in_schema=False)
    router.add_api_route("/{path:path}", relay, methods=PROXY_METHODS, include_in_schema=False)
    return router


def create_app(
    settings: Optional[RelaySettings] = None,
    rate_limiter: Optional[RateLimiter] = None,
    origin_predicate: Optional[OriginPredicate] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Builds the ingress application.

    Args:
        settings: Relay settings. Read from the environment when omitted.
        rate_limiter: Admission control for proxy routes. Defaults to a fixed
            window limiter sized from settings.
        origin_predicate: CORS origin check. Defaults to the configured patterns.
        transport: Optional HTTPX transport for the upstream client.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or RelaySettings.from_env()
    rate_limiter = rate_limiter or FixedWindowRateLimiter(
        settings.rate_limit_max, settings.rate_limit_window_seconds
    )
    origin_predicate = origin_predicate or OriginPolicy(settings.allowed_origin_patterns)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Initializes the shared upstream client on startup and closes it on shutdown.
        """
        configure_telemetry()
        logger.bind(version=coreason_relay.__version__, mount_prefix=settings.mount_prefix).info(
            f"Relay started: api={settings.api_host} assets={settings.asset_host}"
        )

        app.state.http_client = create_upstream_client(settings, transport)
        app.state.proxy_service = ProxyService(settings, app.state.http_client)
        yield
        await app.state.http_client.aclose()

    app = FastAPI(title="CoReason Relay", version=coreason_relay.__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter

    @app.exception_handler(PayloadTooLargeError)
    async def payload_too_large_handler(request: Request, exc: PayloadTooLargeError) -> JSONResponse:
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"error": "Payload too large"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == status.HTTP_404_NOT_FOUND else exc.detail
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Error: {exc}")
        message = "Internal server error" if settings.is_production else str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": message})

    @app.middleware("http")
    async def access_log(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        line = format_access_log(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=(time.perf_counter() - started) * 1000,
            client=request.client.host if request.client else "-",
            user_agent=request.headers.get("user-agent", "-"),
            referrer=request.headers.get("referer", "-"),
            content_length=response.headers.get("content-length", "-"),
            development=settings.is_development,
        )
        logger.info(line)
        return response

    @app.middleware("http")
    async def security_headers(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        return apply_security_headers(await call_next(request))

    app.add_middleware(PolicyCORSMiddleware, origin_predicate=origin_predicate)

    app.include_router(_build_proxy_router(settings, rate_limiter))

    @app.get("/health")  # type: ignore[misc]
    async def health() -> Dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api")  # type: ignore[misc]
    async def api_root() -> Dict[str, str]:
        return {"message": "API is running"}

    FastAPIInstrumentor.instrument_app(app)
    return app


app = create_app()


@logger.catch  # type: ignore[misc]
def run_server() -> None:
    """Entry point for the coreason-relay command. Configured via ENV."""
    settings = RelaySettings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port, server_header=False)


if __name__ == "__main__":
    run_server()  # pragma: no cover
