# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""TrustTunnel Manager API server.

FastAPI application exposing the manager API on the router LAN. Every
``/api/*`` route except ``/api/auth/*`` goes through the auth gateway.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from src.api._limiter import HEALTH_RATE_LIMIT, limiter
from src.api.system_router import system_router
from src.auth.brute_force import LoginThrottle
from src.auth.gateway import AuthGateway
from src.auth.router import LOGIN_PATH, auth_router, invalid_login_request
from src.core.config import ManagerConfig
from src.ndm.rci import RciClient

logger = logging.getLogger("ttmanager.api")

VERSION = "0.3.0"


def create_app(
    config: ManagerConfig | None = None,
    gateway: AuthGateway | None = None,
    rci: RciClient | None = None,
) -> FastAPI:
    """Application factory.

    The auth gateway is built here, once, so the router target is resolved
    at startup and never per request. Tests pass a prebuilt gateway.
    """
    config = config or ManagerConfig()
    if gateway is None:
        gateway = AuthGateway.build(config.auth_configuration())
    if rci is None:
        rci = RciClient(gateway.config.rci_url, timeout=gateway.config.timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Manager API started (auth mode: %s)", gateway.mode.value)
        yield
        gateway.close()
        logger.info("Manager API stopped")

    app = FastAPI(
        title="TrustTunnel Manager API",
        description="Local management API for the TrustTunnel VPN client",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    app.state.config = config
    app.state.gateway = gateway
    app.state.login_throttle = LoginThrottle()
    app.state.rci = rci

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s %d %dms",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start) * 1000,
        )
        return response

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning("RATE LIMIT from %s on %s", request.client.host if request.client else "unknown", request.url.path)
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Try again later.", "retry_after": str(exc.detail)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        if request.url.path == LOGIN_PATH:
            logger.info("Rejected malformed login request (%d errors)", len(exc.errors()))
            return invalid_login_request()
        return await request_validation_exception_handler(request, exc)

    @app.get("/health")
    @limiter.limit(HEALTH_RATE_LIMIT)
    async def health(request: Request):
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "auth_mode": gateway.mode.value,
            "router_target_degraded": gateway.degraded,
        }

    app.include_router(auth_router)
    app.include_router(system_router)
    return app
