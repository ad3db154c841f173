# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Manager authentication API router: /api/auth/."""

import asyncio
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.concurrency import run_in_threadpool

from src.api._limiter import LOGIN_RATE_LIMIT, limiter
from src.core.logger import security_event
from src.ndm.errors import InvalidCredentialsError, RouterAuthError

from .brute_force import LoginThrottle, pseudonymize_ip
from .gateway import AuthGateway, AuthRequest, Credentials
from .models import AuthError, CheckResponse, LoginRequest, LoginResponse, SessionInfo

logger = logging.getLogger("ttmanager.auth")

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

SESSION_COOKIE_NAME = "tt_session"
COOKIE_SECURE = os.environ.get("TT_COOKIE_SECURE", "false").lower() == "true"
WWW_AUTHENTICATE = 'Basic realm="TrustTunnel Manager"'
INVALID_LOGIN_MESSAGE = "invalid username or password"
INVALID_REQUEST_MESSAGE = "invalid request"
LOGIN_PATH = "/api/auth/login"

_basic_scheme = HTTPBasic(auto_error=False)


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


def _get_throttle(request: Request) -> LoginThrottle:
    return request.app.state.login_throttle


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def build_auth_request(request: Request, credentials: HTTPBasicCredentials | None) -> AuthRequest:
    """Collect Basic credentials, our session cookie and any router cookies."""
    cookies = dict(request.cookies)
    token = cookies.pop(SESSION_COOKIE_NAME, "")
    return AuthRequest(
        credentials=Credentials(credentials.username, credentials.password) if credentials else None,
        session_token=token,
        router_cookies=cookies,
    )


def _login_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=LoginResponse(ok=False, error=message).model_dump(exclude_none=True),
    )


def invalid_login_request() -> JSONResponse:
    """400 in the login response shape. The rejected input is not echoed."""
    return _login_error(400, INVALID_REQUEST_MESSAGE)


@auth_router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(req: LoginRequest, request: Request, response: Response):
    """Verify credentials with the router and issue a session cookie."""
    gateway = get_gateway(request)
    if not gateway.issues_sessions:
        return _login_error(400, "router auth not configured")

    client_ip = _client_ip(request)
    throttle = _get_throttle(request)
    decision = throttle.check(client_ip)
    if not decision.allowed:
        logger.warning("Login blocked for %s: %s", pseudonymize_ip(client_ip), decision.reason)
        return JSONResponse(
            status_code=429,
            content=AuthError(detail=decision.reason, retry_after=decision.retry_after).model_dump(),
        )
    if decision.delay > 0:
        await asyncio.sleep(decision.delay)

    try:
        token = await run_in_threadpool(gateway.login, req.username, req.password)
    except InvalidCredentialsError:
        throttle.record_failure(client_ip)
        security_event("login_failed", "medium", username=req.username, client=pseudonymize_ip(client_ip))
        return _login_error(401, INVALID_LOGIN_MESSAGE)
    except RouterAuthError as exc:
        logger.error("Login for %s could not be verified: %s", req.username, exc)
        return _login_error(502, exc.public_message)

    throttle.record_success(client_ip)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=int(gateway.sessions.ttl),
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    security_event("login_success", "low", username=req.username, client=pseudonymize_ip(client_ip))
    return LoginResponse(ok=True)


@auth_router.post("/logout", response_model=LoginResponse, response_model_exclude_none=True)
async def logout(request: Request, response: Response):
    """Destroy the session named by the cookie and clear the cookie."""
    token = request.cookies.get(SESSION_COOKIE_NAME, "")
    if token:
        get_gateway(request).logout(token)
        security_event("logout", "low", client=pseudonymize_ip(_client_ip(request)))
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/", httponly=True)
    return LoginResponse(ok=True)


@auth_router.get("/check", response_model=CheckResponse)
def check(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(_basic_scheme),
):
    """Report whether the caller is authenticated, without side effects."""
    gateway = get_gateway(request)
    authenticated = gateway.check(build_auth_request(request, credentials))
    return CheckResponse(authenticated=authenticated, auth_mode=gateway.mode.value)


# === Dependency for protected API endpoints ===


def require_auth(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(_basic_scheme),
) -> str:
    """FastAPI dependency: authorize the request, return the caller identity."""
    decision = get_gateway(request).authorize(build_auth_request(request, credentials))
    if not decision:
        logger.info("AUTH DENIED from %s for %s", pseudonymize_ip(_client_ip(request)), request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": WWW_AUTHENTICATE},
        )
    return decision.identity


@auth_router.get("/sessions", response_model=SessionInfo)
def get_sessions(request: Request, _identity: str = Depends(require_auth)):
    """Count of live manager sessions (0 when the gateway issues none)."""
    sessions = get_gateway(request).sessions
    return SessionInfo(active_sessions=sessions.active_count() if sessions else 0)
