# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Pydantic models for the /api/auth endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request body."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=256)


class LoginResponse(BaseModel):
    """Login/logout outcome. ``error`` is omitted on success."""

    ok: bool
    error: str | None = None


class CheckResponse(BaseModel):
    authenticated: bool
    auth_mode: str


class AuthError(BaseModel):
    """Auth error response."""

    detail: str
    retry_after: int | None = None


class SessionInfo(BaseModel):
    """Info about active manager sessions."""

    active_sessions: int
