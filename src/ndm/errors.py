# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Errors raised while talking to the router firmware.

The HTTP layer shows ``public_message`` to end users. The exception text
carries the operator-facing detail and only goes to the log.
"""

from __future__ import annotations


class RouterAuthError(Exception):
    """Base class for router authentication failures."""

    public_message = "router authentication failed"


class RouterProtocolError(RouterAuthError):
    """Router answered, but not in a way the challenge-response protocol defines."""

    public_message = "router authentication protocol error"


class RouterUnreachableError(RouterAuthError):
    """Network error or timeout while contacting the router."""

    public_message = "router unreachable"


class InvalidCredentialsError(RouterAuthError):
    """Router rejected the credentials in the second protocol step."""

    public_message = "invalid credentials"

    def __init__(self, message: str = "invalid credentials") -> None:
        super().__init__(message)
