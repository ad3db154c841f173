# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Locate the LAN address that serves the router's ``/auth`` endpoint.

The firmware only answers ``/auth`` for connections arriving on a LAN
interface, so ``localhost`` cannot be used. Resolution runs once at startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import RouterAuthError
from .rci import RciClient

logger = logging.getLogger("ttmanager.ndm")

PRIMARY_INTERFACE = "Bridge0"
FALLBACK_INTERFACES = ("Bridge0", "Home", "ISP")
FALLBACK_URL = "http://192.168.1.1"


@dataclass(frozen=True)
class ResolvedTarget:
    """Outcome of target resolution."""

    url: str
    source: str  # interface name or "fallback"
    degraded: bool = False


class TargetResolver:
    """Resolves the router auth base URL with a prioritized fallback chain."""

    def __init__(self, rci: RciClient, fallback_url: str = FALLBACK_URL) -> None:
        self._rci = rci
        self._fallback_url = fallback_url.rstrip("/")

    def resolve(self) -> ResolvedTarget:
        address = self._probe(PRIMARY_INTERFACE)
        if address:
            url = f"http://{address}"
            logger.info("Router auth URL: %s (auto-detected from %s)", url, PRIMARY_INTERFACE)
            return ResolvedTarget(url=url, source=PRIMARY_INTERFACE)

        for name in FALLBACK_INTERFACES:
            address = self._probe(name)
            if address:
                url = f"http://{address}"
                logger.info("Router auth URL: %s (from interface %s)", url, name)
                return ResolvedTarget(url=url, source=name)

        logger.warning(
            "Router auth URL: %s (hardcoded fallback, all interface detection failed)",
            self._fallback_url,
        )
        return ResolvedTarget(url=self._fallback_url, source="fallback", degraded=True)

    def _probe(self, name: str) -> str:
        try:
            return self._rci.interface_address(name)
        except RouterAuthError as exc:
            logger.debug("Interface %s probe failed: %s", name, exc)
            return ""
