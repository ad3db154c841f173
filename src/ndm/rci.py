# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Read-only client for the router's local RCI management API."""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests

from .errors import RouterProtocolError, RouterUnreachableError

logger = logging.getLogger("ttmanager.ndm")

DEFAULT_RCI_URL = "http://localhost:79"
DEFAULT_TIMEOUT = 5.0


class RciClient:
    """Issues ``show`` queries against ``/rci/`` on the router.

    A fresh HTTP session is opened per query and closed before returning,
    so no connection outlives the call.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_RCI_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session_factory = session_factory

    @property
    def base_url(self) -> str:
        return self._base_url

    def show_interface(self, name: str) -> dict[str, Any]:
        """Return the decoded ``show interface <name>`` object."""
        return self._get_json(f"/rci/show/interface/{name}")

    def interface_address(self, name: str) -> str:
        """Return the configured IPv4 address of an interface, or ``""``."""
        address = self.show_interface(name).get("address", "")
        return address.strip() if isinstance(address, str) else ""

    def show_version(self) -> dict[str, Any]:
        """Return the decoded ``show version`` object."""
        return self._get_json("/rci/show/version")

    def _get_json(self, path: str) -> dict[str, Any]:
        url = self._base_url + path
        try:
            with self._session_factory() as http:
                resp = http.get(url, timeout=self._timeout, allow_redirects=False)
                status = resp.status_code
                if status != 200:
                    raise RouterProtocolError(f"RCI returned {status} for {url}")
                try:
                    data = resp.json()
                except ValueError as exc:
                    raise RouterProtocolError(f"RCI returned non-JSON body for {url}") from exc
        except requests.RequestException as exc:
            raise RouterUnreachableError(f"RCI request to {url} failed: {exc}") from exc

        if not isinstance(data, dict):
            raise RouterProtocolError(f"RCI returned {type(data).__name__} for {url}, expected object")
        return data
