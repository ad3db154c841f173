# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Client side of the router firmware's ``/auth`` challenge-response protocol.

Flow:
    1. ``GET /auth``. A redirect (HTTP upgraded to HTTPS) is followed once by
       hand. ``200`` means the router already trusts us. ``401`` carries the
       ``X-NDM-Realm`` and ``X-NDM-Challenge`` headers.
    2. ``h1 = md5(user:realm:password)``, ``response = sha256(challenge + h1)``.
    3. ``POST /auth`` with ``{"login": user, "password": response}``, replaying
       the cookies the router set on the ``GET``.
    4. ``200`` on the POST means the credentials are valid.

Redirects are never auto-followed, because the challenge headers and cookies
of the response in hand must not be discarded.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Mapping
from urllib.parse import urljoin

import requests

from .errors import (
    InvalidCredentialsError,
    RouterAuthError,
    RouterProtocolError,
    RouterUnreachableError,
)

logger = logging.getLogger("ttmanager.ndm")

REALM_HEADER = "X-NDM-Realm"
CHALLENGE_HEADER = "X-NDM-Challenge"
REDIRECT_CODES = frozenset({301, 302, 303, 307, 308})
DEFAULT_TIMEOUT = 5.0


def compute_response(username: str, password: str, realm: str, challenge: str) -> str:
    """Return the lowercase hex answer to a router challenge."""
    h1 = hashlib.md5(f"{username}:{realm}:{password}".encode("utf-8")).hexdigest()
    return hashlib.sha256((challenge + h1).encode("utf-8")).hexdigest()


class ChallengeResponseVerifier:
    """Verifies credentials against the router's own web authentication.

    Stateless apart from the resolved target URL. Every call opens its own
    HTTP session and closes it before returning.
    """

    def __init__(
        self,
        auth_base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._auth_url = auth_base_url.rstrip("/") + "/auth"
        self._timeout = timeout
        self._session_factory = session_factory

    @property
    def auth_url(self) -> str:
        return self._auth_url

    def login(self, username: str, password: str) -> str:
        """Run the full protocol. Returns the verified identity.

        Raises:
            InvalidCredentialsError: the router rejected the second step.
            RouterUnreachableError: network failure or timeout.
            RouterProtocolError: the router answered outside the protocol.
        """
        with self._session_factory() as http:
            url, probe = self._probe(http, cookies=None)

            if probe.status_code == 200:
                logger.info("Router reports %s as already trusted", username)
                return username
            if probe.status_code != 401:
                raise RouterProtocolError(f"unexpected router status {probe.status_code} from {url}")

            realm = probe.headers.get(REALM_HEADER, "")
            challenge = probe.headers.get(CHALLENGE_HEADER, "")
            if not realm or not challenge:
                raise RouterProtocolError(
                    f"router did not return auth challenge (realm={realm!r}, challenge={challenge!r})"
                )

            body = {"login": username, "password": compute_response(username, password, realm, challenge)}
            answer = self._request(http, "POST", url, json=body, cookies=probe.cookies)

        if answer.status_code != 200:
            # The raw status stays in the log; callers only see the generic error.
            logger.info("Router rejected credentials for %s (status %d)", username, answer.status_code)
            raise InvalidCredentialsError()
        return username

    def verify_once(self, username: str, password: str) -> bool:
        """Boolean form of :meth:`login` for callers that do not cache the outcome.

        Infrastructure errors are logged and yield False, so a ``False`` here
        does not distinguish bad credentials from an unreachable router.
        Callers that cache verdicts must call :meth:`login` and handle
        :class:`InvalidCredentialsError` separately.
        """
        try:
            self.login(username, password)
        except InvalidCredentialsError:
            return False
        except RouterAuthError as exc:
            logger.warning("Router verification failed: %s", exc)
            return False
        return True

    def check_cookies(self, cookies: Mapping[str, str]) -> bool:
        """Ask the router whether a forwarded cookie set is still trusted.

        Returns True on ``200`` and False on ``401``. Anything else raises
        the same errors as :meth:`login`.
        """
        with self._session_factory() as http:
            url, probe = self._probe(http, cookies=dict(cookies))
        if probe.status_code == 200:
            return True
        if probe.status_code == 401:
            return False
        raise RouterProtocolError(f"unexpected router status {probe.status_code} from {url}")

    # -- internals -------------------------------------------------------------

    def _probe(self, http: requests.Session, cookies: dict[str, str] | None) -> tuple[str, requests.Response]:
        url = self._auth_url
        resp = self._request(http, "GET", url, cookies=cookies)
        if resp.status_code in REDIRECT_CODES:
            location = resp.headers.get("Location", "")
            if location:
                url = urljoin(url, location)
                logger.info("Router auth: following redirect to %s", url)
                resp = self._request(http, "GET", url, cookies=cookies)
        return url, resp

    def _request(self, http: requests.Session, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return http.request(method, url, timeout=self._timeout, allow_redirects=False, **kwargs)
        except requests.RequestException as exc:
            raise RouterUnreachableError(f"router unreachable at {url}: {exc}") from exc
