# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Authorization gateway for the manager API.

One gateway per process, in one of three modes fixed at startup:

    none   every request is authorized
    local  static username/password, compared in constant time
    ndm    delegated to the router firmware, either by issuing our own
           session after a router login (``session``) or by re-verifying
           the caller's credentials/cookies with a short cache (``forward``)

Changing mode requires a restart.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Mapping

import requests

from src.ndm.challenge import DEFAULT_TIMEOUT, ChallengeResponseVerifier
from src.ndm.errors import InvalidCredentialsError, RouterAuthError
from src.ndm.rci import DEFAULT_RCI_URL, RciClient
from src.ndm.target import ResolvedTarget, TargetResolver

from .session_store import SESSION_TTL, Session, SessionStore
from .verification_cache import CACHE_TTL, VerificationCache, cookie_key, credential_key

logger = logging.getLogger("ttmanager.auth")

ANONYMOUS = "anonymous"
ROUTER_COOKIE_IDENTITY = "router-session"


class AuthMode(str, Enum):
    NONE = "none"
    LOCAL = "local"
    ROUTER = "ndm"


class DelegationStrategy(str, Enum):
    SESSION = "session"
    FORWARD = "forward"


class GatewayError(Exception):
    """Operation not available in the configured mode."""


@dataclass(frozen=True)
class AuthConfiguration:
    """Immutable auth settings, fixed for the process lifetime."""

    mode: AuthMode = AuthMode.NONE
    username: str = "admin"
    password: str = ""
    delegation: DelegationStrategy = DelegationStrategy.SESSION
    session_ttl: float = SESSION_TTL
    cache_ttl: float = CACHE_TTL
    rci_url: str = DEFAULT_RCI_URL
    auth_url: str = ""  # resolved router target; empty means resolve at build time
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_settings(
        cls,
        mode: str = "",
        username: str = "admin",
        password: str = "",
        **options,
    ) -> AuthConfiguration:
        """Pick the mode from the manager settings.

        ``local`` with an empty password falls back to ``none``. An empty or
        unknown mode is auto-detected: a password means ``local``, no password
        means ``ndm``.
        """
        mode = (mode or "").strip().lower()
        if mode == "ndm":
            logger.info("Auth mode: ndm (router accounts)")
            chosen = AuthMode.ROUTER
        elif mode == "local":
            if password:
                logger.info("Auth mode: local (static username/password)")
                chosen = AuthMode.LOCAL
            else:
                logger.warning("Auth mode: none (AUTH_MODE=local but PASSWORD is empty)")
                chosen = AuthMode.NONE
        elif mode in ("none", "off"):
            logger.info("Auth mode: none (disabled)")
            chosen = AuthMode.NONE
        elif password:
            logger.info("Auth mode: local (auto, PASSWORD is set)")
            chosen = AuthMode.LOCAL
        else:
            logger.info("Auth mode: ndm (auto, no PASSWORD configured)")
            chosen = AuthMode.ROUTER

        if "delegation" in options and not isinstance(options["delegation"], DelegationStrategy):
            options["delegation"] = DelegationStrategy(str(options["delegation"]).strip().lower() or "session")
        return cls(mode=chosen, username=username, password=password, **options)


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str


@dataclass(frozen=True)
class AuthRequest:
    """Framework-independent view of the auth-relevant parts of a request."""

    credentials: Credentials | None = None
    session_token: str = ""
    router_cookies: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthDecision:
    allowed: bool
    identity: str = ""

    def __bool__(self) -> bool:
        return self.allowed


DENY = AuthDecision(allowed=False)


class AuthGateway:
    """Single ``authorize`` entry point over the configured auth mode."""

    def __init__(
        self,
        config: AuthConfiguration,
        verifier: ChallengeResponseVerifier | None = None,
        sessions: SessionStore | None = None,
        cache: VerificationCache | None = None,
        target: ResolvedTarget | None = None,
    ) -> None:
        self._config = config
        self._verifier = verifier
        self._sessions = sessions
        self._cache = cache
        self._target = target

        if config.mode is AuthMode.ROUTER:
            if verifier is None:
                raise GatewayError("router mode requires a challenge-response verifier")
            if config.delegation is DelegationStrategy.SESSION and sessions is None:
                self._sessions = SessionStore(ttl=config.session_ttl)
            if config.delegation is DelegationStrategy.FORWARD and cache is None:
                self._cache = VerificationCache(ttl=config.cache_ttl)

    @classmethod
    def build(
        cls,
        config: AuthConfiguration,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> AuthGateway:
        """Wire a gateway for ``config``, resolving the router target once if needed."""
        if config.mode is not AuthMode.ROUTER:
            return cls(config)

        target = None
        if not config.auth_url:
            rci = RciClient(config.rci_url, timeout=config.timeout, session_factory=session_factory)
            target = TargetResolver(rci).resolve()
            config = replace(config, auth_url=target.url)
        verifier = ChallengeResponseVerifier(config.auth_url, timeout=config.timeout, session_factory=session_factory)
        return cls(config, verifier=verifier, target=target)

    # -- properties ------------------------------------------------------------

    @property
    def config(self) -> AuthConfiguration:
        return self._config

    @property
    def mode(self) -> AuthMode:
        return self._config.mode

    @property
    def sessions(self) -> SessionStore | None:
        return self._sessions

    @property
    def target(self) -> ResolvedTarget | None:
        return self._target

    @property
    def degraded(self) -> bool:
        """True when the router target is the hardcoded fallback guess."""
        return self._target is not None and self._target.degraded

    @property
    def issues_sessions(self) -> bool:
        return self.mode is AuthMode.ROUTER and self._config.delegation is DelegationStrategy.SESSION

    # -- per-request -----------------------------------------------------------

    def authorize(self, request: AuthRequest) -> AuthDecision:
        """Decide whether ``request`` may reach a protected route."""
        if self.mode is AuthMode.NONE:
            return AuthDecision(True, ANONYMOUS)
        if self.mode is AuthMode.LOCAL:
            return self._authorize_local(request)
        if self.issues_sessions:
            session = self._lookup_session(request.session_token)
            return AuthDecision(True, session.owner) if session else DENY
        return self._authorize_forwarded(request, record=True)

    def check(self, request: AuthRequest) -> bool:
        """Report authentication state without creating sessions or caching verdicts."""
        if self.mode is AuthMode.ROUTER and not self.issues_sessions:
            return self._authorize_forwarded(request, record=False).allowed
        return self.authorize(request).allowed

    # -- explicit lifecycle ----------------------------------------------------

    def login(self, username: str, password: str) -> str:
        """Verify with the router and return a new session token.

        Raises:
            GatewayError: the gateway does not issue sessions.
            src.ndm.errors.RouterAuthError: verification failed.
        """
        if not self.issues_sessions:
            raise GatewayError("router session login is not enabled")
        identity = self._verifier.login(username, password)
        return self._sessions.create(identity)

    def logout(self, token: str) -> None:
        if self._sessions is not None and token:
            self._sessions.destroy(token)

    def close(self) -> None:
        if self._sessions is not None:
            self._sessions.close()

    # -- internals -------------------------------------------------------------

    def _authorize_local(self, request: AuthRequest) -> AuthDecision:
        creds = request.credentials
        if creds is None:
            return DENY
        # Evaluate both comparisons so timing does not reveal which field was wrong
        user_ok = secrets.compare_digest(creds.username.encode("utf-8"), self._config.username.encode("utf-8"))
        pass_ok = secrets.compare_digest(creds.password.encode("utf-8"), self._config.password.encode("utf-8"))
        if user_ok and pass_ok:
            return AuthDecision(True, creds.username)
        return DENY

    def _lookup_session(self, token: str) -> Session | None:
        if not token:
            return None
        return self._sessions.get(token)

    def _authorize_forwarded(self, request: AuthRequest, record: bool) -> AuthDecision:
        creds = request.credentials
        if creds is not None:
            key = credential_key(creds.username, creds.password)
            identity = creds.username
            verify = lambda: bool(self._verifier.login(creds.username, creds.password))
        elif request.router_cookies:
            key = cookie_key(request.router_cookies)
            identity = ROUTER_COOKIE_IDENTITY
            verify = lambda: self._verifier.check_cookies(request.router_cookies)
        else:
            return DENY

        valid, found = self._cache.get(key)
        if not found:
            try:
                valid = verify()
            except InvalidCredentialsError:
                valid = False
            except RouterAuthError as exc:
                # Not a verdict on the caller, so nothing is cached
                logger.warning("Router verification unavailable: %s", exc)
                return DENY
            if record:
                self._cache.put(key, valid)
        return AuthDecision(True, identity) if valid else DENY
