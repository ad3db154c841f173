# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Server-side session store with fixed TTL and a background reaper."""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from .rwlock import ReadWriteLock

logger = logging.getLogger("ttmanager.auth")

SESSION_TTL = 24 * 60 * 60  # 24 hours
REAP_INTERVAL = 10 * 60  # 10 minutes
TOKEN_BYTES = 32


@dataclass
class Session:
    """A session issued after a successful delegated login."""

    token: str
    owner: str
    expires_at: float


class SessionStore:
    """In-memory table of issued session tokens.

    ``validate`` checks expiry itself, so an expired session is rejected
    even before the reaper gets to it. The reaper only bounds memory.
    """

    def __init__(
        self,
        ttl: float = SESSION_TTL,
        reap_interval: float = REAP_INTERVAL,
        clock: Callable[[], float] = time.time,
        start_reaper: bool = True,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = ReadWriteLock()
        self._ttl = ttl
        self._reap_interval = reap_interval
        self._clock = clock
        self._stop = threading.Event()
        self._reaper: threading.Thread | None = None
        if start_reaper:
            self._reaper = threading.Thread(target=self._reap_loop, name="session-reaper", daemon=True)
            self._reaper.start()

    @property
    def ttl(self) -> float:
        return self._ttl

    def create(self, owner: str) -> str:
        """Issue a new session for ``owner`` and return its token."""
        token = secrets.token_bytes(TOKEN_BYTES).hex()
        session = Session(token=token, owner=owner, expires_at=self._clock() + self._ttl)
        with self._lock.write_locked():
            self._sessions[token] = session
        logger.info("Session %s created for %s", token[:8], owner)
        return token

    def validate(self, token: str) -> bool:
        """True iff the token is known and not yet expired."""
        return self.get(token) is not None

    def get(self, token: str) -> Session | None:
        """Return a snapshot of the live session for ``token``, or None."""
        if not token:
            return None
        with self._lock.read_locked():
            session = self._sessions.get(token)
            if session is None or self._clock() >= session.expires_at:
                return None
            return replace(session)

    def destroy(self, token: str) -> None:
        """Remove a session. Unknown tokens are ignored."""
        with self._lock.write_locked():
            removed = self._sessions.pop(token, None)
        if removed is not None:
            logger.info("Session %s destroyed", token[:8])

    def reap(self) -> int:
        """Remove every expired session. Returns count removed."""
        now = self._clock()
        with self._lock.write_locked():
            expired = [t for t, s in self._sessions.items() if s.expires_at <= now]
            for token in expired:
                del self._sessions[token]
        if expired:
            logger.debug("Reaped %d expired sessions", len(expired))
        return len(expired)

    def active_count(self) -> int:
        """Return count of unexpired sessions."""
        now = self._clock()
        with self._lock.read_locked():
            return sum(1 for s in self._sessions.values() if now < s.expires_at)

    def close(self) -> None:
        """Stop the reaper thread. Safe to call more than once."""
        self._stop.set()
        reaper, self._reaper = self._reaper, None
        if reaper is not None and reaper is not threading.current_thread():
            reaper.join(timeout=5)

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._sessions)

    def _reap_loop(self) -> None:
        while not self._stop.wait(self._reap_interval):
            try:
                self.reap()
            except Exception:
                logger.exception("Session reaper iteration failed")
