# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Short-TTL cache of router verification results for forwarded credentials."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from .rwlock import ReadWriteLock

CACHE_TTL = 60  # seconds


@dataclass(frozen=True)
class CacheEntry:
    valid: bool
    expires_at: float


def credential_key(username: str, password: str) -> str:
    """One-way cache key for a username/password pair."""
    # NUL separator keys ("ab", "c") and ("a", "bc") apart
    return hashlib.sha256(f"{username}\x00{password}".encode("utf-8")).hexdigest()


def cookie_key(cookies: Mapping[str, str]) -> str:
    """Order-independent cache key for a forwarded cookie set."""
    pairs = sorted(f"{name}={value}" for name, value in cookies.items())
    return hashlib.sha256("; ".join(pairs).encode("utf-8")).hexdigest()


class VerificationCache:
    """TTL cache keyed by hashed credentials or cookie sets.

    Expired entries are never served. They are swept on every ``put``
    rather than by a background task.
    """

    def __init__(self, ttl: float = CACHE_TTL, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._ttl = ttl
        self._clock = clock

    def get(self, key: str) -> tuple[bool, bool]:
        """Return ``(valid, found)``. Stale entries count as not found."""
        with self._lock.read_locked():
            entry = self._entries.get(key)
            if entry is None or self._clock() >= entry.expires_at:
                return False, False
            return entry.valid, True

    def put(self, key: str, valid: bool) -> None:
        now = self._clock()
        with self._lock.write_locked():
            stale = [k for k, e in self._entries.items() if e.expires_at <= now]
            for k in stale:
                del self._entries[k]
            self._entries[key] = CacheEntry(valid=valid, expires_at=now + self._ttl)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)
