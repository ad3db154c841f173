# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Login throttling per client address.

Only router verdicts of "invalid credentials" count as failures. An
unreachable router says nothing about the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger("ttmanager.auth")

WINDOW_SECONDS = 60
MAX_ATTEMPTS_PER_WINDOW = 5
LOCKOUT_ATTEMPTS = 10
LOCKOUT_DURATION = 15 * 60
PROGRESSIVE_DELAY_START = 3
MAX_DELAY = 30.0


@dataclass
class _Tracker:
    failures: list[float] = field(default_factory=list)
    total_failures: int = 0
    locked_until: float = 0.0


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    reason: str = ""
    delay: float = 0.0
    retry_after: int = 0


class LoginThrottle:
    """Sliding-window rate limit, lockout and progressive delay for logins."""

    def __init__(
        self,
        max_per_window: int = MAX_ATTEMPTS_PER_WINDOW,
        lockout_after: int = LOCKOUT_ATTEMPTS,
        lockout_seconds: int = LOCKOUT_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._trackers: dict[str, _Tracker] = {}
        self._lock = threading.Lock()
        self._max_per_window = max_per_window
        self._lockout_after = lockout_after
        self._lockout_seconds = lockout_seconds
        self._clock = clock

    def check(self, client: str) -> ThrottleDecision:
        now = self._clock()
        with self._lock:
            tracker = self._trackers.get(client)
            if tracker is None:
                return ThrottleDecision(allowed=True)

            if tracker.locked_until > now:
                remaining = int(tracker.locked_until - now) + 1
                return ThrottleDecision(False, f"Locked for {remaining}s", retry_after=remaining)

            tracker.failures = [t for t in tracker.failures if now - t < WINDOW_SECONDS]
            if not tracker.failures:
                del self._trackers[client]
                return ThrottleDecision(allowed=True)
            if len(tracker.failures) >= self._max_per_window:
                return ThrottleDecision(False, "Too many attempts, try again in 1 minute", retry_after=WINDOW_SECONDS)

            delay = 0.0
            if tracker.total_failures >= PROGRESSIVE_DELAY_START:
                delay = min(2.0 ** (tracker.total_failures - PROGRESSIVE_DELAY_START), MAX_DELAY)
            return ThrottleDecision(allowed=True, delay=delay)

    def record_failure(self, client: str) -> None:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            tracker = self._trackers.setdefault(client, _Tracker())
            tracker.failures.append(now)
            tracker.total_failures += 1
            if tracker.total_failures >= self._lockout_after:
                tracker.locked_until = now + self._lockout_seconds
                logger.warning(
                    "Client %s locked out for %ds after %d failed logins",
                    pseudonymize_ip(client),
                    self._lockout_seconds,
                    tracker.total_failures,
                )

    def record_success(self, client: str) -> None:
        with self._lock:
            self._trackers.pop(client, None)

    def reset(self) -> None:
        with self._lock:
            self._trackers.clear()

    def cleanup(self) -> int:
        """Remove stale trackers. Returns count removed."""
        with self._lock:
            return self._sweep(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)

    def _sweep(self, now: float) -> int:
        # Caller holds self._lock
        stale = [
            client
            for client, t in self._trackers.items()
            if t.locked_until <= now and not any(now - f < WINDOW_SECONDS for f in t.failures)
        ]
        for client in stale:
            del self._trackers[client]
        return len(stale)


def pseudonymize_ip(ip: str) -> str:
    """Null the last IPv4 octet for log output."""
    parts = ip.split(".")
    if len(parts) == 4:
        parts[-1] = "0"
        return ".".join(parts)
    return ip
