# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Logging setup and structured security events for the manager.

Components log through ``logging.getLogger("ttmanager.<component>")``.
Security events (logins, logouts, lockouts) are additionally emitted as one
JSON line each on ``ttmanager.security``, with sensitive fields redacted.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

ROOT_LOGGER = "ttmanager"
SECURITY_LOGGER = "ttmanager.security"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 64-hex session tokens and router challenge answers
_SENSITIVE_PATTERNS = re.compile(r"\b[0-9a-f]{64}\b", re.IGNORECASE)

_SENSITIVE_KEYS = frozenset({
    "password", "passwd", "pwd", "secret", "token", "session", "cookie",
    "cookies", "authorization", "credential", "challenge",
})


def _redact_value(key: str, value: Any) -> Any:
    """Redact sensitive values in event details."""
    if key.lower() in _SENSITIVE_KEYS:
        return "[REDACTED]"
    if isinstance(value, str) and _SENSITIVE_PATTERNS.search(value):
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", value)
    return value


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    max_bytes: int = 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach console (and optionally rotating file) handlers to ``ttmanager``.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory for ``ttmanager.log``. If None, only logs to stderr.
        max_bytes: Max size per log file before rotation. Router flash is small.
        backup_count: Number of rotated log files to keep.

    Returns:
        The configured root ``ttmanager`` logger.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Only add handlers once (prevent duplicates on app re-creation)
    if not root.handlers:
        fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        root.addHandler(console)

        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / "ttmanager.log",
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(fmt)
            root.addHandler(file_handler)

    return root


def security_event(event_type: str, severity: str, **details: Any) -> dict[str, Any]:
    """Log a structured security event and return the emitted record.

    Args:
        event_type: e.g. ``login_success``, ``login_failed``, ``logout``.
        severity: low, medium, high or critical.
        **details: Event-specific fields. Sensitive keys are redacted.
    """
    event = {
        "event_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "severity": severity.upper(),
        **{k: _redact_value(k, v) for k, v in details.items()},
    }
    level = {
        "low": logging.INFO,
        "medium": logging.WARNING,
        "high": logging.ERROR,
        "critical": logging.CRITICAL,
    }.get(severity.lower(), logging.WARNING)

    logging.getLogger(SECURITY_LOGGER).log(level, json.dumps(event, ensure_ascii=False, default=str))
    return event
