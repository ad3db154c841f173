"""Manager configuration loader.

Reads either a YAML file or the router-side ``manager.conf`` (shell-style
``KEY=VALUE`` lines), applies ``TT_*`` environment overrides and provides
dotted-key access. Auth settings are frozen into an ``AuthConfiguration``
once at startup.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

from src.auth.gateway import AuthConfiguration, DelegationStrategy

logger = logging.getLogger("ttmanager.config")

DEFAULT_CONFIG_PATH = "/opt/trusttunnel_client/manager.conf"
ENV_PREFIX = "TT_"

DEFAULTS: dict[str, Any] = {
    "web": {"listen_addr": ":8080"},
    "auth": {
        "mode": "",
        "username": "admin",
        "password": "",
        "delegation": "session",
        "session_ttl": 24 * 60 * 60,
        "cache_ttl": 60,
    },
    "router": {"rci_url": "http://localhost:79", "auth_url": "", "timeout": 5.0},
    "logging": {"level": "INFO", "dir": ""},
}

# manager.conf keys (and TT_<KEY> env vars) -> dotted config keys
FLAT_KEYS = {
    "LISTEN_ADDR": "web.listen_addr",
    "AUTH_MODE": "auth.mode",
    "USERNAME": "auth.username",
    "PASSWORD": "auth.password",
    "AUTH_DELEGATION": "auth.delegation",
    "SESSION_TTL": "auth.session_ttl",
    "CACHE_TTL": "auth.cache_ttl",
    "RCI_URL": "router.rci_url",
    "ROUTER_AUTH_URL": "router.auth_url",
    "ROUTER_TIMEOUT": "router.timeout",
    "LOG_LEVEL": "logging.level",
    "LOG_DIR": "logging.dir",
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ManagerConfig:
    """Central configuration for the manager process."""

    def __init__(
        self,
        config_path: str | Path = DEFAULT_CONFIG_PATH,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Load configuration from ``config_path``.

        Args:
            config_path: YAML file (``.yaml``/``.yml``) or ``manager.conf``.
            environ: Environment used for ``TT_*`` overrides. Defaults to ``os.environ``.
        """
        self._config_path = Path(config_path)
        self._environ = os.environ if environ is None else environ
        self._data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load()

    @property
    def path(self) -> Path:
        return self._config_path

    def _load(self) -> None:
        if not self._config_path.exists():
            logger.warning("Config file not found: %s (using defaults)", self._config_path)
        elif self._config_path.suffix in (".yaml", ".yml"):
            raw = self._config_path.read_text(encoding="utf-8")
            _deep_merge(self._data, yaml.safe_load(raw) or {})
        else:
            self._apply_flat(dotenv_values(self._config_path))

        self._apply_flat({
            key[len(ENV_PREFIX):]: value
            for key, value in self._environ.items()
            if key.startswith(ENV_PREFIX)
        })

    def _apply_flat(self, values: Mapping[str, str | None]) -> None:
        for key, value in values.items():
            dotted = FLAT_KEYS.get(key)
            if dotted is None or value is None:
                continue
            self.set(dotted, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a configuration value by dotted key path.

        Args:
            key: Dotted key path (e.g. 'auth.session_ttl').
            default: Fallback value if key is not found.
        """
        current: Any = self._data
        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        current = self._data
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = value

    def validate(self) -> bool:
        """Check the loaded values for consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        mode = str(self.get("auth.mode") or "").lower()
        if mode not in ("", "ndm", "local", "none", "off"):
            raise ValueError(f"Invalid auth mode: {mode!r} (expected ndm/local/none)")

        delegation = str(self.get("auth.delegation") or "session").lower()
        if delegation not in {d.value for d in DelegationStrategy}:
            raise ValueError(f"Invalid auth delegation: {delegation!r} (expected session/forward)")

        for key in ("auth.session_ttl", "auth.cache_ttl", "router.timeout"):
            if self._number(key) <= 0:
                raise ValueError(f"{key} must be positive")

        level = str(self.get("logging.level", "")).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {level!r}")

        self.listen_address()
        return True

    def auth_configuration(self) -> AuthConfiguration:
        """Freeze the auth settings for the process lifetime."""
        self.validate()
        return AuthConfiguration.from_settings(
            mode=str(self.get("auth.mode") or ""),
            username=str(self.get("auth.username") or "admin"),
            password=str(self.get("auth.password") or ""),
            delegation=str(self.get("auth.delegation") or "session"),
            session_ttl=self._number("auth.session_ttl"),
            cache_ttl=self._number("auth.cache_ttl"),
            rci_url=str(self.get("router.rci_url")),
            auth_url=str(self.get("router.auth_url") or ""),
            timeout=self._number("router.timeout"),
        )

    def listen_address(self) -> tuple[str, int]:
        """Split ``LISTEN_ADDR`` (``:8080``, ``0.0.0.0:8080``, ``[::]:8080``) into host and port.

        Raises:
            ValueError: If the port is not a number in 1-65535.
        """
        addr = str(self.get("web.listen_addr") or ":8080").strip()
        host, _, port = addr.rpartition(":")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        port = port or "8080"
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"Invalid listen address: {addr!r} (port must be 1-65535)")
        return host or "0.0.0.0", int(port)

    def _number(self, key: str) -> float:
        value = self.get(key)
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be a number, got {value!r}") from exc


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
