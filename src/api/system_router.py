# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Router system information: /api/system (requires auth)."""

import logging
import platform
import socket
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from src.auth.router import require_auth
from src.ndm.errors import RouterAuthError
from src.ndm.rci import RciClient

logger = logging.getLogger("ttmanager.api")

system_router = APIRouter(prefix="/api", tags=["system"])

NDM_DIR = Path("/tmp/ndm")
UNKNOWN = "unknown"


class SystemInfo(BaseModel):
    model: str
    firmware: str
    ndms_major: int
    architecture: str
    hostname: str
    uptime: str


def _read_first_line(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError:
        return UNKNOWN
    return text.splitlines()[0] if text else UNKNOWN


def ndms_major(firmware: str) -> int:
    """Major NDMS version from a firmware string, 0 when unrecognized."""
    for major in (3, 4, 5):
        if firmware.startswith(f"{major}."):
            return major
    return 0


def collect_system_info(rci: RciClient, ndm_dir: Path = NDM_DIR, proc_uptime: Path = Path("/proc/uptime")) -> SystemInfo:
    """Model and firmware come from the firmware's /tmp/ndm files, falling back to RCI."""
    model = _read_first_line(ndm_dir / "hw_type")
    firmware = _read_first_line(ndm_dir / "version")

    if UNKNOWN in (model, firmware):
        try:
            version = rci.show_version()
        except RouterAuthError as exc:
            logger.debug("RCI show version unavailable: %s", exc)
            version = {}
        if model == UNKNOWN:
            model = version.get("model") or version.get("device") or UNKNOWN
        if firmware == UNKNOWN:
            firmware = version.get("title") or version.get("release") or UNKNOWN

    return SystemInfo(
        model=model,
        firmware=firmware,
        ndms_major=ndms_major(firmware),
        architecture=platform.machine() or UNKNOWN,
        hostname=socket.gethostname() or "keenetic",
        uptime=_read_first_line(proc_uptime),
    )


@system_router.get("/system", response_model=SystemInfo)
def get_system(request: Request, _identity: str = Depends(require_auth)):
    return collect_system_info(request.app.state.rci)
