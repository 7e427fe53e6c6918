"""Health check and monitoring endpoints."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from fastapi import APIRouter

from safeguard.core.dispatcher import CHANNEL_SELECTORS

router = APIRouter(prefix="/api/v1")

# Load build info once at import time.
_BUILD_INFO_PATH = Path(__file__).parent.parent / "build_info.json"
_BUILD_INFO: dict = {}
if _BUILD_INFO_PATH.exists():
    try:
        _BUILD_INFO = json.loads(_BUILD_INFO_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        pass


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from safeguard.main import VERSION, get_config, get_registry, get_stats

    stats = get_stats()
    config = get_config()

    storage_path = Path(config.storage.base_dir)
    try:
        disk = shutil.disk_usage(storage_path if storage_path.exists() else ".")
        disk_free_gb = round(disk.free / (1024 ** 3), 1)
        storage_writable = True
    except OSError:
        disk_free_gb = -1
        storage_writable = False

    snapshot = stats.snapshot()
    result = {
        "status": "ok",
        "version": VERSION,
        "uptime_seconds": snapshot["uptime_seconds"],
        "sessions": len(get_registry()),
        "queue_depth": snapshot["queue_depth"],
        "storage_writable": storage_writable,
        "disk_free_gb": disk_free_gb,
    }
    result.update(_BUILD_INFO)
    return result


@router.get("/stats")
async def stats() -> dict:
    """Detailed engine statistics including active session counts.

    The ``active_sessions`` section shows:
    - ``total``: sessions seen in the last N seconds (configurable window)
    - ``monitoring``: sessions with no running emergency
    - ``emergency``: sessions with a running emergency
    - ``window_seconds``: the time window used for "active" calculation
    """
    from safeguard.main import get_stats

    return get_stats().snapshot()


@router.get("/config")
async def get_client_config() -> dict:
    """Configuration endpoint for the client app.

    The app calls this on startup to get server-controlled parameters.
    """
    from safeguard.main import get_config

    config = get_config()
    return {
        "cooldown_seconds": config.engine.cooldown_seconds,
        "session_timeout_seconds": config.engine.session_timeout_seconds,
        "capture_timeout_seconds": config.engine.capture_timeout_seconds,
        "sharing_interval_seconds": config.alerts.sharing_interval_seconds,
        "default_channels": config.alerts.default_channels,
        "channel_selectors": {
            name: list(channels) for name, channels in CHANNEL_SELECTORS.items()
        },
    }
