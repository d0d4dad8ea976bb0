"""
Health check payload.

Reports process uptime and background job bookkeeping instead of a static
response.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Track startup time for uptime reporting
_startup_time: float = time.monotonic()
_startup_utc: str = datetime.now(timezone.utc).isoformat()

_APP_VERSION = "0.1.0"
_SERVICE_NAME = "Walk-Forward Analyzer"


def mark_startup() -> None:
    """Call once at startup to record the process start time."""
    global _startup_time, _startup_utc
    _startup_time = time.monotonic()
    _startup_utc = datetime.now(timezone.utc).isoformat()


def build_health_response() -> Dict[str, Any]:
    """
    Build a health check payload.

    Returns a dict with:
      status: "healthy"
      checks.jobs: tracked walk-forward jobs per status
      uptime_seconds: process uptime
      version: app version
    """
    from api.routes import job_counts

    counts = job_counts()
    return {
        "status": "healthy",
        "service": _SERVICE_NAME,
        "version": _APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _startup_time, 1),
        "started_at": _startup_utc,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "jobs": {
                "status": "running" if counts.get("running") or counts.get("queued") else "idle",
                "counts": counts,
            },
        },
    }
