"""
System API routes for the Simulix backend.

Health, environment information and the in-memory error log that the
application exception handlers feed.
"""

import platform
import sys
import threading
import traceback
from collections import deque
from datetime import datetime
from importlib import metadata
from typing import Any, Deque, Dict, List, Optional

from fastapi import APIRouter

from .jobs import JobStatus, job_manager
from .settings import get_settings
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

MAX_ERROR_ENTRIES = 200

_error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERROR_ENTRIES)
_error_lock = threading.Lock()
_ready = False

# Distribution names as published on the package index
_PACKAGES = ("numpy", "scipy", "scikit-learn", "fastapi", "pydantic", "uvicorn", "orjson")


def mark_ready(ready: bool = True) -> None:
    """Flag startup as complete (reported by /api/health)."""
    global _ready
    _ready = ready


def log_error(
    endpoint: str,
    message: str,
    level: str = "error",
    details: Optional[str] = None,
    exc: Optional[BaseException] = None,
) -> Dict[str, Any]:
    """Record a server-side error and echo it to the log.

    Only the most recent entries are kept.
    """
    entry = {
        "timestamp": datetime.now().isoformat(),
        "endpoint": endpoint,
        "message": message,
        "level": level,
        "details": details,
        "traceback": (
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)) if exc else None
        ),
    }
    with _error_lock:
        _error_log.append(entry)

    if level == "critical":
        logger.critical("%s: %s", endpoint, message)
    else:
        logger.error("%s: %s", endpoint, message)
    return entry


def get_errors(limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent errors first."""
    with _error_lock:
        entries = list(_error_log)
    return list(reversed(entries))[:limit]


def clear_errors() -> int:
    with _error_lock:
        count = len(_error_log)
        _error_log.clear()
    return count


def _get_package_versions() -> Dict[str, str]:
    packages = {}
    for name in _PACKAGES:
        try:
            packages[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            continue
    return packages


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "ready": _ready,
        "message": "Simulix backend is running",
    }


@router.get("/system/info")
async def system_info():
    """Get system, environment and runtime configuration information."""
    settings = get_settings()
    running = job_manager.list_jobs(status=JobStatus.RUNNING)
    return {
        "python": {
            "version": sys.version,
            "platform": sys.platform,
            "executable": sys.executable,
        },
        "system": {
            "os": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "packages": _get_package_versions(),
        "settings": {
            "max_workers": settings.max_workers,
            "background_tradeoff": settings.background_tradeoff,
            "log_level": settings.log_level,
        },
        "jobs": {"running": len(running)},
    }


@router.get("/system/errors")
async def system_errors(limit: int = 50):
    """Recent server errors captured by the exception handlers."""
    errors = get_errors(limit)
    return {"errors": errors, "total": len(errors)}


@router.delete("/system/errors")
async def clear_system_errors():
    """Empty the error log."""
    return {"cleared": clear_errors()}
