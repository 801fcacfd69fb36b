"""
System API routes for the neural network interpreter.

This module provides FastAPI routes for system health and information, the
recent-error log and the application settings.
"""

import platform
import sys
import threading
import traceback
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .app_config import app_config
from .jobs import JobStatus, job_manager
from .session_manager import session_manager
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

APP_VERSION = "0.1.0"
MAX_ERROR_LOG = 100

_error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERROR_LOG)
_error_lock = threading.Lock()


def log_error(
    endpoint: str,
    message: str,
    level: str = "error",
    details: Optional[str] = None,
    exc: Optional[BaseException] = None,
) -> None:
    """Record a server error in the in-memory error log.

    Args:
        endpoint: Request path where the error happened
        message: Short description
        level: "error" or "critical"
        details: Extra context
        exc: Exception, whose traceback is kept
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
    logger.error("%s: %s", endpoint, message)


def get_error_log() -> List[Dict[str, Any]]:
    """Recorded errors, newest first."""
    with _error_lock:
        return list(reversed(_error_log))


def clear_error_log() -> None:
    with _error_lock:
        _error_log.clear()


def _get_package_versions() -> Dict[str, str]:
    """Get versions of key packages."""
    packages = {}

    # import name -> distribution name
    package_names = {
        "numpy": "numpy",
        "pandas": "pandas",
        "sklearn": "scikit-learn",
        "fastapi": "fastapi",
        "pydantic": "pydantic",
        "uvicorn": "uvicorn",
    }

    for module_name, dist_name in package_names.items():
        try:
            module = __import__(module_name)
            packages[dist_name] = getattr(module, "__version__", "unknown")
        except ImportError:
            pass

    return packages


# ============= Request Models =============


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields are left unchanged."""

    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR"]] = None
    test_fraction: Optional[float] = Field(None, ge=0.0, lt=1.0)
    random_seed: Optional[int] = None
    classification_threshold: Optional[int] = Field(None, ge=1)
    categorical_policy: Optional[Literal["zero", "ordinal"]] = None
    max_upload_mb: Optional[int] = Field(None, ge=1)
    max_workers: Optional[int] = Field(None, ge=1)
    max_sessions: Optional[int] = Field(None, ge=1)


# ============= System Routes =============


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "Neural network interpreter is running",
    }


@router.get("/system/info")
async def system_info():
    """Get system and environment information."""
    running = job_manager.list_jobs(status=JobStatus.RUNNING)
    return {
        "version": APP_VERSION,
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
        "sessions": len(session_manager.list_sessions()),
        "running_jobs": len(running),
    }


@router.get("/system/errors")
async def system_errors(limit: int = 50):
    """Most recent server errors."""
    errors = get_error_log()
    return {"errors": errors[:max(limit, 0)], "total": len(errors)}


@router.delete("/system/errors")
async def system_errors_clear():
    clear_error_log()
    return {"success": True}


# ============= Settings Routes =============


@router.get("/config/settings")
async def get_settings():
    """Effective settings (defaults < settings file < environment)."""
    return {
        "settings": app_config.get_settings().to_dict(),
        "config_dir": str(app_config.config_dir),
    }


@router.put("/config/settings")
async def update_settings(update: SettingsUpdate):
    """
    Persist settings to the settings file.

    Values overridden by ``NNI_*`` environment variables stay overridden.
    Session limits apply immediately; worker count and log level apply on
    restart.
    """
    updates = update.model_dump(exclude_unset=True)
    try:
        settings = app_config.update_settings(updates)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save settings: {e}")

    session_manager.max_sessions = settings.max_sessions
    return {"settings": settings.to_dict(), "config_dir": str(app_config.config_dir)}
