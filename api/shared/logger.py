"""
Centralized logging for the neural network interpreter backend.

Structured, level-based logging on top of Python's built-in logging module.

Usage:
    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Dataset prepared: %d samples, %d features", n, m)
    logger.warning("Reconciled targets: %s", action)
    logger.error("Training failed for session %s: %s", session_id, err)
"""

import logging
import sys

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the backend.

    Call once at startup (main.py). Subsequent calls are no-ops.
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # scikit-learn reports convergence problems through the warnings module
    logging.captureWarnings(True)
    if level.upper() != "DEBUG":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a backend module.

    Args:
        name: Module name (typically ``__name__``).
    """
    return logging.getLogger(name)
