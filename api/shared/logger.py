"""
Centralized logging for the Simulix backend.

All modules log through the standard ``logging`` module so that simulation
runs, background jobs and websocket traffic end up in one stream.

Usage:
    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Bootstrap run: %d resamples", num_samples)
    logger.warning("Proposal weights degenerate (sum=%s)", weight_sum)
"""

import logging
import sys

_configured = False

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "multipart")


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
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a backend module.

    Args:
        name: Module name (typically ``__name__``), e.g.
              ``api.simulations.bootstrap``.
    """
    return logging.getLogger(name)
