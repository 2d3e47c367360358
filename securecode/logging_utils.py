"""Logging helpers and graceful shutdown support."""

from __future__ import annotations

import logging
import os
import signal
from typing import Callable


def setup_logger(name: str = "securecode") -> logging.Logger:
    level_name = os.getenv("SECURECODE_LOG_LEVEL") or (
        "DEBUG" if os.getenv("SECURECODE_DEBUG") else "INFO"
    )
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def register_shutdown_signals(logger: logging.Logger, stop: Callable[[], None]) -> None:
    """Stop the background runtime on SIGINT/SIGTERM, then exit."""

    def _shutdown_handler(signum, _frame):
        logger.warning("Received shutdown signal (%s); stopping analysis runtime.", signum)
        try:
            stop()
        except Exception as exc:
            logger.error("Runtime shutdown failed: %s", exc)
        raise SystemExit(0)

    for sig_name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, sig_name, None)
        if sig is None:
            continue
        try:
            signal.signal(sig, _shutdown_handler)
        except (AttributeError, ValueError):
            # Not on the main thread (e.g. under a WSGI server); skip.
            continue


__all__ = ["register_shutdown_signals", "setup_logger"]
