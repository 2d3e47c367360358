"""Helpers to remove stale temp directories left by interrupted runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

from .config import JOB_DIR_PREFIX, STALE_JOB_DIR_SECONDS

logger = logging.getLogger("securecode")


def cleanup_job_temp_dirs(
    base_dir: Optional[str] = None, max_age: float = STALE_JOB_DIR_SECONDS
) -> int:
    """Remove ``securecode_job_*`` directories older than ``max_age`` seconds.

    Younger directories may belong to a submission still running in another
    worker process and are left alone. Returns how many were removed.
    """
    base = Path(base_dir or tempfile.gettempdir())
    if not base.exists():
        return 0
    cutoff = time.time() - max_age
    removed = 0
    for path in base.glob(f"{JOB_DIR_PREFIX}*"):
        try:
            if not path.is_dir() or path.stat().st_mtime > cutoff:
                continue
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Failed to remove temp directory %s: %s", path, exc)
            continue
        removed += 1
        logger.debug("Removed stale temp directory %s", path)
    return removed


__all__ = ["cleanup_job_temp_dirs"]
