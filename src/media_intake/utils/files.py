"""Filesystem helpers for received upload files."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def discard_file(path: Path | None) -> bool:
    """Delete a received file if it is still there; returns True when removed."""
    if path is None:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("files.discard.failed", extra={"path": str(path), "error": str(exc)})
        return False
    logger.debug("files.discarded", extra={"path": str(path)})
    return True
