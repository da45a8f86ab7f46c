"""Promote a staged installation into the live version directory.

The swap is two renames (live -> backup, staging -> live), so it is not one
atomic operation: a crash between them leaves no live directory, only the
timestamped backup next to where it used to be. Any error raised while the
swap runs triggers a best-effort restore of the backup before the failure is
reported as :class:`SwapError`.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from services.versions.constants import BACKUP_INFIX
from services.versions.models import SwapError
from services.versions.user_data import UserDataBackup

_LOGGER = logging.getLogger(__name__)


def backup_path_for(version_dir: Path, timestamp_ms: int | None = None) -> Path:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return version_dir.with_name(f"{version_dir.name}{BACKUP_INFIX}{stamp}")


def swap_version_directory(
    version_dir: Path,
    staging_dir: Path,
    *,
    user_data: UserDataBackup | None = None,
    timestamp_ms: int | None = None,
) -> None:
    """Replace ``version_dir`` with ``staging_dir`` and restore ``user_data`` into it."""

    backup_dir = backup_path_for(version_dir, timestamp_ms)
    live_moved = False
    staging_promoted = False
    try:
        version_dir.parent.mkdir(parents=True, exist_ok=True)
        if version_dir.exists():
            version_dir.rename(backup_dir)
            live_moved = True
            _LOGGER.debug("Moved live install %s to %s", version_dir, backup_dir)
        staging_dir.rename(version_dir)
        staging_promoted = True
        if user_data is not None:
            user_data.restore_into(version_dir)
    except OSError as exc:
        _LOGGER.error("Failed to finalize install at %s, rolling back", version_dir, exc_info=True)
        _restore_backup(version_dir, backup_dir, live_moved, staging_promoted)
        raise SwapError(f"Failed to finalize installation at {version_dir}: {exc}") from exc

    if live_moved:
        try:
            shutil.rmtree(backup_dir)
        except OSError:
            _LOGGER.warning("Unable to remove previous install backup %s", backup_dir, exc_info=True)


def _restore_backup(
    version_dir: Path, backup_dir: Path, live_moved: bool, staging_promoted: bool
) -> None:
    if not live_moved or not backup_dir.exists():
        return
    try:
        if staging_promoted and version_dir.exists():
            shutil.rmtree(version_dir)
        backup_dir.rename(version_dir)
        _LOGGER.info("Restored previous install from %s", backup_dir)
    except OSError:
        _LOGGER.error(
            "Unable to restore previous install; it remains at %s", backup_dir, exc_info=True
        )


__all__ = ["backup_path_for", "swap_version_directory"]
