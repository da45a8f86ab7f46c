"""Preserve per-profile ``UserData`` subtrees across a version swap."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from services.versions.constants import USER_DATA_DIRNAME

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserDataBackup:
    """Copies of every ``UserData`` subtree keyed by path relative to the install."""

    root: Path
    entries: tuple[Path, ...]

    def restore_into(self, install_dir: Path) -> int:
        """Copy each preserved subtree back to the same relative path."""

        for relative in self.entries:
            source = self.root / relative
            destination = install_dir / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, destination, dirs_exist_ok=True)
            _LOGGER.debug("Restored %s into %s", relative, install_dir)
        return len(self.entries)

    def discard(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)


def find_user_data_dirs(install_dir: Path) -> list[Path]:
    """Return every ``UserData`` directory below ``install_dir`` as a relative path.

    Nested ``UserData`` directories inside an already matched subtree are part
    of that subtree and are not reported separately.
    """

    found: list[Path] = []
    if not install_dir.is_dir():
        return found
    for current, dirnames, _filenames in os.walk(install_dir):
        current_path = Path(current)
        matched = [name for name in dirnames if name == USER_DATA_DIRNAME]
        for name in matched:
            found.append((current_path / name).relative_to(install_dir))
        dirnames[:] = sorted(name for name in dirnames if name != USER_DATA_DIRNAME)
    return sorted(found)


def backup_user_data(install_dir: Path, work_dir: Path) -> UserDataBackup:
    """Copy all ``UserData`` subtrees of ``install_dir`` into a fresh folder in ``work_dir``."""

    work_dir.mkdir(parents=True, exist_ok=True)
    backup_root = Path(tempfile.mkdtemp(prefix="userdata-backup-", dir=work_dir))
    entries = find_user_data_dirs(install_dir)
    try:
        for relative in entries:
            shutil.copytree(install_dir / relative, backup_root / relative)
    except BaseException:
        shutil.rmtree(backup_root, ignore_errors=True)
        raise
    if entries:
        _LOGGER.info(
            "Preserved %s user data folder(s) from %s: %s",
            len(entries),
            install_dir,
            ", ".join(str(entry) for entry in entries),
        )
    return UserDataBackup(root=backup_root, entries=tuple(entries))


__all__ = ["UserDataBackup", "backup_user_data", "find_user_data_dirs"]
