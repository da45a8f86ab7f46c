"""Unpack the butler distribution archive into the tools directory.

Every member is checked before anything is written, so a rejected archive
leaves the target directory as it was.
"""

from __future__ import annotations

import logging
import shutil
import stat
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from services.versions.constants import (
    MAX_ARCHIVE_ENTRIES,
    MAX_ARCHIVE_FILE_SIZE,
    MAX_ARCHIVE_TOTAL_BYTES,
    MAX_COMPRESSION_RATIO,
)
from services.versions.models import VersionError

_LOGGER = logging.getLogger(__name__)


class ArchiveError(VersionError):
    """Raised when a tool archive is unreadable or unsafe to unpack."""


@dataclass(frozen=True)
class _PlannedMember:
    info: zipfile.ZipInfo
    destination: Path

    @property
    def mode(self) -> int:
        return stat.S_IMODE(self.info.external_attr >> 16)


def extract_archive(archive_path: Path, target_dir: Path) -> Path:
    """Unpack ``archive_path`` into ``target_dir`` and return ``target_dir``."""

    _LOGGER.info("Extracting archive %s", archive_path)
    try:
        with zipfile.ZipFile(archive_path) as archive:
            plan = _plan_extraction(archive, target_dir)
            target_dir.mkdir(parents=True, exist_ok=True)
            for member in plan:
                _write_member(archive, member)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Failed to extract archive {archive_path.name}: {exc}") from exc
    _LOGGER.debug("Extracted %s entries from %s", len(plan), archive_path.name)
    return target_dir


def _plan_extraction(archive: zipfile.ZipFile, target_dir: Path) -> list[_PlannedMember]:
    root = target_dir.resolve()
    members = [info for info in archive.infolist() if info.filename]
    if len(members) > MAX_ARCHIVE_ENTRIES:
        raise ArchiveError(
            f"Archive has {len(members)} entries; at most {MAX_ARCHIVE_ENTRIES} are allowed"
        )

    plan: list[_PlannedMember] = []
    expanded = 0
    for info in members:
        plan.append(_PlannedMember(info, _destination_for(root, info.filename)))
        if info.is_dir():
            continue
        _check_sizes(info)
        expanded += info.file_size
        if expanded > MAX_ARCHIVE_TOTAL_BYTES:
            raise ArchiveError(f"Archive expands past {MAX_ARCHIVE_TOTAL_BYTES} bytes")
    return plan


def _destination_for(root: Path, name: str) -> Path:
    member_path = PurePosixPath(name.replace("\\", "/"))
    if member_path.is_absolute() or (member_path.parts and member_path.parts[0].endswith(":")):
        raise ArchiveError(f"Archive entry {name!r} is an absolute path")
    destination = root.joinpath(*member_path.parts).resolve()
    if destination != root and root not in destination.parents:
        raise ArchiveError(f"Archive entry {name!r} escapes the target directory")
    return destination


def _check_sizes(info: zipfile.ZipInfo) -> None:
    if info.file_size > MAX_ARCHIVE_FILE_SIZE:
        _LOGGER.error(
            "Archive member %s is %s bytes (limit %s)",
            info.filename,
            info.file_size,
            MAX_ARCHIVE_FILE_SIZE,
        )
        raise ArchiveError(f"Archive entry {info.filename!r} is too large")
    if info.file_size and (
        info.compress_size == 0 or info.file_size > info.compress_size * MAX_COMPRESSION_RATIO
    ):
        raise ArchiveError(f"Archive entry {info.filename!r} has an implausible compression ratio")


def _write_member(archive: zipfile.ZipFile, member: _PlannedMember) -> None:
    if member.info.is_dir():
        member.destination.mkdir(parents=True, exist_ok=True)
        return
    member.destination.parent.mkdir(parents=True, exist_ok=True)
    with archive.open(member.info) as source, member.destination.open("wb") as target:
        shutil.copyfileobj(source, target)
    if member.mode & stat.S_IXUSR:
        member.destination.chmod(member.mode | stat.S_IRUSR | stat.S_IWUSR)


__all__ = ["ArchiveError", "extract_archive"]
