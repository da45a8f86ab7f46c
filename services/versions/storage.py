"""On-disk layout and persistence of installed game versions.

Every installed version lives in ``versions/<branch>/<id>/`` next to a
``version.json`` metadata file. ``versions/index.json`` caches the list of
installed versions; it can always be rebuilt from the directories, so a
missing or corrupt index is never fatal.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from services.versions.constants import (
    AVAILABLE_BRANCHES,
    BACKUP_INFIX,
    INDEX_FILENAME,
    METADATA_FILENAME,
)
from services.versions.identifiers import parse_version_id
from services.versions.models import ConfigError, InstalledVersionRecord

_LOGGER = logging.getLogger(__name__)


class VersionLayout:
    """Resolve every path the version manager reads or writes."""

    def __init__(self, data_root: Path) -> None:
        self.data_root = Path(data_root)

    @property
    def game_root(self) -> Path:
        return self.data_root / "game"

    @property
    def versions_root(self) -> Path:
        return self.game_root / "versions"

    @property
    def cache_dir(self) -> Path:
        return self.game_root / "cache"

    @property
    def staging_root(self) -> Path:
        return self.game_root / "staging"

    @property
    def legacy_install_dir(self) -> Path:
        return self.game_root / "current"

    @property
    def tools_dir(self) -> Path:
        return self.data_root / "tools"

    @property
    def index_path(self) -> Path:
        return self.versions_root / INDEX_FILENAME

    def branch_dir(self, branch: str) -> Path:
        return self.versions_root / branch

    def version_dir(self, branch: str, version_id: str) -> Path:
        return self.branch_dir(branch) / version_id

    def metadata_path(self, branch: str, version_id: str) -> Path:
        return self.version_dir(branch, version_id) / METADATA_FILENAME

    def cached_patch_path(self, branch: str, prev: int, target: int) -> Path:
        return self.cache_dir / f"{branch}_{prev}_{target}.pwr"

    def ensure(self) -> None:
        for directory in (self.versions_root, self.cache_dir, self.staging_root):
            directory.mkdir(parents=True, exist_ok=True)


class VersionStore:
    """Persist per-version metadata and the installed-version index.

    The store records what orchestration tells it; it never inspects
    executables itself.
    """

    def __init__(self, layout: VersionLayout) -> None:
        self._layout = layout

    @property
    def layout(self) -> VersionLayout:
        return self._layout

    def read_metadata(self, branch: str, version_id: str) -> InstalledVersionRecord | None:
        return self.read_metadata_at(self._layout.metadata_path(branch, version_id))

    def read_metadata_at(self, metadata_path: Path) -> InstalledVersionRecord | None:
        if not metadata_path.exists():
            return None
        try:
            payload = json.loads(metadata_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.warning("Failed to read metadata at %s: %s", metadata_path, exc)
            return None
        record = InstalledVersionRecord.from_json(payload)
        if record is None:
            _LOGGER.warning("Invalid metadata at %s", metadata_path)
        return record

    def write_metadata(self, branch: str, version_id: str, record: InstalledVersionRecord) -> Path:
        path = self._layout.metadata_path(branch, version_id)
        write_json_atomic(path, record.to_json())
        return path

    def write_metadata_to_dir(self, target_dir: Path, record: InstalledVersionRecord) -> Path:
        path = Path(target_dir) / METADATA_FILENAME
        write_json_atomic(path, record.to_json())
        return path

    def load_index(self) -> list[InstalledVersionRecord]:
        index_path = self._layout.index_path
        if not index_path.exists():
            return []
        try:
            payload = json.loads(index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.warning("Failed to read version index %s: %s", index_path, exc)
            return []
        entries = payload.get("installed") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            return []
        records: list[InstalledVersionRecord] = []
        for entry in entries:
            record = InstalledVersionRecord.from_json(entry)
            if record is not None:
                records.append(record)
        return records

    def save_index(self, records: Iterable[InstalledVersionRecord]) -> None:
        write_json_atomic(
            self._layout.index_path,
            {"installed": [record.to_json() for record in records]},
        )

    def scan_installed(self) -> list[InstalledVersionRecord]:
        """Walk ``versions/<branch>/<id>/`` and return every readable record."""

        self._layout.ensure()
        versions_root = self._layout.versions_root
        records: list[InstalledVersionRecord] = []
        for branch in AVAILABLE_BRANCHES:
            branch_dir = versions_root / branch
            if not branch_dir.is_dir():
                continue
            for version_dir in sorted(branch_dir.iterdir(), key=lambda path: path.name):
                if not version_dir.is_dir():
                    continue
                if BACKUP_INFIX in version_dir.name or not _is_version_id(version_dir.name):
                    _LOGGER.debug("Skipping non-version directory %s", version_dir)
                    continue
                record = self.read_metadata(branch, version_dir.name)
                if record is None:
                    _LOGGER.warning(
                        "Missing metadata for %s/%s; treating directory as not installed",
                        branch,
                        version_dir.name,
                    )
                    continue
                if record.branch != branch or record.id != version_dir.name:
                    _LOGGER.warning(
                        "Metadata in %s describes %s/%s; ignoring it",
                        version_dir,
                        record.branch,
                        record.id,
                    )
                    continue
                records.append(record)
        return records

    def refresh_index(self) -> list[InstalledVersionRecord]:
        installed = self.scan_installed()
        self.save_index(installed)
        _LOGGER.debug("Version index rebuilt with %s entries", len(installed))
        return installed

    def mark_installed(self, record: InstalledVersionRecord) -> None:
        remaining = [
            entry
            for entry in self.load_index()
            if not (entry.branch == record.branch and entry.id == record.id)
        ]
        remaining.append(record)
        self.save_index(remaining)
        _LOGGER.info("Recorded %s/%s as installed", record.branch, record.id)

    def remove_installed(self, branch: str, version_id: str) -> None:
        remaining = [
            entry
            for entry in self.load_index()
            if not (entry.branch == branch and entry.id == version_id)
        ]
        self.save_index(remaining)


def directory_size(directory: Path) -> int:
    """Return the total size in bytes of regular files below ``directory``."""

    total = 0
    if not directory.exists():
        return total
    for path in directory.rglob("*"):
        if path.is_file() and not path.is_symlink():
            total += path.stat().st_size
    return total


def _is_version_id(name: str) -> bool:
    try:
        parse_version_id(name)
    except ConfigError:
        return False
    return True


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2) + "\n"
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


__all__ = ["VersionLayout", "VersionStore", "directory_size", "write_json_atomic"]
