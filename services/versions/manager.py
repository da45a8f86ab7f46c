"""Facade used by the launcher to list, select, install and remove versions."""

from __future__ import annotations

import logging
import shutil
import threading
from datetime import datetime, timezone

from services.versions.constants import LEGACY_BRANCH, PATCH_EXTENSION
from services.versions.discovery import VersionDiscovery
from services.versions.identifiers import ensure_branch, parse_version_id
from services.versions.models import (
    ActiveVersion,
    ConfigError,
    InstalledVersionRecord,
    VersionError,
    VersionInfo,
    VersionInUseError,
)
from services.versions.orchestrator import InstallOrchestrator, InstallResult, ProgressCallback
from services.versions.profiles import ProfileStore
from services.versions.storage import VersionStore, directory_size
from services.versions.validation import InstallationValidator

_LOGGER = logging.getLogger(__name__)


class VersionManager:
    """Coordinate discovery, the installed-version store and profile selection.

    Installs for the same branch are serialised with a per-branch lock;
    installs on different branches may run concurrently.
    """

    def __init__(
        self,
        *,
        store: VersionStore,
        discovery: VersionDiscovery,
        orchestrator: InstallOrchestrator,
        validator: InstallationValidator,
        profiles: ProfileStore,
    ) -> None:
        self._store = store
        self._discovery = discovery
        self._orchestrator = orchestrator
        self._validator = validator
        self._profiles = profiles
        self._branch_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def store(self) -> VersionStore:
        return self._store

    def get_available_versions(self, branch: str) -> list[VersionInfo]:
        """Probe the server and describe every discovered version, newest first."""

        ensure_branch(branch)
        self._store.layout.ensure()
        graph = self._discovery.discover(branch)
        targets = graph.targets()
        if not targets:
            return []

        installed_ids = {
            record.id
            for record in self.get_installed_versions(branch)
            if self._has_valid_install(record)
        }
        latest = targets[0]
        versions = [
            VersionInfo(
                id=str(target),
                branch=branch,
                version=target,
                label=f"v{target}",
                is_latest=target == latest,
                installed=str(target) in installed_ids,
            )
            for target in targets
        ]
        _LOGGER.info(
            "Available versions for branch %s: %s",
            branch,
            ", ".join(
                f"{info.label}{' (latest)' if info.is_latest else ''}"
                f"{' [installed]' if info.installed else ''}"
                for info in versions
            ),
        )
        return versions

    def get_installed_versions(self, branch: str | None = None) -> list[InstalledVersionRecord]:
        installed = self._store.refresh_index()
        if branch is None:
            return installed
        return [record for record in installed if record.branch == branch]

    def get_installed_versions_as_info(self, branch: str | None = None) -> list[VersionInfo]:
        return [
            VersionInfo(
                id=record.id,
                branch=record.branch,
                version=record.version,
                label=f"v{record.version}",
                is_latest=False,
                installed=self._has_valid_install(record),
                local_only=True,
            )
            for record in self.get_installed_versions(branch)
        ]

    def get_active_version(self, profile_id: str) -> ActiveVersion:
        profile = self._profiles.get_profile(profile_id)
        return ActiveVersion(branch=profile.version_branch, version_id=profile.version_id)

    def set_active_version(self, profile_id: str, branch: str, version_id: str | None) -> None:
        ensure_branch(branch)
        if version_id is not None:
            parse_version_id(version_id)
        self._profiles.update_version(profile_id, branch, version_id)
        _LOGGER.info(
            "Set active version for profile %s: %s/%s", profile_id, branch, version_id or "none"
        )

    def resolve_active_version(self, profile_id: str) -> ActiveVersion:
        active = self.get_active_version(profile_id)
        if not active.version_id:
            raise ConfigError(f"No active game version selected for profile {profile_id}")
        return active

    def install_version(
        self,
        branch: str,
        version_id: str,
        *,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> InstallResult:
        ensure_branch(branch)
        with self._lock_for(branch):
            return self._orchestrator.install(
                branch, version_id, force=force, on_progress=on_progress
            )

    def install_for_profile(
        self,
        profile_id: str,
        *,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> InstallResult:
        """Install, update or repair the version selected by ``profile_id``."""

        active = self.resolve_active_version(profile_id)
        return self.install_version(
            active.branch, active.version_id, force=force, on_progress=on_progress
        )

    def is_version_installed(self, branch: str, version_id: str) -> bool:
        metadata = self._store.read_metadata(branch, version_id)
        if metadata is None or metadata.id != version_id:
            return False
        return self._validator.is_valid(self._store.layout.version_dir(branch, version_id))

    def is_profile_installed(self, profile_id: str) -> bool:
        try:
            active = self.resolve_active_version(profile_id)
        except VersionError:
            return False
        return self.is_version_installed(active.branch, active.version_id)

    def remove_version(self, branch: str, version_id: str) -> None:
        ensure_branch(branch)
        users = [
            profile.id
            for profile in self._profiles.list_profiles()
            if profile.version_branch == branch and profile.version_id == version_id
        ]
        if users:
            raise VersionInUseError(
                f"{branch}/{version_id} is the active version of profile(s): {', '.join(users)}"
            )

        with self._lock_for(branch):
            version_dir = self._store.layout.version_dir(branch, version_id)
            if version_dir.exists():
                shutil.rmtree(version_dir)
            self._store.remove_installed(branch, version_id)
        _LOGGER.info("Removed %s/%s", branch, version_id)

    def migrate_legacy_install(self, legacy_version: str | None) -> InstalledVersionRecord | None:
        """Adopt a pre-versioning ``game/current`` install as ``release/<legacy_version>``."""

        layout = self._store.layout
        layout.ensure()
        legacy_dir = layout.legacy_install_dir
        if not legacy_dir.is_dir():
            return None
        if self._validator.find_client_executable(legacy_dir) is None:
            _LOGGER.debug("Legacy directory %s has no client executable", legacy_dir)
            return None

        if legacy_version and legacy_version.endswith(PATCH_EXTENSION):
            legacy_version = legacy_version[: -len(PATCH_EXTENSION)]
        if not legacy_version:
            _LOGGER.warning(
                "Legacy install found but no version info available; a reinstall is required"
            )
            return None

        branch = LEGACY_BRANCH
        try:
            version_number = parse_version_id(legacy_version)
        except ConfigError:
            _LOGGER.warning("Legacy version id %r is invalid; migration skipped", legacy_version)
            return None

        target_dir = layout.version_dir(branch, legacy_version)
        if target_dir.exists():
            _LOGGER.warning("%s already exists; skipping legacy migration", target_dir)
            return None

        _LOGGER.warning(
            "Migrating legacy install as %s/%s (branch assumed)", branch, legacy_version
        )
        with self._lock_for(branch):
            target_dir.parent.mkdir(parents=True, exist_ok=True)
            legacy_dir.rename(target_dir)
            record = InstalledVersionRecord(
                id=legacy_version,
                branch=branch,
                version=version_number,
                installed_at=datetime.now(timezone.utc)
                .isoformat(timespec="milliseconds")
                .replace("+00:00", "Z"),
                size_bytes=directory_size(target_dir),
            )
            self._store.write_metadata(branch, legacy_version, record)
            self._store.mark_installed(record)
        return record

    def _has_valid_install(self, record: InstalledVersionRecord) -> bool:
        return self._validator.is_valid(self._store.layout.version_dir(record.branch, record.id))

    def _lock_for(self, branch: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._branch_locks.get(branch)
            if lock is None:
                lock = threading.Lock()
                self._branch_locks[branch] = lock
            return lock


__all__ = ["VersionManager"]
