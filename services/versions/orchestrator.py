"""Install a game version: resolve, stage, patch, validate and swap.

States move ``IDLE -> RESOLVING_PATH -> STAGING -> (DOWNLOADING -> APPLYING ->
VALIDATING)* -> FINALIZING -> COMMITTED``. A failing incremental patch sends
the run through ``ROLLING_BACK`` and back to ``IDLE`` for a full reinstall, at
most ``max_fallbacks`` times. A failing full install ends in ``FAILED``.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable

from services.versions.constants import BUTLER_SCRATCH_DIRNAME
from services.versions.discovery import VersionDiscovery
from services.versions.downloader import PatchDownloader
from services.versions.identifiers import ensure_branch, parse_version_id
from services.versions.models import (
    InstalledVersionRecord,
    InstallProgress,
    PatchApplyError,
    PatchEdge,
    ValidationError,
    VersionError,
)
from services.versions.patcher import PatchApplier
from services.versions.resolver import resolve_patch_path
from services.versions.storage import VersionStore, directory_size
from services.versions.swap import swap_version_directory
from services.versions.user_data import backup_user_data
from services.versions.validation import InstallationValidator

_LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[InstallProgress], None]


class InstallState(str, Enum):
    IDLE = "idle"
    RESOLVING_PATH = "resolving_path"
    STAGING = "staging"
    DOWNLOADING = "downloading"
    APPLYING = "applying"
    VALIDATING = "validating"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


@dataclass(frozen=True)
class InstallResult:
    """Outcome of a successful :meth:`InstallOrchestrator.install` call."""

    branch: str
    version_id: str
    already_installed: bool
    record: InstalledVersionRecord | None = None
    path: tuple[PatchEdge, ...] = ()
    fallbacks_used: int = 0


class _FullInstallRequired(Exception):
    def __init__(self, error: VersionError) -> None:
        super().__init__(str(error))
        self.error = error


class InstallOrchestrator:
    """Drive one install of ``branch/version_id`` through its state machine.

    Runs are not reentrant for the same branch; callers serialise installs
    per branch (see :class:`services.versions.manager.VersionManager`).
    Installs on different threads keep separate states, so :attr:`state`
    reports the run made by the calling thread.
    """

    def __init__(
        self,
        *,
        store: VersionStore,
        discovery: VersionDiscovery,
        downloader: PatchDownloader,
        applier: PatchApplier,
        validator: InstallationValidator,
        max_fallbacks: int = 1,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._layout = store.layout
        self._discovery = discovery
        self._downloader = downloader
        self._applier = applier
        self._validator = validator
        self._max_fallbacks = max(0, max_fallbacks)
        self._local = threading.local()

    @property
    def state(self) -> InstallState:
        return getattr(self._local, "state", InstallState.IDLE)

    def install(
        self,
        branch: str,
        version_id: str,
        *,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> InstallResult:
        ensure_branch(branch)
        target_version = parse_version_id(version_id)
        self._set_state(InstallState.IDLE)

        version_dir = self._layout.version_dir(branch, version_id)
        metadata = self._store.read_metadata(branch, version_id)
        installed_version = metadata.version if metadata is not None else 0

        if (
            not force
            and installed_version == target_version
            and self._validator.is_valid(version_dir)
        ):
            _LOGGER.info("%s/%s is already installed", branch, version_id)
            self._report(on_progress, "Version already installed", 100)
            return InstallResult(branch, version_id, already_installed=True, record=metadata)

        self._layout.ensure()
        self._report(on_progress, "Preparing installation", 5)
        self._applier.ensure_available()

        fallbacks = 0
        while True:
            try:
                record, path = self._attempt(
                    branch,
                    version_id,
                    target_version,
                    0 if force else installed_version,
                    on_progress,
                )
            except _FullInstallRequired as restart:
                if fallbacks >= self._max_fallbacks:
                    self._set_state(InstallState.FAILED)
                    raise restart.error
                fallbacks += 1
                force = True
                _LOGGER.warning(
                    "Patching %s/%s failed (%s); retrying with full install",
                    branch,
                    version_id,
                    restart.error,
                )
                self._set_state(InstallState.IDLE)
                continue

            _LOGGER.info("Installed %s/%s", branch, version_id)
            return InstallResult(
                branch,
                version_id,
                already_installed=False,
                record=record,
                path=tuple(path),
                fallbacks_used=fallbacks,
            )

    def _attempt(
        self,
        branch: str,
        version_id: str,
        target_version: int,
        base_version: int,
        on_progress: ProgressCallback | None,
    ) -> tuple[InstalledVersionRecord, list[PatchEdge]]:
        self._set_state(InstallState.RESOLVING_PATH)
        graph = self._discovery.graph_for(branch)
        path = resolve_patch_path(base_version, target_version, graph)
        if not path:
            path = [PatchEdge(0, target_version)]
        _LOGGER.info(
            "Patch path for %s/%s from v%s: %s",
            branch,
            version_id,
            base_version,
            ", ".join(edge.describe() for edge in path),
        )

        self._set_state(InstallState.STAGING)
        version_dir = self._layout.version_dir(branch, version_id)
        staging_dir = self._create_staging_dir(branch, version_id)
        scratch_dir = staging_dir / BUTLER_SCRATCH_DIRNAME

        try:
            if base_version > 0 and not path[0].is_full_install:
                self._report(on_progress, "Preparing base files", 10)
                if not version_dir.is_dir():
                    raise VersionError(f"Base version directory not found: {version_dir}")
                shutil.copytree(version_dir, staging_dir, dirs_exist_ok=True)

            for edge in path:
                self._apply_edge(branch, version_id, edge, staging_dir, scratch_dir, on_progress)

            record = InstalledVersionRecord(
                id=version_id,
                branch=branch,
                version=target_version,
                installed_at=self._timestamp(),
                size_bytes=directory_size(staging_dir),
            )
            self._store.write_metadata_to_dir(staging_dir, record)

            self._set_state(InstallState.FINALIZING)
            self._report(on_progress, "Finalizing installation", 90)
            user_data = backup_user_data(version_dir, self._layout.staging_root)
            try:
                swap_version_directory(version_dir, staging_dir, user_data=user_data)
            finally:
                user_data.discard()
            self._store.mark_installed(record)
        except _FullInstallRequired:
            self._set_state(InstallState.ROLLING_BACK)
            _safe_remove_dir(staging_dir)
            raise
        except BaseException:
            self._set_state(InstallState.FAILED)
            _safe_remove_dir(staging_dir)
            raise

        self._set_state(InstallState.COMMITTED)
        self._report(on_progress, "Installation completed", 100)
        return record, path

    def _apply_edge(
        self,
        branch: str,
        version_id: str,
        edge: PatchEdge,
        staging_dir: Path,
        scratch_dir: Path,
        on_progress: ProgressCallback | None,
    ) -> None:
        self._set_state(InstallState.DOWNLOADING)
        if edge.is_full_install:
            label = f"Downloading v{edge.target}"
        else:
            label = f"Downloading patch {edge.prev}→{edge.target}"
        self._report(on_progress, label, 20)
        artifact = self._downloader.fetch(branch, edge.prev, edge.target)

        self._set_state(InstallState.APPLYING)
        self._report(on_progress, "Applying patch", 60)
        try:
            self._applier.apply(artifact, staging_dir, scratch_dir)
        except PatchApplyError as exc:
            _LOGGER.error("Patch failed for %s/%s %s: %s", branch, version_id, edge.key, exc)
            if not edge.is_full_install:
                raise _FullInstallRequired(exc) from exc
            raise
        _safe_remove_dir(scratch_dir)

        self._set_state(InstallState.VALIDATING)
        if not self._validator.is_valid(staging_dir):
            error = ValidationError(
                f"Game files corrupted after {edge.describe()} for {branch}/{version_id}"
            )
            _LOGGER.error("%s", error)
            if not edge.is_full_install:
                raise _FullInstallRequired(error)
            raise error

    def _create_staging_dir(self, branch: str, version_id: str) -> Path:
        stamp = int(time.time() * 1000)
        while True:
            candidate = self._layout.staging_root / f"{branch}-{version_id}-{stamp}"
            try:
                candidate.mkdir(parents=True)
            except FileExistsError:
                stamp += 1
                continue
            _LOGGER.debug("Created staging directory %s", candidate)
            return candidate

    def _timestamp(self) -> str:
        now = self._clock().astimezone(timezone.utc)
        return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def _set_state(self, state: InstallState) -> None:
        previous = self.state
        if state is not previous:
            _LOGGER.debug("Install state %s -> %s", previous.value, state.value)
        self._local.state = state

    def _report(self, on_progress: ProgressCallback | None, message: str, percent: int | None) -> None:
        if on_progress is None:
            return
        try:
            on_progress(InstallProgress(message, percent))
        except Exception:
            _LOGGER.exception("Progress callback raised for %r", message)


def _safe_remove_dir(directory: Path) -> None:
    if not directory.exists():
        return
    try:
        shutil.rmtree(directory)
    except OSError as exc:
        _LOGGER.warning("Failed to remove directory %s: %s", directory, exc)


__all__ = ["InstallOrchestrator", "InstallResult", "InstallState", "ProgressCallback"]
