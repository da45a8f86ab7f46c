"""Helpers for constructing the version manager and scheduling installs."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from app.config import AppConfig, get_app_config, resolve_data_root
from app.version import build_user_agent
from services.versions.discovery import VersionDiscovery
from services.versions.downloader import PatchDownloader
from services.versions.manager import VersionManager
from services.versions.models import VersionError
from services.versions.orchestrator import InstallOrchestrator, InstallResult, ProgressCallback
from services.versions.patcher import ButlerPatchApplier, PatchApplier
from services.versions.platforms import map_arch, map_os
from services.versions.profiles import JsonProfileStore, ProfileStore
from services.versions.remote import PatchServer, PatchSource
from services.versions.storage import VersionLayout, VersionStore
from services.versions.validation import InstallationValidator

_LOGGER = logging.getLogger(__name__)


def build_version_manager(
    config: AppConfig | None = None,
    data_root: Path | None = None,
    *,
    source: PatchSource | None = None,
    applier: PatchApplier | None = None,
    profiles: ProfileStore | None = None,
    validator: InstallationValidator | None = None,
) -> VersionManager:
    """Construct a :class:`VersionManager` for the current platform.

    Collaborators left as ``None`` are built from ``config``; tests pass
    fakes for the network-facing ones.
    """

    config = config or get_app_config()
    layout = VersionLayout(data_root or resolve_data_root())
    user_agent = build_user_agent()

    if source is None or applier is None:
        os_name = map_os()
        arch = map_arch()
        if source is None:
            source = PatchServer(
                config.patches.base_url,
                os_name=os_name,
                arch=arch,
                user_agent=user_agent,
                probe_timeout=config.network.probe_timeout_seconds,
                download_timeout=config.network.download_timeout_seconds,
                chunk_size=config.network.chunk_size,
            )
        if applier is None:
            applier = ButlerPatchApplier(
                layout.tools_dir,
                os_name=os_name,
                arch=arch,
                download_base_url=config.butler.download_base_url,
                user_agent=user_agent,
                apply_timeout=config.butler.apply_timeout_seconds,
                download_timeout=config.network.download_timeout_seconds,
            )

    store = VersionStore(layout)
    validator = validator or InstallationValidator()
    discovery = VersionDiscovery(source, consecutive_misses=config.patches.consecutive_misses)
    orchestrator = InstallOrchestrator(
        store=store,
        discovery=discovery,
        downloader=PatchDownloader(source, layout),
        applier=applier,
        validator=validator,
        max_fallbacks=config.install.max_fallbacks,
    )
    _LOGGER.debug("Version manager data root: %s", layout.data_root)
    return VersionManager(
        store=store,
        discovery=discovery,
        orchestrator=orchestrator,
        validator=validator,
        profiles=profiles or JsonProfileStore(),
    )


def _run_install(
    manager: VersionManager,
    branch: str,
    version_id: str,
    force: bool,
    on_progress: ProgressCallback | None,
    on_success: Callable[[InstallResult], None] | None,
    on_error: Callable[[Exception], None] | None,
) -> None:
    try:
        result = manager.install_version(
            branch, version_id, force=force, on_progress=on_progress
        )
    except VersionError as exc:
        _LOGGER.warning("Install of %s/%s failed: %s", branch, version_id, exc)
        if on_error:
            on_error(exc)
        return
    except Exception as exc:  # pragma: no cover
        _LOGGER.exception("Unexpected error while installing %s/%s", branch, version_id)
        if on_error:
            on_error(exc)
        return

    if on_success:
        on_success(result)


def schedule_background_install(
    manager: VersionManager,
    branch: str,
    version_id: str,
    *,
    force: bool = False,
    on_progress: ProgressCallback | None = None,
    on_success: Callable[[InstallResult], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
) -> threading.Thread:
    """Run an install on a daemon thread and report the outcome via callbacks."""

    thread = threading.Thread(
        target=_run_install,
        args=(manager, branch, version_id, force, on_progress, on_success, on_error),
        name=f"version-install-{branch}-{version_id}",
        daemon=True,
    )
    thread.start()
    return thread


__all__ = ["build_version_manager", "schedule_background_install"]
