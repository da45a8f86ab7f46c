"""Public API for the game version management package."""

from __future__ import annotations

from services.versions.builder import build_version_manager, schedule_background_install
from services.versions.constants import (
    AVAILABLE_BRANCHES,
    BRANCH_ALPHA,
    BRANCH_BETA,
    BRANCH_PRE_RELEASE,
    BRANCH_RELEASE,
    CONSECUTIVE_MISSES_TO_STOP,
)
from services.versions.discovery import PatchGraphCache, VersionDiscovery
from services.versions.downloader import PatchDownloader
from services.versions.manager import VersionManager
from services.versions.models import (
    ActiveVersion,
    ConfigError,
    DownloadError,
    InstalledVersionRecord,
    InstallProgress,
    IntegrityError,
    PatchApplyError,
    PatchEdge,
    PatchGraph,
    ProfileNotFoundError,
    SwapError,
    ValidationError,
    VersionError,
    VersionInfo,
    VersionInUseError,
)
from services.versions.orchestrator import InstallOrchestrator, InstallResult, InstallState
from services.versions.patcher import ButlerPatchApplier, PatchApplier
from services.versions.profiles import GameProfile, JsonProfileStore, ProfileStore
from services.versions.remote import PatchProbe, PatchServer, PatchSource
from services.versions.resolver import resolve_patch_path
from services.versions.storage import VersionLayout, VersionStore
from services.versions.validation import InstallationValidator

__all__ = [
    "AVAILABLE_BRANCHES",
    "BRANCH_ALPHA",
    "BRANCH_BETA",
    "BRANCH_PRE_RELEASE",
    "BRANCH_RELEASE",
    "CONSECUTIVE_MISSES_TO_STOP",
    "ActiveVersion",
    "ButlerPatchApplier",
    "ConfigError",
    "DownloadError",
    "GameProfile",
    "InstallOrchestrator",
    "InstallProgress",
    "InstallResult",
    "InstallState",
    "InstallationValidator",
    "InstalledVersionRecord",
    "IntegrityError",
    "JsonProfileStore",
    "PatchApplier",
    "PatchApplyError",
    "PatchDownloader",
    "PatchEdge",
    "PatchGraph",
    "PatchGraphCache",
    "PatchProbe",
    "PatchServer",
    "PatchSource",
    "ProfileNotFoundError",
    "ProfileStore",
    "SwapError",
    "ValidationError",
    "VersionDiscovery",
    "VersionError",
    "VersionInUseError",
    "VersionInfo",
    "VersionLayout",
    "VersionManager",
    "VersionStore",
    "build_version_manager",
    "resolve_patch_path",
    "schedule_background_install",
]
