"""Launcher configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_CONFIG_PATH_ENV = "LAUNCHER_CONFIG_PATH"
DATA_ROOT_ENV = "LAUNCHER_DATA_ROOT"
_DATA_DIRNAME = "JanLauncher"
_APP_CONFIG_CACHE: AppConfig | None = None

_DEFAULT_PATCH_BASE_URL = "https://game-patches.hytale.com/patches"
_DEFAULT_BUTLER_BASE_URL = "https://broth.itch.zone/butler"


@dataclass(frozen=True)
class PatchServerConfig:
    """Where patch artifacts live and how aggressively to probe for them."""

    base_url: str
    consecutive_misses: int


@dataclass(frozen=True)
class NetworkConfig:
    """Timeouts applied to individual HTTP calls."""

    probe_timeout_seconds: float
    download_timeout_seconds: float
    chunk_size: int


@dataclass(frozen=True)
class ButlerConfig:
    download_base_url: str
    apply_timeout_seconds: float


@dataclass(frozen=True)
class InstallConfig:
    max_fallbacks: int


@dataclass(frozen=True)
class AppConfig:
    """Structured configuration values for the launcher."""

    patches: PatchServerConfig
    network: NetworkConfig
    butler: ButlerConfig
    install: InstallConfig


def get_app_config() -> AppConfig:
    """Return the cached launcher configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config(os.environ.get(_CONFIG_PATH_ENV) or None)
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from ``path`` or the bundled JSON resource."""

    data = _read_config_data(path)
    return AppConfig(
        patches=_parse_patches_section(data.get("patches")),
        network=_parse_network_section(data.get("network")),
        butler=_parse_butler_section(data.get("butler")),
        install=_parse_install_section(data.get("install")),
    )


def resolve_data_root() -> Path:
    """Return the directory that holds game versions, caches and tools.

    ``LAUNCHER_DATA_ROOT`` wins when set. Otherwise Windows uses
    ``%LOCALAPPDATA%`` and other platforms follow the XDG base directory
    convention.
    """

    override = os.environ.get(DATA_ROOT_ENV)
    if override:
        return Path(override).expanduser()

    if sys.platform.startswith("win"):
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / _DATA_DIRNAME
        return Path.home() / "AppData" / "Local" / _DATA_DIRNAME

    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home) / _DATA_DIRNAME
    return Path.home() / ".local" / "share" / _DATA_DIRNAME


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_patches_section(section: Any) -> PatchServerConfig:
    if not isinstance(section, Mapping):
        section = {}
    return PatchServerConfig(
        base_url=_coerce_url(section.get("base_url"), default=_DEFAULT_PATCH_BASE_URL),
        consecutive_misses=_coerce_positive_int(section.get("consecutive_misses"), default=5),
    )


def _parse_network_section(section: Any) -> NetworkConfig:
    if not isinstance(section, Mapping):
        section = {}
    return NetworkConfig(
        probe_timeout_seconds=_coerce_positive_float(
            section.get("probe_timeout_seconds"), default=10.0
        ),
        download_timeout_seconds=_coerce_positive_float(
            section.get("download_timeout_seconds"), default=600.0
        ),
        chunk_size=_coerce_positive_int(section.get("chunk_size"), default=128 * 1024),
    )


def _parse_butler_section(section: Any) -> ButlerConfig:
    if not isinstance(section, Mapping):
        section = {}
    return ButlerConfig(
        download_base_url=_coerce_url(
            section.get("download_base_url"), default=_DEFAULT_BUTLER_BASE_URL
        ),
        apply_timeout_seconds=_coerce_positive_float(
            section.get("apply_timeout_seconds"), default=600.0
        ),
    )


def _parse_install_section(section: Any) -> InstallConfig:
    if not isinstance(section, Mapping):
        return InstallConfig(max_fallbacks=1)
    value = section.get("max_fallbacks")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return InstallConfig(max_fallbacks=1)
    return InstallConfig(max_fallbacks=value)


def _coerce_url(value: Any, *, default: str) -> str:
    if not isinstance(value, str):
        return default
    cleaned = value.strip().rstrip("/")
    if not cleaned.startswith(("http://", "https://")):
        return default
    return cleaned


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


__all__ = [
    "AppConfig",
    "ButlerConfig",
    "DATA_ROOT_ENV",
    "InstallConfig",
    "NetworkConfig",
    "PatchServerConfig",
    "get_app_config",
    "load_app_config",
    "reset_app_config_cache",
    "resolve_data_root",
]
