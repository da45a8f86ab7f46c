"""Map the running interpreter onto the patch server's platform names."""

from __future__ import annotations

import platform as _platform
import sys

from services.versions.models import ConfigError

_OS_NAMES = {
    "win32": "windows",
    "cygwin": "windows",
    "linux": "linux",
    "darwin": "darwin",
}

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def map_os(platform_name: str | None = None) -> str:
    """Return ``windows``, ``linux`` or ``darwin`` for ``platform_name``."""

    name = (platform_name or sys.platform).lower()
    for prefix, mapped in _OS_NAMES.items():
        if name.startswith(prefix):
            return mapped
    raise ConfigError(f"Unsupported platform: {name}")


def map_arch(machine: str | None = None) -> str:
    """Return ``amd64`` or ``arm64`` for ``machine``."""

    name = (machine or _platform.machine()).lower()
    try:
        return _ARCH_NAMES[name]
    except KeyError:
        raise ConfigError(f"Unsupported architecture: {name}") from None


__all__ = ["map_arch", "map_os"]
