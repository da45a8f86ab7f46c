"""Structural checks deciding whether an installation directory is usable.

The checks look at the client executable's header bytes only. They catch
truncated or half-patched files; they do not authenticate anything.
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path

from services.versions.constants import (
    CLIENT_SEARCH_SUBDIRS,
    MIN_EXECUTABLE_SIZE,
    POSIX_CLIENT_NAMES,
    WINDOWS_CLIENT_NAMES,
)
from services.versions.platforms import map_os

_LOGGER = logging.getLogger(__name__)

_ELF_MAGIC = b"\x7fELF"
_MACHO_MAGICS = (
    b"\xcf\xfa\xed\xfe",  # 64-bit, little endian
    b"\xce\xfa\xed\xfe",  # 32-bit, little endian
    b"\xca\xfe\xba\xbe",  # universal
)
_ZIP_MAGIC = b"PK\x03\x04"
_PE_POINTER_OFFSET = 0x3C
_PE_SIGNATURE = b"PE\x00\x00"


class InstallationValidator:
    """Locate the client executable and sniff its header for ``platform_key``."""

    def __init__(self, platform_key: str | None = None) -> None:
        self._platform = platform_key or map_os()

    @property
    def platform_key(self) -> str:
        return self._platform

    def is_valid(self, install_dir: Path) -> bool:
        executable = self.find_client_executable(install_dir)
        if executable is None:
            _LOGGER.debug("No client executable found under %s", install_dir)
            return False
        valid = self.is_valid_executable(executable)
        if not valid:
            _LOGGER.debug("Client executable %s failed header checks", executable)
        return valid

    def find_client_executable(self, install_dir: Path) -> Path | None:
        root = Path(install_dir)
        names = WINDOWS_CLIENT_NAMES if self._platform == "windows" else POSIX_CLIENT_NAMES
        for subdir in CLIENT_SEARCH_SUBDIRS:
            directory = root / subdir if subdir else root
            for name in names:
                candidate = directory / name
                if self._is_executable_file(candidate):
                    return candidate
        return None

    def is_valid_executable(self, path: Path) -> bool:
        try:
            size = path.stat().st_size
            if not path.is_file() or size < MIN_EXECUTABLE_SIZE:
                return False
            with path.open("rb") as handle:
                header = handle.read(4)
                if path.suffix.lower() == ".jar":
                    return header == _ZIP_MAGIC
                if self._platform == "windows":
                    return _is_portable_executable(handle, header, size)
                if self._platform == "linux":
                    return header == _ELF_MAGIC
                if self._platform == "darwin":
                    return header in _MACHO_MAGICS
        except OSError as exc:
            _LOGGER.debug("Unable to inspect %s: %s", path, exc)
            return False
        return False

    def _is_executable_file(self, path: Path) -> bool:
        if not path.is_file():
            return False
        if path.suffix.lower() == ".jar" or self._platform == "windows":
            return True
        return os.access(path, os.X_OK)


def _is_portable_executable(handle, header: bytes, size: int) -> bool:
    if header[:2] != b"MZ":
        return False
    handle.seek(_PE_POINTER_OFFSET)
    raw_offset = handle.read(4)
    if len(raw_offset) != 4:
        return False
    (pe_offset,) = struct.unpack("<i", raw_offset)
    if pe_offset <= 0 or pe_offset > size - 4:
        return False
    handle.seek(pe_offset)
    return handle.read(4) == _PE_SIGNATURE


__all__ = ["InstallationValidator"]
