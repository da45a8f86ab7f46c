"""Validation helpers for branch names and version ids."""

from __future__ import annotations

import re

from services.versions.constants import AVAILABLE_BRANCHES
from services.versions.models import ConfigError

_VERSION_ID_PATTERN = re.compile(r"\d+")


def ensure_branch(branch: str) -> str:
    """Return ``branch`` unchanged or raise :class:`ConfigError`."""

    if branch not in AVAILABLE_BRANCHES:
        raise ConfigError(f"Unsupported branch: {branch}")
    return branch


def parse_version_id(version_id: str) -> int:
    """Return the positive integer encoded by ``version_id``."""

    cleaned = str(version_id).strip()
    if not _VERSION_ID_PATTERN.fullmatch(cleaned):
        raise ConfigError(f"Invalid version id: {version_id!r}")
    value = int(cleaned)
    if value <= 0:
        raise ConfigError(f"Invalid version id: {version_id!r}")
    return value


__all__ = ["ensure_branch", "parse_version_id"]
