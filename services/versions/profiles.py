"""Game profiles that pin a branch and version to launch."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Protocol

from app.config import resolve_data_root
from services.versions.constants import AVAILABLE_BRANCHES, BRANCH_RELEASE
from services.versions.models import ProfileNotFoundError
from services.versions.storage import write_json_atomic

_LOGGER = logging.getLogger(__name__)

PROFILES_PATH_ENV = "LAUNCHER_PROFILES_PATH"
PROFILES_FILENAME = "gameProfiles.json"


@dataclass(frozen=True)
class GameProfile:
    """A launcher profile and the version it is set to play."""

    id: str
    name: str
    version_branch: str = BRANCH_RELEASE
    version_id: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "versionBranch": self.version_branch,
            "versionId": self.version_id,
        }

    @classmethod
    def from_json(cls, payload: Any) -> "GameProfile | None":
        if not isinstance(payload, dict):
            return None
        profile_id = payload.get("id")
        if not isinstance(profile_id, str) or not profile_id:
            return None
        name = payload.get("name")
        if not isinstance(name, str):
            name = profile_id
        branch = payload.get("versionBranch")
        if not isinstance(branch, str) or branch not in AVAILABLE_BRANCHES:
            branch = BRANCH_RELEASE
        version_id = payload.get("versionId")
        if not isinstance(version_id, str) or not version_id:
            version_id = None
        return cls(id=profile_id, name=name, version_branch=branch, version_id=version_id)


class ProfileStore(Protocol):
    """Read and update the profiles that reference installed versions."""

    def list_profiles(self) -> list[GameProfile]:
        ...

    def get_profile(self, profile_id: str) -> GameProfile:
        ...

    def update_version(self, profile_id: str, branch: str, version_id: str | None) -> GameProfile:
        ...


def default_profiles_path() -> Path:
    override = os.environ.get(PROFILES_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return resolve_data_root() / PROFILES_FILENAME


class JsonProfileStore:
    """:class:`ProfileStore` persisted as ``{"profiles": [...]}`` in a JSON file.

    Unreadable files and malformed entries are skipped so a damaged profile
    list never blocks the version manager.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path) if path is not None else default_profiles_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def list_profiles(self) -> list[GameProfile]:
        with self._lock:
            return self._load()

    def get_profile(self, profile_id: str) -> GameProfile:
        for profile in self.list_profiles():
            if profile.id == profile_id:
                return profile
        raise ProfileNotFoundError(f"Game profile not found: {profile_id}")

    def save_profile(self, profile: GameProfile) -> GameProfile:
        with self._lock:
            profiles = [entry for entry in self._load() if entry.id != profile.id]
            profiles.append(profile)
            self._save(profiles)
        return profile

    def update_version(self, profile_id: str, branch: str, version_id: str | None) -> GameProfile:
        with self._lock:
            profiles = self._load()
            for index, profile in enumerate(profiles):
                if profile.id == profile_id:
                    updated = replace(profile, version_branch=branch, version_id=version_id)
                    profiles[index] = updated
                    self._save(profiles)
                    return updated
        raise ProfileNotFoundError(f"Game profile not found: {profile_id}")

    def delete_profile(self, profile_id: str) -> None:
        with self._lock:
            profiles = self._load()
            remaining = [profile for profile in profiles if profile.id != profile_id]
            if len(remaining) == len(profiles):
                raise ProfileNotFoundError(f"Game profile not found: {profile_id}")
            self._save(remaining)

    def _load(self) -> list[GameProfile]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            _LOGGER.warning("Failed to read profiles from %s: %s", self._path, exc)
            return []

        try:
            data: Dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError:
            _LOGGER.warning("Ignoring malformed profiles file %s", self._path)
            return []

        entries = data.get("profiles") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        profiles: list[GameProfile] = []
        seen: set[str] = set()
        for entry in entries:
            profile = GameProfile.from_json(entry)
            if profile is None or profile.id in seen:
                continue
            seen.add(profile.id)
            profiles.append(profile)
        return profiles

    def _save(self, profiles: list[GameProfile]) -> None:
        write_json_atomic(self._path, {"profiles": [profile.to_json() for profile in profiles]})


__all__ = [
    "GameProfile",
    "JsonProfileStore",
    "PROFILES_PATH_ENV",
    "ProfileStore",
    "default_profiles_path",
]
