"""Data models used by the version management service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence


class VersionError(RuntimeError):
    """Base class for failures raised while managing game versions."""


class ConfigError(VersionError):
    """Unsupported branch, platform or version id. Never retried."""


class DownloadError(VersionError):
    """Raised when a patch artifact cannot be transferred."""


class IntegrityError(DownloadError):
    """Raised when a downloaded artifact does not match its advertised size."""

    def __init__(self, message: str, *, expected_size: int, actual_size: int) -> None:
        super().__init__(message)
        self.expected_size = expected_size
        self.actual_size = actual_size


class PatchApplyError(VersionError):
    """Raised when the external patch tool fails."""

    def __init__(self, message: str, *, output: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.output = tuple(output)


class ValidationError(VersionError):
    """Raised when a freshly patched installation has no usable executable."""


class SwapError(VersionError):
    """Raised when promoting a staged installation into place fails."""


class VersionInUseError(VersionError):
    """Raised when removing a version that a game profile still selects."""


class ProfileNotFoundError(VersionError):
    """Raised when a game profile id is unknown or has no active version."""


@dataclass(frozen=True, order=True)
class PatchEdge:
    """One downloadable artifact turning ``prev`` into ``target``.

    ``prev == 0`` denotes a full install of ``target``.
    """

    prev: int
    target: int

    def __post_init__(self) -> None:
        if self.prev < 0 or self.target <= self.prev:
            raise ValueError(f"Invalid patch transition {self.prev}->{self.target}")

    @property
    def is_full_install(self) -> bool:
        return self.prev == 0

    @property
    def key(self) -> str:
        return f"{self.prev}:{self.target}"

    def describe(self) -> str:
        if self.is_full_install:
            return f"full install v{self.target}"
        return f"patch {self.prev}->{self.target}"


@dataclass
class PatchGraph:
    """Sparse set of observed patch transitions for one branch.

    Absence of an edge only means it has not been observed.
    """

    branch: str
    edges: set[PatchEdge] = field(default_factory=set)

    def add(self, prev: int, target: int) -> PatchEdge:
        edge = PatchEdge(prev, target)
        self.edges.add(edge)
        return edge

    def has_edge(self, prev: int, target: int) -> bool:
        return any(edge.prev == prev and edge.target == target for edge in self.edges)

    def edges_from(self, prev: int) -> list[PatchEdge]:
        return sorted(
            (edge for edge in self.edges if edge.prev == prev),
            key=lambda edge: edge.target,
            reverse=True,
        )

    def targets(self) -> list[int]:
        """Return every distinct target version, newest first."""

        return sorted({edge.target for edge in self.edges}, reverse=True)

    @property
    def max_version(self) -> int:
        return max((edge.target for edge in self.edges), default=0)

    def __contains__(self, edge: object) -> bool:
        return edge in self.edges

    def __iter__(self) -> Iterator[PatchEdge]:
        return iter(sorted(self.edges))

    def __len__(self) -> int:
        return len(self.edges)

    @classmethod
    def from_pairs(cls, branch: str, pairs: Iterable[tuple[int, int]]) -> "PatchGraph":
        graph = cls(branch)
        for prev, target in pairs:
            graph.add(prev, target)
        return graph


@dataclass(frozen=True)
class InstalledVersionRecord:
    """Durable proof that ``branch/id`` was swapped into place."""

    id: str
    branch: str
    version: int
    installed_at: str
    size_bytes: int | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "branch": self.branch,
            "version": self.version,
            "installedAt": self.installed_at,
        }
        if self.size_bytes is not None:
            payload["sizeBytes"] = self.size_bytes
        return payload

    @classmethod
    def from_json(cls, payload: Any) -> "InstalledVersionRecord | None":
        """Return a record for ``payload`` or ``None`` when it is malformed."""

        if not isinstance(payload, Mapping):
            return None
        record_id = payload.get("id")
        branch = payload.get("branch")
        version = payload.get("version")
        installed_at = payload.get("installedAt")
        size_bytes = payload.get("sizeBytes")
        if not isinstance(record_id, str) or not isinstance(branch, str):
            return None
        if isinstance(version, bool) or not isinstance(version, int):
            return None
        if not isinstance(installed_at, str):
            return None
        if size_bytes is not None and (
            isinstance(size_bytes, bool) or not isinstance(size_bytes, int)
        ):
            return None
        return cls(
            id=record_id,
            branch=branch,
            version=version,
            installed_at=installed_at,
            size_bytes=size_bytes,
        )


@dataclass(frozen=True)
class VersionInfo:
    """Version entry presented to callers choosing what to install."""

    id: str
    branch: str
    version: int
    label: str
    is_latest: bool
    installed: bool
    local_only: bool = False


@dataclass(frozen=True)
class ActiveVersion:
    branch: str
    version_id: str | None


@dataclass(frozen=True)
class InstallProgress:
    """Coarse progress milestone reported during an install."""

    message: str
    percent: int | None = None
