from __future__ import annotations

import pytest

from services.versions.identifiers import ensure_branch, parse_version_id
from services.versions.models import ConfigError, InstalledVersionRecord, PatchEdge, PatchGraph
from services.versions.platforms import map_arch, map_os


def test_patch_edge_rejects_non_forward_transitions() -> None:
    with pytest.raises(ValueError):
        PatchEdge(3, 3)
    with pytest.raises(ValueError):
        PatchEdge(-1, 2)


def test_patch_graph_orders_edges_and_targets() -> None:
    graph = PatchGraph.from_pairs("beta", [(0, 2), (0, 1), (1, 2), (1, 4), (0, 4)])

    assert [edge.target for edge in graph.edges_from(1)] == [4, 2]
    assert graph.targets() == [4, 2, 1]
    assert graph.max_version == 4
    assert PatchEdge(1, 4) in graph
    assert len(graph) == 5


def test_record_serialises_with_camel_case_keys() -> None:
    record = InstalledVersionRecord(
        id="7", branch="release", version=7, installed_at="2024-05-01T10:00:00.000Z", size_bytes=42
    )

    payload = record.to_json()

    assert payload == {
        "id": "7",
        "branch": "release",
        "version": 7,
        "installedAt": "2024-05-01T10:00:00.000Z",
        "sizeBytes": 42,
    }
    assert InstalledVersionRecord.from_json(payload) == record


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"id": "7", "branch": "release", "version": "7", "installedAt": "x"},
        {"id": "7", "branch": "release", "version": True, "installedAt": "x"},
        {"branch": "release", "version": 7, "installedAt": "x"},
    ],
)
def test_malformed_records_are_rejected(payload) -> None:
    assert InstalledVersionRecord.from_json(payload) is None


def test_version_ids_must_be_positive_integers() -> None:
    assert parse_version_id("12") == 12
    for invalid in ("0", "-3", "abc", "1.5", ""):
        with pytest.raises(ConfigError):
            parse_version_id(invalid)


def test_unknown_branch_is_rejected() -> None:
    assert ensure_branch("pre-release") == "pre-release"
    with pytest.raises(ConfigError):
        ensure_branch("nightly")


@pytest.mark.parametrize(
    "platform_name,expected",
    [("win32", "windows"), ("linux", "linux"), ("darwin", "darwin"), ("cygwin", "windows")],
)
def test_map_os(platform_name: str, expected: str) -> None:
    assert map_os(platform_name) == expected


def test_map_os_rejects_unknown_platform() -> None:
    with pytest.raises(ConfigError):
        map_os("sunos5")


def test_map_arch() -> None:
    assert map_arch("x86_64") == "amd64"
    assert map_arch("AMD64") == "amd64"
    assert map_arch("aarch64") == "arm64"
    with pytest.raises(ConfigError):
        map_arch("mips")
