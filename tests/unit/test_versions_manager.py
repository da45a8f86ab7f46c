from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from services.versions import build_version_manager
from services.versions.manager import VersionManager
from services.versions.models import (
    ActiveVersion,
    ConfigError,
    InstalledVersionRecord,
    ProfileNotFoundError,
    VersionInUseError,
)
from services.versions.profiles import GameProfile, JsonProfileStore
from services.versions.validation import InstallationValidator
from tests.unit.versions_test_utils import (
    FakePatchServer,
    RecordingPatchApplier,
    elf_executable,
    write_client,
)

pytestmark = pytest.mark.skipif(os.name == "nt", reason="installs use POSIX client permissions")


@pytest.fixture
def profiles(tmp_path: Path) -> JsonProfileStore:
    store = JsonProfileStore(tmp_path / "gameProfiles.json")
    store.save_profile(GameProfile(id="main", name="Main"))
    return store


def _manager(
    tmp_path: Path, server: FakePatchServer, profiles: JsonProfileStore
) -> tuple[VersionManager, RecordingPatchApplier]:
    applier = RecordingPatchApplier()
    manager = build_version_manager(
        data_root=tmp_path / "data",
        source=server,
        applier=applier,
        profiles=profiles,
        validator=InstallationValidator(platform_key="linux"),
    )
    return manager, applier


def test_available_versions_flag_latest_and_installed(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1), (0, 2), (0, 3), (1, 2)])
    manager, _ = _manager(tmp_path, server, profiles)
    manager.install_version("release", "2")

    versions = manager.get_available_versions("release")

    assert [(info.id, info.label, info.is_latest, info.installed) for info in versions] == [
        ("3", "v3", True, False),
        ("2", "v2", False, True),
        ("1", "v1", False, False),
    ]


def test_corrupted_install_is_not_flagged_installed(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1), (0, 2)])
    manager, _ = _manager(tmp_path, server, profiles)
    manager.install_version("release", "2")
    version_dir = manager.store.layout.version_dir("release", "2")
    write_client(version_dir, b"\x00" * 16)

    available = {info.id: info.installed for info in manager.get_available_versions("release")}
    local = manager.get_installed_versions_as_info("release")

    assert available == {"2": False, "1": False}
    assert [(info.id, info.installed) for info in local] == [("2", False)]
    assert manager.is_version_installed("release", "2") is False


def test_available_versions_for_empty_branch(tmp_path: Path, profiles) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)

    assert manager.get_available_versions("alpha") == []


def test_installed_versions_as_info_are_local_only(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1), (0, 4)])
    manager, _ = _manager(tmp_path, server, profiles)
    manager.install_version("beta", "4")

    infos = manager.get_installed_versions_as_info()

    assert len(infos) == 1
    assert infos[0].branch == "beta"
    assert infos[0].local_only is True
    assert infos[0].installed is True
    assert manager.get_installed_versions("release") == []


def test_active_version_selection(tmp_path: Path, profiles) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)

    assert manager.get_active_version("main") == ActiveVersion("release", None)
    with pytest.raises(ConfigError):
        manager.resolve_active_version("main")

    manager.set_active_version("main", "pre-release", "8")

    assert manager.resolve_active_version("main") == ActiveVersion("pre-release", "8")
    with pytest.raises(ConfigError):
        manager.set_active_version("main", "nightly", "8")
    with pytest.raises(ProfileNotFoundError):
        manager.get_active_version("ghost")


def test_install_for_profile_and_profile_status(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1), (0, 2)])
    manager, applier = _manager(tmp_path, server, profiles)
    manager.set_active_version("main", "release", "2")

    assert manager.is_profile_installed("main") is False
    manager.install_for_profile("main")

    assert applier.applied == [(0, 2)]
    assert manager.is_profile_installed("main") is True
    assert manager.is_version_installed("release", "2") is True
    assert manager.is_profile_installed("ghost") is False


def test_is_version_installed_requires_valid_client(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1)])
    manager, _ = _manager(tmp_path, server, profiles)
    manager.install_version("release", "1")
    client = manager.store.layout.version_dir("release", "1") / "HytaleClient"

    client.write_bytes(b"\x00" * 10)

    assert manager.is_version_installed("release", "1") is False


def test_remove_version_refuses_active_version(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1)])
    manager, _ = _manager(tmp_path, server, profiles)
    manager.install_version("release", "1")
    manager.set_active_version("main", "release", "1")

    with pytest.raises(VersionInUseError):
        manager.remove_version("release", "1")
    assert manager.is_version_installed("release", "1")

    manager.set_active_version("main", "release", None)
    manager.remove_version("release", "1")

    assert not manager.store.layout.version_dir("release", "1").exists()
    assert manager.get_installed_versions() == []


def test_migrate_legacy_install(tmp_path: Path, profiles) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)
    legacy = manager.store.layout.legacy_install_dir
    write_client(legacy, elf_executable("legacy"))
    (legacy / "UserData").mkdir()

    record = manager.migrate_legacy_install("7.pwr")

    assert isinstance(record, InstalledVersionRecord)
    assert (record.branch, record.id, record.version) == ("release", "7", 7)
    assert not legacy.exists()
    target = manager.store.layout.version_dir("release", "7")
    assert (target / "UserData").is_dir()
    assert manager.is_version_installed("release", "7")
    assert manager.store.load_index() == [record]


@pytest.mark.parametrize("legacy_version", [None, "", "abc"])
def test_migrate_legacy_install_skips_unknown_versions(
    tmp_path: Path, profiles, legacy_version
) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)
    legacy = manager.store.layout.legacy_install_dir
    write_client(legacy, elf_executable())

    assert manager.migrate_legacy_install(legacy_version) is None
    assert legacy.exists()


def test_migrate_legacy_install_never_overwrites_existing_version(tmp_path: Path, profiles) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)
    legacy = manager.store.layout.legacy_install_dir
    write_client(legacy, elf_executable())
    existing = manager.store.layout.version_dir("release", "7")
    existing.mkdir(parents=True)

    assert manager.migrate_legacy_install("7") is None
    assert legacy.exists()


def test_migrate_without_legacy_client_is_noop(tmp_path: Path, profiles) -> None:
    manager, _ = _manager(tmp_path, FakePatchServer(), profiles)

    assert manager.migrate_legacy_install("7") is None


def test_installs_on_same_branch_are_serialised(tmp_path: Path, profiles) -> None:
    server = FakePatchServer.with_edges([(0, 1), (0, 2)])
    manager, applier = _manager(tmp_path, server, profiles)
    active = 0
    overlap: list[int] = []
    guard = threading.Lock()
    original_apply = applier.apply

    def tracking_apply(*args, **kwargs):
        nonlocal active
        with guard:
            active += 1
            overlap.append(active)
        try:
            return original_apply(*args, **kwargs)
        finally:
            with guard:
                active -= 1

    applier.apply = tracking_apply
    manager.get_available_versions("release")
    threads = [
        threading.Thread(target=manager.install_version, args=("release", version))
        for version in ("1", "2")
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert max(overlap) == 1
    assert manager.is_version_installed("release", "1")
    assert manager.is_version_installed("release", "2")
