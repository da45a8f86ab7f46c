from __future__ import annotations

from pathlib import Path

import pytest

from services.versions import swap as swap_module
from services.versions.models import SwapError
from services.versions.swap import backup_path_for, swap_version_directory
from services.versions.user_data import backup_user_data, find_user_data_dirs


def _tree(root: Path, files: dict[str, str]) -> None:
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def _read_tree(root: Path) -> dict[str, str]:
    return {
        path.relative_to(root).as_posix(): path.read_text(encoding="utf-8")
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_find_user_data_dirs_reports_top_level_matches_only(tmp_path: Path) -> None:
    _tree(
        tmp_path,
        {
            "UserData/settings.json": "{}",
            "Client/UserData/Saves/world.dat": "w",
            "Client/UserData/UserData/nested.txt": "n",
            "Assets/data.bin": "a",
        },
    )

    found = find_user_data_dirs(tmp_path)

    assert [path.as_posix() for path in found] == ["Client/UserData", "UserData"]


def test_backup_and_restore_round_trip(tmp_path: Path) -> None:
    live = tmp_path / "live"
    _tree(live, {"UserData/Saves/a.dat": "save", "Client/UserData/keys.cfg": "keys"})
    fresh = tmp_path / "fresh"
    _tree(fresh, {"Client/UserData/keys.cfg": "defaults", "Client/game.bin": "v2"})

    backup = backup_user_data(live, tmp_path / "work")
    restored = backup.restore_into(fresh)
    backup.discard()

    assert restored == 2
    assert _read_tree(fresh) == {
        "Client/UserData/keys.cfg": "keys",
        "Client/game.bin": "v2",
        "UserData/Saves/a.dat": "save",
    }
    assert not backup.root.exists()


def test_backup_of_missing_install_is_empty(tmp_path: Path) -> None:
    backup = backup_user_data(tmp_path / "absent", tmp_path / "work")

    assert backup.entries == ()
    backup.discard()


def test_swap_promotes_staging_and_restores_user_data(tmp_path: Path) -> None:
    version_dir = tmp_path / "versions" / "release" / "5"
    staging = tmp_path / "staging" / "release-5-1"
    _tree(version_dir, {"game.bin": "old", "UserData/save.dat": "progress"})
    _tree(staging, {"game.bin": "new"})
    backup = backup_user_data(version_dir, tmp_path / "work")

    swap_version_directory(version_dir, staging, user_data=backup, timestamp_ms=111)

    assert _read_tree(version_dir) == {"game.bin": "new", "UserData/save.dat": "progress"}
    assert not staging.exists()
    assert not backup_path_for(version_dir, 111).exists()


def test_swap_into_empty_slot(tmp_path: Path) -> None:
    version_dir = tmp_path / "versions" / "beta" / "2"
    staging = tmp_path / "staging" / "beta-2-1"
    _tree(staging, {"game.bin": "fresh"})

    swap_version_directory(version_dir, staging)

    assert _read_tree(version_dir) == {"game.bin": "fresh"}


def test_failed_promotion_restores_previous_install(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    version_dir = tmp_path / "versions" / "release" / "5"
    staging = tmp_path / "staging" / "release-5-1"
    _tree(version_dir, {"game.bin": "old"})
    _tree(staging, {"game.bin": "new"})

    original_rename = Path.rename

    def flaky_rename(self: Path, target):
        if self == staging:
            raise PermissionError("file locked")
        return original_rename(self, target)

    monkeypatch.setattr(Path, "rename", flaky_rename)

    with pytest.raises(SwapError):
        swap_version_directory(version_dir, staging, timestamp_ms=222)

    assert _read_tree(version_dir) == {"game.bin": "old"}
    assert not backup_path_for(version_dir, 222).exists()


def test_backup_removal_failure_is_not_fatal(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    version_dir = tmp_path / "versions" / "release" / "5"
    staging = tmp_path / "staging" / "release-5-1"
    _tree(version_dir, {"game.bin": "old"})
    _tree(staging, {"game.bin": "new"})

    def refuse(path):
        raise PermissionError("busy")

    monkeypatch.setattr(swap_module.shutil, "rmtree", refuse)

    with caplog.at_level("WARNING"):
        swap_version_directory(version_dir, staging, timestamp_ms=333)

    assert _read_tree(version_dir) == {"game.bin": "new"}
    assert backup_path_for(version_dir, 333).exists()
    assert "Unable to remove previous install backup" in caplog.text
