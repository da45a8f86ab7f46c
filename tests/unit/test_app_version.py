from __future__ import annotations

import subprocess

import pytest

from app import version as version_module
from app.version import build_user_agent, get_app_version


@pytest.fixture(autouse=True)
def _reset_cache():
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    yield
    get_app_version.cache_clear()  # type: ignore[attr-defined]


def test_get_app_version_prefers_environment(monkeypatch) -> None:
    monkeypatch.setenv("LAUNCHER_APP_VERSION", "v1.2.3")
    monkeypatch.setattr(version_module, "_read_version_file", lambda: "9.9.9")

    assert get_app_version() == "1.2.3"


def test_get_app_version_falls_back_to_version_file(monkeypatch) -> None:
    monkeypatch.delenv("LAUNCHER_APP_VERSION", raising=False)
    monkeypatch.setattr(version_module, "_read_version_file", lambda: "2.0.1")

    assert get_app_version() == "2.0.1"


def test_get_app_version_uses_git_describe(monkeypatch) -> None:
    monkeypatch.delenv("LAUNCHER_APP_VERSION", raising=False)
    monkeypatch.setattr(version_module, "_read_version_file", lambda: None)
    monkeypatch.setattr(
        version_module.subprocess, "check_output", lambda *args, **kwargs: "v3.1.0-4-gabc\n"
    )

    assert get_app_version() == "3.1.0-4-gabc"


def test_get_app_version_falls_back_to_dev_version(monkeypatch) -> None:
    monkeypatch.delenv("LAUNCHER_APP_VERSION", raising=False)
    monkeypatch.setattr(version_module, "_read_version_file", lambda: None)

    def no_git(*args, **kwargs):
        raise subprocess.CalledProcessError(128, args[0])

    monkeypatch.setattr(version_module.subprocess, "check_output", no_git)

    assert get_app_version() == "0.0.0-dev"


def test_user_agent_includes_version(monkeypatch) -> None:
    monkeypatch.setenv("LAUNCHER_APP_VERSION", "4.5.6")

    assert build_user_agent() == "JanLauncher-VersionManager/4.5.6"
