"""Pytest configuration applied to the entire test suite."""

from __future__ import annotations

import pytest

from app.config import reset_app_config_cache
from shared import logging_config


@pytest.fixture(autouse=True)
def _launcher_paths_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Route launcher data, logs and profiles to temporary locations."""

    data_root = tmp_path_factory.mktemp("launcher_data")
    log_dir = tmp_path_factory.mktemp("launcher_logs")
    profiles_path = tmp_path_factory.mktemp("launcher_profiles") / "gameProfiles.json"
    monkeypatch.setenv("LAUNCHER_DATA_ROOT", str(data_root))
    monkeypatch.setenv("LAUNCHER_LOG_DIR", str(log_dir))
    monkeypatch.delenv("LAUNCHER_LOG_FILE", raising=False)
    monkeypatch.setenv("LAUNCHER_PROFILES_PATH", str(profiles_path))
    monkeypatch.delenv("LAUNCHER_CONFIG_PATH", raising=False)
    reset_app_config_cache()

    yield data_root

    reset_app_config_cache()
    logging_config._reset_for_tests()
