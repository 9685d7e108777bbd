# ruff: noqa: ANN201
from pathlib import Path

import pytest
import yaml

from kaspa_aio.config import ConfigManager
from kaspa_aio.models.config import AppConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "KASPA_AIO_SERVER_PORT",
        "KASPA_AIO_SERVER_HOST",
        "KASPA_AIO_DATA_DIR",
        "KASPA_AIO_PROJECT_DIR",
        "KASPA_AIO_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_file_missing(tmp_path: Path):
    config = ConfigManager(tmp_path / "missing.yaml").load()
    assert config.server.port == 3000
    assert config.orchestration.pull_attempts == 3
    assert config.paths.versions_dir == config.paths.data_dir / "versions"


def test_yaml_file_is_loaded(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "server": {"port": 9100},
                "paths": {"data_dir": str(tmp_path / "data")},
                "orchestration": {"health_timeout_seconds": 60},
            }
        ),
        encoding="utf-8",
    )
    config = ConfigManager(path).load()
    assert config.server.port == 9100
    assert config.orchestration.health_timeout_seconds == 60
    assert config.paths.project_dir == tmp_path / "data" / "project"
    assert config.paths.lock_file == tmp_path / "data" / "install.lock"


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("KASPA_AIO_SERVER_PORT", "9200")
    monkeypatch.setenv("KASPA_AIO_DATA_DIR", str(tmp_path / "env-data"))
    monkeypatch.setenv("KASPA_AIO_LOG_LEVEL", "debug")

    config = ConfigManager(tmp_path / "missing.yaml").load()
    assert config.server.port == 9200
    assert config.paths.data_dir == tmp_path / "env-data"
    assert config.paths.runs_dir == tmp_path / "env-data" / "runs"
    assert config.advanced.log_level == "DEBUG"


def test_invalid_log_level_override_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("KASPA_AIO_LOG_LEVEL", "chatty")
    config = ConfigManager(tmp_path / "missing.yaml").load()
    assert config.advanced.log_level == "INFO"


def test_save_and_reload_round_trip(tmp_path: Path):
    manager = ConfigManager(tmp_path / "nested" / "config.yaml")
    config = AppConfig()
    config.server.port = 9300
    config.orchestration.pull_attempts = 5
    manager.save(config)

    reloaded = manager.reload()
    assert reloaded.server.port == 9300
    assert reloaded.orchestration.pull_attempts == 5
