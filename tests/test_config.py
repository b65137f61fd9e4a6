"""Tests for application configuration loading."""

import pytest
from pydantic import ValidationError

from focuslock.core.config import Config, MonitorConfig, TimerConfig


def test_defaults(tmp_path):
    config = Config(data_dir=tmp_path)
    assert config.monitor.scan_interval_seconds == 2.0
    assert config.monitor.warn_cooldown_seconds == 0
    assert config.monitor.kill_timeout_seconds == 5.0
    assert config.timer.tick_interval_seconds == 0.25
    assert not config.monitor.site_blocking_enabled
    assert config.db_path == tmp_path / "focuslock.db"
    assert config.settings_file == tmp_path / "settings.yaml"


def test_load_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "log_level: DEBUG\n"
        "monitor:\n"
        "  scan_interval_seconds: 3\n"
        "  warn_cooldown_seconds: 0\n"
    )
    config = Config.load(path)
    assert config.log_level == "DEBUG"
    assert config.monitor.scan_interval_seconds == 3
    assert config.monitor.warn_cooldown_seconds == 0


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("monitor:\n  scan_interval_seconds: 3\n  kill_timeout_seconds: 2\n")
    monkeypatch.setenv("FOCUSLOCK_MONITOR__SCAN_INTERVAL_SECONDS", "7")

    config = Config.load(path)
    assert config.monitor.scan_interval_seconds == 7
    assert config.monitor.kill_timeout_seconds == 2


@pytest.mark.parametrize("content", ["monitor: [broken", "- a\n- b\n", ""])
def test_corrupt_yaml_gives_defaults(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    assert Config.load(path).monitor == MonitorConfig()


def test_save_and_load(tmp_path):
    config = Config(data_dir=tmp_path, config_dir=tmp_path, timer=TimerConfig(tick_interval_seconds=0.5))
    config.save()
    assert Config.load(config.config_file).timer.tick_interval_seconds == 0.5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"log_level": "LOUD"},
        {"timer": {"tick_interval_seconds": 2.0}},
        {"monitor": {"scan_interval_seconds": 0}},
        {"monitor": {"kill_timeout_seconds": 60}},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValidationError):
        Config(**kwargs)
