"""Tests for configuration loading."""

from datetime import timedelta

import pytest
import yaml
from pydantic import ValidationError

from srvdiag.config import Settings, ThresholdsConfig, load_config


def _write_yaml(path, data: dict) -> None:
    with open(path, "w") as f:
        yaml.dump(data, f)


def test_defaults():
    """Defaults match the stock thresholds."""
    settings = Settings()
    assert settings.thresholds.memory_percent == 85
    assert settings.thresholds.disk_percent == 90
    assert settings.thresholds.long_process_seconds == 60
    assert settings.thresholds.days_always_long is False
    assert settings.processes.top_n == 15
    assert settings.database.clients == ("mariadb", "mysql")
    assert settings.report.log_dir == "/home/logs"


def test_long_process_policy():
    """The thresholds build a matching ThresholdPolicy."""
    policy = ThresholdsConfig(long_process_seconds=120, days_always_long=True).long_process_policy()
    assert policy.limit == timedelta(seconds=120)
    assert policy.days_always_long is True


def test_settings_are_frozen():
    """Configuration can't be changed after load."""
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.thresholds.memory_percent = 10


def test_load_from_file(tmp_path):
    """Values from YAML override defaults; lists become tuples."""
    path = tmp_path / "srvdiag.yaml"
    _write_yaml(path, {
        "thresholds": {"memory_percent": 70, "long_process_seconds": 300},
        "database": {"clients": ["mysql"]},
    })

    settings = load_config(path)

    assert settings.thresholds.memory_percent == 70
    assert settings.thresholds.long_process_seconds == 300
    assert settings.thresholds.disk_percent == 90
    assert settings.database.clients == ("mysql",)


def test_env_expansion(tmp_path, monkeypatch):
    """${VAR} references are replaced from the environment."""
    monkeypatch.setenv("SRVDIAG_TEST_LOG_DIR", "/var/tmp/srvdiag")
    path = tmp_path / "srvdiag.yaml"
    _write_yaml(path, {"report": {"log_dir": "${SRVDIAG_TEST_LOG_DIR}", "poll_rate": 5}})

    settings = load_config(path)

    assert settings.report.log_dir == "/var/tmp/srvdiag"


def test_unset_env_var_is_left_alone(tmp_path, monkeypatch):
    monkeypatch.delenv("SRVDIAG_UNSET", raising=False)
    path = tmp_path / "srvdiag.yaml"
    _write_yaml(path, {"logs": {"web_error_log": "${SRVDIAG_UNSET}/error.log"}})

    assert load_config(path).logs.web_error_log == "${SRVDIAG_UNSET}/error.log"


def test_unknown_keys_rejected(tmp_path):
    """Typos in the config file are errors."""
    path = tmp_path / "srvdiag.yaml"
    _write_yaml(path, {"thresholds": {"memroy_percent": 70}})

    with pytest.raises(ValidationError):
        load_config(path)


def test_out_of_range_rejected(tmp_path):
    path = tmp_path / "srvdiag.yaml"
    _write_yaml(path, {"thresholds": {"disk_percent": 150}})

    with pytest.raises(ValidationError):
        load_config(path)


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "srvdiag.yaml"
    path.write_text("")

    assert load_config(path) == Settings()


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "srvdiag.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ValueError, match="mapping"):
        load_config(path)


def test_search_candidates(tmp_path, monkeypatch):
    """Without a path, srvdiag.yaml in the working directory is used."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    _write_yaml(tmp_path / "srvdiag.yaml", {"processes": {"pattern": "php-fpm"}})

    assert load_config().processes.pattern == "php-fpm"


def test_no_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))

    assert load_config() == Settings()
