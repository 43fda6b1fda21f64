"""YAML config loader with environment variable expansion."""

import os
import re
from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from srvdiag.elapsed import ThresholdPolicy

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""
    def replacer(match: re.Match) -> str:
        return os.environ.get(match.group(1), match.group(0))
    return _ENV_PATTERN.sub(replacer, value)


def _walk_and_expand(obj: object) -> object:
    """Recursively expand environment variables in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_expand(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_expand(item) for item in obj]
    return obj


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ThresholdsConfig(_Frozen):
    memory_percent: float = Field(default=85, ge=0, le=100)
    disk_percent: float = Field(default=90, ge=0, le=100)
    long_process_seconds: int = Field(default=60, ge=0)
    days_always_long: bool = False  # deprecated coarse rule
    db_active_query_seconds: int = Field(default=5, ge=0)
    db_user_slow_seconds: int = Field(default=30, ge=0)

    def long_process_policy(self) -> ThresholdPolicy:
        return ThresholdPolicy(
            limit=timedelta(seconds=self.long_process_seconds),
            days_always_long=self.days_always_long,
        )


class ProcessConfig(_Frozen):
    pattern: str = "openlitespeed|lsphp|php-fpm"
    top_n: int = Field(default=15, ge=1)


class DatabaseConfig(_Frozen):
    enabled: bool = True
    clients: tuple[str, ...] = ("mariadb", "mysql")
    socket_dirs: tuple[str, ...] = ("/run", "/var/run")
    socket_name: str = "mysqld.sock"
    connect_timeout: int = Field(default=10, ge=1)
    innodb_status_lines: int = Field(default=80, ge=0)
    slow_log_lines: int = Field(default=30, ge=0)


class LogsConfig(_Frozen):
    web_error_log: str = "/usr/local/lsws/logs/error.log"
    web_error_lines: int = Field(default=20, ge=0)
    journal_units: tuple[str, ...] = ("mariadb", "mysql")
    journal_since: str = "2 hours ago"
    journal_lines: int = Field(default=20, ge=0)
    oom_lines: int = Field(default=10, ge=0)


class ReportConfig(_Frozen):
    log_dir: str = "/home/logs"
    poll_rate: float = Field(default=2.0, gt=0)

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()


class Settings(_Frozen):
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    processes: ProcessConfig = Field(default_factory=ProcessConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logs: LogsConfig = Field(default_factory=LogsConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)


def load_config(path: str | Path | None = None) -> Settings:
    """Load configuration from a YAML file, falling back to defaults."""
    if path is None:
        candidates = [
            Path("srvdiag.yaml"),
            Path("srvdiag.yml"),
            Path.home() / ".config" / "srvdiag" / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None:
        return Settings()

    with open(Path(path)) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return Settings.model_validate(_walk_and_expand(raw))
