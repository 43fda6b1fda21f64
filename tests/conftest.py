"""Shared test fixtures."""

import pytest

from srvdiag.config import Settings
from srvdiag.models import ProcessSnapshot
from srvdiag.monitor import DiskUsage, SystemSnapshot


def make_process(pid: int = 100, elapsed: str = "00:10", **overrides) -> ProcessSnapshot:
    fields = dict(
        pid=pid,
        name="lsphp",
        username="www-data",
        status="sleeping",
        elapsed=elapsed,
        cpu_percent=1.0,
        memory_percent=0.5,
        memory_rss=50 * 1024**2,
        memory_vms=300 * 1024**2,
        command_line="lsphp:/home/app/public/index.php",
    )
    fields.update(overrides)
    return ProcessSnapshot(**fields)


def make_snapshot(**overrides) -> SystemSnapshot:
    fields = dict(
        cpu_count=4,
        cpu_percent=12.5,
        memory_total=8 * 1024**3,
        memory_used=4 * 1024**3,
        memory_percent=50.0,
        swap_total=2 * 1024**3,
        swap_used=0,
        swap_percent=0.0,
        load_avg=(0.5, 0.4, 0.3),
        uptime_seconds=90061.0,
        disks=[
            DiskUsage(
                device="/dev/sda1",
                mountpoint="/",
                fstype="ext4",
                total=100 * 1024**3,
                used=40 * 1024**3,
                free=60 * 1024**3,
                percent=40.0,
            ),
        ],
        connections={"ESTABLISHED": 12, "TIME_WAIT": 3, "CLOSE_WAIT": 1},
        processes=[],
    )
    fields.update(overrides)
    return SystemSnapshot(**fields)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def snapshot() -> SystemSnapshot:
    return make_snapshot()
