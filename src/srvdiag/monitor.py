"""Host data collection and background polling for srvdiag."""

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from queue import Queue

import psutil

from srvdiag.config import Settings
from srvdiag.elapsed import format_elapsed
from srvdiag.models import ProcessSnapshot

logger = logging.getLogger(__name__)

TRACKED_STATES = ("ESTABLISHED", "TIME_WAIT", "CLOSE_WAIT")

_PSUTIL_STATES = {
    psutil.CONN_ESTABLISHED: "ESTABLISHED",
    psutil.CONN_TIME_WAIT: "TIME_WAIT",
    psutil.CONN_CLOSE_WAIT: "CLOSE_WAIT",
}


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Usage of one mounted filesystem."""

    device: str
    mountpoint: str
    fstype: str
    total: int
    used: int
    free: int
    percent: float


@dataclass(slots=True)
class SystemSnapshot:
    """Snapshot of overall host state."""

    cpu_count: int
    cpu_percent: float
    memory_total: int
    memory_used: int
    memory_percent: float
    swap_total: int
    swap_used: int
    swap_percent: float
    load_avg: tuple[float, float, float]
    uptime_seconds: float
    disks: list[DiskUsage]
    connections: dict[str, int]
    processes: list[ProcessSnapshot]
    timestamp: float = field(default_factory=time.time)

    @property
    def root_disk(self) -> DiskUsage | None:
        """The filesystem mounted at ``/``, if it was collected."""
        for disk in self.disks:
            if disk.mountpoint == "/":
                return disk
        return None


def collect_processes(pattern: str, now: float | None = None) -> list[ProcessSnapshot]:
    """
    Collect snapshots of processes whose name or command line matches ``pattern``.

    Processes that exit mid-poll, deny access or turn out to be zombies are
    skipped.

    Args:
        pattern: Regular expression searched in the name and command line.
        now: Reference time for elapsed computation. Defaults to time.time().
    """
    regex = re.compile(pattern)
    now = time.time() if now is None else now
    processes: list[ProcessSnapshot] = []

    attrs = [
        "pid",
        "name",
        "username",
        "status",
        "create_time",
        "cpu_percent",
        "memory_percent",
        "memory_info",
        "cmdline",
    ]

    for proc in psutil.process_iter(attrs=attrs):
        try:
            with proc.oneshot():
                info = proc.info
                cmdline = info.get("cmdline") or []
                name = info.get("name") or ""
                command_line = " ".join(cmdline) if cmdline else name
                if not (regex.search(name) or regex.search(command_line)):
                    continue

                mem_info = info.get("memory_info")
                create_time = info.get("create_time") or now
                processes.append(
                    ProcessSnapshot(
                        pid=info.get("pid", 0),
                        name=name,
                        username=info.get("username") or "",
                        status=info.get("status") or "?",
                        elapsed=format_elapsed(now - create_time),
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_percent=info.get("memory_percent") or 0.0,
                        memory_rss=mem_info.rss if mem_info else 0,
                        memory_vms=mem_info.vms if mem_info else 0,
                        command_line=command_line,
                    )
                )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return processes


def connection_states() -> dict[str, int]:
    """Count inet sockets in the ESTABLISHED, TIME_WAIT and CLOSE_WAIT states."""
    counts = dict.fromkeys(TRACKED_STATES, 0)
    try:
        conns = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        logger.warning("Access denied listing sockets; run as root for connection counts")
        return counts
    for conn in conns:
        state = _PSUTIL_STATES.get(conn.status)
        if state is not None:
            counts[state] += 1
    return counts


def disk_usage() -> list[DiskUsage]:
    """Usage of every mounted physical partition."""
    disks: list[DiskUsage] = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError as exc:
            logger.debug("Skipping %s: %s", part.mountpoint, exc)
            continue
        disks.append(
            DiskUsage(
                device=part.device,
                mountpoint=part.mountpoint,
                fstype=part.fstype,
                total=usage.total,
                used=usage.used,
                free=usage.free,
                percent=usage.percent,
            )
        )
    return disks


def collect_snapshot(settings: Settings) -> SystemSnapshot:
    """Collect a snapshot of the current host state."""
    mem = psutil.virtual_memory()
    swap = psutil.swap_memory()
    now = time.time()

    return SystemSnapshot(
        cpu_count=psutil.cpu_count() or 1,
        cpu_percent=psutil.cpu_percent(interval=None),
        memory_total=mem.total,
        memory_used=mem.used,
        memory_percent=mem.percent,
        swap_total=swap.total,
        swap_used=swap.used,
        swap_percent=swap.percent,
        load_avg=psutil.getloadavg(),
        uptime_seconds=now - psutil.boot_time(),
        disks=disk_usage(),
        connections=connection_states(),
        processes=collect_processes(settings.processes.pattern, now=now),
        timestamp=now,
    )


class SystemMonitor:
    """
    Background poller feeding SystemSnapshots to a thread-safe Queue.

    Runs in a daemon thread. A failed poll is logged and the loop carries on.
    """

    def __init__(
        self,
        update_queue: Queue[SystemSnapshot],
        settings: Settings,
        poll_rate: float | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            settings: Configuration used for every snapshot.
            poll_rate: Seconds between polls. Defaults to the configured rate.
        """
        self._queue = update_queue
        self._settings = settings
        self._poll_rate = max(0.1, settings.report.poll_rate if poll_rate is None else poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        # First call returns 0.0
        psutil.cpu_percent(interval=None)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate, clamped to 0.1 seconds."""
        self._poll_rate = max(0.1, value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._queue.put(collect_snapshot(self._settings))
            except Exception:
                logger.exception("Snapshot collection failed")

            self._stop_event.wait(timeout=self._poll_rate)
