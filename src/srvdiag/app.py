"""srvdiag - Textual dashboard."""

import logging
from datetime import datetime
from enum import Enum
from queue import Empty, Queue

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from srvdiag.checks import (
    check_long_running,
    check_summary,
    find_long_running,
    format_bytes,
    run_checks,
)
from srvdiag.config import Settings
from srvdiag.elapsed import MalformedInputError, parse_elapsed
from srvdiag.models import Finding, ProcessSnapshot, Severity
from srvdiag.monitor import SystemMonitor, SystemSnapshot
from srvdiag.report import render_report, report_path, write_report

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    ELAPSED = "elapsed"
    PID = "pid"


def _bar(percent: float, colour: str) -> str:
    filled = min(int(percent / 5), 20)
    return f"[{colour}]█[/{colour}]" * filled + "[dim]░[/dim]" * (20 - filled)


def _elapsed_seconds(proc: ProcessSnapshot) -> int:
    try:
        return parse_elapsed(proc.elapsed).total_seconds
    except MalformedInputError:
        return -1


class HeaderStats(Static):
    """Header widget showing memory, swap, load and disk usage."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshot: SystemSnapshot | None = None

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_mem_info(), id="mem-info"),
            Static(self._get_host_info(), id="host-info"),
        )

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        """Update the statistics from a system snapshot."""
        self._snapshot = snapshot
        try:
            self.query_one("#mem-info", Static).update(self._get_mem_info())
            self.query_one("#host-info", Static).update(self._get_host_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_mem_info(self) -> str:
        s = self._snapshot
        if s is None:
            return "Loading memory info..."
        mem_used_gb = s.memory_used / (1024**3)
        mem_total_gb = s.memory_total / (1024**3)
        swap_used_gb = s.swap_used / (1024**3)
        swap_total_gb = s.swap_total / (1024**3)
        swap_percent = s.swap_percent if s.swap_total > 0 else 0.0
        return (
            f"Mem\\[{_bar(s.memory_percent, 'cyan')}] {mem_used_gb:.1f}G/{mem_total_gb:.1f}G\n"
            f"Swp\\[{_bar(swap_percent, 'yellow')}] {swap_used_gb:.1f}G/{swap_total_gb:.1f}G"
        )

    def _get_host_info(self) -> str:
        s = self._snapshot
        if s is None:
            return "Loading host info..."
        load = s.load_avg
        uptime = int(s.uptime_seconds)
        days, rest = divmod(uptime, 86400)
        hours, rest = divmod(rest, 3600)
        minutes, seconds = divmod(rest, 60)
        uptime_str = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        if days > 0:
            uptime_str = f"{days} days, {uptime_str}"
        root = s.root_disk
        disk_str = f"{root.percent:.0f}% of {format_bytes(root.total).strip()}" if root else "n/a"
        conns = s.connections
        return (
            f"Load average: {load[0]:.2f} {load[1]:.2f} {load[2]:.2f} ({s.cpu_count} cores)\n"
            f"Uptime: {uptime_str}\n"
            f"Disk /: {disk_str}\n"
            f"Conns: {conns.get('ESTABLISHED', 0)} est, {conns.get('TIME_WAIT', 0)} tw, "
            f"{conns.get('CLOSE_WAIT', 0)} cw"
        )


class ProcessTable(Container):
    """Container for the watched-process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._sort_reverse = self._sort_key is not SortKey.PID
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("S", key="status", width=9)
        table.add_column("ELAPSED", key="elapsed", width=12)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("MEM%", key="mem", width=7)
        table.add_column("RES", key="rss", width=8)
        table.add_column("Command", key="command")

    def update_processes(self, processes: list[ProcessSnapshot], long_pids: set[int]) -> None:
        """
        Replace the table contents with the given processes.

        Args:
            processes: Watched processes from the latest snapshot.
            long_pids: PIDs classified as long-running; their elapsed cell is highlighted.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in self.sort_processes(processes):
            elapsed = f"[bold red]{proc.elapsed}[/bold red]" if proc.pid in long_pids else proc.elapsed
            table.add_row(
                str(proc.pid),
                proc.username[:10],
                proc.status,
                elapsed,
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_percent:5.1f}",
                format_bytes(proc.memory_rss),
                proc.command_line[:60],
                key=str(proc.pid),
            )

    def sort_processes(self, processes: list[ProcessSnapshot]) -> list[ProcessSnapshot]:
        """Sort processes based on the current sort key."""
        key_func = {
            SortKey.CPU: lambda p: p.cpu_percent,
            SortKey.MEM: lambda p: p.memory_percent,
            SortKey.ELAPSED: _elapsed_seconds,
            SortKey.PID: lambda p: p.pid,
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)


class FindingsPanel(Static):
    """Live threshold findings."""

    DEFAULT_CSS = """
    FindingsPanel {
        height: auto;
        min-height: 3;
        padding: 0 1;
        border: solid $warning;
    }
    """

    _COLOURS = {
        Severity.CRITICAL: "red",
        Severity.WARNING: "yellow",
        Severity.INFO: "blue",
    }

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.findings: list[Finding] = []

    def show(self, findings: list[Finding]) -> None:
        self.findings = findings
        if not findings:
            self.update("[green]No threshold breaches[/green]")
            return
        lines = []
        for finding in findings:
            colour = self._COLOURS[finding.severity]
            lines.append(f"[{colour}]{finding.severity.value.upper()}[/{colour}] {finding.title}")
        self.update("\n".join(lines))


class SrvdiagApp(App):
    """Main srvdiag application."""

    TITLE = "srvdiag"
    SUB_TITLE = "Server Analysis"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #mem-info {
        width: 1fr;
        padding-right: 2;
    }

    #host-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "report", "Write report"),
    ]

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__()
        self._settings = settings or Settings()
        self._update_queue: Queue[SystemSnapshot] = Queue()
        self._monitor = SystemMonitor(self._update_queue, self._settings)
        self._snapshot: SystemSnapshot | None = None

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield FindingsPanel("Waiting for first sample...", id="findings")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and render the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: SystemSnapshot) -> None:
        self._snapshot = snapshot
        policy = self._settings.thresholds.long_process_policy()
        long_pids = {proc.pid for proc, _ in find_long_running(snapshot.processes, policy)}
        sections = run_checks(self._settings, snapshot, [check_long_running, check_summary])
        findings = [f for section in sections for f in section.findings]

        self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
        self.query_one("#findings", FindingsPanel).show(findings)
        self.query_one(ProcessTable).update_processes(snapshot.processes, long_pids)

    def action_sort(self) -> None:
        """Cycle through sort keys and re-render."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        if self._snapshot is not None:
            self._update_ui(self._snapshot)
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_report(self) -> None:
        """Write a full report of the last snapshot to the log directory."""
        if self._snapshot is None:
            self.notify("No data yet", severity="warning")
            return
        self.notify("Writing report...")
        self._write_report(self._snapshot)

    @work(thread=True, exclusive=True, group="report")
    def _write_report(self, snapshot: SystemSnapshot) -> None:
        """Run every check and save the report off the event loop."""
        now = datetime.now()
        sections = run_checks(self._settings, snapshot)
        try:
            path = write_report(
                render_report(sections, now),
                report_path(self._settings.report.log_dir, now),
            )
        except OSError as exc:
            logger.error("Cannot write report: %s", exc)
            self.call_from_thread(self.notify, f"Cannot write report: {exc}", severity="error")
            return
        self.call_from_thread(self.notify, f"Report saved to {path}")

    def action_quit(self) -> None:
        """Stop the monitor and exit."""
        self._monitor.stop()
        self.exit()
