"""Analysis checks, one report section each."""

import logging
from collections.abc import Callable

from srvdiag.config import Settings
from srvdiag.database import DatabaseClient, detect_client, find_socket
from srvdiag.elapsed import Classification, MalformedInputError, ThresholdPolicy, classify
from srvdiag.models import CommandResult, Finding, ProcessSnapshot, Section, Severity
from srvdiag.monitor import SystemSnapshot
from srvdiag.shell import run_command, tail_file

logger = logging.getLogger(__name__)

CheckFunc = Callable[[Settings, SystemSnapshot], Section]

PROCESS_HEADER = f"{'PID':>8}  {'ELAPSED':>12}  {'VSZ':>7}  {'RSS':>7}  {'%CPU':>5}  {'%MEM':>5}  COMMAND"

RECOMMENDATIONS = (
    "If PHP workers run longer than {seconds}s: review slow PHP code or N+1 queries",
    "If max_connections is near its limit: increase it in the MySQL/MariaDB configuration",
    "Review the slow query log to optimize indexes",
    "If memory is low: consider tuning innodb_buffer_pool_size",
    "Review query cache settings",
    "Monitor OOM killer messages; the server may need more resources",
)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_process(proc: ProcessSnapshot) -> str:
    """One process row, laid out like ``ps -eo pid,etime,vsz,rss,%cpu,%mem,cmd``."""
    return (
        f"{proc.pid:>8}  {proc.elapsed:>12}  {format_bytes(proc.memory_vms):>7}  "
        f"{format_bytes(proc.memory_rss):>7}  {proc.cpu_percent:5.1f}  "
        f"{proc.memory_percent:5.1f}  {proc.command_line[:80]}"
    )


def find_long_running(
    processes: list[ProcessSnapshot],
    policy: ThresholdPolicy,
) -> list[tuple[ProcessSnapshot, Classification]]:
    """
    Return the processes whose elapsed time exceeds the policy limit.

    Rows with a malformed elapsed field are logged and left out of the result
    rather than counted as zero-duration.
    """
    flagged = []
    for proc in processes:
        try:
            result = classify(proc.elapsed, policy)
        except MalformedInputError as exc:
            logger.warning("Skipping PID %d: %s", proc.pid, exc)
            continue
        if result.is_long_running:
            flagged.append((proc, result))
    return flagged


def _result_lines(result: CommandResult, empty: str) -> list[str]:
    if not result.success:
        return [f"Command failed: {result.error}"]
    return result.lines or [empty]


def check_system_resources(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Memory, swap, load average and CPU cores."""
    s = snapshot
    lines = [
        f"{'':6}{'total':>10}{'used':>10}{'use%':>8}",
        f"{'Mem:':6}{format_bytes(s.memory_total):>10}{format_bytes(s.memory_used):>10}{s.memory_percent:7.1f}%",
        f"{'Swap:':6}{format_bytes(s.swap_total):>10}{format_bytes(s.swap_used):>10}{s.swap_percent:7.1f}%",
        "",
        "System Load Average: {:.2f}, {:.2f}, {:.2f}".format(*s.load_avg),
        f"CPU Cores: {s.cpu_count}",
    ]
    return Section("SYSTEM RESOURCES", tuple(lines))


def check_web_processes(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Every watched web server or PHP worker process."""
    if not snapshot.processes:
        return Section("WEB SERVER PROCESSES", ("No web server processes found",))
    lines = [PROCESS_HEADER]
    lines.extend(format_process(p) for p in sorted(snapshot.processes, key=lambda p: p.pid))
    return Section("WEB SERVER PROCESSES", tuple(lines))


def check_top_cpu(settings: Settings, snapshot: SystemSnapshot) -> Section:
    top_n = settings.processes.top_n
    title = f"TOP {top_n} PROCESSES BY CPU USAGE"
    if not snapshot.processes:
        return Section(title, ("No web server processes found",))
    ranked = sorted(snapshot.processes, key=lambda p: p.cpu_percent, reverse=True)[:top_n]
    return Section(title, (PROCESS_HEADER, *(format_process(p) for p in ranked)))


def check_long_running(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Watched processes running longer than the configured limit."""
    policy = settings.thresholds.long_process_policy()
    title = f"PROCESSES RUNNING > {policy.limit_in_seconds} SECONDS"
    flagged = find_long_running(snapshot.processes, policy)
    if not flagged:
        return Section(title, ("No long-running processes found",))

    lines = [PROCESS_HEADER]
    lines.extend(format_process(proc) for proc, _ in flagged)
    finding = Finding(
        Severity.WARNING,
        f"{len(flagged)} process(es) running > {policy.limit_in_seconds}s",
        detail=", ".join(str(proc.pid) for proc, _ in flagged),
        recommendation="Review slow PHP code or N+1 queries",
    )
    return Section(title, tuple(lines), (finding,))


def check_database(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Server type, status, busy queries, connections and key variables."""
    title = "MYSQL/MARIADB ANALYSIS"
    config = settings.database
    if not config.enabled:
        return Section(title, ("Database checks disabled",))

    socket = find_socket(config)
    if socket is None:
        return Section(title, findings=(Finding(Severity.CRITICAL, "MySQL/MariaDB socket not found"),))
    client = detect_client(config)
    if client is None:
        return Section(title, findings=(Finding(
            Severity.CRITICAL,
            "MySQL/MariaDB client not found",
            recommendation="Install mysql-client or mariadb-client",
        ),))

    db = DatabaseClient(client, socket, config.connect_timeout)
    thresholds = settings.thresholds
    lines = [
        f"Database Type: {db.server_type()}",
        f"Client: {client}",
        f"Socket: {socket}",
        "",
    ]
    findings: list[Finding] = []

    status = db.status()
    lines.append("Database Status:")
    if not status.success:
        findings.append(Finding(Severity.CRITICAL, "Cannot connect to database", detail=status.error or ""))
        return Section(title, tuple(lines), tuple(findings))
    lines.extend(status.lines)
    lines.append("")

    lines.append(f"Active database processes (> {thresholds.db_active_query_seconds} seconds):")
    lines.extend(_result_lines(db.active_processes(thresholds.db_active_query_seconds), "None"))
    lines.append("")

    lines.append("Active connections by user:")
    lines.extend(_result_lines(db.connections_by_user(thresholds.db_user_slow_seconds), "None"))
    lines.append("")

    lines.append("Critical InnoDB variables:")
    lines.extend(_result_lines(db.critical_variables(), "None"))
    lines.append("")

    limit = config.innodb_status_lines
    lines.append(f"InnoDB Status (first {limit} lines):")
    lines.extend(_result_lines(db.innodb_status(), "None")[:limit])
    return Section(title, tuple(lines), tuple(findings))


def check_slow_queries(settings: Settings, snapshot: SystemSnapshot) -> Section:
    title = "SLOW QUERY LOG"
    config = settings.database
    if not config.enabled:
        return Section(title, ("Database checks disabled",))
    socket = find_socket(config)
    client = detect_client(config)
    if socket is None or client is None:
        return Section(title, findings=(Finding(
            Severity.CRITICAL,
            "Cannot check slow query log - database socket or client not found",
        ),))

    path = DatabaseClient(client, socket, config.connect_timeout).slow_log_path()
    tail = tail_file(path, config.slow_log_lines) if path else None
    if tail is None:
        return Section(title, ("Slow query log not found or not accessible",))
    return Section(title, (f"Last {config.slow_log_lines} lines of slow query log:", *tail))


def check_web_server_logs(settings: Settings, snapshot: SystemSnapshot) -> Section:
    logs = settings.logs
    tail = tail_file(logs.web_error_log, logs.web_error_lines)
    if tail is None:
        return Section("WEB SERVER LOGS", (f"Web server error log not found at {logs.web_error_log}",))
    return Section("WEB SERVER LOGS", (f"Last {logs.web_error_lines} web server errors:", *tail))


def _journal_lines(settings: Settings) -> list[str] | None:
    logs = settings.logs
    for unit in logs.journal_units:
        result = run_command([
            "journalctl", "-u", unit, "--since", logs.journal_since,
            "-n", str(logs.journal_lines), "--no-pager",
        ])
        entries = [line for line in result.lines if not line.startswith("-- ")]
        if result.success and entries:
            return [f"[{unit}]", *entries]
    return None


def _oom_lines(settings: Settings) -> list[str] | None:
    result = run_command(["dmesg"])
    if not result.success:
        return None
    matches = [
        line for line in result.lines
        if "oom-kill" in line.lower() or "out of memory" in line.lower()
    ]
    return matches[-settings.logs.oom_lines:] if settings.logs.oom_lines else []


def check_system_logs(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Recent database journal entries and kernel OOM killer messages."""
    lines = [f"Database logs (since {settings.logs.journal_since}):"]
    findings: list[Finding] = []

    journal = _journal_lines(settings)
    lines.extend(journal if journal is not None else ["Cannot access database journal logs"])
    lines.append("")

    lines.append("Kernel OOM messages:")
    oom = _oom_lines(settings)
    if oom is None:
        lines.append("Cannot read kernel ring buffer")
    elif not oom:
        lines.append("No OOM messages found")
    else:
        lines.extend(oom)
        findings.append(Finding(
            Severity.WARNING,
            f"{len(oom)} OOM killer message(s) in kernel log",
            recommendation="The server may need more memory",
        ))
    return Section("RECENT SYSTEM LOGS", tuple(lines), tuple(findings))


def check_network(settings: Settings, snapshot: SystemSnapshot) -> Section:
    lines = [f"{state} connections: {count}" for state, count in snapshot.connections.items()]
    return Section("NETWORK STATISTICS", tuple(lines))


def check_disk_space(settings: Settings, snapshot: SystemSnapshot) -> Section:
    lines = [f"{'Filesystem':<24}{'Size':>8}{'Used':>8}{'Avail':>8}{'Use%':>6}  Mounted on"]
    for disk in snapshot.disks:
        lines.append(
            f"{disk.device:<24}{format_bytes(disk.total):>8}{format_bytes(disk.used):>8}"
            f"{format_bytes(disk.free):>8}{disk.percent:5.0f}%  {disk.mountpoint}"
        )
    return Section("DISK SPACE", tuple(lines))


def check_summary(settings: Settings, snapshot: SystemSnapshot) -> Section:
    """Threshold alerts and the standing recommendations."""
    thresholds = settings.thresholds
    findings: list[Finding] = []

    if snapshot.memory_percent > thresholds.memory_percent:
        findings.append(Finding(
            Severity.WARNING,
            f"Memory usage > {thresholds.memory_percent:g}% ({snapshot.memory_percent:.0f}%)",
        ))

    root = snapshot.root_disk
    if root is not None and root.percent > thresholds.disk_percent:
        findings.append(Finding(
            Severity.WARNING,
            f"Disk usage > {thresholds.disk_percent:g}% ({root.percent:.0f}%)",
        ))

    policy = thresholds.long_process_policy()
    lines = ["Recommendations:"]
    for i, text in enumerate(RECOMMENDATIONS, start=1):
        lines.append(f"{i}. {text.format(seconds=policy.limit_in_seconds)}")
    return Section("SUMMARY AND RECOMMENDATIONS", tuple(lines), tuple(findings))


def build_default_checks() -> list[CheckFunc]:
    """The report sections, in report order."""
    return [
        check_system_resources,
        check_web_processes,
        check_top_cpu,
        check_long_running,
        check_database,
        check_slow_queries,
        check_web_server_logs,
        check_system_logs,
        check_network,
        check_disk_space,
        check_summary,
    ]


def run_checks(
    settings: Settings,
    snapshot: SystemSnapshot,
    checks: list[CheckFunc] | None = None,
) -> list[Section]:
    """Run checks in order; a check that raises becomes an error finding."""
    sections: list[Section] = []
    for check in checks if checks is not None else build_default_checks():
        try:
            sections.append(check(settings, snapshot))
        except Exception as exc:
            logger.exception("Check %s failed", check.__name__)
            title = check.__name__.removeprefix("check_").replace("_", " ").upper()
            sections.append(Section(title, findings=(
                Finding(Severity.CRITICAL, f"Check failed: {exc}"),
            )))
    return sections
