"""Plain-text analysis report: rendering, console output and log file."""

import logging
import os
import socket
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from srvdiag.checks import run_checks
from srvdiag.config import Settings
from srvdiag.models import Finding, Section, Severity
from srvdiag.monitor import collect_snapshot

logger = logging.getLogger(__name__)

VERSION = "1.2.0"
TITLE = "SERVER ANALYSIS: PHP WEB SERVER + MYSQL/MARIADB"

_LABELS = {
    Severity.CRITICAL: "ERROR",
    Severity.WARNING: "WARNING",
    Severity.INFO: "INFO",
}

_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def render_finding(finding: Finding) -> str:
    text = f"{_LABELS[finding.severity]}: {finding.title}"
    if finding.detail:
        text += f" ({finding.detail})"
    if finding.recommendation:
        text += f" -> {finding.recommendation}"
    return text


def render_section(section: Section, index: int | None = None) -> str:
    """
    Render one section as plain text.

    Args:
        section: The section to render.
        index: Section number, or None for an unnumbered title.
    """
    title = f"[{index}. {section.title}]" if index is not None else f"[{section.title}]"
    out = [title, "=" * 37]
    out.extend(render_finding(f) for f in section.findings)
    out.extend(section.lines)
    return "\n".join(out)


def render_header(now: datetime) -> str:
    return "\n".join([
        f"========== {TITLE} ==========",
        f"Script Version: {VERSION}",
        f"Hostname: {socket.gethostname()}",
        f"Timestamp: {now:%Y-%m-%d %H:%M:%S}",
    ])


def _numbered(sections: list[Section]) -> list[tuple[Section, int | None]]:
    # The summary closes the report unnumbered
    return [
        (section, None if section.title.startswith("SUMMARY") else i)
        for i, section in enumerate(sections, start=1)
    ]


def render_report(sections: list[Section], now: datetime | None = None) -> str:
    """Render the header and every section as one plain-text document."""
    now = now or datetime.now()
    parts = [render_header(now)]
    parts.extend(render_section(s, i) for s, i in _numbered(sections))
    return "\n\n".join(parts) + "\n"


def report_path(log_dir: str | Path, now: datetime) -> Path:
    return Path(log_dir).expanduser() / f"server_analysis_{now:%Y%m%d_%H%M%S}.log"


def write_report(text: str, path: Path) -> Path:
    """Write the report, creating its directory if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    logger.info("Report written to %s", path)
    return path


def print_report(sections: list[Section], console: Console, now: datetime) -> None:
    """Print the report with findings coloured by severity."""
    console.print(escape(render_header(now)), highlight=False)
    for section, index in _numbered(sections):
        label = f"{index}. {section.title}" if index is not None else section.title
        console.print()
        console.print(f"[bold green]\\[{escape(label)}][/bold green]")
        console.print("=" * 37)
        for finding in section.findings:
            console.print(escape(render_finding(finding)), style=_STYLES[finding.severity], highlight=False)
        for line in section.lines:
            console.print(escape(line), highlight=False)


def is_root() -> bool:
    return os.geteuid() == 0


def run_report(settings: Settings, console: Console | None = None) -> Path:
    """
    Collect, analyse, print and save a full report.

    Returns:
        Path of the written log file.
    """
    if not is_root():
        logger.warning("Not running as root; some process, socket and log data will be missing")

    now = datetime.now()
    snapshot = collect_snapshot(settings)
    sections = run_checks(settings, snapshot)

    console = console or Console()
    print_report(sections, console, now)

    path = write_report(render_report(sections, now), report_path(settings.report.log_dir, now))
    console.print()
    console.print(f"[green]Analysis completed. Log saved to: {escape(str(path))}[/green]")
    return path
