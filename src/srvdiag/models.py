"""Data models for srvdiag."""

from dataclasses import dataclass
from enum import Enum


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a watched process."""

    pid: int
    name: str
    username: str
    status: str  # psutil status string: 'running', 'sleeping', ...
    elapsed: str  # [[DD-]HH:]MM:SS, as ps -o etime prints it
    cpu_percent: float
    memory_percent: float
    memory_rss: int  # Bytes
    memory_vms: int  # Bytes
    command_line: str


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(slots=True, frozen=True)
class Finding:
    """A threshold breach or failed check, with what to do about it."""

    severity: Severity
    title: str
    detail: str = ""
    recommendation: str = ""


@dataclass(slots=True, frozen=True)
class Section:
    """One titled block of the analysis report."""

    title: str
    lines: tuple[str, ...] = ()
    findings: tuple[Finding, ...] = ()


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of running an external diagnostic command."""

    command: str
    output: str
    success: bool = True
    error: str | None = None

    @property
    def lines(self) -> list[str]:
        return self.output.splitlines()
