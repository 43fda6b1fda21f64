"""Helpers for running diagnostic commands and reading log files."""

import logging
import subprocess
from collections import deque
from pathlib import Path

from srvdiag.models import CommandResult

logger = logging.getLogger(__name__)


def run_command(args: list[str], timeout: float = 30.0) -> CommandResult:
    """
    Run an external command and capture its output.

    Failures never raise: a missing binary, a non-zero exit status or a
    timeout all come back as ``success=False`` with ``error`` set.

    Args:
        args: Program and arguments. No shell is involved.
        timeout: Seconds to wait before giving up.
    """
    command = " ".join(args)
    try:
        proc = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.debug("Command not found: %s", args[0])
        return CommandResult(command, "", success=False, error=f"{args[0]}: command not found")
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %ss: %s", timeout, command)
        return CommandResult(command, "", success=False, error=f"timed out after {timeout}s")
    except OSError as exc:
        logger.warning("Command failed to start: %s: %s", command, exc)
        return CommandResult(command, "", success=False, error=str(exc))

    if proc.returncode != 0:
        error = proc.stderr.strip() or f"exit status {proc.returncode}"
        logger.debug("Command exited %d: %s", proc.returncode, command)
        return CommandResult(command, proc.stdout, success=False, error=error)
    return CommandResult(command, proc.stdout)


def tail_file(path: str | Path, lines: int) -> list[str] | None:
    """Return the last ``lines`` lines of a file, or None if it can't be read."""
    path = Path(path)
    try:
        with path.open(errors="replace") as f:
            if lines <= 0:
                return []
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None
