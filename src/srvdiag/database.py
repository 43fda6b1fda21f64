"""MySQL/MariaDB discovery and queries through the command-line client."""

import logging
import shutil
from pathlib import Path

from srvdiag.config import DatabaseConfig
from srvdiag.models import CommandResult
from srvdiag.shell import run_command

logger = logging.getLogger(__name__)

ACTIVE_PROCESSES_SQL = """
SELECT ID, USER, HOST, DB, TIME, STATE, SUBSTR(INFO, 1, 80) AS QUERY
FROM INFORMATION_SCHEMA.PROCESSLIST
WHERE TIME > {seconds} AND COMMAND != 'Sleep'
ORDER BY TIME DESC
\\G"""

CONNECTIONS_BY_USER_SQL = """
SELECT USER, COUNT(*) AS CONNECTIONS,
       SUM(IF(TIME > {seconds}, 1, 0)) AS OVER_{seconds}S,
       MAX(TIME) AS MAX_TIME
FROM INFORMATION_SCHEMA.PROCESSLIST
GROUP BY USER
ORDER BY CONNECTIONS DESC
\\G"""

CRITICAL_VARIABLES = (
    "max_connections",
    "max_user_connections",
    "innodb_buffer_pool_size",
    "innodb_log_file_size",
    "query_cache_type",
    "query_cache_size",
    "tmp_table_size",
    "max_heap_table_size",
    "long_query_time",
    "slow_query_log",
)


def find_socket(config: DatabaseConfig) -> Path | None:
    """Return the first server socket found under the configured directories."""
    for directory in config.socket_dirs:
        root = Path(directory)
        if not root.is_dir():
            continue
        try:
            for candidate in sorted(root.rglob(config.socket_name)):
                return candidate
        except OSError as exc:
            logger.debug("Cannot search %s: %s", root, exc)
    return None


def detect_client(config: DatabaseConfig) -> str | None:
    """Return the first configured client binary found on PATH."""
    for client in config.clients:
        if shutil.which(client):
            return client
    return None


class DatabaseClient:
    """Runs SQL against a local server over its unix socket."""

    def __init__(self, client: str, socket: Path, connect_timeout: int = 10) -> None:
        self.client = client
        self.socket = socket
        self.connect_timeout = connect_timeout

    def query(self, sql: str) -> CommandResult:
        args = [
            self.client,
            "-S", str(self.socket),
            f"--connect-timeout={self.connect_timeout}",
            "-e", sql,
        ]
        return run_command(args, timeout=self.connect_timeout + 20)

    def server_type(self) -> str:
        """'MariaDB', 'MySQL', or 'Unknown' when the server can't be reached."""
        result = self.query("SELECT VERSION();")
        if not result.success or not result.lines:
            return "Unknown"
        version = result.lines[-1]
        return "MariaDB" if "MariaDB" in version else "MySQL"

    def status(self) -> CommandResult:
        return self.query("STATUS\\G")

    def active_processes(self, seconds: int) -> CommandResult:
        return self.query(ACTIVE_PROCESSES_SQL.format(seconds=seconds))

    def connections_by_user(self, seconds: int) -> CommandResult:
        return self.query(CONNECTIONS_BY_USER_SQL.format(seconds=seconds))

    def critical_variables(self) -> CommandResult:
        names = ", ".join(f"'{name}'" for name in CRITICAL_VARIABLES)
        return self.query(f"SHOW VARIABLES WHERE Variable_name IN ({names})\\G")

    def innodb_status(self) -> CommandResult:
        return self.query("SHOW ENGINE INNODB STATUS\\G")

    def slow_log_path(self) -> Path | None:
        """Path of the slow query log as reported by the server."""
        result = self.query("SHOW VARIABLES LIKE 'slow_query_log_file'")
        if not result.success or not result.lines:
            return None
        fields = result.lines[-1].split("\t", 1)
        if len(fields) < 2 or fields[0] != "slow_query_log_file" or not fields[1]:
            return None
        return Path(fields[1])
