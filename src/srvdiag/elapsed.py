"""Elapsed-time parsing and long-running classification for process rows."""

from dataclasses import dataclass
from datetime import timedelta

SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60


class MalformedInputError(ValueError):
    """Raised when an elapsed-time field cannot be parsed."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"malformed elapsed time: {raw!r}")
        self.raw = raw


@dataclass(slots=True, frozen=True)
class ElapsedTime:
    """Wall-clock runtime of a process as reported by a process listing."""

    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def total_seconds(self) -> int:
        """Total runtime in seconds."""
        return (
            self.days * SECONDS_PER_DAY
            + self.hours * SECONDS_PER_HOUR
            + self.minutes * SECONDS_PER_MINUTE
            + self.seconds
        )


@dataclass(slots=True, frozen=True)
class ThresholdPolicy:
    """
    Duration boundary a process must exceed to count as long-running.

    ``days_always_long`` restores the legacy rule where any day-prefixed
    elapsed value is flagged regardless of ``limit``. It is deprecated and
    off by default.
    """

    limit: timedelta
    days_always_long: bool = False

    @property
    def limit_in_seconds(self) -> int:
        """The limit as whole seconds."""
        return int(self.limit.total_seconds())


@dataclass(slots=True, frozen=True)
class Classification:
    """Result of classifying one elapsed-time field."""

    total_seconds: int
    is_long_running: bool


def _to_int(field: str, raw: str) -> int:
    # int() would also take "+1", " 1" and "1_0"
    if not field.isascii() or not field.isdigit():
        raise MalformedInputError(raw)
    return int(field)


def parse_elapsed(raw: str) -> ElapsedTime:
    """
    Parse a ``[[DD-]HH:]MM:SS`` elapsed-time field.

    Args:
        raw: The field as emitted by ``ps -o etime``. Surrounding whitespace
            is ignored.

    Returns:
        The parsed ElapsedTime.

    Raises:
        MalformedInputError: If the field does not match any accepted form.
    """
    text = raw.strip()
    parts = text.split("-")
    if len(parts) > 2:
        raise MalformedInputError(raw)

    if len(parts) == 2:
        days = _to_int(parts[0], raw)
        fields = parts[1].split(":")
        if len(fields) != 3:
            raise MalformedInputError(raw)
        hours, minutes, seconds = (_to_int(f, raw) for f in fields)
        return ElapsedTime(days=days, hours=hours, minutes=minutes, seconds=seconds)

    fields = text.split(":")
    if not 1 <= len(fields) <= 3:
        raise MalformedInputError(raw)
    values = [_to_int(f, raw) for f in fields]
    # Right-to-left: seconds, minutes, hours
    values = [0] * (3 - len(values)) + values
    return ElapsedTime(hours=values[0], minutes=values[1], seconds=values[2])


def classify(raw: str, threshold: ThresholdPolicy) -> Classification:
    """
    Classify an elapsed-time field against a threshold.

    A process is long-running only when its runtime strictly exceeds the
    limit; meeting it exactly is not enough.

    Raises:
        MalformedInputError: If ``raw`` cannot be parsed.
    """
    elapsed = parse_elapsed(raw)
    total = elapsed.total_seconds
    is_long = total > threshold.limit_in_seconds
    if threshold.days_always_long and elapsed.days > 0:
        is_long = True
    return Classification(total_seconds=total, is_long_running=is_long)


def format_elapsed(seconds: float) -> str:
    """Render a duration the way ``ps -o etime`` does."""
    total = max(0, int(seconds))
    days, rest = divmod(total, SECONDS_PER_DAY)
    hours, rest = divmod(rest, SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, SECONDS_PER_MINUTE)
    if days:
        return f"{days}-{hours:02d}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
