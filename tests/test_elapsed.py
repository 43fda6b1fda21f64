"""Tests for elapsed-time parsing and classification."""

from datetime import timedelta

import pytest

from srvdiag.elapsed import (
    Classification,
    ElapsedTime,
    MalformedInputError,
    ThresholdPolicy,
    classify,
    format_elapsed,
    parse_elapsed,
)

MINUTE = ThresholdPolicy(limit=timedelta(seconds=60))


class TestParseElapsed:
    """Tests for parse_elapsed."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("7", ElapsedTime(seconds=7)),
            ("05:09", ElapsedTime(minutes=5, seconds=9)),
            ("02:05:09", ElapsedTime(hours=2, minutes=5, seconds=9)),
            ("3-02:05:09", ElapsedTime(days=3, hours=2, minutes=5, seconds=9)),
            ("00:01", ElapsedTime(seconds=1)),
            ("   12:34", ElapsedTime(minutes=12, seconds=34)),
        ],
    )
    def test_accepted_forms(self, raw, expected):
        """Each ps etime form maps right-to-left onto the fields."""
        assert parse_elapsed(raw) == expected

    def test_total_seconds(self):
        """total_seconds combines every field."""
        elapsed = ElapsedTime(days=2, hours=3, minutes=4, seconds=5)
        assert elapsed.total_seconds == 2 * 86400 + 3 * 3600 + 4 * 60 + 5

    @pytest.mark.parametrize(
        "raw",
        ["abc", "1:2:3:4", "", "1-02:03", "1-2-03:04:05", "-01:00:00", "01:-1", "1a:00", "01::00", "+1:00"],
    )
    def test_malformed(self, raw):
        """Malformed fields raise MalformedInputError carrying the raw text."""
        with pytest.raises(MalformedInputError) as excinfo:
            parse_elapsed(raw)
        assert excinfo.value.raw == raw

    def test_malformed_is_value_error(self):
        """MalformedInputError can be caught as ValueError."""
        with pytest.raises(ValueError):
            parse_elapsed("x")

    def test_elapsed_time_is_frozen(self):
        """ElapsedTime is immutable."""
        elapsed = ElapsedTime(seconds=1)
        with pytest.raises(AttributeError):
            elapsed.seconds = 2


class TestClassify:
    """Tests for classify."""

    @pytest.mark.parametrize(
        ("raw", "total", "is_long"),
        [
            ("00:00", 0, False),
            ("00:59", 59, False),
            ("01:00", 60, False),
            ("01:01", 61, True),
            ("1-00:00:00", 86400, True),
        ],
    )
    def test_strict_greater_than(self, raw, total, is_long):
        """Only runtimes strictly above the limit are long-running."""
        assert classify(raw, MINUTE) == Classification(total_seconds=total, is_long_running=is_long)

    @pytest.mark.parametrize("raw", ["abc", "1:2:3:4"])
    def test_malformed_propagates(self, raw):
        """Malformed input is surfaced to the caller, not treated as zero."""
        with pytest.raises(MalformedInputError):
            classify(raw, MINUTE)

    def test_idempotent(self):
        """Identical input gives identical output."""
        assert classify("12:34:56", MINUTE) == classify("12:34:56", MINUTE)

    def test_days_compared_numerically_by_default(self):
        """A one-day process is not long against a thirty-day limit."""
        policy = ThresholdPolicy(limit=timedelta(days=30))
        assert classify("1-00:00:00", policy).is_long_running is False

    def test_legacy_days_rule(self):
        """The deprecated coarse rule flags any day-prefixed value."""
        policy = ThresholdPolicy(limit=timedelta(days=30), days_always_long=True)
        result = classify("1-00:00:00", policy)
        assert result.is_long_running is True
        assert result.total_seconds == 86400

    def test_legacy_rule_ignores_sub_day_values(self):
        """The coarse rule changes nothing without a day prefix."""
        policy = ThresholdPolicy(limit=timedelta(hours=2), days_always_long=True)
        assert classify("01:59:59", policy).is_long_running is False

    def test_limit_in_seconds(self):
        """limit_in_seconds truncates the timedelta to whole seconds."""
        assert ThresholdPolicy(limit=timedelta(minutes=2, milliseconds=500)).limit_in_seconds == 120


class TestFormatElapsed:
    """Tests for format_elapsed."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "00:00"),
            (59, "00:59"),
            (3599, "59:59"),
            (3600, "01:00:00"),
            (86399, "23:59:59"),
            (90061, "1-01:01:01"),
            (12.9, "00:12"),
            (-5, "00:00"),
        ],
    )
    def test_ps_layout(self, seconds, expected):
        """Durations render the way ps -o etime prints them."""
        assert format_elapsed(seconds) == expected

    @pytest.mark.parametrize("seconds", [0, 61, 3600, 86400, 1234567])
    def test_parses_back(self, seconds):
        """format_elapsed output is accepted by parse_elapsed."""
        assert parse_elapsed(format_elapsed(seconds)).total_seconds == seconds
