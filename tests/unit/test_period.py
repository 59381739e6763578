"""
Unit tests -- period inference: retention buckets, auto period, explicit values.
"""
from datetime import datetime, timedelta, timezone

import pytest

from src.cloudwatch.period import compute_auto_period, get_retained_periods, parse_period

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


# ── Retention buckets ────────────────────────────────────

@pytest.mark.parametrize("age_days, expected", [
    (0, [60, 300, 900, 3600, 21600, 86400]),
    (15, [60, 300, 900, 3600, 21600, 86400]),
    (16, [300, 900, 3600, 21600, 86400]),
    (63, [300, 900, 3600, 21600, 86400]),
    (64, [3600, 21600, 86400]),
    (455, [3600, 21600, 86400]),
    (456, [21600, 86400]),
])
def test_retained_periods(age_days, expected):
    assert get_retained_periods(timedelta(days=age_days)) == expected


# ── Auto period ──────────────────────────────────────────

@pytest.mark.parametrize("span, expected", [
    (timedelta(days=1), 60),
    (timedelta(days=2), 300),
    (timedelta(days=7), 900),
    (timedelta(days=30), 3600),
    (timedelta(days=90), 21600),
    (timedelta(days=365), 21600),
    (timedelta(days=730), 86400),
])
def test_auto_period_for_recent_ranges(span, expected):
    assert compute_auto_period(NOW - span, NOW, now=NOW) == expected


def test_reversed_five_minute_range_uses_finest_period():
    # start after end counts as zero datapoints
    assert compute_auto_period(NOW + timedelta(minutes=5), NOW, now=NOW) == 60


@pytest.mark.parametrize("ended_days_ago, expected", [
    (14, 300),
    (88, 3600),
    (454, 21600),
])
def test_auto_period_for_old_two_day_ranges(ended_days_ago, expected):
    end = NOW - timedelta(days=ended_days_ago)
    start = end - timedelta(days=2)
    assert compute_auto_period(start, end, now=NOW) == expected


def test_auto_period_defaults_now_to_current_time():
    end = datetime.now(tz=timezone.utc)
    assert compute_auto_period(end - timedelta(days=7), end) == 900


def test_auto_period_naive_datetimes():
    end = datetime.now()
    assert compute_auto_period(end - timedelta(days=2), end) == 300


def test_max_datapoints_override():
    # 1 day / 100 datapoints = 864 s -> next retained period is 900
    assert compute_auto_period(NOW - timedelta(days=1), NOW, now=NOW, max_datapoints=100) == 900


# ── Explicit period ──────────────────────────────────────

@pytest.mark.parametrize("value, expected", [
    ("600", 600),
    ("900", 900),
    (300, 300),
    (60.0, 60),
    ("5m", 300),
    ("1h30m", 5400),
    ("90s", 90),
])
def test_parse_explicit_period(value, expected):
    assert parse_period(value) == expected


@pytest.mark.parametrize("value", [None, "", "auto", "AUTO", "0", 0, -60, "-60", "soon", True, ["60"]])
def test_parse_period_falls_back_to_auto(value):
    assert parse_period(value) is None


@pytest.mark.parametrize("value", [
    float("inf"),
    float("-inf"),
    float("nan"),
    "9" * 5000,
    "9" * 400 + "h",
])
def test_parse_period_non_finite_or_oversized_falls_back_to_auto(value):
    assert parse_period(value) is None
