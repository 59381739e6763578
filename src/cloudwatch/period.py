"""
Sampling-period inference.

CloudWatch keeps fine-grained datapoints only for recent data: one-minute
data for 15 days, five-minute data for 63 days and one-hour data for 455 days.
An automatic period has to satisfy two limits at once:

  1. it must be a resolution CloudWatch still retains for the oldest point in
     the range (the range *start*), and
  2. it must keep the number of datapoints per series under a ceiling
     (``Settings.auto_period_max_datapoints``, 2000 by default).

The smallest retained period that satisfies the ceiling wins; when none does
the coarsest retained period is used.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timedelta
from typing import Any

from src.core.config import get_settings

AUTO_PERIOD = "auto"

_RETENTION_STEPS: list[tuple[timedelta, list[int]]] = [
    (timedelta(days=455), [21600, 86400]),
    (timedelta(days=63), [3600, 21600, 86400]),
    (timedelta(days=15), [300, 900, 3600, 21600, 86400]),
]
_ALL_PERIODS = [60, 300, 900, 3600, 21600, 86400]

_DIGITS_RE = re.compile(r"^\d+$")
_DURATION_RE = re.compile(r"^(?:\d+(?:\.\d+)?(?:h|ms|m|s))+$")
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def get_retained_periods(age: timedelta) -> list[int]:
    """Periods (seconds) CloudWatch still serves for data *age* old."""
    for threshold, periods in _RETENTION_STEPS:
        if age > threshold:
            return list(periods)
    return list(_ALL_PERIODS)


def compute_auto_period(
    start: datetime,
    end: datetime,
    now: datetime | None = None,
    max_datapoints: int | None = None,
) -> int:
    """Pick a period for the range ``start``..``end``.

    ``now`` defaults to the current time in ``start``'s timezone. A reversed
    range counts as zero datapoints and resolves to the finest retained period.
    """
    if now is None:
        now = datetime.now(tz=start.tzinfo)
    if max_datapoints is None:
        max_datapoints = get_settings().auto_period_max_datapoints

    periods = get_retained_periods(now - start)
    span_seconds = (end - start).total_seconds()
    datapoints = max(math.ceil(span_seconds / max_datapoints), 0)

    for period in periods:
        if datapoints <= period:
            return period
    return periods[-1]


def _parse_duration(text: str) -> float | None:
    if not _DURATION_RE.match(text):
        return None
    return sum(
        float(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _DURATION_PART_RE.findall(text)
    )


def _to_seconds(value: int | float | str) -> int | None:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        seconds = int(value)
    except (ValueError, OverflowError):
        return None
    return seconds if seconds > 0 else None


def parse_period(value: Any) -> int | None:
    """Return an explicit period in seconds, or ``None`` when it must be inferred.

    Accepts integers, digit strings (``"600"``) and duration strings
    (``"5m"``, ``"1h30m"``). ``"auto"``, empty, unparsable, non-finite, zero
    and negative values all return ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _to_seconds(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.lower() == AUTO_PERIOD:
        return None
    if _DIGITS_RE.match(text):
        return _to_seconds(text)
    duration = _parse_duration(text)
    if duration is None:
        return None
    return _to_seconds(duration)
