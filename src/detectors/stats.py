"""Baseline / current-period statistics and severity classification.

Pure functions shared by every detector. Sample order never matters: the
baseline sorts internally and the current period only needs a mean.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, timedelta

from src.core.config import SeverityBands
from src.core.types import BaselineData, CurrentData, Period, Severity, TimeWindow

# Fraction of samples dropped from each tail before the baseline mean/std.
TRIM_FRACTION = 0.05

# |z| floors for the fallback severity mapping, highest first.
Z_SCORE_BANDS: tuple[tuple[float, Severity], ...] = (
    (3.0, Severity.CRITICAL),
    (2.5, Severity.HIGH),
    (1.5, Severity.MEDIUM),
)


def trim_count(n: int) -> int:
    """Samples dropped from each tail: ``floor(n * TRIM_FRACTION)``.

    Fewer than 20 samples are never trimmed.
    """
    return math.floor(n * TRIM_FRACTION)


def compute_baseline(samples: Sequence[float], period: Period) -> BaselineData:
    """Winsorized summary statistics over the baseline window.

    ``mean`` and ``std_dev`` (population) use the trimmed subset. ``median``
    is ``sorted[n // 2]`` of the untrimmed samples, so even-length input
    yields the upper-middle element. ``count``/``min``/``max`` use every sample.
    """
    if not samples:
        return BaselineData(period=period)

    ordered = sorted(float(s) for s in samples)
    n = len(ordered)
    k = trim_count(n)
    trimmed = ordered[k:n - k] if n - 2 * k > 0 else ordered

    mean = sum(trimmed) / len(trimmed)
    variance = sum((v - mean) ** 2 for v in trimmed) / len(trimmed)

    return BaselineData(
        mean=mean,
        std_dev=math.sqrt(variance),
        median=ordered[n // 2],
        count=n,
        min=ordered[0],
        max=ordered[-1],
        period=period,
    )


def compute_current(samples: Sequence[float], period: Period) -> CurrentData:
    """Arithmetic mean (0 when empty) and sample count of the current window."""
    if not samples:
        return CurrentData(value=0.0, count=0, period=period)
    return CurrentData(
        value=sum(float(s) for s in samples) / len(samples),
        count=len(samples),
        period=period,
    )


def z_score(value: float, baseline: BaselineData) -> float:
    """``(value - mean) / std_dev``; 0 when the baseline has no spread."""
    if baseline.std_dev <= 0:
        return 0.0
    return (value - baseline.mean) / baseline.std_dev


def change_ratio(value: float, baseline_mean: float, default: float = 1.0) -> float:
    """``value / baseline_mean``, or *default* when the baseline mean is not positive."""
    if baseline_mean <= 0:
        return default
    return value / baseline_mean


def change_percentage(value: float, baseline_mean: float) -> float:
    if baseline_mean <= 0:
        return 0.0
    return (value - baseline_mean) / baseline_mean * 100.0


def classify_severity(
    z: float,
    ratio: float | None = None,
    bands: SeverityBands | None = None,
) -> Severity:
    """Map a deviation to a severity.

    Ratio bands (checked critical → high → medium against ``|1 - ratio|``)
    apply only when both *ratio* and *bands* are given. Anything they do not
    match falls through to the fixed z-score bands.
    """
    if ratio is not None and bands is not None:
        deviation = abs(1.0 - ratio)
        for threshold, severity in (
            (bands.critical, Severity.CRITICAL),
            (bands.high, Severity.HIGH),
            (bands.medium, Severity.MEDIUM),
        ):
            if threshold and deviation >= threshold:
                return severity

    abs_z = abs(z)
    for floor, severity in Z_SCORE_BANDS:
        if abs_z >= floor:
            return severity
    return Severity.LOW


def classify_score(score: float, bands: SeverityBands | None) -> Severity:
    """Severity for "lower is worse" scores where bands hold ceilings."""
    if bands is None:
        return Severity.LOW
    for ceiling, severity in (
        (bands.critical, Severity.CRITICAL),
        (bands.high, Severity.HIGH),
        (bands.medium, Severity.MEDIUM),
    ):
        if ceiling is not None and score <= ceiling:
            return severity
    return Severity.LOW


# ── Windows ─────────────────────────────────────────────────────


def current_period(today: date, window: TimeWindow) -> Period:
    """The last ``current_days`` days, ending today (inclusive)."""
    days = max(window.current_days, 1)
    return Period(start=today - timedelta(days=days - 1), end=today)


def baseline_period(today: date, window: TimeWindow) -> Period:
    """``baseline_days`` days ending the day before the current window starts."""
    current = current_period(today, window)
    end = current.start - timedelta(days=1)
    return Period(start=end - timedelta(days=max(window.baseline_days, 1) - 1), end=end)
