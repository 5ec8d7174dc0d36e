"""TALLY — Aggregate Engine.

Derived figures over a metric's recorded entries:
average, period-over-period % change, and trend direction.
"""

from typing import Iterable, List, Optional, Sequence

from tally.config import settings
from tally.core.vocabulary import Trend
from tally.models.scoring_models import MetricSummary


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def average(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None when there is no data."""
    values = list(values)
    if not values:
        return None
    return _mean(values)


def period_over_period_change(
    current: Optional[float], previous: Optional[float]
) -> Optional[float]:
    """(current − previous) / previous × 100.

    None when either value is missing or the previous value is zero.
    """
    if current is None or previous is None or previous == 0:
        return None
    return round((current - previous) / previous * 100, 2)


def trend(values: Sequence[float]) -> Trend:
    """Compare the mean of the latest window against the window before it.

    ``values`` must be ordered oldest → newest. Fewer than two full windows
    of history is flat by convention.
    """
    window = settings.trend_window
    if len(values) < window * 2:
        return Trend.FLAT

    recent = _mean(values[-window:])
    prior = _mean(values[-window * 2 : -window])

    # Zero baseline: compare by sign
    if prior == 0:
        if recent > 0:
            return Trend.UP
        if recent < 0:
            return Trend.DOWN
        return Trend.FLAT

    if recent >= prior * settings.trend_up_ratio:
        return Trend.UP
    if recent <= prior * settings.trend_down_ratio:
        return Trend.DOWN
    return Trend.FLAT


def summarize(entries: Iterable) -> MetricSummary:
    """Build a MetricSummary from entries in any order.

    Entries need ``period_start`` and ``value`` attributes.
    """
    ordered = sorted(entries, key=lambda e: e.period_start)
    values: List[float] = [e.value for e in ordered]

    if not values:
        return MetricSummary()

    latest = values[-1]
    previous = values[-2] if len(values) > 1 else None
    return MetricSummary(
        average=round(_mean(values), 4),
        latest_value=latest,
        previous_value=previous,
        change_pct=period_over_period_change(latest, previous),
        trend=trend(values),
        entry_count=len(values),
    )
