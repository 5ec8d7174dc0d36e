"""TALLY — Display Formatting.

Labels for periods, values and goals, shared by every view that renders a
scorecard so that table cells and detail views read the same.
"""

from datetime import date
from typing import Optional, Union

from tally.analyzer.period_engine import parse_period_date, period_end
from tally.core.vocabulary import Cadence, ScoringMode, coerce_cadence
from tally.models.scoring_models import (
    AtLeastTarget,
    AtMostTarget,
    BetweenTarget,
)


def _short_day(d: date) -> str:
    return f"{d:%b} {d.day}"  # "Sep 2"


def format_period(period_start: Union[date, str], cadence: Union[Cadence, str]) -> str:
    """Label a period: "Sep 1 - Sep 7", "Sep 2025" or "Q3 2025"."""
    cadence = coerce_cadence(cadence)
    start = parse_period_date(period_start)

    if cadence == Cadence.WEEKLY:
        return f"{_short_day(start)} - {_short_day(period_end(cadence, start))}"
    if cadence == Cadence.MONTHLY:
        return f"{start:%b %Y}"
    return f"Q{(start.month - 1) // 3 + 1} {start.year}"


def _number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,}"


def format_value(value: float, unit: Optional[str] = None, scoring_mode: Optional[str] = None) -> str:
    """Render a recorded value with its unit ("$1,200", "35%", "Yes")."""
    if scoring_mode == ScoringMode.YES_NO.value:
        return "Yes" if value == 1 else "No"
    if unit == "$":
        return f"${_number(value)}"
    if unit:
        return f"{_number(value)}{unit}"
    return _number(value)


def format_goal(target, unit: Optional[str] = None) -> str:
    """Render a target (">= $100,000", "2 to 8", "Target: Yes")."""
    if target is None:
        return "N/A"
    if isinstance(target, AtLeastTarget):
        if target.value == 0:
            return "= 0"
        return f">= {format_value(target.value, unit)}"
    if isinstance(target, AtMostTarget):
        return f"<= {format_value(target.value, unit)}"
    if isinstance(target, BetweenTarget):
        return f"{format_value(target.min, unit)} to {format_value(target.max, unit)}"
    return f"Target: {'Yes' if target.expected else 'No'}"
