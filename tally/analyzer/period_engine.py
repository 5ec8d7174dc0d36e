"""TALLY — Period Engine.

Canonical period boundaries per cadence:
- weekly    → Monday of the reference week
- monthly   → first day of the reference month
- quarterly → first day of the reference quarter (Jan / Apr / Jul / Oct)

Everything here works on calendar dates. A datetime reference contributes
its own calendar date and is never shifted into the host's local timezone.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Union
from zoneinfo import ZoneInfo

from tally.config import settings
from tally.core.errors import InvalidValue
from tally.core.vocabulary import Cadence, coerce_cadence

Reference = Union[date, datetime, str, None]

PERIOD_FORMAT = "%Y-%m-%d"


def to_period_string(period: date) -> str:
    """Serialize a period start as YYYY-MM-DD."""
    if isinstance(period, datetime):
        period = period.date()
    return period.strftime(PERIOD_FORMAT)


def parse_period_date(value: Union[str, date]) -> date:
    """Parse YYYY-MM-DD into a calendar date.

    Raises InvalidValue for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), PERIOD_FORMAT).date()
    except ValueError:
        raise InvalidValue(f"Invalid period date: {value!r} (expected YYYY-MM-DD)") from None


def today() -> date:
    """Today's date in the configured timezone."""
    tz = timezone.utc if settings.timezone.upper() == "UTC" else ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def _reference_date(reference: Reference) -> date:
    if reference is None:
        return today()
    if isinstance(reference, str):
        return parse_period_date(reference)
    if isinstance(reference, datetime):
        return reference.date()
    if isinstance(reference, date):
        return reference
    raise TypeError(f"Unsupported reference type: {type(reference).__name__}")


def _shift_months(first_of_month: date, months: int) -> date:
    """Move a first-of-month date by a whole number of months."""
    index = first_of_month.year * 12 + (first_of_month.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def current_period_start(cadence: Union[Cadence, str], reference: Reference = None) -> date:
    """Return the start of the period containing ``reference`` (default: today)."""
    cadence = coerce_cadence(cadence)
    ref = _reference_date(reference)

    if cadence == Cadence.WEEKLY:
        # weekday(): Monday=0 … Sunday=6, so Sunday steps back 6 days
        return ref - timedelta(days=ref.weekday())
    if cadence == Cadence.MONTHLY:
        return ref.replace(day=1)
    quarter_start_month = (ref.month - 1) // 3 * 3 + 1
    return date(ref.year, quarter_start_month, 1)


def step_back(cadence: Union[Cadence, str], period_start: date, steps: int = 1) -> date:
    """Move a period start back by whole cadence steps."""
    cadence = coerce_cadence(cadence)
    if cadence == Cadence.WEEKLY:
        return period_start - timedelta(days=7 * steps)
    if cadence == Cadence.MONTHLY:
        return _shift_months(period_start, -steps)
    return _shift_months(period_start, -3 * steps)


def period_end(cadence: Union[Cadence, str], period_start: date) -> date:
    """Last calendar day of the period beginning at ``period_start``."""
    cadence = coerce_cadence(cadence)
    if cadence == Cadence.WEEKLY:
        return period_start + timedelta(days=6)
    months = 1 if cadence == Cadence.MONTHLY else 3
    return _shift_months(period_start, months) - timedelta(days=1)


def default_period_count(cadence: Union[Cadence, str]) -> int:
    return settings.period_counts[coerce_cadence(cadence).value]


def last_n_periods(
    cadence: Union[Cadence, str],
    n: Optional[int] = None,
    reference: Reference = None,
) -> List[date]:
    """Return the last ``n`` period starts, newest first.

    The first element is the current period. ``n`` defaults to the configured
    window for the cadence.
    """
    cadence = coerce_cadence(cadence)
    count = default_period_count(cadence) if n is None else n
    if count < 1:
        raise ValueError(f"Period count must be at least 1, got {count}")

    current = current_period_start(cadence, reference)
    return [step_back(cadence, current, i) for i in range(count)]


def last_n_period_strings(
    cadence: Union[Cadence, str],
    n: Optional[int] = None,
    reference: Reference = None,
) -> List[str]:
    """Same as last_n_periods, serialized as YYYY-MM-DD."""
    return [to_period_string(p) for p in last_n_periods(cadence, n, reference)]
