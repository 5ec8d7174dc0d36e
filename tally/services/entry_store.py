"""TALLY — Entry Store.

Records at most one value per (metric, period). Writes are upserts keyed on
the unique (metric_id, period_start) pair, so a repeated write overwrites
instead of duplicating, and concurrent writers resolve at the row level
(last writer wins) through the store's own ON CONFLICT handling.

Any supplied period date is snapped to the start of the metric's cadence
bucket before it is used as a key.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, List, Optional, Union

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from tally.analyzer.period_engine import current_period_start, parse_period_date
from tally.core.collaborators import ViewInvalidator, default_invalidator
from tally.core.errors import InvalidValue, NotFound, engine_operation
from tally.core.logging import for_metric, get_logger
from tally.core.vocabulary import ScoringMode, coerce_scoring_mode
from tally.models.scorecard_models import Metric, MetricEntry
from tally.services.metric_lifecycle import require_metric

logger = get_logger("services.entries")

TRUE_VALUES = {"true", "1", "yes"}
FALSE_VALUES = {"false", "0", "no"}

NATIVE_UPSERT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}

PeriodInput = Union[date, str, None]


def parse_value(raw: Any, scoring_mode: Union[ScoringMode, str]) -> float:
    """Turn a raw submitted value into the stored float.

    yes/no metrics accept true/1/"yes" → 1.0 and false/0/"no" → 0.0.
    Every other mode takes any finite number.
    """
    mode = coerce_scoring_mode(scoring_mode)

    if mode == ScoringMode.YES_NO:
        if isinstance(raw, bool):
            return 1.0 if raw else 0.0
        if isinstance(raw, (int, float)) and raw in (0, 1):
            return float(raw)
        if isinstance(raw, str):
            token = raw.strip().lower()
            if token in TRUE_VALUES:
                return 1.0
            if token in FALSE_VALUES:
                return 0.0
        raise InvalidValue("Invalid boolean value")

    if isinstance(raw, bool):
        raise InvalidValue("Invalid value")
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        raise InvalidValue("Invalid value") from None
    if math.isnan(value) or math.isinf(value):
        raise InvalidValue("Invalid value")
    return value


def resolve_period(metric: Metric, period_start: PeriodInput = None) -> date:
    """Canonical period key: the supplied date's bucket, else the current one."""
    if period_start is None or period_start == "":
        return current_period_start(metric.cadence)
    return current_period_start(metric.cadence, parse_period_date(period_start))


def find_entry(session: Session, metric_id: int, period: date) -> Optional[MetricEntry]:
    return session.exec(
        select(MetricEntry).where(
            MetricEntry.metric_id == metric_id,
            MetricEntry.period_start == period,
        )
    ).first()


def _write(
    session: Session,
    metric_id: int,
    period: date,
    value: float,
    note: Optional[str],
    author_id: Optional[str],
) -> None:
    """Insert or overwrite the entry for (metric_id, period).

    ``note=None`` leaves an existing note untouched; ``""`` clears it.
    """
    stored_note = note or None
    dialect = session.get_bind().dialect.name
    native_insert = NATIVE_UPSERT.get(dialect)

    if native_insert is not None:
        stmt = native_insert(MetricEntry).values(
            metric_id=metric_id,
            period_start=period,
            value=value,
            note=stored_note,
            created_by=author_id,
            created_at=datetime.now(timezone.utc),
        )
        overwrite = {
            "value": stmt.excluded.value,
            "created_by": stmt.excluded.created_by,
        }
        if note is not None:
            overwrite["note"] = stmt.excluded.note
        stmt = stmt.on_conflict_do_update(
            index_elements=["metric_id", "period_start"],
            set_=overwrite,
        )
        session.connection().execute(stmt)
        return

    # Generic path for stores without an ON CONFLICT clause
    existing = find_entry(session, metric_id, period)
    if existing:
        existing.value = value
        existing.created_by = author_id
        if note is not None:
            existing.note = stored_note
        session.add(existing)
    else:
        session.add(
            MetricEntry(
                metric_id=metric_id,
                period_start=period,
                value=value,
                note=stored_note,
                created_by=author_id,
            )
        )
    session.flush()


@engine_operation("upsert_entry")
def upsert_entry(
    session: Session,
    metric_id: int,
    raw_value: Any,
    author_id: Optional[str] = None,
    period_start: PeriodInput = None,
    note: Optional[str] = None,
    invalidator: Optional[ViewInvalidator] = None,
) -> MetricEntry:
    """Record the value for a period, overwriting any value already there.

    ``period_start`` defaults to the metric's current period, which lets the
    same call serve both "this week" and back-dated entry.
    """
    metric = require_metric(session, metric_id)
    value = parse_value(raw_value, metric.scoring_mode)
    period = resolve_period(metric, period_start)

    _write(session, metric.id, period, value, note, author_id)
    session.commit()

    entry = find_entry(session, metric.id, period)
    for_metric(logger, metric).info(f"Recorded {value} for period {period.isoformat()}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return entry


@engine_operation("delete_entry")
def delete_entry(
    session: Session,
    metric_id: int,
    period_start: Union[date, str],
    invalidator: Optional[ViewInvalidator] = None,
) -> bool:
    """Remove the entry for a period. Succeeds even if none existed.

    Returns True when a row was actually removed.
    """
    metric = require_metric(session, metric_id)
    period = resolve_period(metric, period_start)

    result = session.connection().execute(
        delete(MetricEntry).where(
            MetricEntry.metric_id == metric.id,
            MetricEntry.period_start == period,
        )
    )
    session.commit()

    removed = bool(result.rowcount)
    if removed:
        for_metric(logger, metric).info(f"Deleted entry for period {period.isoformat()}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return removed


@engine_operation("update_note")
def update_note(
    session: Session,
    metric_id: int,
    period_start: Union[date, str],
    note: Optional[str],
    invalidator: Optional[ViewInvalidator] = None,
) -> MetricEntry:
    """Change only the note of an existing entry; the value is preserved."""
    metric = require_metric(session, metric_id)
    period = resolve_period(metric, period_start)

    entry = find_entry(session, metric.id, period)
    if entry is None:
        raise NotFound(f"No entry recorded for period {period.isoformat()}")

    entry.note = note or None
    session.add(entry)
    session.commit()
    session.refresh(entry)
    for_metric(logger, metric).info(f"Updated note for period {period.isoformat()}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return entry


@engine_operation("list_entries")
def list_entries(
    session: Session,
    metric_id: int,
    since: PeriodInput = None,
) -> List[MetricEntry]:
    """All entries for a metric, newest period first."""
    metric = require_metric(session, metric_id)
    query = (
        select(MetricEntry)
        .where(MetricEntry.metric_id == metric.id)
        .order_by(MetricEntry.period_start.desc())  # type: ignore
    )
    if since is not None:
        query = query.where(MetricEntry.period_start >= parse_period_date(since))
    return list(session.exec(query).all())
