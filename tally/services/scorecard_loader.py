"""TALLY — Scorecard Aggregate Loader.

Assembles the scorecard detail view in one read:
  scorecard → active metrics (display order) → entries → owners → evaluations

Archived metrics are only counted here; their detail is loaded on demand by
``load_archived_metrics``. Visibility is decided by the Authorizer; a caller
who may not see a scorecard gets the same NotFound as for a missing one.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from tally.analyzer.aggregate_engine import summarize
from tally.analyzer.formatting import format_goal, format_period, format_value
from tally.analyzer.period_engine import Reference, last_n_periods
from tally.analyzer.target_engine import evaluate_entry
from tally.core.collaborators import Authorizer, default_authorizer
from tally.core.errors import NotFound, engine_operation
from tally.core.logging import get_logger
from tally.models.scorecard_models import Metric, MetricEntry, Scorecard, UserProfile
from tally.models.view_models import (
    EntryView,
    MetricView,
    OwnerView,
    ScorecardAggregate,
    ScorecardView,
)
from tally.services.metric_lifecycle import require_active_scorecard

logger = get_logger("services.loader")


def _visible_scorecard(
    session: Session,
    scorecard_id: int,
    caller_id: Optional[str],
    authorizer: Optional[Authorizer],
) -> Scorecard:
    scorecard = require_active_scorecard(session, scorecard_id)
    if not (authorizer or default_authorizer).can_view_scorecard(caller_id, scorecard):
        raise NotFound(f"Scorecard {scorecard_id} not found")
    return scorecard


def _load_entries(session: Session, metric_ids: List[int]) -> Dict[int, List[MetricEntry]]:
    """All retained entries per metric, newest first."""
    grouped: Dict[int, List[MetricEntry]] = defaultdict(list)
    if not metric_ids:
        return grouped
    rows = session.exec(
        select(MetricEntry)
        .where(MetricEntry.metric_id.in_(metric_ids))  # type: ignore
        .order_by(MetricEntry.period_start.desc())  # type: ignore
    ).all()
    for entry in rows:
        grouped[entry.metric_id].append(entry)
    return grouped


def _load_owners(session: Session, metrics: Iterable[Metric]) -> Dict[str, OwnerView]:
    owner_ids = {m.owner_user_id for m in metrics if m.owner_user_id}
    if not owner_ids:
        return {}
    profiles = session.exec(
        select(UserProfile).where(UserProfile.id.in_(owner_ids))  # type: ignore
    ).all()
    return {
        p.id: OwnerView(
            id=p.id, full_name=p.full_name, email=p.email, avatar_url=p.avatar_url
        )
        for p in profiles
    }


def _entry_view(entry: MetricEntry, metric: Metric) -> EntryView:
    evaluation = evaluate_entry(entry, metric) if metric.target is not None else None
    return EntryView(
        period_start=entry.period_start,
        period_label=format_period(entry.period_start, metric.cadence),
        value=entry.value,
        display_value=format_value(entry.value, metric.unit, metric.scoring_mode),
        note=entry.note,
        status=evaluation.status if evaluation else None,
        percent_vs_target=evaluation.percent_vs_target if evaluation else None,
        created_by=entry.created_by,
        created_at=entry.created_at,
    )


def build_metric_view(
    metric: Metric,
    entries: List[MetricEntry],
    owners: Dict[str, OwnerView],
    periods: Optional[List[date]] = None,
) -> MetricView:
    """Render one metric.

    ``entries`` are all retained entries; the summary uses every one of them
    while the listed entries are limited to ``periods`` when given.
    """
    window = set(periods) if periods is not None else None
    shown = [e for e in entries if window is None or e.period_start in window]

    return MetricView(
        id=metric.id,
        scorecard_id=metric.scorecard_id,
        name=metric.name,
        description=metric.description,
        cadence=metric.cadence,
        scoring_mode=metric.scoring_mode,
        unit=metric.unit,
        display_order=metric.display_order,
        target=metric.target,
        goal_label=format_goal(metric.target, metric.unit),
        owner_user_id=metric.owner_user_id,
        owner=owners.get(metric.owner_user_id) if metric.owner_user_id else None,
        is_active=metric.is_active,
        archived_at=metric.archived_at,
        archived_by=metric.archived_by,
        archive_reason=metric.archive_reason,
        periods=periods or [],
        entries=[_entry_view(e, metric) for e in shown],
        summary=summarize(entries),
    )


@engine_operation("load_scorecard_aggregate")
def load_scorecard_aggregate(
    session: Session,
    scorecard_id: int,
    caller_id: Optional[str] = None,
    authorizer: Optional[Authorizer] = None,
    period_counts: Optional[Dict[str, int]] = None,
    reference: Reference = None,
) -> ScorecardAggregate:
    """Scorecard, its active metrics with windowed entries, and the archived count.

    ``period_counts`` overrides the per-cadence window size; ``reference``
    moves "now" for the window (defaults to today).
    """
    scorecard = _visible_scorecard(session, scorecard_id, caller_id, authorizer)

    metrics = session.exec(
        select(Metric)
        .where(Metric.scorecard_id == scorecard_id, Metric.is_active == True)  # noqa: E712
        .order_by(Metric.display_order, Metric.id)  # type: ignore
    ).all()

    archived_count = session.exec(
        select(func.count())
        .select_from(Metric)
        .where(Metric.scorecard_id == scorecard_id, Metric.is_active == False)  # noqa: E712
    ).one()

    entries_by_metric = _load_entries(session, [m.id for m in metrics])
    owners = _load_owners(session, metrics)

    overrides = period_counts or {}
    windows: Dict[str, List[date]] = {}
    views: List[MetricView] = []
    for metric in metrics:
        if metric.cadence not in windows:
            windows[metric.cadence] = last_n_periods(
                metric.cadence, overrides.get(metric.cadence), reference
            )
        views.append(
            build_metric_view(
                metric, entries_by_metric[metric.id], owners, windows[metric.cadence]
            )
        )

    logger.info(
        f"Loaded scorecard with {len(views)} active and {archived_count} archived metrics",
        extra={"scorecard_id": scorecard_id},
    )
    return ScorecardAggregate(
        scorecard=ScorecardView(
            id=scorecard.id,
            name=scorecard.name,
            type=scorecard.type,
            owner_user_id=scorecard.owner_user_id,
            team_id=scorecard.team_id,
            role_id=scorecard.role_id,
        ),
        metrics=views,
        archived_count=archived_count,
    )


@engine_operation("load_archived_metrics")
def load_archived_metrics(
    session: Session,
    scorecard_id: int,
    caller_id: Optional[str] = None,
    authorizer: Optional[Authorizer] = None,
) -> List[MetricView]:
    """Archived metrics with all their entries, most recently archived first."""
    _visible_scorecard(session, scorecard_id, caller_id, authorizer)

    metrics = session.exec(
        select(Metric)
        .where(Metric.scorecard_id == scorecard_id, Metric.is_active == False)  # noqa: E712
        .order_by(Metric.archived_at.desc())  # type: ignore
    ).all()

    entries_by_metric = _load_entries(session, [m.id for m in metrics])
    owners = _load_owners(session, metrics)
    return [build_metric_view(m, entries_by_metric[m.id], owners) for m in metrics]
