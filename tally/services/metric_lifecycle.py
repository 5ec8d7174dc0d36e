"""TALLY — Metric Lifecycle Manager.

Creates, updates, archives, restores, hard-deletes, reorders and copies
metrics. Lifecycle per metric:

    Active ──archive──▶ Archived ──restore──▶ Active
                           │
                           └──hard delete──▶ gone (entries cascade)

Archiving never touches entries; hard delete is only reachable from Archived.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from tally.config import settings
from tally.core.collaborators import ViewInvalidator, default_invalidator
from tally.core.errors import (
    Conflict,
    EngineError,
    NotFound,
    ValidationError,
    engine_operation,
)
from tally.core.logging import for_metric, get_logger
from tally.core.vocabulary import Cadence, ScoringMode
from tally.models.scorecard_models import Metric, MetricEntry, Scorecard
from tally.models.scoring_models import BetweenTarget, MetricDefinition, YesNoTarget
from tally.models.view_models import BulkItemResult, BulkResult

logger = get_logger("services.lifecycle")

CADENCES = {c.value for c in Cadence}
SCORING_MODES = {m.value for m in ScoringMode}

MISSING_TARGET = {
    ScoringMode.AT_LEAST: "Target value is required for this scoring mode",
    ScoringMode.AT_MOST: "Target value is required for this scoring mode",
    ScoringMode.BETWEEN: "Target min and max are required for between mode",
    ScoringMode.YES_NO: "Target is required for Yes/No mode",
}


# ─────────────────────────────────────────────
# LOOKUPS
# ─────────────────────────────────────────────


def require_metric(session: Session, metric_id: int) -> Metric:
    """Return the metric or raise NotFound."""
    metric = session.get(Metric, metric_id)
    if metric is None:
        raise NotFound(f"Metric {metric_id} not found")
    return metric


def require_active_scorecard(session: Session, scorecard_id: int) -> Scorecard:
    scorecard = session.get(Scorecard, scorecard_id)
    if scorecard is None or not scorecard.is_active:
        raise NotFound(f"Scorecard {scorecard_id} not found")
    return scorecard


# ─────────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────────


def validate_definition(definition: MetricDefinition) -> MetricDefinition:
    """Check name, cadence, scoring mode and the mode's target fields.

    Returns a copy with the name trimmed. Raises ValidationError.
    """
    name = (definition.name or "").strip()
    if len(name) < settings.min_metric_name_length:
        raise ValidationError(
            f"Metric name must be at least {settings.min_metric_name_length} characters"
        )

    if definition.cadence not in CADENCES:
        raise ValidationError("Invalid cadence")

    if definition.scoring_mode not in SCORING_MODES:
        raise ValidationError("Invalid scoring mode")

    target = definition.target
    if target is None:
        raise ValidationError(MISSING_TARGET[ScoringMode(definition.scoring_mode)])

    if isinstance(target, BetweenTarget):
        if not (math.isfinite(target.min) and math.isfinite(target.max)):
            raise ValidationError("Target min and max must be finite numbers")
        if target.min >= target.max:
            raise ValidationError("Target min must be less than target max")
    elif not isinstance(target, YesNoTarget) and not math.isfinite(target.value):
        raise ValidationError("Target value must be a finite number")

    return definition.model_copy(update={"name": name})


def _apply_definition(metric: Metric, definition: MetricDefinition) -> None:
    metric.name = definition.name
    metric.description = definition.description or None
    metric.cadence = definition.cadence
    metric.scoring_mode = definition.scoring_mode
    metric.unit = definition.unit or None
    metric.owner_user_id = definition.owner_user_id or None
    metric.target_value = definition.target_value
    metric.target_min = definition.target_min
    metric.target_max = definition.target_max
    metric.target_boolean = definition.target_boolean


def _next_display_order(session: Session, scorecard_id: int) -> int:
    current_max = session.exec(
        select(func.max(Metric.display_order)).where(Metric.scorecard_id == scorecard_id)
    ).one()
    return 0 if current_max is None else current_max + 1


# ─────────────────────────────────────────────
# CREATE / UPDATE
# ─────────────────────────────────────────────


def _create(
    session: Session, scorecard_id: int, definition: MetricDefinition
) -> Metric:
    definition = validate_definition(definition)
    require_active_scorecard(session, scorecard_id)

    metric = Metric(
        scorecard_id=scorecard_id,
        name=definition.name,
        cadence=definition.cadence,
        scoring_mode=definition.scoring_mode,
        display_order=_next_display_order(session, scorecard_id),
    )
    _apply_definition(metric, definition)
    session.add(metric)
    session.flush()
    return metric


@engine_operation("create_metric")
def create_metric(
    session: Session,
    scorecard_id: int,
    definition: MetricDefinition,
    invalidator: Optional[ViewInvalidator] = None,
) -> Metric:
    """Create an active metric at the end of the scorecard's display order."""
    metric = _create(session, scorecard_id, definition)
    session.commit()
    session.refresh(metric)
    for_metric(logger, metric).info(
        f"Created metric {metric.name!r} at position {metric.display_order}"
    )
    (invalidator or default_invalidator).scorecard_changed(scorecard_id)
    return metric


@engine_operation("update_metric")
def update_metric(
    session: Session,
    metric_id: int,
    definition: MetricDefinition,
    invalidator: Optional[ViewInvalidator] = None,
) -> Metric:
    """Replace a metric's definition. Display order and lifecycle are kept."""
    definition = validate_definition(definition)
    metric = require_metric(session, metric_id)

    _apply_definition(metric, definition)
    session.add(metric)
    session.commit()
    session.refresh(metric)
    for_metric(logger, metric).info(f"Updated metric {metric.name!r}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return metric


@engine_operation("get_metric")
def get_metric(session: Session, metric_id: int) -> Metric:
    return require_metric(session, metric_id)


# ─────────────────────────────────────────────
# ARCHIVE / RESTORE / HARD DELETE
# ─────────────────────────────────────────────


def _archive(
    session: Session, metric_id: int, archived_by: Optional[str], reason: Optional[str]
) -> Metric:
    metric = require_metric(session, metric_id)
    if not metric.is_active:
        raise Conflict(f"Metric {metric_id} is already archived")

    metric.is_active = False
    metric.archived_at = datetime.now(timezone.utc)
    metric.archived_by = archived_by
    metric.archive_reason = reason or None
    session.add(metric)
    return metric


@engine_operation("archive_metric")
def archive_metric(
    session: Session,
    metric_id: int,
    archived_by: Optional[str] = None,
    reason: Optional[str] = None,
    invalidator: Optional[ViewInvalidator] = None,
) -> Metric:
    """Soft-deactivate a metric. Its entries are kept."""
    metric = _archive(session, metric_id, archived_by, reason)
    session.commit()
    session.refresh(metric)
    for_metric(logger, metric).info(f"Archived metric {metric.name!r}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return metric


@engine_operation("restore_metric")
def restore_metric(
    session: Session,
    metric_id: int,
    invalidator: Optional[ViewInvalidator] = None,
) -> Metric:
    """Bring an archived metric back and clear its archive metadata."""
    metric = require_metric(session, metric_id)
    if metric.is_active:
        raise Conflict(f"Metric {metric_id} is not archived")

    metric.is_active = True
    metric.archived_at = None
    metric.archived_by = None
    metric.archive_reason = None
    session.add(metric)
    session.commit()
    session.refresh(metric)
    for_metric(logger, metric).info(f"Restored metric {metric.name!r}")
    (invalidator or default_invalidator).scorecard_changed(metric.scorecard_id)
    return metric


@engine_operation("hard_delete_metric")
def hard_delete_metric(
    session: Session,
    metric_id: int,
    invalidator: Optional[ViewInvalidator] = None,
) -> int:
    """Permanently delete an archived metric and all of its entries.

    Returns the number of entries removed. Irreversible.
    """
    metric = require_metric(session, metric_id)
    if metric.is_active:
        raise Conflict("Archive the metric before deleting it permanently")

    scorecard_id = metric.scorecard_id
    result = session.connection().execute(
        delete(MetricEntry).where(MetricEntry.metric_id == metric_id)
    )
    session.delete(metric)
    session.commit()

    removed = result.rowcount or 0
    logger.info(
        f"Permanently deleted metric {metric_id} and {removed} entries",
        extra={"metric_id": metric_id, "scorecard_id": scorecard_id},
    )
    (invalidator or default_invalidator).scorecard_changed(scorecard_id)
    return removed


# ─────────────────────────────────────────────
# ORDERING
# ─────────────────────────────────────────────


@engine_operation("reorder_metrics")
def reorder_metrics(
    session: Session,
    ordered_metric_ids: List[int],
    scorecard_id: Optional[int] = None,
    invalidator: Optional[ViewInvalidator] = None,
) -> List[Metric]:
    """Set each metric's display_order to its index in ``ordered_metric_ids``.

    All ids must exist and share one scorecard (``scorecard_id`` when given)
    and one cadence. Every position is written in a single transaction; any
    failure leaves all orders unchanged.
    """
    if not ordered_metric_ids:
        raise ValidationError("No metrics to reorder")
    if len(set(ordered_metric_ids)) != len(ordered_metric_ids):
        raise ValidationError("Duplicate metric ids in reorder request")

    rows = session.exec(select(Metric).where(Metric.id.in_(ordered_metric_ids))).all()  # type: ignore
    by_id = {m.id: m for m in rows}
    missing = [mid for mid in ordered_metric_ids if mid not in by_id]
    if missing:
        raise NotFound(f"Metrics not found: {missing}")

    groups = {(m.scorecard_id, m.cadence) for m in rows}
    if len(groups) > 1:
        raise ValidationError("Reorder must target metrics of one scorecard and cadence")
    group_scorecard_id = next(iter(groups))[0]
    if scorecard_id is not None and group_scorecard_id != scorecard_id:
        raise ValidationError(f"Metrics do not belong to scorecard {scorecard_id}")
    scorecard_id = group_scorecard_id

    metrics = [by_id[mid] for mid in ordered_metric_ids]
    for position, metric in enumerate(metrics):
        metric.display_order = position
        session.add(metric)
    session.commit()

    logger.info(
        f"Reordered {len(metrics)} metrics",
        extra={"scorecard_id": scorecard_id},
    )
    (invalidator or default_invalidator).scorecard_changed(scorecard_id)
    for metric in metrics:
        session.refresh(metric)
    return metrics


# ─────────────────────────────────────────────
# BATCH OPERATIONS (per-item outcome)
# ─────────────────────────────────────────────


def _item_failure(metric_id: int, error: EngineError) -> BulkItemResult:
    return BulkItemResult(
        metric_id=metric_id,
        success=False,
        error=error.message,
        error_type=error.error_type,
    )


def bulk_archive(
    session: Session,
    metric_ids: Iterable[int],
    archived_by: Optional[str] = None,
    reason: Optional[str] = None,
    invalidator: Optional[ViewInvalidator] = None,
) -> BulkResult:
    """Archive each metric independently and report every outcome."""
    results: List[BulkItemResult] = []
    for metric_id in metric_ids:
        outcome = archive_metric(
            session, metric_id, archived_by, reason, invalidator=invalidator
        )
        results.append(
            BulkItemResult(
                metric_id=metric_id,
                success=outcome.success,
                error=outcome.error,
                error_type=outcome.error_type,
            )
        )

    bulk = BulkResult(results=results)
    logger.info(
        f"Bulk archive: {len(bulk.succeeded)} archived, {len(bulk.failed)} failed",
        extra={"operation": "bulk_archive"},
    )
    return bulk


def copy_metrics(
    session: Session,
    target_scorecard_id: int,
    source_metric_ids: Iterable[int],
    owner_user_id: Optional[str] = None,
    invalidator: Optional[ViewInvalidator] = None,
) -> BulkResult:
    """Copy metric definitions (never entries) into another scorecard.

    A source whose name and scoring mode already exist on the target scorecard
    is reported as a Conflict. Each copy commits on its own.
    """
    results: List[BulkItemResult] = []
    for metric_id in source_metric_ids:
        outcome = _copy_one(
            session, target_scorecard_id, metric_id, owner_user_id, invalidator
        )
        if outcome.success:
            results.append(
                BulkItemResult(metric_id=metric_id, success=True, new_metric_id=outcome.data.id)
            )
        else:
            results.append(
                BulkItemResult(
                    metric_id=metric_id,
                    success=False,
                    error=outcome.error,
                    error_type=outcome.error_type,
                )
            )
    return BulkResult(results=results)


@engine_operation("copy_metric")
def _copy_one(
    session: Session,
    target_scorecard_id: int,
    source_metric_id: int,
    owner_user_id: Optional[str],
    invalidator: Optional[ViewInvalidator],
) -> Metric:
    source = require_metric(session, source_metric_id)

    existing = session.exec(
        select(Metric).where(
            Metric.scorecard_id == target_scorecard_id,
            func.lower(Metric.name) == source.name.lower(),
            Metric.scoring_mode == source.scoring_mode,
        )
    ).first()
    if existing is not None:
        raise Conflict(f"Scorecard already has a metric named {source.name!r}")

    definition = MetricDefinition(
        name=source.name,
        description=source.description,
        cadence=source.cadence,
        scoring_mode=source.scoring_mode,
        unit=source.unit,
        owner_user_id=owner_user_id or source.owner_user_id,
        target_value=source.target_value,
        target_min=source.target_min,
        target_max=source.target_max,
        target_boolean=source.target_boolean,
    )
    metric = _create(session, target_scorecard_id, definition)
    session.commit()
    session.refresh(metric)
    for_metric(logger, metric).info(
        f"Copied metric {source.name!r} from {source.scorecard_id}"
    )
    (invalidator or default_invalidator).scorecard_changed(target_scorecard_id)
    return metric
