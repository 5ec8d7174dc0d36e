"""TALLY — Metric Lifecycle API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from tally.api.deps import forbid, get_authorizer, get_caller_id, respond
from tally.core.collaborators import Authorizer
from tally.core.errors import Conflict, OperationResult
from tally.database import get_session
from tally.models.scorecard_models import Metric
from tally.models.scoring_models import MetricDefinition
from tally.models.view_models import BulkItemResult, BulkResult
from tally.services.entry_store import list_entries
from tally.services.metric_lifecycle import (
    archive_metric,
    bulk_archive,
    get_metric,
    hard_delete_metric,
    restore_metric,
    update_metric,
)

router = APIRouter(prefix="/metrics", tags=["Metrics"])


# ── Request Models ──


class ArchiveRequest(BaseModel):
    """Request body for POST /metrics/{id}/archive."""

    reason: Optional[str] = None


class BulkArchiveRequest(BaseModel):
    """Request body for POST /metrics/bulk-archive."""

    metric_ids: List[int]
    reason: Optional[str] = None


def require_mutable(
    session: Session, metric_id: int, caller_id: Optional[str], authorizer: Authorizer
) -> None:
    """403 if the caller may not change this metric. Missing metrics fall through
    so the engine reports NotFound."""
    metric = session.get(Metric, metric_id)
    if metric is not None and not authorizer.can_mutate_metric(caller_id, metric):
        raise forbid("You cannot change this metric")


# ── Endpoints ──


@router.post("/bulk-archive")
async def archive_many(
    request: BulkArchiveRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Archive several metrics; each id reports its own outcome."""
    allowed: List[int] = []
    denied: List[BulkItemResult] = []
    for metric_id in request.metric_ids:
        metric = session.get(Metric, metric_id)
        if metric is not None and not authorizer.can_mutate_metric(caller_id, metric):
            denied.append(
                BulkItemResult(
                    metric_id=metric_id,
                    success=False,
                    error="You cannot change this metric",
                    error_type="forbidden",
                )
            )
        else:
            allowed.append(metric_id)

    bulk = bulk_archive(session, allowed, archived_by=caller_id, reason=request.reason)
    return respond(OperationResult.ok(BulkResult(results=bulk.results + denied)))


@router.get("/{metric_id}")
async def read_metric(metric_id: int, session: Session = Depends(get_session)):
    return respond(get_metric(session, metric_id))


@router.get("/{metric_id}/entries")
async def read_entries(
    metric_id: int,
    since: Optional[str] = Query(None, description="Only periods on or after (YYYY-MM-DD)"),
    session: Session = Depends(get_session),
):
    """All recorded entries for a metric, newest first."""
    return respond(list_entries(session, metric_id, since=since))


@router.put("/{metric_id}")
async def edit_metric(
    metric_id: int,
    definition: MetricDefinition,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    require_mutable(session, metric_id, caller_id, authorizer)
    return respond(update_metric(session, metric_id, definition))


@router.post("/{metric_id}/archive")
async def archive_one(
    metric_id: int,
    request: ArchiveRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    require_mutable(session, metric_id, caller_id, authorizer)
    return respond(
        archive_metric(session, metric_id, archived_by=caller_id, reason=request.reason)
    )


@router.post("/{metric_id}/restore")
async def restore_one(
    metric_id: int,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    require_mutable(session, metric_id, caller_id, authorizer)
    return respond(restore_metric(session, metric_id))


@router.delete("/{metric_id}")
async def delete_permanently(
    metric_id: int,
    confirm_name: str = Query(..., description="Must equal the metric's name"),
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Permanently delete an archived metric and all its entries.

    The caller re-types the metric name as confirmation.
    """
    require_mutable(session, metric_id, caller_id, authorizer)

    metric = session.get(Metric, metric_id)
    if metric is not None and confirm_name.strip() != metric.name:
        return respond(
            OperationResult.fail(Conflict("Confirmation does not match the metric name"))
        )
    return respond(hard_delete_metric(session, metric_id))
