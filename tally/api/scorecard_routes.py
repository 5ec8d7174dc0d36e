"""TALLY — Scorecard API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from tally.api.deps import forbid, get_authorizer, get_caller_id, respond
from tally.core.collaborators import Authorizer
from tally.core.errors import OperationResult
from tally.database import get_session
from tally.models.scorecard_models import Scorecard
from tally.models.scoring_models import MetricDefinition
from tally.services.metric_lifecycle import copy_metrics, create_metric, reorder_metrics
from tally.services.scorecard_loader import load_archived_metrics, load_scorecard_aggregate

router = APIRouter(prefix="/scorecards", tags=["Scorecards"])


# ── Request Models ──


class ReorderRequest(BaseModel):
    """Request body for POST /scorecards/{id}/metrics/reorder."""

    metric_ids: List[int]
    """Metric ids in their new display order (one scorecard, one cadence)."""


class CopyMetricsRequest(BaseModel):
    """Request body for POST /scorecards/{id}/metrics/copy."""

    source_metric_ids: List[int]
    owner_user_id: Optional[str] = None
    """Owner for the copies. Defaults to each source metric's owner."""


def _require_editable(
    session: Session, scorecard_id: int, caller_id: Optional[str], authorizer: Authorizer
) -> None:
    scorecard = session.get(Scorecard, scorecard_id)
    if scorecard is not None and not authorizer.can_edit_scorecard(caller_id, scorecard):
        raise forbid("You cannot edit this scorecard")


# ── Endpoints ──


@router.get("/{scorecard_id}")
async def get_scorecard(
    scorecard_id: int,
    weekly_periods: Optional[int] = Query(None, ge=1, le=104),
    monthly_periods: Optional[int] = Query(None, ge=1, le=60),
    quarterly_periods: Optional[int] = Query(None, ge=1, le=40),
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Scorecard with its active metrics, recent entries and statuses."""
    overrides = {
        cadence: count
        for cadence, count in (
            ("weekly", weekly_periods),
            ("monthly", monthly_periods),
            ("quarterly", quarterly_periods),
        )
        if count is not None
    }
    result = load_scorecard_aggregate(
        session,
        scorecard_id,
        caller_id=caller_id,
        authorizer=authorizer,
        period_counts=overrides,
    )
    return respond(result)


@router.get("/{scorecard_id}/archived-metrics")
async def get_archived_metrics(
    scorecard_id: int,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Archived metric detail, loaded on demand."""
    result = load_archived_metrics(
        session, scorecard_id, caller_id=caller_id, authorizer=authorizer
    )
    return respond(result)


@router.post("/{scorecard_id}/metrics")
async def add_metric(
    scorecard_id: int,
    definition: MetricDefinition,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Create a metric at the end of the scorecard."""
    _require_editable(session, scorecard_id, caller_id, authorizer)
    return respond(create_metric(session, scorecard_id, definition))


@router.post("/{scorecard_id}/metrics/reorder")
async def reorder_scorecard_metrics(
    scorecard_id: int,
    request: ReorderRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Rewrite display order for a group of metrics atomically."""
    _require_editable(session, scorecard_id, caller_id, authorizer)
    return respond(reorder_metrics(session, request.metric_ids, scorecard_id=scorecard_id))


@router.post("/{scorecard_id}/metrics/copy")
async def copy_into_scorecard(
    scorecard_id: int,
    request: CopyMetricsRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Copy metric definitions from other scorecards (entries are not copied)."""
    _require_editable(session, scorecard_id, caller_id, authorizer)
    bulk = copy_metrics(
        session, scorecard_id, request.source_metric_ids, owner_user_id=request.owner_user_id
    )
    return respond(OperationResult.ok(bulk))
