"""TALLY — Metric Entry API Routes."""

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from tally.api.deps import get_authorizer, get_caller_id, respond
from tally.api.metric_routes import require_mutable
from tally.core.collaborators import Authorizer
from tally.database import get_session
from tally.services.entry_store import delete_entry, update_note, upsert_entry

router = APIRouter(prefix="/metrics/{metric_id}/entries", tags=["Entries"])


# ── Request Models ──


class EntryRequest(BaseModel):
    """Request body for PUT /metrics/{id}/entries."""

    value: Union[bool, float, str]
    """Number, or yes/no/true/false/1/0 for Yes/No metrics."""
    period_start: Optional[str] = None
    """YYYY-MM-DD inside the target period. Defaults to the current period."""
    note: Optional[str] = None
    """Omit to keep an existing note; empty string clears it."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"value": 105000, "period_start": "2025-09-01"},
                {"value": "yes", "note": "Shipped on Friday"},
            ]
        }
    }


class NoteRequest(BaseModel):
    """Request body for PATCH /metrics/{id}/entries/{period}/note."""

    note: Optional[str] = None


# ── Endpoints ──


@router.put("")
async def record_entry(
    metric_id: int,
    request: EntryRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Record (or overwrite) the value for one period."""
    require_mutable(session, metric_id, caller_id, authorizer)
    result = upsert_entry(
        session,
        metric_id,
        request.value,
        author_id=caller_id,
        period_start=request.period_start,
        note=request.note,
    )
    return respond(result)


@router.delete("/{period_start}")
async def clear_entry(
    metric_id: int,
    period_start: str,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Remove the value for one period. Succeeds if there was none."""
    require_mutable(session, metric_id, caller_id, authorizer)
    return respond(delete_entry(session, metric_id, period_start))


@router.patch("/{period_start}/note")
async def edit_note(
    metric_id: int,
    period_start: str,
    request: NoteRequest,
    session: Session = Depends(get_session),
    caller_id: Optional[str] = Depends(get_caller_id),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Change the note on an existing entry without touching its value."""
    require_mutable(session, metric_id, caller_id, authorizer)
    return respond(update_note(session, metric_id, period_start, request.note))
