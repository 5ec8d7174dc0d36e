"""TALLY — Read Views & Batch Results."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from tally.core.vocabulary import Status
from tally.models.scoring_models import MetricSummary, Target


class OwnerView(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class EntryView(BaseModel):
    """A recorded value with its evaluation."""

    period_start: date
    period_label: str = ""
    value: float
    display_value: str = ""
    note: Optional[str] = None
    status: Optional[Status] = None
    percent_vs_target: Optional[float] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class MetricView(BaseModel):
    """A metric as the scorecard table renders it."""

    id: int
    scorecard_id: int
    name: str
    description: Optional[str] = None
    cadence: str
    scoring_mode: str
    unit: Optional[str] = None
    display_order: int
    target: Optional[Target] = None
    goal_label: str = ""
    owner_user_id: Optional[str] = None
    owner: Optional[OwnerView] = None
    is_active: bool = True
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    archive_reason: Optional[str] = None
    periods: List[date] = []  # Window shown, newest first
    entries: List[EntryView] = []  # Newest first; missing periods are absent
    summary: MetricSummary = MetricSummary()


class ScorecardView(BaseModel):
    id: int
    name: str
    type: str
    owner_user_id: str
    team_id: Optional[str] = None
    role_id: Optional[str] = None


class ScorecardAggregate(BaseModel):
    """Everything the scorecard detail view needs in one consistent read.

    Archived metric detail is not loaded here; only the count is.
    """

    scorecard: ScorecardView
    metrics: List[MetricView] = []
    archived_count: int = 0


class BulkItemResult(BaseModel):
    metric_id: int
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    new_metric_id: Optional[int] = None  # Set by copy operations


class BulkResult(BaseModel):
    """Per-item outcome of a batch operation that is not all-or-nothing."""

    results: List[BulkItemResult] = []

    @property
    def succeeded(self) -> List[int]:
        return [r.metric_id for r in self.results if r.success]

    @property
    def failed(self) -> List[int]:
        return [r.metric_id for r in self.results if not r.success]
