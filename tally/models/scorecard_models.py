"""TALLY — Persisted Scorecard Models.

``scorecards`` and ``user_profiles`` belong to the host application and are
only read here. ``metrics`` and ``metric_entries`` are owned by the engine.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field, UniqueConstraint

from tally.core.vocabulary import ScorecardType
from tally.models.scoring_models import Target, target_from_columns


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scorecard(SQLModel, table=True):
    """A group of metrics belonging to a team or a role."""

    __tablename__ = "scorecards"
    __table_args__ = (
        UniqueConstraint("team_id", "type", name="uq_scorecard_team_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="")
    type: str = Field(default=ScorecardType.TEAM.value, description="team | role")
    owner_user_id: str = Field(index=True)
    team_id: Optional[str] = Field(default=None, index=True)
    role_id: Optional[str] = Field(default=None, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utcnow)


class UserProfile(SQLModel, table=True):
    """Identity record used to resolve metric owners."""

    __tablename__ = "user_profiles"

    id: str = Field(primary_key=True)
    full_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class Metric(SQLModel, table=True):
    """A tracked measurable.

    Only the ``target_*`` columns matching ``scoring_mode`` are meaningful;
    use ``target`` rather than reading them directly.
    """

    __tablename__ = "metrics"

    id: Optional[int] = Field(default=None, primary_key=True)
    scorecard_id: int = Field(foreign_key="scorecards.id", index=True)
    name: str
    description: Optional[str] = None
    cadence: str = Field(index=True, description="weekly | monthly | quarterly")
    scoring_mode: str = Field(description="at_least | at_most | between | yes_no")
    unit: Optional[str] = None
    owner_user_id: Optional[str] = Field(default=None, index=True)
    display_order: int = Field(default=0)

    # Lifecycle
    is_active: bool = Field(default=True, index=True)
    archived_at: Optional[datetime] = Field(default=None, index=True)
    archived_by: Optional[str] = None
    archive_reason: Optional[str] = None

    # Targets
    target_value: Optional[float] = None
    target_min: Optional[float] = None
    target_max: Optional[float] = None
    target_boolean: Optional[bool] = None

    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def target(self) -> Optional[Target]:
        return target_from_columns(
            self.scoring_mode,
            self.target_value,
            self.target_min,
            self.target_max,
            self.target_boolean,
        )

    def __repr__(self) -> str:
        return f"<Metric {self.id} {self.name!r} ({self.cadence}/{self.scoring_mode})>"


class MetricEntry(SQLModel, table=True):
    """One recorded value for a metric in one period.

    Unique constraint on (metric_id, period_start) keeps at most one entry
    per period; writes go through an upsert on that key.
    """

    __tablename__ = "metric_entries"
    __table_args__ = (
        UniqueConstraint("metric_id", "period_start", name="uq_metric_entry_period"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    metric_id: int = Field(foreign_key="metrics.id", index=True, ondelete="CASCADE")
    period_start: date = Field(index=True, description="Canonical period start")
    value: float = Field(description="Numeric value; yes/no metrics store 1 or 0")
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    def __repr__(self) -> str:
        return f"<MetricEntry {self.metric_id}@{self.period_start}: {self.value}>"
