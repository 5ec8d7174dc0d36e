"""TALLY — Scoring Schemas.

The scoring target is a tagged union: each scoring mode carries exactly the
fields it needs. The flat ``target_*`` columns on ``Metric`` are only the
storage layout; everything downstream works with these models.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from tally.core.vocabulary import ScoringMode, Status, Trend


# ─────────────────────────────────────────────
# TARGETS
# ─────────────────────────────────────────────


class AtLeastTarget(BaseModel):
    """Higher is better, e.g. revenue of at least 10k."""

    mode: Literal["at_least"] = "at_least"
    value: float


class AtMostTarget(BaseModel):
    """Lower is better, e.g. churned accounts at most 3."""

    mode: Literal["at_most"] = "at_most"
    value: float


class BetweenTarget(BaseModel):
    """Inclusive range. ``min`` is strictly below ``max`` for stored metrics."""

    mode: Literal["between"] = "between"
    min: float
    max: float


class YesNoTarget(BaseModel):
    mode: Literal["yes_no"] = "yes_no"
    expected: bool


Target = Annotated[
    Union[AtLeastTarget, AtMostTarget, BetweenTarget, YesNoTarget],
    Field(discriminator="mode"),
]


def target_from_columns(
    scoring_mode: str,
    target_value: Optional[float] = None,
    target_min: Optional[float] = None,
    target_max: Optional[float] = None,
    target_boolean: Optional[bool] = None,
) -> Optional[Target]:
    """Build the target for a mode from flat columns.

    Columns belonging to other modes are ignored. Returns None when the
    fields this mode requires are missing.
    """
    mode = ScoringMode(scoring_mode)
    if mode == ScoringMode.AT_LEAST:
        return None if target_value is None else AtLeastTarget(value=target_value)
    if mode == ScoringMode.AT_MOST:
        return None if target_value is None else AtMostTarget(value=target_value)
    if mode == ScoringMode.BETWEEN:
        if target_min is None or target_max is None:
            return None
        return BetweenTarget(min=target_min, max=target_max)
    if target_boolean is None:
        return None
    return YesNoTarget(expected=target_boolean)


# ─────────────────────────────────────────────
# METRIC DEFINITION (create / update input)
# ─────────────────────────────────────────────


class MetricDefinition(BaseModel):
    """Caller-supplied metric definition.

    Cadence and scoring mode are plain strings here so that unknown values
    reach the lifecycle validator and come back as a ValidationError result.
    """

    name: str
    description: Optional[str] = None
    cadence: str
    scoring_mode: str
    unit: Optional[str] = None
    owner_user_id: Optional[str] = None
    target_value: Optional[float] = None
    target_min: Optional[float] = None
    target_max: Optional[float] = None
    target_boolean: Optional[bool] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Weekly revenue",
                    "cadence": "weekly",
                    "scoring_mode": "at_least",
                    "unit": "$",
                    "target_value": 100000,
                },
                {
                    "name": "Response time (h)",
                    "cadence": "monthly",
                    "scoring_mode": "between",
                    "target_min": 2,
                    "target_max": 8,
                },
            ]
        }
    }

    @property
    def target(self) -> Optional[Target]:
        return target_from_columns(
            self.scoring_mode,
            self.target_value,
            self.target_min,
            self.target_max,
            self.target_boolean,
        )


# ─────────────────────────────────────────────
# DERIVED OUTPUTS
# ─────────────────────────────────────────────


class Evaluation(BaseModel):
    """Status of one recorded value against its target."""

    status: Status
    percent_vs_target: float


class MetricSummary(BaseModel):
    """List-level aggregates for one metric."""

    average: Optional[float] = None  # None → no data, distinct from 0.0
    latest_value: Optional[float] = None
    previous_value: Optional[float] = None
    change_pct: Optional[float] = None  # None → no comparable previous value
    trend: Trend = Trend.FLAT
    entry_count: int = 0
