"""TALLY — Target Engine.

Classifies a recorded value against its metric's target:
- at_least → green at or above target, yellow within 10% below, else red
- at_most  → green at or below target, yellow within 10% above, else red
- between  → green inside the inclusive range, else red (no yellow band)
- yes_no   → green when the recorded 1/0 matches the expected answer, else red

The same ``evaluate`` is used for single cells and for whole tables.
"""

from typing import Optional, Union

from tally.config import settings
from tally.core.vocabulary import Status
from tally.models.scoring_models import (
    AtLeastTarget,
    AtMostTarget,
    BetweenTarget,
    Evaluation,
    YesNoTarget,
)

TARGET_TYPES = (AtLeastTarget, AtMostTarget, BetweenTarget, YesNoTarget)


def _resolve_target(target_or_metric):
    """Accept a Target or anything exposing ``.target`` (e.g. a Metric)."""
    target = target_or_metric
    if not isinstance(target, TARGET_TYPES):
        target = getattr(target_or_metric, "target", None)
    if target is None:
        raise ValueError(f"No complete target configured for {target_or_metric!r}")
    return target


def _relative_pct(value: float, reference: float) -> float:
    """(value / reference − 1) × 100 with a zero reference compared by sign."""
    if reference == 0:
        if value == 0:
            return 0.0
        return 100.0 if value > 0 else -100.0
    return (value / reference - 1) * 100


def status(value: float, target_or_metric) -> Status:
    """Green / yellow / red for one value."""
    target = _resolve_target(target_or_metric)

    if isinstance(target, AtLeastTarget):
        if target.value == 0:
            return Status.GREEN if value >= 0 else Status.RED
        ratio = value / target.value
        if ratio >= 1:
            return Status.GREEN
        if ratio >= settings.at_least_yellow_ratio:
            return Status.YELLOW
        return Status.RED

    if isinstance(target, AtMostTarget):
        if target.value == 0:
            return Status.GREEN if value <= 0 else Status.RED
        ratio = value / target.value
        if ratio <= 1:
            return Status.GREEN
        if ratio <= settings.at_most_yellow_ratio:
            return Status.YELLOW
        return Status.RED

    if isinstance(target, BetweenTarget):
        return Status.GREEN if target.min <= value <= target.max else Status.RED

    return Status.GREEN if (value == 1) == target.expected else Status.RED


def percent_vs_target(value: float, target_or_metric) -> float:
    """Signed distance from target in percent; 0 when the target is met."""
    target = _resolve_target(target_or_metric)

    if isinstance(target, AtLeastTarget):
        if target.value == 0:
            return 0.0 if value >= 0 else -100.0
        return round(_relative_pct(value, target.value), 2)

    if isinstance(target, AtMostTarget):
        if value <= target.value:
            return 0.0
        return round(_relative_pct(value, target.value), 2)

    if isinstance(target, BetweenTarget):
        if target.min <= value <= target.max:
            return 0.0
        # Outside the range only one bound is violated, and it is the nearer one
        bound = target.min if value < target.min else target.max
        return round(_relative_pct(value, bound), 2)

    return 0.0 if (value == 1) == target.expected else -100.0


def evaluate(value: float, target_or_metric) -> Evaluation:
    """Status and percent-vs-target in one call."""
    target = _resolve_target(target_or_metric)
    return Evaluation(
        status=status(value, target),
        percent_vs_target=percent_vs_target(value, target),
    )


def evaluate_entry(entry, target_or_metric) -> Optional[Evaluation]:
    """Evaluate an entry; a missing entry has no evaluation (never a zero)."""
    if entry is None:
        return None
    value: Union[int, float] = entry.value
    return evaluate(value, target_or_metric)
