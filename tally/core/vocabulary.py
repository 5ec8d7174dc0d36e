"""TALLY — Shared Vocabulary.

Canonical enumerations for cadences, scoring modes and derived classifications.
Stored values match the persisted column values, so members compare equal to
their plain strings.
"""

from enum import Enum


class Cadence(str, Enum):
    """How often a metric is reported."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ScoringMode(str, Enum):
    """How a recorded value is compared to its target."""

    AT_LEAST = "at_least"  # Higher is better
    AT_MOST = "at_most"  # Lower is better
    BETWEEN = "between"  # Inclusive range
    YES_NO = "yes_no"  # Boolean, stored as 1/0


class Status(str, Enum):
    """Classification of a single recorded value."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class Trend(str, Enum):
    """Direction of recent values against the prior window."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class ScorecardType(str, Enum):
    TEAM = "team"
    ROLE = "role"


def coerce_cadence(cadence: "Cadence | str") -> Cadence:
    """Return a Cadence, raising ValueError for anything unknown."""
    if isinstance(cadence, Cadence):
        return cadence
    try:
        return Cadence(cadence)
    except ValueError:
        raise ValueError(f"Unknown cadence: {cadence!r}") from None


def coerce_scoring_mode(mode: "ScoringMode | str") -> ScoringMode:
    """Return a ScoringMode, raising ValueError for anything unknown."""
    if isinstance(mode, ScoringMode):
        return mode
    try:
        return ScoringMode(mode)
    except ValueError:
        raise ValueError(f"Unknown scoring mode: {mode!r}") from None
