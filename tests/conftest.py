"""Shared fixtures: an in-memory SQLite store seeded with scorecards and profiles."""

from typing import List

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from tally.core.collaborators import ViewInvalidator
from tally.database import build_engine
from tally.models.scorecard_models import Scorecard, UserProfile
from tally.models.scoring_models import MetricDefinition
from tally.services.metric_lifecycle import create_metric


class RecordingInvalidator(ViewInvalidator):
    """Collects every stale-view signal."""

    def __init__(self):
        self.calls: List[int] = []

    def scorecard_changed(self, scorecard_id: int) -> None:
        self.calls.append(scorecard_id)


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(eng)
    yield eng
    SQLModel.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def scorecard(session) -> Scorecard:
    sc = Scorecard(name="Sales", type="team", owner_user_id="u-owner", team_id="team-sales")
    session.add(sc)
    session.add(UserProfile(id="u-owner", full_name="Robin Park", email="robin@example.com"))
    session.commit()
    session.refresh(sc)
    return sc


@pytest.fixture
def other_scorecard(session) -> Scorecard:
    sc = Scorecard(name="Support", type="team", owner_user_id="u-other", team_id="team-support")
    session.add(sc)
    session.commit()
    session.refresh(sc)
    return sc


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


def definition(**overrides) -> MetricDefinition:
    """A valid weekly at_least definition with any field overridden."""
    fields = {
        "name": "Weekly revenue",
        "cadence": "weekly",
        "scoring_mode": "at_least",
        "unit": "$",
        "target_value": 100000,
    }
    fields.update(overrides)
    return MetricDefinition(**fields)


def make_metric(session, scorecard_id: int, **overrides):
    """Create a metric through the lifecycle manager and return the row."""
    result = create_metric(session, scorecard_id, definition(**overrides))
    assert result.success, result.error
    return result.data
