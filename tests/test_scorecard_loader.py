from datetime import date, timedelta

from conftest import make_metric
from tally.core.collaborators import AllowAllAuthorizer
from tally.core.vocabulary import Status
from tally.models.scorecard_models import Scorecard
from tally.services.entry_store import upsert_entry
from tally.services.metric_lifecycle import archive_metric, reorder_metrics
from tally.services.scorecard_loader import load_archived_metrics, load_scorecard_aggregate

REFERENCE = date(2025, 9, 17)  # Wednesday; current week starts 2025-09-15


class HiddenScorecards(AllowAllAuthorizer):
    def can_view_scorecard(self, caller_id, scorecard) -> bool:
        return caller_id == scorecard.owner_user_id


def _record_back(session, metric_id, values):
    """Record values for consecutive weeks ending with the reference week."""
    current = date(2025, 9, 15)
    for weeks_ago, value in enumerate(reversed(values)):
        day = current - timedelta(weeks=weeks_ago)
        assert upsert_entry(session, metric_id, value, period_start=day).success


def _load(session, scorecard_id, **kwargs):
    kwargs.setdefault("reference", REFERENCE)
    result = load_scorecard_aggregate(session, scorecard_id, **kwargs)
    assert result.success, result.error
    return result.data


def test_window_limits_entries_but_not_summary(session, scorecard):
    metric = make_metric(session, scorecard.id, owner_user_id="u-owner")
    _record_back(session, metric.id, [float(v) for v in range(100, 112)])

    view = _load(session, scorecard.id).metrics[0]

    assert len(view.periods) == 9
    assert view.periods[0] == date(2025, 9, 15)
    assert len(view.entries) == 9
    assert view.entries[0].period_start == date(2025, 9, 15)
    assert view.entries[0].value == 111
    assert view.summary.entry_count == 12
    assert view.summary.latest_value == 111
    assert view.summary.previous_value == 110


def test_entry_views_carry_evaluation_and_labels(session, scorecard):
    metric = make_metric(session, scorecard.id, owner_user_id="u-owner")
    upsert_entry(session, metric.id, 95000, period_start="2025-09-16", note="Short week")

    view = _load(session, scorecard.id).metrics[0]
    entry = view.entries[0]

    assert view.goal_label == ">= $100,000"
    assert view.owner.full_name == "Robin Park"
    assert entry.period_label == "Sep 15 - Sep 21"
    assert entry.display_value == "$95,000"
    assert entry.status == Status.YELLOW
    assert entry.percent_vs_target == -5.0
    assert entry.note == "Short week"


def test_missing_periods_are_absent(session, scorecard):
    metric = make_metric(session, scorecard.id)
    upsert_entry(session, metric.id, 1, period_start="2025-09-01")

    view = _load(session, scorecard.id).metrics[0]

    assert [e.period_start for e in view.entries] == [date(2025, 9, 1)]
    assert view.owner is None


def test_metrics_follow_display_order(session, scorecard):
    a = make_metric(session, scorecard.id, name="Alpha")
    b = make_metric(session, scorecard.id, name="Bravo")
    c = make_metric(session, scorecard.id, name="Charlie")
    reorder_metrics(session, [b.id, c.id, a.id])

    names = [m.name for m in _load(session, scorecard.id).metrics]
    assert names == ["Bravo", "Charlie", "Alpha"]


def test_archived_metrics_are_only_counted(session, scorecard):
    keep = make_metric(session, scorecard.id, name="Keep")
    old = make_metric(session, scorecard.id, name="Old")
    upsert_entry(session, old.id, 5, period_start="2025-09-01")
    archive_metric(session, old.id, archived_by="u-owner", reason="Retired")

    aggregate = _load(session, scorecard.id)
    assert [m.id for m in aggregate.metrics] == [keep.id]
    assert aggregate.archived_count == 1

    archived = load_archived_metrics(session, scorecard.id)
    assert archived.success
    assert [m.id for m in archived.data] == [old.id]
    assert archived.data[0].archive_reason == "Retired"
    assert archived.data[0].entries[0].value == 5


def test_period_count_override(session, scorecard):
    weekly = make_metric(session, scorecard.id, name="Weekly")
    monthly = make_metric(session, scorecard.id, name="Monthly", cadence="monthly")

    aggregate = _load(session, scorecard.id, period_counts={"weekly": 4})
    by_id = {m.id: m for m in aggregate.metrics}

    assert len(by_id[weekly.id].periods) == 4
    assert len(by_id[monthly.id].periods) == 8
    assert by_id[monthly.id].periods[0] == date(2025, 9, 1)


def test_empty_scorecard(session, scorecard):
    aggregate = _load(session, scorecard.id)
    assert aggregate.scorecard.name == "Sales"
    assert aggregate.metrics == []
    assert aggregate.archived_count == 0


def test_invisible_and_missing_scorecards_look_the_same(session, scorecard):
    hidden = load_scorecard_aggregate(
        session, scorecard.id, caller_id="u-stranger", authorizer=HiddenScorecards()
    )
    missing = load_scorecard_aggregate(session, 4040)

    assert hidden.error_type == "not_found"
    assert missing.error_type == "not_found"
    assert _load(session, scorecard.id, caller_id="u-owner", authorizer=HiddenScorecards())


def test_inactive_scorecard_not_found(session, scorecard):
    scorecard.is_active = False
    session.add(scorecard)
    session.commit()

    assert load_scorecard_aggregate(session, scorecard.id).error_type == "not_found"
    assert load_archived_metrics(session, scorecard.id).error_type == "not_found"
    assert session.get(Scorecard, scorecard.id) is not None
