import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tally.api.deps import get_authorizer
from tally.core.collaborators import AllowAllAuthorizer
from tally.database import get_session
from tally.main import create_app

REVENUE = {
    "name": "Weekly revenue",
    "cadence": "weekly",
    "scoring_mode": "at_least",
    "unit": "$",
    "target_value": 100000,
}


class ReadOnly(AllowAllAuthorizer):
    def can_edit_scorecard(self, caller_id, scorecard) -> bool:
        return False

    def can_mutate_metric(self, caller_id, metric) -> bool:
        return False


@pytest.fixture
def app(engine):
    application = create_app(run_lifespan=False)

    def session_override():
        with Session(engine) as s:
            yield s

    application.dependency_overrides[get_session] = session_override
    return application


@pytest.fixture
def client(app, scorecard):
    with TestClient(app) as c:
        yield c


def _create(client, scorecard_id, **fields):
    body = {**REVENUE, **fields}
    response = client.post(f"/scorecards/{scorecard_id}/metrics", json=body)
    assert response.status_code == 200, response.json()
    return response.json()["data"]


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_create_and_read_metric(client, scorecard):
    metric = _create(client, scorecard.id)
    assert metric["display_order"] == 0

    response = client.get(f"/metrics/{metric['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Weekly revenue"


def test_validation_error_envelope(client, scorecard):
    response = client.post(f"/scorecards/{scorecard.id}/metrics", json={**REVENUE, "name": "ab"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_type"] == "validation_error"


def test_nan_target_in_json_body_rejected(client, scorecard):
    payload = (
        '{"name": "Response time", "cadence": "weekly", "scoring_mode": "between", '
        '"target_min": NaN, "target_max": 5}'
    )
    response = client.post(
        f"/scorecards/{scorecard.id}/metrics",
        content=payload,
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error_type"] == "validation_error"
    assert client.get(f"/scorecards/{scorecard.id}").json()["data"]["metrics"] == []


def test_record_entry_and_load_scorecard(client, scorecard):
    metric = _create(client, scorecard.id)
    url = f"/metrics/{metric['id']}/entries"

    assert client.put(url, json={"value": 95000, "period_start": "2025-09-02"}).status_code == 200
    response = client.put(url, json={"value": "105000", "period_start": "2025-09-02"})
    assert response.json()["data"]["period_start"] == "2025-09-01"

    entries = client.get(url).json()["data"]
    assert len(entries) == 1
    assert entries[0]["value"] == 105000

    aggregate = client.get(f"/scorecards/{scorecard.id}", params={"weekly_periods": 200})
    assert aggregate.status_code == 422

    aggregate = client.get(f"/scorecards/{scorecard.id}").json()["data"]
    assert aggregate["scorecard"]["id"] == scorecard.id
    assert aggregate["metrics"][0]["summary"]["entry_count"] == 1


def test_invalid_entry_value(client, scorecard):
    metric = _create(client, scorecard.id)
    response = client.put(f"/metrics/{metric['id']}/entries", json={"value": "lots"})
    assert response.status_code == 400
    assert response.json()["error_type"] == "invalid_value"


def test_note_and_delete_entry(client, scorecard):
    metric = _create(client, scorecard.id)
    url = f"/metrics/{metric['id']}/entries"
    client.put(url, json={"value": 1, "period_start": "2025-09-01"})

    noted = client.patch(f"{url}/2025-09-01/note", json={"note": "Holiday week"})
    assert noted.json()["data"]["note"] == "Holiday week"

    assert client.delete(f"{url}/2025-09-01").json()["data"] is True
    assert client.delete(f"{url}/2025-09-01").json()["data"] is False
    assert client.patch(f"{url}/2025-09-01/note", json={"note": "x"}).status_code == 404


def test_archive_restore_and_hard_delete(client, scorecard):
    metric = _create(client, scorecard.id)
    metric_url = f"/metrics/{metric['id']}"
    client.put(f"{metric_url}/entries", json={"value": 1, "period_start": "2025-09-01"})

    early = client.delete(metric_url, params={"confirm_name": "Weekly revenue"})
    assert early.status_code == 409

    archived = client.post(f"{metric_url}/archive", json={"reason": "Replaced"})
    assert archived.json()["data"]["is_active"] is False

    listed = client.get(f"/scorecards/{scorecard.id}/archived-metrics").json()["data"]
    assert [m["id"] for m in listed] == [metric["id"]]
    assert client.get(f"/scorecards/{scorecard.id}").json()["data"]["archived_count"] == 1

    mismatch = client.delete(metric_url, params={"confirm_name": "Weekly revenu"})
    assert mismatch.status_code == 409
    assert mismatch.json()["error_type"] == "conflict"

    deleted = client.delete(metric_url, params={"confirm_name": "Weekly revenue"})
    assert deleted.status_code == 200
    assert deleted.json()["data"] == 1
    assert client.get(metric_url).status_code == 404


def test_restore(client, scorecard):
    metric = _create(client, scorecard.id)
    client.post(f"/metrics/{metric['id']}/archive", json={})
    restored = client.post(f"/metrics/{metric['id']}/restore")
    assert restored.json()["data"]["is_active"] is True


def test_reorder_and_bulk_archive(client, scorecard):
    ids = [_create(client, scorecard.id, name=name)["id"] for name in ("Alpha", "Bravo", "Charlie")]

    response = client.post(
        f"/scorecards/{scorecard.id}/metrics/reorder", json={"metric_ids": list(reversed(ids))}
    )
    assert [m["display_order"] for m in response.json()["data"]] == [0, 1, 2]

    bulk = client.post("/metrics/bulk-archive", json={"metric_ids": [ids[0], 999]}).json()["data"]
    outcomes = {r["metric_id"]: r["success"] for r in bulk["results"]}
    assert outcomes == {ids[0]: True, 999: False}


def test_copy_metrics(client, scorecard, other_scorecard):
    source = _create(client, scorecard.id)
    response = client.post(
        f"/scorecards/{other_scorecard.id}/metrics/copy",
        json={"source_metric_ids": [source["id"]]},
    )
    result = response.json()["data"]["results"][0]
    assert result["success"] is True
    assert result["new_metric_id"] != source["id"]


def test_read_only_caller_is_forbidden(app, client, scorecard):
    metric = _create(client, scorecard.id)
    app.dependency_overrides[get_authorizer] = ReadOnly

    assert client.post(f"/scorecards/{scorecard.id}/metrics", json=REVENUE).status_code == 403
    assert client.put(f"/metrics/{metric['id']}/entries", json={"value": 1}).status_code == 403
    assert client.post(f"/metrics/{metric['id']}/archive", json={}).status_code == 403

    bulk = client.post("/metrics/bulk-archive", json={"metric_ids": [metric["id"]]}).json()["data"]
    assert bulk["results"][0]["error_type"] == "forbidden"

    assert client.get(f"/scorecards/{scorecard.id}").status_code == 200


def test_unknown_ids(client):
    assert client.get("/scorecards/4040").status_code == 404
    assert client.get("/metrics/4040").status_code == 404
    assert client.put("/metrics/4040/entries", json={"value": 1}).status_code == 404
