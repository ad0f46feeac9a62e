from healthtrack.core.config import settings
from healthtrack.core.rate_limit import rate_limiter
from healthtrack.models.behavior import BehavioralEvent
from tests.conftest import TEST_USER_ID, iso_ago, iso_ahead

RECORDS_URL = "/api/health/records"


def create_record(client, headers, **overrides):
    payload = {"type_id": 1, "value": 72.5, "unit": "kg", "recorded_at": iso_ago(hours=1)}
    payload.update(overrides)
    response = client.post(RECORDS_URL, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["record"]


def test_requires_authentication(client):
    response = client.get(RECORDS_URL)
    assert response.status_code == 401
    body = response.json()
    assert body == {"error": True, "message": "Authentication required", "status_code": 401}


def test_rejects_invalid_token(client):
    response = client.get(RECORDS_URL, headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_create_and_list_records(client, auth_headers):
    record = create_record(client, auth_headers)
    assert record["user_id"] == TEST_USER_ID
    assert record["value"] == 72.5

    response = client.get(RECORDS_URL, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["records"]] == [record["id"]]
    assert body["pagination"] == {"total": 1, "limit": 20, "offset": 0, "hasMore": False}


def test_list_is_newest_first_and_paginated(client, auth_headers):
    oldest = create_record(client, auth_headers, recorded_at=iso_ago(days=3))
    middle = create_record(client, auth_headers, recorded_at=iso_ago(days=2))
    newest = create_record(client, auth_headers, recorded_at=iso_ago(days=1))

    body = client.get(RECORDS_URL, params={"limit": 2}, headers=auth_headers).json()
    assert [item["id"] for item in body["records"]] == [newest["id"], middle["id"]]
    assert body["pagination"]["hasMore"] is True

    body = client.get(RECORDS_URL, params={"limit": 2, "offset": 2}, headers=auth_headers).json()
    assert [item["id"] for item in body["records"]] == [oldest["id"]]
    assert body["pagination"]["hasMore"] is False


def test_list_filters_by_type(client, auth_headers):
    create_record(client, auth_headers)
    steps = create_record(client, auth_headers, type_id=3, value=8000, unit="steps")
    body = client.get(RECORDS_URL, params={"type_id": 3}, headers=auth_headers).json()
    assert [item["id"] for item in body["records"]] == [steps["id"]]


def test_list_rejects_inverted_date_range(client, auth_headers):
    response = client.get(
        RECORDS_URL,
        params={"start_date": iso_ago(days=1), "end_date": iso_ago(days=2)},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_list_limit_bounds(client, auth_headers):
    assert client.get(RECORDS_URL, params={"limit": 0}, headers=auth_headers).status_code == 422
    assert client.get(RECORDS_URL, params={"limit": 101}, headers=auth_headers).status_code == 422


def test_users_only_see_their_own_records(client, auth_headers, other_headers):
    create_record(client, auth_headers)
    body = client.get(RECORDS_URL, headers=other_headers).json()
    assert body["records"] == []
    assert body["pagination"]["total"] == 0


def test_create_validation(client, auth_headers):
    cases = [
        {"type_id": 1, "value": 0, "unit": "kg", "recorded_at": iso_ago(hours=1)},
        {"type_id": 1, "value": 10001, "unit": "kg", "recorded_at": iso_ago(hours=1)},
        {"type_id": 1, "value": 70, "unit": "stone", "recorded_at": iso_ago(hours=1)},
        {"type_id": 1, "value": 70, "unit": "kg", "recorded_at": iso_ahead(hours=1)},
        {"type_id": 1, "value": 70, "unit": "kg", "recorded_at": iso_ago(days=400)},
        {"type_id": 9, "value": 101, "unit": "%", "recorded_at": iso_ago(hours=1)},
        {"type_id": 4, "value": 25, "unit": "hours", "recorded_at": iso_ago(hours=1)},
    ]
    for payload in cases:
        response = client.post(RECORDS_URL, json=payload, headers=auth_headers)
        assert response.status_code == 422, payload
        assert response.json()["error"] is True


def test_create_with_unknown_type_is_bad_request(client, auth_headers):
    payload = {"type_id": 999, "value": 70, "unit": "kg", "recorded_at": iso_ago(hours=1)}
    response = client.post(RECORDS_URL, json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid health type"


def test_create_tracks_behavioral_event(client, auth_headers, db):
    record = create_record(client, auth_headers)
    event = db.query(BehavioralEvent).filter(BehavioralEvent.event_name == "health_record_created").one()
    assert event.user_id == TEST_USER_ID
    assert event.entity_type == "health_record"
    assert event.entity_id == record["id"]
    assert event.context["healthData"] == {"recordType": "weight", "value": 72.5, "unit": "kg"}


def test_bulk_create(client, auth_headers):
    payload = {
        "records": [
            {"type_id": 1, "value": 72.5, "unit": "kg", "recorded_at": iso_ago(days=1)},
            {"type_id": 3, "value": 9000, "unit": "steps", "recorded_at": iso_ago(days=1)},
        ]
    }
    response = client.post(f"{RECORDS_URL}/bulk", json=payload, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["count"] == 2


def test_bulk_create_is_all_or_nothing(client, auth_headers):
    payload = {
        "records": [
            {"type_id": 1, "value": 72.5, "unit": "kg", "recorded_at": iso_ago(days=1)},
            {"type_id": 999, "value": 1, "unit": "kg", "recorded_at": iso_ago(days=1)},
        ]
    }
    response = client.post(f"{RECORDS_URL}/bulk", json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert client.get(RECORDS_URL, headers=auth_headers).json()["pagination"]["total"] == 0


def test_bulk_create_limits(client, auth_headers):
    assert client.post(f"{RECORDS_URL}/bulk", json={"records": []}, headers=auth_headers).status_code == 422
    many = [
        {"type_id": 3, "value": 100, "unit": "steps", "recorded_at": iso_ago(days=1)}
        for _ in range(51)
    ]
    assert client.post(f"{RECORDS_URL}/bulk", json={"records": many}, headers=auth_headers).status_code == 422


def test_update_record(client, auth_headers):
    record = create_record(client, auth_headers)
    response = client.put(RECORDS_URL, params={"id": record["id"]}, json={"value": 71.0}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["record"]["value"] == 71.0
    assert body["message"] == "Health record updated successfully"


def test_update_record_with_id_in_body(client, auth_headers):
    record = create_record(client, auth_headers)
    response = client.put(RECORDS_URL, json={"id": record["id"], "value": 71}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["record"]["id"] == record["id"]
    assert response.json()["record"]["value"] == 71.0

    response = client.put(RECORDS_URL, json={"id": record["id"]}, headers=auth_headers)
    assert response.status_code == 422

    response = client.put(RECORDS_URL, json={"id": 0, "value": 71}, headers=auth_headers)
    assert response.status_code == 422


def test_update_requires_a_field(client, auth_headers):
    record = create_record(client, auth_headers)
    response = client.put(RECORDS_URL, params={"id": record["id"]}, json={}, headers=auth_headers)
    assert response.status_code == 422


def test_update_bad_ids(client, auth_headers, other_headers):
    record = create_record(client, auth_headers)

    response = client.put(RECORDS_URL, params={"id": "abc"}, json={"value": 1}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid record ID"

    response = client.put(RECORDS_URL, json={"value": 1}, headers=auth_headers)
    assert response.status_code == 400

    response = client.put(RECORDS_URL, params={"id": record["id"]}, json={"value": 1}, headers=other_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Health record not found"


def test_delete_record(client, auth_headers, db):
    record = create_record(client, auth_headers)
    response = client.delete(RECORDS_URL, params={"id": record["id"]}, headers=auth_headers)
    assert response.status_code == 200
    assert client.get(RECORDS_URL, headers=auth_headers).json()["records"] == []

    event = db.query(BehavioralEvent).filter(BehavioralEvent.event_name == "health_record_deleted").one()
    assert event.entity_type == "ui_interaction"
    assert event.context["custom"] == {"recordId": record["id"]}

    response = client.delete(RECORDS_URL, params={"id": record["id"]}, headers=auth_headers)
    assert response.status_code == 404


def test_recent_records_include_type(client, auth_headers):
    create_record(client, auth_headers)
    body = client.get("/api/health/recent-records", headers=auth_headers).json()
    assert body["total"] == 1
    assert body["records"][0]["health_type"]["slug"] == "weight"


def test_list_health_types(client, auth_headers):
    types = client.get("/api/health/types", headers=auth_headers).json()
    slugs = [item["slug"] for item in types]
    assert slugs[:5] == ["weight", "heart_rate", "steps", "sleep", "blood_pressure_systolic"]
    assert len(types) == 10


def test_rate_limit_returns_429(client, auth_headers, monkeypatch):
    monkeypatch.setattr(rate_limiter, "limit", 2)
    assert client.get(RECORDS_URL, headers=auth_headers).status_code == 200
    assert client.get(RECORDS_URL, headers=auth_headers).status_code == 200
    response = client.get(RECORDS_URL, headers=auth_headers)
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"


def test_disabled_feature_returns_503_before_auth(client, monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_HEALTH_MGMT", False)
    response = client.get(RECORDS_URL)
    assert response.status_code == 503
    assert response.json()["message"] == "Health management feature is not enabled"


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "healthy"
