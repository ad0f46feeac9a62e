from datetime import timedelta

from healthtrack.core.config import settings
from healthtrack.models.behavior import BehavioralEvent
from healthtrack.utils.timezone import utcnow
from tests.conftest import TEST_USER_ID

PATTERNS_URL = "/api/behavior/micro-patterns"
CONTEXTS_URL = "/api/behavior/context-patterns"


def create_patterns(client, headers, *patterns):
    response = client.post(PATTERNS_URL, json=list(patterns), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["patterns"]


def test_create_and_list_patterns(client, auth_headers):
    created = create_patterns(
        client,
        auth_headers,
        {"behaviorType": "walking", "frequency": 5, "consistency": 80, "sampleSize": 10},
        {"behaviorType": "reading", "frequency": 12},
    )
    assert [pattern["behaviorType"] for pattern in created] == ["walking", "reading"]
    assert created[0]["strength"] == 74.0
    assert created[0]["confidence"] == 90.0

    body = client.get(PATTERNS_URL, params={"includeInsights": "true"}, headers=auth_headers).json()
    assert body["pagination"]["total"] == 2
    insights = body["insights"]
    assert insights["totalPatterns"] == 2
    assert insights["strongPatterns"] == 2
    assert insights["frequentPatterns"] == 1
    assert insights["patternsByType"] == {"walking": 1, "reading": 1}

    body = client.get(PATTERNS_URL, params={"behaviorType": "reading"}, headers=auth_headers).json()
    assert [pattern["behaviorType"] for pattern in body["patterns"]] == ["reading"]
    assert "insights" not in body


def test_create_accepts_wrapped_payload(client, auth_headers):
    response = client.post(PATTERNS_URL, json={"patterns": [{"behaviorType": "walking", "frequency": 1}]}, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["count"] == 1


def test_create_validation(client, auth_headers):
    too_many = [{"behaviorType": "walking", "frequency": 1} for _ in range(21)]
    assert client.post(PATTERNS_URL, json=too_many, headers=auth_headers).status_code == 422
    assert client.post(PATTERNS_URL, json={"behaviorType": "walking"}, headers=auth_headers).status_code == 422
    assert client.post(
        PATTERNS_URL, json={"behaviorType": "walking", "frequency": 1, "frequencyPeriod": "year"}, headers=auth_headers
    ).status_code == 422


def test_list_query_validation(client, auth_headers):
    assert client.get(PATTERNS_URL, params={"sortBy": "name"}, headers=auth_headers).status_code == 422
    assert client.get(PATTERNS_URL, params={"minStrength": 101}, headers=auth_headers).status_code == 422


def test_update_pattern(client, auth_headers, other_headers):
    pattern = create_patterns(client, auth_headers, {"behaviorType": "walking", "frequency": 2})[0]

    response = client.put(PATTERNS_URL, json={"id": pattern["id"], "frequency": 8}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["pattern"]["frequency"] == 8
    assert response.json()["pattern"]["sampleSize"] == 2

    response = client.put(PATTERNS_URL, json={"id": pattern["id"], "frequency": 8}, headers=other_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Pattern not found or access denied"


def test_archive_and_delete_pattern(client, auth_headers):
    pattern = create_patterns(client, auth_headers, {"behaviorType": "walking", "frequency": 2})[0]

    response = client.delete(PATTERNS_URL, params={"id": pattern["id"]}, headers=auth_headers)
    assert response.json()["message"] == "Micro-behavior pattern archived successfully"
    listed = client.get(PATTERNS_URL, params={"isActive": "false"}, headers=auth_headers).json()["patterns"]
    assert [item["id"] for item in listed] == [pattern["id"]]

    response = client.delete(PATTERNS_URL, params={"id": pattern["id"], "archive": "false"}, headers=auth_headers)
    assert response.json()["message"] == "Micro-behavior pattern deleted successfully"
    assert client.get(PATTERNS_URL, headers=auth_headers).json()["pagination"]["total"] == 0

    assert client.delete(PATTERNS_URL, params={"id": "nope"}, headers=auth_headers).status_code == 400


def test_track_micro_behavior(client, auth_headers):
    first = client.post(f"{PATTERNS_URL}/track", json={"behaviorType": "hydration"}, headers=auth_headers)
    assert first.status_code == 200
    second = client.post(f"{PATTERNS_URL}/track", json={"behaviorType": "hydration"}, headers=auth_headers)
    assert second.json()["pattern"]["id"] == first.json()["pattern"]["id"]
    assert second.json()["pattern"]["frequency"] == 2


def test_detect_endpoint(client, auth_headers, db):
    start = utcnow() - timedelta(days=10)
    for day in range(10):
        db.add(BehavioralEvent(
            user_id=TEST_USER_ID,
            event_name="workout_completed",
            entity_type="ui_interaction",
            created_at=start + timedelta(days=day),
        ))
    db.commit()

    response = client.post(f"{PATTERNS_URL}/detect", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["storedCount"] == 1
    assert body["timeframe"]["start"].endswith("Z")

    response = client.post(
        f"{PATTERNS_URL}/detect",
        json={"startDate": utcnow().isoformat(), "endDate": (utcnow() - timedelta(days=1)).isoformat()},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_analysis_endpoints(client, auth_headers):
    create_patterns(
        client,
        auth_headers,
        {"behaviorType": "walking", "frequency": 9, "consistency": 90, "sampleSize": 10, "triggers": {"ui": {"route": 1}}},
    )

    insights = client.get(f"{PATTERNS_URL}/insights", headers=auth_headers).json()
    assert len(insights["insights"]["patterns"]) == 1
    assert insights["generatedAt"].endswith("Z")

    frequency = client.get(f"{PATTERNS_URL}/frequency", headers=auth_headers).json()
    assert frequency["totalOccurrences"] == 9
    assert frequency["patternCount"] == 1

    triggers = client.get(f"{PATTERNS_URL}/triggers", headers=auth_headers).json()
    assert triggers["count"] == 1
    assert triggers["triggers"][0]["triggerType"] == "ui"

    outcomes = client.get(f"{PATTERNS_URL}/outcomes", params={"behaviorType": "walking"}, headers=auth_headers).json()
    assert outcomes["totalPatterns"] == 1
    assert outcomes["successfulPatterns"] == 1


def test_export(client, auth_headers):
    create_patterns(client, auth_headers, {"behaviorType": "walking", "frequency": 5})

    exported = client.get(f"{PATTERNS_URL}/export", headers=auth_headers).json()
    assert exported["userId"] == TEST_USER_ID
    assert exported["summary"]["totalPatterns"] == 1

    response = client.get(f"{PATTERNS_URL}/export", params={"format": "csv"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0] == "Pattern ID,Behavior Type,Frequency,Strength,Confidence,Created At"

    assert client.get(f"{PATTERNS_URL}/export", params={"format": "xml"}, headers=auth_headers).status_code == 422


def test_context_patterns_upsert_and_list(client, auth_headers):
    payload = {"contextType": "temporal", "contextName": "before_work", "timeOfDay": "morning", "energyLevel": 6}
    response = client.post(CONTEXTS_URL, json=payload, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["contextPattern"]["frequency"] == 1

    response = client.post(CONTEXTS_URL, json=payload, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["contextPattern"]["frequency"] == 2
    assert response.json()["message"] == "Context pattern updated successfully"

    body = client.get(CONTEXTS_URL, params={"timeOfDay": "morning"}, headers=auth_headers).json()
    assert body["pagination"]["total"] == 1
    assert body["contextPatterns"][0]["contextName"] == "before_work"

    invalid = {"contextType": "cosmic", "contextName": "x"}
    assert client.post(CONTEXTS_URL, json=invalid, headers=auth_headers).status_code == 422
    invalid = {"contextType": "temporal", "contextName": "x", "energyLevel": 11}
    assert client.post(CONTEXTS_URL, json=invalid, headers=auth_headers).status_code == 422


def test_correlations_endpoint(client, auth_headers):
    create_patterns(client, auth_headers, {"behaviorType": "walking", "frequency": 5})
    client.post(CONTEXTS_URL, json={"contextType": "temporal", "contextName": "now"}, headers=auth_headers)

    body = client.post("/api/behavior/correlations", headers=auth_headers).json()
    # both were observed at a single instant, so there is no duration to overlap
    assert body == {"correlations": [], "count": 0}


def test_events_can_be_enriched_with_patterns(client, auth_headers):
    create_patterns(client, auth_headers, {"behaviorType": "page_view", "frequency": 5})
    client.post(
        "/api/behavior/events",
        json={"eventName": "page_view", "entityType": "ui_interaction", "context": {"ui": {"route": "/"}}},
        headers=auth_headers,
    )
    body = client.get("/api/behavior/events", params={"includeMicroBehavior": "true"}, headers=auth_headers).json()
    data = body["events"][0]["microBehaviorData"]
    assert [pattern["behaviorType"] for pattern in data["patterns"]] == ["page_view"]


def test_disabled_micro_behavior_returns_503(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_MICRO_BEHAVIOR_TRACKING", False)
    response = client.get(PATTERNS_URL, headers=auth_headers)
    assert response.status_code == 503
    assert response.json()["message"] == "Micro-behavior tracking feature is not enabled"
    # plain event tracking stays available
    assert client.get("/api/behavior/events", headers=auth_headers).status_code == 200
