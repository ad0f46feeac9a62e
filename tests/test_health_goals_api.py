from tests.conftest import iso_ago, iso_ahead

GOALS_URL = "/api/health/goals"


def create_goal(client, headers, **overrides):
    payload = {"type_id": 1, "target_value": 70, "target_date": iso_ahead(days=60)}
    payload.update(overrides)
    response = client.post(GOALS_URL, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["goal"]


def test_create_goal_includes_progress(client, auth_headers):
    client.post(
        "/api/health/records",
        json={"type_id": 1, "value": 35, "unit": "kg", "recorded_at": iso_ago(hours=1)},
        headers=auth_headers,
    )
    goal = create_goal(client, auth_headers)
    assert goal["status"] == "active"
    assert goal["healthType"]["slug"] == "weight"
    assert goal["progress"]["currentValue"] == 35.0
    assert goal["progress"]["progressPercentage"] == 50.0
    assert goal["progress"]["isOverdue"] is False
    assert goal["progress"]["daysRemaining"] in (60, 61)


def test_progress_is_capped_at_100(client, auth_headers):
    response = client.post(
        "/api/health/records",
        json={"type_id": 3, "value": 9000, "unit": "steps", "recorded_at": iso_ago(hours=1)},
        headers=auth_headers,
    )
    assert response.status_code == 201
    goal = create_goal(client, auth_headers, type_id=3, target_value=5000)
    assert goal["progress"]["currentValue"] == 9000.0
    assert goal["progress"]["progressPercentage"] == 100.0


def test_goal_target_ranges(client, auth_headers):
    response = client.post(
        GOALS_URL,
        json={"type_id": 1, "target_value": 500, "target_date": iso_ahead(days=30)},
        headers=auth_headers,
    )
    assert response.status_code == 422

    response = client.post(
        GOALS_URL,
        json={"type_id": 4, "target_value": 30, "target_date": iso_ahead(days=30)},
        headers=auth_headers,
    )
    assert response.status_code == 422

    # types without a configured range accept any positive target
    create_goal(client, auth_headers, type_id=7, target_value=2500)


def test_goal_target_date_must_be_future(client, auth_headers):
    response = client.post(
        GOALS_URL,
        json={"type_id": 1, "target_value": 70, "target_date": iso_ago(days=1)},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_one_active_goal_per_type(client, auth_headers, other_headers):
    create_goal(client, auth_headers)
    response = client.post(
        GOALS_URL,
        json={"type_id": 1, "target_value": 65, "target_date": iso_ahead(days=30)},
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["message"] == "An active goal already exists for this health type"

    # another user is unaffected, and paused goals do not conflict
    create_goal(client, other_headers)
    create_goal(client, auth_headers, status="paused")


def test_unknown_type_is_bad_request(client, auth_headers):
    response = client.post(
        GOALS_URL,
        json={"type_id": 999, "target_value": 70, "target_date": iso_ahead(days=30)},
        headers=auth_headers,
    )
    assert response.status_code == 400


def test_list_and_filter_goals(client, auth_headers):
    weight = create_goal(client, auth_headers)
    steps = create_goal(client, auth_headers, type_id=3, target_value=10000, status="paused")

    body = client.get(GOALS_URL, headers=auth_headers).json()
    assert body["total"] == 2

    body = client.get(GOALS_URL, params={"status": "paused"}, headers=auth_headers).json()
    assert [goal["id"] for goal in body["goals"]] == [steps["id"]]

    body = client.get("/api/health/active-goals", headers=auth_headers).json()
    assert [goal["id"] for goal in body["goals"]] == [weight["id"]]


def test_update_goal(client, auth_headers):
    goal = create_goal(client, auth_headers)
    response = client.patch(GOALS_URL, json={"id": goal["id"], "target_value": 68}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["goal"]["target_value"] == 68.0

    response = client.patch(GOALS_URL, json={"id": goal["id"], "status": "completed"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["goal"]["status"] == "completed"


def test_update_goal_errors(client, auth_headers, other_headers):
    goal = create_goal(client, auth_headers)

    response = client.patch(GOALS_URL, json={"target_value": 68}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Goal ID is required"

    response = client.patch(GOALS_URL, json={"id": goal["id"]}, headers=auth_headers)
    assert response.status_code == 422

    response = client.patch(GOALS_URL, json={"id": goal["id"], "target_value": 999}, headers=auth_headers)
    assert response.status_code == 422

    response = client.patch(GOALS_URL, json={"id": goal["id"], "target_value": 68}, headers=other_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Goal not found"


def test_delete_goal_pauses_it(client, auth_headers):
    goal = create_goal(client, auth_headers)
    response = client.delete(GOALS_URL, params={"id": goal["id"]}, headers=auth_headers)
    assert response.status_code == 200

    goals = client.get(GOALS_URL, headers=auth_headers).json()["goals"]
    assert goals[0]["status"] == "paused"

    assert client.delete(GOALS_URL, params={"id": "x"}, headers=auth_headers).status_code == 400
    assert client.delete(GOALS_URL, params={"id": 9999}, headers=auth_headers).status_code == 404
