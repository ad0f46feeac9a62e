import pytest

from tests.conftest import iso_ago


def add_records(client, headers, values, type_id=1, unit="kg"):
    """One record per day, oldest first, ending yesterday."""
    for offset, value in enumerate(values):
        response = client.post(
            "/api/health/records",
            json={
                "type_id": type_id,
                "value": value,
                "unit": unit,
                "recorded_at": iso_ago(days=len(values) - offset, hours=-1),
            },
            headers=headers,
        )
        assert response.status_code == 201, response.text


def test_stats_counts_weekly_progress(client, auth_headers):
    add_records(client, auth_headers, [70, 71])
    client.post(
        "/api/health/records",
        json={"type_id": 1, "value": 69, "unit": "kg", "recorded_at": iso_ago(days=10)},
        headers=auth_headers,
    )
    stats = client.get("/api/health/stats", headers=auth_headers).json()
    assert stats["totalRecords"] == 3
    assert stats["weeklyRecords"] == 2
    assert stats["previousWeekRecords"] == 1
    assert stats["weeklyProgress"] == 100
    assert stats["activeGoals"] == 0


def test_stats_for_new_user(client, auth_headers):
    stats = client.get("/api/health/stats", headers=auth_headers).json()
    assert stats["totalRecords"] == 0
    assert stats["weeklyProgress"] == 0


def test_daily_analytics(client, auth_headers):
    add_records(client, auth_headers, [70, 71, 72])
    response = client.get("/api/health/analytics/weight", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "weight"
    assert body["unit"] == "kg"
    assert [point["value"] for point in body["data"]] == [70.0, 71.0, 72.0]
    assert body["summary"]["trend"] == "increasing"
    assert body["summary"]["trendValue"] == pytest.approx(1.0)
    assert body["summary"]["currentValue"] == 72.0
    assert body["summary"]["totalRecords"] == 3
    assert body["typicalRange"] == {"low": 40.0, "high": 150.0}


def test_monthly_analytics_buckets(client, auth_headers):
    add_records(client, auth_headers, [70, 72])
    body = client.get(
        "/api/health/analytics/weight", params={"aggregation": "monthly"}, headers=auth_headers
    ).json()
    assert sum(point["count"] for point in body["data"]) == 2
    assert all(len(point["date"]) == 7 for point in body["data"])


def test_analytics_errors(client, auth_headers):
    assert client.get("/api/health/analytics/unknown", headers=auth_headers).status_code == 404
    response = client.get("/api/health/analytics/weight", params={"aggregation": "hourly"}, headers=auth_headers)
    assert response.status_code == 422
    response = client.get(
        "/api/health/analytics/weight",
        params={"start_date": iso_ago(days=1), "end_date": iso_ago(days=2)},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_analytics_cache_is_invalidated_by_writes(client, auth_headers):
    add_records(client, auth_headers, [70])
    first = client.get("/api/health/analytics/weight", headers=auth_headers).json()
    assert first["summary"]["totalRecords"] == 1

    add_records(client, auth_headers, [75])
    second = client.get("/api/health/analytics/weight", headers=auth_headers).json()
    assert second["summary"]["totalRecords"] == 2


def test_predictions(client, auth_headers):
    add_records(client, auth_headers, [70, 71, 72, 73])
    response = client.get("/api/health/predictions/weight", params={"periods": 3}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["historical"]) == 4
    assert len(body["predictions"]) == 3
    assert body["confidenceLevel"] == 0.95
    assert body["regression"]["r_squared"] == pytest.approx(1.0)

    values = [prediction["value"] for prediction in body["predictions"]]
    assert values == sorted(values)
    assert values[0] == pytest.approx(74.0, abs=0.01)
    interval = body["predictions"][0]["confidenceInterval"]
    assert interval["lower"] <= values[0] <= interval["upper"]


def test_predictions_need_two_days(client, auth_headers):
    add_records(client, auth_headers, [70])
    response = client.get("/api/health/predictions/weight", headers=auth_headers)
    assert response.status_code == 422


def test_prediction_parameter_errors(client, auth_headers):
    assert client.get("/api/health/predictions/unknown", headers=auth_headers).status_code == 404
    assert client.get("/api/health/predictions/weight", params={"periods": 0}, headers=auth_headers).status_code == 422
    assert client.get("/api/health/predictions/weight", params={"periods": 91}, headers=auth_headers).status_code == 422
