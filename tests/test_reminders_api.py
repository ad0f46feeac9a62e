from datetime import timedelta

from healthtrack.core.config import settings
from healthtrack.models.health import HealthReminder
from healthtrack.utils.timezone import utcnow

REMINDERS_URL = "/api/health/reminders"
TRIGGER_URL = "/api/health/reminders/trigger"
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


def create_reminder(client, headers, **overrides):
    payload = {"type_id": 1, "cron_expr": "0 9 * * *", "message": "Weigh yourself", "active": True}
    payload.update(overrides)
    response = client.post(REMINDERS_URL, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["reminder"]


def test_create_reminder_schedules_next_run(client, auth_headers):
    reminder = create_reminder(client, auth_headers)
    assert reminder["active"] is True
    assert reminder["next_run_at"] is not None
    assert reminder["next_run_at"].endswith("09:00:00")


def test_inactive_reminder_has_no_next_run(client, auth_headers):
    reminder = create_reminder(client, auth_headers, active=False)
    assert reminder["next_run_at"] is None


def test_named_schedules(client, auth_headers):
    create_reminder(client, auth_headers, cron_expr="@daily")
    for expr in ("@reboot", "@every 5m", "61 * * * *", "* * *", ""):
        response = client.post(
            REMINDERS_URL,
            json={"type_id": 1, "cron_expr": expr, "message": "m", "active": True},
            headers=auth_headers,
        )
        assert response.status_code == 422, expr


def test_message_validation(client, auth_headers):
    for message in ("   ", "x" * 501):
        response = client.post(
            REMINDERS_URL,
            json={"type_id": 1, "cron_expr": "@daily", "message": message, "active": True},
            headers=auth_headers,
        )
        assert response.status_code == 422


def test_unknown_type_is_bad_request(client, auth_headers):
    response = client.post(
        REMINDERS_URL,
        json={"type_id": 999, "cron_expr": "@daily", "message": "m", "active": True},
        headers=auth_headers,
    )
    assert response.status_code == 400


def test_list_reminders_filters(client, auth_headers, other_headers):
    active = create_reminder(client, auth_headers)
    create_reminder(client, auth_headers, active=False)

    body = client.get(REMINDERS_URL, params={"active": True}, headers=auth_headers).json()
    assert [item["id"] for item in body["reminders"]] == [active["id"]]
    assert client.get(REMINDERS_URL, headers=auth_headers).json()["total"] == 2
    assert client.get(REMINDERS_URL, headers=other_headers).json()["total"] == 0


def test_update_reminder(client, auth_headers):
    reminder = create_reminder(client, auth_headers)

    response = client.patch(REMINDERS_URL, json={"id": reminder["id"], "cron_expr": "30 7 * * *"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["reminder"]["next_run_at"].endswith("07:30:00")

    response = client.patch(REMINDERS_URL, json={"id": reminder["id"], "active": False}, headers=auth_headers)
    assert response.json()["reminder"]["next_run_at"] is None

    response = client.patch(REMINDERS_URL, json={"id": reminder["id"], "active": True}, headers=auth_headers)
    assert response.json()["reminder"]["next_run_at"] is not None


def test_update_reminder_errors(client, auth_headers, other_headers):
    reminder = create_reminder(client, auth_headers)
    response = client.patch(REMINDERS_URL, json={"active": False}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Reminder ID is required"

    response = client.patch(REMINDERS_URL, json={"id": reminder["id"], "active": False}, headers=other_headers)
    assert response.status_code == 404


def test_delete_deactivates(client, auth_headers):
    reminder = create_reminder(client, auth_headers)
    response = client.delete(REMINDERS_URL, params={"id": reminder["id"]}, headers=auth_headers)
    assert response.status_code == 200

    stored = client.get(REMINDERS_URL, headers=auth_headers).json()["reminders"][0]
    assert stored["active"] is False
    assert stored["next_run_at"] is None


def test_trigger_requires_cron_secret(client, monkeypatch):
    assert client.post(TRIGGER_URL).status_code == 401
    assert client.post(TRIGGER_URL, headers={"Authorization": "Bearer wrong"}).status_code == 401

    monkeypatch.setattr(settings, "HEALTH_REMINDER_CRON_SECRET", None)
    assert client.post(TRIGGER_URL, headers=CRON_HEADERS).status_code == 401


def test_trigger_with_nothing_due(client):
    response = client.post(TRIGGER_URL, headers=CRON_HEADERS)
    assert response.status_code == 200
    assert response.json()["processed"] == 0


def test_trigger_dispatches_due_reminders(client, auth_headers, db):
    reminder = create_reminder(client, auth_headers)
    future = create_reminder(client, auth_headers, cron_expr="@hourly")

    stored = db.query(HealthReminder).filter(HealthReminder.id == reminder["id"]).one()
    stored.next_run_at = utcnow() - timedelta(minutes=5)
    db.commit()

    response = client.post(TRIGGER_URL, headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["failed"] == 0
    dispatched = body["details"]["successful"][0]
    assert dispatched["id"] == reminder["id"]
    assert dispatched["healthType"] == "weight"

    db.expire_all()
    stored = db.query(HealthReminder).filter(HealthReminder.id == reminder["id"]).one()
    assert stored.next_run_at > utcnow()
    assert future["id"] not in [item["id"] for item in body["details"]["successful"]]
