import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from croniter import croniter
from sqlalchemy.orm import Session

from healthtrack.core.exceptions import InvalidReferenceError, NotFoundError, ValidationFailure
from healthtrack.crud import health_reminders, health_types
from healthtrack.models.health import HealthReminder
from healthtrack.utils.timezone import isoformat_utc, utcnow

logger = logging.getLogger(__name__)


def calculate_next_run(cron_expr: str, base: Optional[datetime] = None) -> datetime:
    """Next occurrence of a cron expression strictly after `base` (UTC)."""
    base = base or utcnow()
    try:
        return croniter(cron_expr, base).get_next(datetime)
    except (ValueError, KeyError) as exc:
        raise ValidationFailure(f"Invalid cron expression: {cron_expr}") from exc


class ReminderService:
    def __init__(self, db: Session):
        self.db = db

    def _check_type(self, type_id: int) -> None:
        if health_types.get(self.db, type_id) is None:
            raise InvalidReferenceError("Invalid health type")

    def create_reminder(self, user_id: str, data: Dict[str, Any]) -> HealthReminder:
        self._check_type(data["type_id"])
        data = dict(data)
        data["next_run_at"] = calculate_next_run(data["cron_expr"]) if data.get("active", True) else None
        reminder = health_reminders.create(self.db, user_id, data)
        self.db.commit()
        logger.info(f"Created health reminder {reminder.id} for user {user_id} ({reminder.cron_expr})")
        return reminder

    def update_reminder(self, user_id: str, reminder_id: int, changes: Dict[str, Any]) -> HealthReminder:
        reminder = health_reminders.get_for_user(self.db, reminder_id, user_id)
        if reminder is None:
            raise NotFoundError("Reminder not found")
        if changes.get("type_id") is not None:
            self._check_type(changes["type_id"])

        changes = {field: value for field, value in changes.items() if value is not None}
        cron_changed = "cron_expr" in changes and changes["cron_expr"] != reminder.cron_expr
        reactivated = changes.get("active") is True and not reminder.active
        health_reminders.update(self.db, reminder, changes)

        if not reminder.active:
            reminder.next_run_at = None
        elif cron_changed or reactivated or reminder.next_run_at is None:
            reminder.next_run_at = calculate_next_run(reminder.cron_expr)
        self.db.commit()
        logger.info(f"Updated health reminder {reminder_id} for user {user_id}: {sorted(changes)}")
        return reminder

    def deactivate_reminder(self, user_id: str, reminder_id: int) -> HealthReminder:
        reminder = health_reminders.get_for_user(self.db, reminder_id, user_id)
        if reminder is None:
            raise NotFoundError("Reminder not found")
        health_reminders.update(self.db, reminder, {"active": False, "next_run_at": None})
        self.db.commit()
        logger.info(f"Deactivated health reminder {reminder_id} for user {user_id}")
        return reminder

    def dispatch_due(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Send every due reminder and move it to its next occurrence."""
        now = now or utcnow()
        due = health_reminders.list_due(self.db, now)
        if not due:
            return {"message": "No reminders due", "processed": 0, "timestamp": isoformat_utc(now)}

        successful: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []
        for reminder in due:
            health_type = reminder.health_type
            try:
                next_run_at = calculate_next_run(reminder.cron_expr, now)
                reminder.next_run_at = next_run_at
                self.db.commit()
            except Exception as exc:
                self.db.rollback()
                logger.error(f"Failed to dispatch health reminder {reminder.id} for user {reminder.user_id}: {exc}")
                failed.append({"id": reminder.id, "userId": reminder.user_id, "error": str(exc)})
                continue

            type_name = health_type.display_name if health_type else None
            logger.info(
                f"Health Reminder: {reminder.message} ({type_name}) sent to user {reminder.user_id}, "
                f"reminder {reminder.id}, next run {isoformat_utc(next_run_at)}"
            )
            successful.append({
                "id": reminder.id,
                "userId": reminder.user_id,
                "healthType": health_type.slug if health_type else None,
                "nextRunAt": isoformat_utc(next_run_at),
            })

        logger.info(f"Reminder dispatch finished: {len(successful)} processed, {len(failed)} failed")
        return {
            "message": "Reminders processed",
            "processed": len(successful),
            "failed": len(failed),
            "timestamp": isoformat_utc(now),
            "details": {"successful": successful, "failed": failed},
        }
