import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.config import settings
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.crud import health_reminders
from healthtrack.schemas.health import (
    HealthReminderCreate,
    HealthReminderResponse,
    HealthReminderUpdate,
)
from healthtrack.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/reminders")
def list_reminders(
    active: Optional[bool] = Query(None),
    type_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    reminders = health_reminders.list_for_user(db, user_id, active=active, type_id=type_id)
    return {
        "reminders": [HealthReminderResponse.model_validate(reminder) for reminder in reminders],
        "total": len(reminders),
    }


@router.post("/reminders", status_code=status.HTTP_201_CREATED)
def create_reminder(
    reminder_in: HealthReminderCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        reminder = ReminderService(db).create_reminder(user_id, reminder_in.model_dump())
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "reminder": HealthReminderResponse.model_validate(reminder),
        "message": "Reminder created successfully",
    }


@router.patch("/reminders")
def update_reminder(
    reminder_in: HealthReminderUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    if reminder_in.id is None:
        raise HTTPException(status_code=400, detail="Reminder ID is required")
    changes = reminder_in.model_dump(exclude_unset=True, exclude={"id"})
    try:
        reminder = ReminderService(db).update_reminder(user_id, reminder_in.id, changes)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "reminder": HealthReminderResponse.model_validate(reminder),
        "message": "Reminder updated successfully",
    }


@router.delete("/reminders")
def delete_reminder(
    id: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    reminder_id = deps.parse_id(id, "reminder")
    try:
        ReminderService(db).deactivate_reminder(user_id, reminder_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"message": "Reminder deactivated successfully"}


@router.post("/reminders/trigger")
def trigger_reminders(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(deps.get_db),
):
    """Dispatch every due reminder. Called by an external scheduler."""
    secret = settings.HEALTH_REMINDER_CRON_SECRET
    if not secret:
        logger.error("Reminder trigger called but HEALTH_REMINDER_CRON_SECRET is not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
        logger.warning("Reminder trigger rejected: bad cron secret")
        raise HTTPException(status_code=401, detail="Unauthorized")

    return ReminderService(db).dispatch_due()
