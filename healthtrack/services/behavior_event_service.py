"""
Behavioral event pipeline: validation, entity reference checks, persistence,
querying and retention of user-action events.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy import and_, asc, desc
from sqlalchemy.orm import Session

from healthtrack.core.config import settings
from healthtrack.core.exceptions import (
    InvalidReferenceError,
    InvalidUserError,
    NotFoundError,
    ValidationFailure,
)
from healthtrack.models.behavior import BehavioralEvent
from healthtrack.models.health import HealthRecord, HealthGoal
from healthtrack.models.training import TrainingSession, ExerciseLog
from healthtrack.schemas.behavior import (
    BehaviorEventBulkCreate,
    BehaviorEventCreate,
    BehaviorEventQuery,
)
from healthtrack.utils.timezone import isoformat_now, utcnow

logger = logging.getLogger(__name__)

# Entity types that point at a user-owned row
ENTITY_MODELS = {
    "health_record": HealthRecord,
    "training_session": TrainingSession,
    "exercise_log": ExerciseLog,
    "health_goal": HealthGoal,
}

SORT_COLUMNS = {
    "createdAt": BehavioralEvent.created_at,
    "eventName": BehavioralEvent.event_name,
    "entityType": BehavioralEvent.entity_type,
}

EventInput = Union[BehaviorEventCreate, Dict[str, Any]]


def first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    message = errors[0].get("msg", "Invalid input")
    # pydantic prefixes messages raised from validators
    return message.replace("Value error, ", "", 1)


def ensure_user_id(user_id: Optional[str]) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidUserError()
    return user_id


class BehaviorEventService:
    def __init__(self, db: Session):
        self.db = db

    def create_events(self, user_id: str, events: Iterable[EventInput]) -> List[BehavioralEvent]:
        """Validate and insert a batch of events in a single transaction."""
        ensure_user_id(user_id)
        events = list(events or [])
        if not events:
            raise ValidationFailure("Events array is required and cannot be empty")

        payload = [
            event.model_dump(by_alias=True, exclude_none=True) if isinstance(event, BehaviorEventCreate) else event
            for event in events
        ]
        try:
            validated = BehaviorEventBulkCreate.model_validate({"events": payload}).events
        except ValidationError as exc:
            logger.warning(f"Bulk event validation failed for user {user_id}: {len(payload)} events")
            raise ValidationFailure(f"Validation failed: {first_error_message(exc)}")

        for event in validated:
            if event.entity_id and not self.validate_entity_reference(user_id, event.entity_type, event.entity_id):
                raise InvalidReferenceError(
                    f"Invalid entity reference: {event.entity_type} with ID {event.entity_id}"
                )

        rows = [
            BehavioralEvent(
                user_id=user_id,
                event_name=event.event_name,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                context=event.context_dict(),
                session_id=event.session_id,
            )
            for event in validated
        ]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to create behavioral events for user {user_id}", exc_info=True)
            raise

        logger.info(
            f"Created {len(rows)} behavioral events for user {user_id}: "
            f"{', '.join(event.event_name for event in validated)}"
        )
        return rows

    def track_event(
        self,
        user_id: str,
        event_name: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> BehavioralEvent:
        event = {"eventName": event_name, "entityType": entity_type}
        if entity_id is not None:
            event["entityId"] = entity_id
        if context is not None:
            event["context"] = context
        if session_id is not None:
            event["sessionId"] = session_id
        return self.create_events(user_id, [event])[0]

    def validate_entity_reference(self, user_id: str, entity_type: str, entity_id: Optional[int]) -> bool:
        if entity_type == "ui_interaction":
            return True
        if not entity_id or entity_id <= 0:
            return False

        model = ENTITY_MODELS.get(entity_type)
        if model is None:
            logger.warning(f"Unknown entity type for validation: {entity_type}")
            return False

        exists = self.db.query(model.id).filter(
            and_(model.id == entity_id, model.user_id == user_id)
        ).first() is not None
        if not exists:
            logger.warning(f"Entity reference validation failed: {entity_type} {entity_id}")
        return exists

    def get_events(self, user_id: str, query: Optional[BehaviorEventQuery] = None) -> Tuple[List[BehavioralEvent], int]:
        ensure_user_id(user_id)
        query = query or BehaviorEventQuery()

        q = self.db.query(BehavioralEvent).filter(BehavioralEvent.user_id == user_id)
        if query.event_name:
            q = q.filter(BehavioralEvent.event_name == query.event_name)
        if query.entity_type:
            q = q.filter(BehavioralEvent.entity_type == query.entity_type)
        if query.entity_id:
            q = q.filter(BehavioralEvent.entity_id == query.entity_id)
        if query.session_id:
            q = q.filter(BehavioralEvent.session_id == query.session_id)
        if query.start_date:
            q = q.filter(BehavioralEvent.created_at >= query.start_date)
        if query.end_date:
            q = q.filter(BehavioralEvent.created_at <= query.end_date)

        total = q.count()
        column = SORT_COLUMNS[query.sort_by]
        order = asc(column) if query.sort_order == "asc" else desc(column)
        events = q.order_by(order, order_tiebreak(query.sort_order)).offset(query.offset).limit(query.limit).all()

        logger.debug(f"Retrieved {len(events)} of {total} behavioral events for user {user_id}")
        return events, total

    @staticmethod
    def enrich_context(
        context: Optional[Dict[str, Any]],
        request_meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge server-side environment and request data into an event context."""
        context = dict(context or {})
        request_meta = request_meta or {}

        environment = dict(context.get("environment") or {})
        environment.update({"timestamp": isoformat_now(), "timezone": "UTC"})
        environment.update(request_meta.get("environment") or {})

        custom = dict(context.get("custom") or {})
        custom.update({
            "serverTimestamp": isoformat_now(),
            "userAgent": request_meta.get("userAgent"),
            "requestId": str(uuid.uuid4()),
            "ipAddress": request_meta.get("ipAddress"),
        })
        custom.update(request_meta.get("custom") or {})

        context["environment"] = environment
        context["custom"] = custom
        if request_meta.get("performance"):
            performance = dict(context.get("performance") or {})
            performance.update(request_meta["performance"])
            context["performance"] = performance
        return context

    def get_event_stats(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        ensure_user_id(user_id)
        q = self.db.query(BehavioralEvent.event_name, BehavioralEvent.entity_type).filter(
            BehavioralEvent.user_id == user_id
        )
        if start_date:
            q = q.filter(BehavioralEvent.created_at >= start_date)
        if end_date:
            q = q.filter(BehavioralEvent.created_at <= end_date)
        rows = q.all()

        events_by_type: Dict[str, int] = {}
        events_by_entity: Dict[str, int] = {}
        for event_name, entity_type in rows:
            events_by_type[event_name] = events_by_type.get(event_name, 0) + 1
            events_by_entity[entity_type] = events_by_entity.get(entity_type, 0) + 1

        return {
            "totalEvents": len(rows),
            "uniqueEventNames": len(events_by_type),
            "eventsByType": events_by_type,
            "eventsByEntity": events_by_entity,
        }

    def delete_old_events(self, user_id: str, older_than_days: int = 365) -> int:
        ensure_user_id(user_id)
        if older_than_days is None or older_than_days <= 0:
            raise ValidationFailure("Days must be a positive number")

        cutoff = utcnow() - timedelta(days=older_than_days)
        deleted = self.db.query(BehavioralEvent).filter(
            and_(BehavioralEvent.user_id == user_id, BehavioralEvent.created_at <= cutoff)
        ).delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Deleted {deleted} behavioral events older than {older_than_days} days for user {user_id}")
        return deleted

    def delete_event(self, user_id: str, event_id: int) -> int:
        ensure_user_id(user_id)
        event = self.db.query(BehavioralEvent).filter(
            and_(BehavioralEvent.id == event_id, BehavioralEvent.user_id == user_id)
        ).first()
        if event is None:
            raise NotFoundError("Event not found")
        self.db.delete(event)
        self.db.commit()
        logger.info(f"Deleted behavioral event {event_id} for user {user_id}")
        return 1

    def delete_session_events(self, user_id: str, session_id: str) -> int:
        ensure_user_id(user_id)
        deleted = self.db.query(BehavioralEvent).filter(
            and_(BehavioralEvent.user_id == user_id, BehavioralEvent.session_id == session_id)
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Deleted {deleted} behavioral events in session {session_id} for user {user_id}")
        return deleted


def order_tiebreak(sort_order: str):
    return asc(BehavioralEvent.id) if sort_order == "asc" else desc(BehavioralEvent.id)


def track_event_safely(db: Session, user_id: str, event_name: str, entity_type: str, **kwargs) -> None:
    """Record an event as a side effect; failures are logged and never raised."""
    if not settings.ENABLE_BEHAVIOR_TRACKING:
        return
    try:
        BehaviorEventService(db).track_event(user_id, event_name, entity_type, **kwargs)
    except Exception as exc:
        db.rollback()
        logger.warning(
            f"Failed to track behavioral event {event_name} ({entity_type} {kwargs.get('entity_id')}) "
            f"for user {user_id}: {exc}"
        )
