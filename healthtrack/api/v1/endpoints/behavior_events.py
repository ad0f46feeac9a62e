import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.config import settings
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.schemas.behavior import BehaviorEventQuery, BehaviorEventResponse
from healthtrack.services.behavior_event_service import BehaviorEventService, first_error_message
from healthtrack.services.micro_behavior_service import MicroBehaviorService
from healthtrack.utils.timezone import to_utc_naive

logger = logging.getLogger(__name__)

router = APIRouter()


def request_meta(request: Request) -> Dict[str, Any]:
    return {
        "userAgent": request.headers.get("user-agent"),
        "ipAddress": request.headers.get("x-forwarded-for") or (request.client.host if request.client else None),
    }


def unpack_events(payload: Any) -> List[Any]:
    """Accept a list of events, {"events": [...]} or a single event object."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and "events" in payload:
        events = payload["events"]
        return events if isinstance(events, list) else [events]
    if isinstance(payload, dict):
        return [payload]
    raise HTTPException(status_code=422, detail="Request body must be an event, a list of events or {events: [...]}")


def enrich_event(service: BehaviorEventService, event: Any, meta: Dict[str, Any]) -> Any:
    # Malformed items are left alone for validation to reject
    if not isinstance(event, dict) or not isinstance(event.get("context") or {}, dict):
        return event
    return {**event, "context": service.enrich_context(event.get("context"), meta)}


@router.get("/events")
def list_events(
    request: Request,
    include_micro_behavior: bool = Query(False, alias="includeMicroBehavior"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        query = BehaviorEventQuery.model_validate(dict(request.query_params))
    except ValidationError as exc:
        logger.warning(f"Invalid behavioral event query from user {user_id}: {first_error_message(exc)}")
        raise HTTPException(status_code=422, detail=f"Invalid query parameters: {first_error_message(exc)}")

    try:
        events, total = BehaviorEventService(db).get_events(user_id, query)
        if include_micro_behavior and settings.ENABLE_MICRO_BEHAVIOR_TRACKING:
            payload = MicroBehaviorService(db).enrich_behavior_events(user_id, events)
        else:
            payload = [BehaviorEventResponse.model_validate(event) for event in events]
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "events": payload,
        "pagination": {
            "total": total,
            "limit": query.limit,
            "offset": query.offset,
            "hasMore": query.offset + len(events) < total,
        },
    }


@router.get("/events/stats")
def get_event_stats(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    start_date = to_utc_naive(start_date)
    end_date = to_utc_naive(end_date)
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="Start date must be before or equal to end date")
    try:
        return BehaviorEventService(db).get_event_stats(user_id, start_date, end_date)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)


@router.post("/events", status_code=status.HTTP_201_CREATED)
def create_events(
    request: Request,
    payload: Any = Body(...),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = BehaviorEventService(db)
    meta = request_meta(request)
    events = [enrich_event(service, event, meta) for event in unpack_events(payload)]

    try:
        created = service.create_events(user_id, events)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "events": [BehaviorEventResponse.model_validate(event) for event in created],
        "message": f"{len(created)} behavioral event(s) created successfully",
        "count": len(created),
    }


@router.delete("/events")
def delete_events(
    id: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    older_than_days: Optional[int] = Query(None, alias="olderThanDays"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = BehaviorEventService(db)
    try:
        if id is not None:
            deleted = service.delete_event(user_id, deps.parse_id(id, "event"))
            message = "Behavioral event deleted successfully"
        elif session_id:
            deleted = service.delete_session_events(user_id, session_id)
            message = f"Deleted {deleted} events from session {session_id}"
        elif older_than_days is not None:
            deleted = service.delete_old_events(user_id, older_than_days)
            message = f"Deleted {deleted} events older than {older_than_days} days"
        else:
            raise HTTPException(
                status_code=400,
                detail="Either id, sessionId, or olderThanDays parameter is required",
            )
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"message": message, "deletedCount": deleted}
