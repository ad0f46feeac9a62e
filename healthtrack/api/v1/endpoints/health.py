import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.crud import health_records, health_types
from healthtrack.models.health import HealthRecord
from healthtrack.schemas.health import (
    HealthRecordBulkCreate,
    HealthRecordCreate,
    HealthRecordResponse,
    HealthRecordUpdate,
    HealthRecordWithType,
    HealthTypeResponse,
)
from healthtrack.services.behavior_event_service import track_event_safely
from healthtrack.services.health_service import HealthService, invalidate_user_analytics
from healthtrack.utils.timezone import to_utc_naive

logger = logging.getLogger(__name__)

router = APIRouter()

RECORDS_ROUTE = "/api/health/records"


def record_context(record: HealthRecord) -> Dict[str, Any]:
    return {
        "healthData": {
            "recordType": record.health_type.slug if record.health_type else None,
            "value": float(record.value),
            "unit": record.unit,
        }
    }


@router.get("/records")
def list_health_records(
    type_id: Optional[int] = Query(None, gt=0),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    start_date = to_utc_naive(start_date)
    end_date = to_utc_naive(end_date)
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="Start date must be before or equal to end date")

    records, total = health_records.list_for_user(
        db,
        user_id,
        type_id=type_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    track_event_safely(
        db,
        user_id,
        "health_records_queried",
        "ui_interaction",
        context={
            "ui": {"route": RECORDS_ROUTE, "action": "query"},
            "custom": {"typeId": type_id, "limit": limit, "offset": offset, "resultCount": len(records)},
        },
    )
    return {
        "records": [HealthRecordResponse.model_validate(record) for record in records],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(records) < total,
        },
    }


@router.post("/records", status_code=status.HTTP_201_CREATED)
def create_health_record(
    record_in: HealthRecordCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    if health_types.get(db, record_in.type_id) is None:
        raise HTTPException(status_code=400, detail="Invalid health type")

    record = health_records.create(db, user_id, record_in.model_dump())
    db.commit()
    invalidate_user_analytics(user_id)
    logger.info(f"Created health record {record.id} for user {user_id} (type {record.type_id})")

    track_event_safely(
        db, user_id, "health_record_created", "health_record",
        entity_id=record.id, context=record_context(record),
    )
    return {
        "record": HealthRecordResponse.model_validate(record),
        "message": "Health record created successfully",
    }


@router.post("/records/bulk", status_code=status.HTTP_201_CREATED)
def create_health_records_bulk(
    bulk_in: HealthRecordBulkCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    known_types = {health_type.id for health_type in health_types.list(db)}
    unknown = sorted({item.type_id for item in bulk_in.records} - known_types)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Invalid health type: {unknown[0]}")

    try:
        records = [health_records.create(db, user_id, item.model_dump()) for item in bulk_in.records]
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Bulk health record insert failed for user {user_id}", exc_info=True)
        raise
    invalidate_user_analytics(user_id)
    logger.info(f"Created {len(records)} health records in bulk for user {user_id}")
    return {
        "records": [HealthRecordResponse.model_validate(record) for record in records],
        "count": len(records),
    }


@router.put("/records")
def update_health_record(
    record_in: HealthRecordUpdate,
    id: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    # the body id wins over the query string
    record_id = record_in.id if record_in.id is not None else deps.parse_id(id, "record")
    record = health_records.get_for_user(db, record_id, user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Health record not found")

    changes = record_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
    if "type_id" in changes and health_types.get(db, changes["type_id"]) is None:
        raise HTTPException(status_code=400, detail="Invalid health type")

    health_records.update(db, record, changes)
    db.commit()
    db.refresh(record)
    invalidate_user_analytics(user_id)
    logger.info(f"Updated health record {record_id} for user {user_id}: {sorted(changes)}")

    track_event_safely(
        db, user_id, "health_record_updated", "health_record",
        entity_id=record.id, context=record_context(record),
    )
    return {
        "record": HealthRecordResponse.model_validate(record),
        "message": "Health record updated successfully",
    }


@router.delete("/records")
def delete_health_record(
    id: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    record_id = deps.parse_id(id, "record")
    record = health_records.get_for_user(db, record_id, user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Health record not found")

    health_records.delete(db, record)
    db.commit()
    invalidate_user_analytics(user_id)
    logger.info(f"Deleted health record {record_id} for user {user_id}")

    # The row is gone, so the event points at the UI action instead of the record
    track_event_safely(
        db,
        user_id,
        "health_record_deleted",
        "ui_interaction",
        context={"ui": {"route": RECORDS_ROUTE, "action": "delete"}, "custom": {"recordId": record_id}},
    )
    return {"message": "Health record deleted successfully"}


@router.get("/recent-records")
def list_recent_records(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    records = health_records.recent(db, user_id, limit=limit)
    return {
        "records": [HealthRecordWithType.model_validate(record) for record in records],
        "total": len(records),
    }


@router.get("/types", response_model=List[HealthTypeResponse])
def list_health_types(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    return health_types.list(db)


@router.get("/stats")
def get_health_stats(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    return HealthService(db).get_stats(user_id)


@router.get("/analytics/{type_slug}")
def get_health_analytics(
    type_slug: str,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    aggregation: str = Query("daily"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        return HealthService(db).get_analytics(user_id, type_slug, start_date, end_date, aggregation)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)


@router.get("/predictions/{type_slug}")
def get_health_predictions(
    type_slug: str,
    periods: int = Query(7, ge=1, le=90),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        return HealthService(db).get_predictions(user_id, type_slug, periods)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
