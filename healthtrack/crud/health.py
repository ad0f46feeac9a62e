from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func
from sqlalchemy.orm import Session

from healthtrack.models.health import HealthType, HealthRecord, HealthGoal, HealthReminder


class CRUDHealthType:
    @staticmethod
    def list(db: Session) -> List[HealthType]:
        return db.query(HealthType).order_by(asc(HealthType.id)).all()

    @staticmethod
    def get(db: Session, type_id: int) -> Optional[HealthType]:
        return db.query(HealthType).filter(HealthType.id == type_id).first()

    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[HealthType]:
        return db.query(HealthType).filter(HealthType.slug == slug).first()

    @staticmethod
    def count(db: Session) -> int:
        return db.query(func.count(HealthType.id)).scalar() or 0


class CRUDHealthRecord:
    @staticmethod
    def get_for_user(db: Session, record_id: int, user_id: str) -> Optional[HealthRecord]:
        return db.query(HealthRecord).filter(
            and_(HealthRecord.id == record_id, HealthRecord.user_id == user_id)
        ).first()

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        *,
        type_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[HealthRecord], int]:
        q = db.query(HealthRecord).filter(HealthRecord.user_id == user_id)
        if type_id is not None:
            q = q.filter(HealthRecord.type_id == type_id)
        if start_date is not None:
            q = q.filter(HealthRecord.recorded_at >= start_date)
        if end_date is not None:
            q = q.filter(HealthRecord.recorded_at <= end_date)
        total = q.count()
        items = q.order_by(desc(HealthRecord.recorded_at)).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def recent(db: Session, user_id: str, limit: int = 5) -> List[HealthRecord]:
        return (
            db.query(HealthRecord)
            .filter(HealthRecord.user_id == user_id)
            .order_by(desc(HealthRecord.recorded_at))
            .limit(limit)
            .all()
        )

    @staticmethod
    def latest_of_type(db: Session, user_id: str, type_id: int) -> Optional[HealthRecord]:
        return (
            db.query(HealthRecord)
            .filter(and_(HealthRecord.user_id == user_id, HealthRecord.type_id == type_id))
            .order_by(desc(HealthRecord.recorded_at))
            .first()
        )

    @staticmethod
    def in_range(
        db: Session, user_id: str, type_id: int, start: datetime, end: datetime
    ) -> List[HealthRecord]:
        return (
            db.query(HealthRecord)
            .filter(
                and_(
                    HealthRecord.user_id == user_id,
                    HealthRecord.type_id == type_id,
                    HealthRecord.recorded_at >= start,
                    HealthRecord.recorded_at <= end,
                )
            )
            .order_by(asc(HealthRecord.recorded_at))
            .all()
        )

    @staticmethod
    def count_for_user(
        db: Session,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        q = db.query(func.count(HealthRecord.id)).filter(HealthRecord.user_id == user_id)
        if start is not None:
            q = q.filter(HealthRecord.recorded_at >= start)
        if end is not None:
            q = q.filter(HealthRecord.recorded_at < end)
        return q.scalar() or 0

    @staticmethod
    def create(db: Session, user_id: str, data: Dict[str, Any]) -> HealthRecord:
        db_obj = HealthRecord(user_id=user_id, **data)
        db.add(db_obj)
        db.flush()
        return db_obj

    @staticmethod
    def update(db: Session, db_obj: HealthRecord, changes: Dict[str, Any]) -> HealthRecord:
        for field, value in changes.items():
            setattr(db_obj, field, value)
        db.flush()
        return db_obj

    @staticmethod
    def delete(db: Session, db_obj: HealthRecord) -> None:
        db.delete(db_obj)
        db.flush()


class CRUDHealthGoal:
    @staticmethod
    def get_for_user(db: Session, goal_id: int, user_id: str) -> Optional[HealthGoal]:
        return db.query(HealthGoal).filter(
            and_(HealthGoal.id == goal_id, HealthGoal.user_id == user_id)
        ).first()

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        *,
        type_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[HealthGoal]:
        q = db.query(HealthGoal).filter(HealthGoal.user_id == user_id)
        if type_id is not None:
            q = q.filter(HealthGoal.type_id == type_id)
        if status:
            q = q.filter(HealthGoal.status == status)
        return q.order_by(desc(HealthGoal.created_at), desc(HealthGoal.id)).all()

    @staticmethod
    def get_active_for_type(db: Session, user_id: str, type_id: int) -> Optional[HealthGoal]:
        return db.query(HealthGoal).filter(
            and_(
                HealthGoal.user_id == user_id,
                HealthGoal.type_id == type_id,
                HealthGoal.status == "active",
            )
        ).first()

    @staticmethod
    def count_by_status(db: Session, user_id: str, status: str) -> int:
        return db.query(func.count(HealthGoal.id)).filter(
            and_(HealthGoal.user_id == user_id, HealthGoal.status == status)
        ).scalar() or 0

    @staticmethod
    def create(db: Session, user_id: str, data: Dict[str, Any]) -> HealthGoal:
        db_obj = HealthGoal(user_id=user_id, **data)
        db.add(db_obj)
        db.flush()
        return db_obj

    @staticmethod
    def update(db: Session, db_obj: HealthGoal, changes: Dict[str, Any]) -> HealthGoal:
        for field, value in changes.items():
            setattr(db_obj, field, value)
        db.flush()
        return db_obj


class CRUDHealthReminder:
    @staticmethod
    def get_for_user(db: Session, reminder_id: int, user_id: str) -> Optional[HealthReminder]:
        return db.query(HealthReminder).filter(
            and_(HealthReminder.id == reminder_id, HealthReminder.user_id == user_id)
        ).first()

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        *,
        active: Optional[bool] = None,
        type_id: Optional[int] = None,
    ) -> List[HealthReminder]:
        q = db.query(HealthReminder).filter(HealthReminder.user_id == user_id)
        if active is not None:
            q = q.filter(HealthReminder.active == active)
        if type_id is not None:
            q = q.filter(HealthReminder.type_id == type_id)
        return q.order_by(desc(HealthReminder.created_at), desc(HealthReminder.id)).all()

    @staticmethod
    def list_due(db: Session, now: datetime) -> List[HealthReminder]:
        return (
            db.query(HealthReminder)
            .filter(
                and_(
                    HealthReminder.active == True,  # noqa: E712
                    HealthReminder.next_run_at.isnot(None),
                    HealthReminder.next_run_at <= now,
                )
            )
            .order_by(asc(HealthReminder.next_run_at))
            .all()
        )

    @staticmethod
    def create(db: Session, user_id: str, data: Dict[str, Any]) -> HealthReminder:
        db_obj = HealthReminder(user_id=user_id, **data)
        db.add(db_obj)
        db.flush()
        return db_obj

    @staticmethod
    def update(db: Session, db_obj: HealthReminder, changes: Dict[str, Any]) -> HealthReminder:
        for field, value in changes.items():
            setattr(db_obj, field, value)
        db.flush()
        return db_obj


health_types = CRUDHealthType()
health_records = CRUDHealthRecord()
health_goals = CRUDHealthGoal()
health_reminders = CRUDHealthReminder()
