from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Numeric, ForeignKey, Index
from sqlalchemy.orm import relationship

from healthtrack.db.base import Base, TimestampMixin


class HealthType(TimestampMixin, Base):
    """Catalogue of measurable health metrics (weight, steps, ...)"""
    __tablename__ = "health_type"

    slug = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    unit = Column(String(20), nullable=False)
    typical_range_low = Column(Float)
    typical_range_high = Column(Float)


class HealthRecord(TimestampMixin, Base):
    """A timestamped numeric measurement owned by a user"""
    __tablename__ = "health_record"

    user_id = Column(String(255), nullable=False, index=True)
    type_id = Column(Integer, ForeignKey("health_type.id"), nullable=False)
    value = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    unit = Column(String(20), nullable=False)
    recorded_at = Column(DateTime, nullable=False)

    health_type = relationship("HealthType", lazy="joined")

    __table_args__ = (
        Index("ix_health_record_user_type_recorded", "user_id", "type_id", "recorded_at"),
    )


class HealthGoal(TimestampMixin, Base):
    __tablename__ = "health_goal"

    user_id = Column(String(255), nullable=False, index=True)
    type_id = Column(Integer, ForeignKey("health_type.id"), nullable=False)
    target_value = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    target_date = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active, completed, paused

    health_type = relationship("HealthType", lazy="joined")

    __table_args__ = (
        Index("ix_health_goal_user_status", "user_id", "status"),
    )


class HealthReminder(TimestampMixin, Base):
    __tablename__ = "health_reminder"

    user_id = Column(String(255), nullable=False, index=True)
    type_id = Column(Integer, ForeignKey("health_type.id"), nullable=False)
    cron_expr = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    next_run_at = Column(DateTime, index=True)

    health_type = relationship("HealthType", lazy="joined")
