from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, JSON, Index

from healthtrack.db.base import Base, TimestampMixin
from healthtrack.utils.timezone import utcnow


class BehavioralEvent(TimestampMixin, Base):
    """A logged user action used for analytics"""
    __tablename__ = "behavioral_event"

    user_id = Column(String(255), nullable=False, index=True)
    event_name = Column(String(100), nullable=False)
    entity_type = Column(String(30), nullable=False)  # health_record, training_session, exercise_log, health_goal, ui_interaction
    entity_id = Column(Integer)
    context = Column(JSON)
    session_id = Column(String(100), index=True)

    __table_args__ = (
        Index("ix_behavioral_event_user_created", "user_id", "created_at"),
        Index("ix_behavioral_event_user_name", "user_id", "event_name"),
    )


class MicroBehaviorPattern(TimestampMixin, Base):
    """Derived aggregate (frequency / strength / confidence) of a recurring behavior"""
    __tablename__ = "micro_behavior_pattern"

    user_id = Column(String(255), nullable=False, index=True)
    pattern_name = Column(String(100), nullable=False)
    behavior_type = Column(String(50), nullable=False)
    frequency = Column(Integer, nullable=False, default=0)
    frequency_period = Column(String(20), nullable=False, default="week")
    consistency = Column(Float, nullable=False, default=0)
    strength = Column(Float, nullable=False, default=0)
    triggers = Column(JSON)
    outcomes = Column(JSON)
    context = Column(JSON)
    correlations = Column(JSON)
    confidence = Column(Float, nullable=False, default=0)
    sample_size = Column(Integer, nullable=False, default=1)
    first_observed = Column(DateTime, nullable=False, default=utcnow)
    last_observed = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_micro_behavior_pattern_user_type", "user_id", "behavior_type"),
    )


class ContextPattern(TimestampMixin, Base):
    """Recurring situational context (time, place, mood...) observed around behaviors"""
    __tablename__ = "context_pattern"

    user_id = Column(String(255), nullable=False, index=True)
    context_type = Column(String(50), nullable=False)
    context_name = Column(String(100), nullable=False)
    context_data = Column(JSON)
    frequency = Column(Integer, nullable=False, default=1)
    time_of_day = Column(String(20))  # morning, afternoon, evening, night
    day_of_week = Column(String(20))
    location = Column(String(100))
    weather = Column(String(50))
    mood = Column(String(50))
    energy_level = Column(Integer)
    stress_level = Column(Integer)
    social_context = Column(String(50))
    behavior_correlations = Column(JSON)
    outcome_impact = Column(JSON)
    predictive_power = Column(Float, nullable=False, default=0)
    first_observed = Column(DateTime, nullable=False, default=utcnow)
    last_observed = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_context_pattern_user_type_name", "user_id", "context_type", "context_name"),
    )
