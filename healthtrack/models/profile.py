from sqlalchemy import Column, Integer, String, DateTime, Date, Float, Boolean, Text, JSON

from healthtrack.db.base import Base, TimestampMixin
from healthtrack.utils.timezone import utcnow


class UserProfile(TimestampMixin, Base):
    __tablename__ = "user_profile"

    user_id = Column(String(255), nullable=False, unique=True, index=True)
    fitness_level = Column(String(20))  # beginner, intermediate, advanced
    experience_years = Column(Integer)
    timezone = Column(String(50), default="UTC")
    date_of_birth = Column(Date)
    height = Column(Float)  # cm
    weight = Column(Float)  # kg
    activity_level = Column(String(20), default="moderate")
    profile_completeness = Column(Integer, nullable=False, default=0)


class UserFitnessGoal(TimestampMixin, Base):
    __tablename__ = "user_fitness_goal"

    user_id = Column(String(255), nullable=False, index=True)
    goal_type = Column(String(30), nullable=False)
    target_value = Column(Float)
    target_unit = Column(String(20))
    target_date = Column(DateTime)
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="active")
    description = Column(String(200))
    notes = Column(Text)


class UserPreference(TimestampMixin, Base):
    __tablename__ = "user_preference"

    user_id = Column(String(255), nullable=False, unique=True, index=True)
    preferred_workout_types = Column(JSON, default=list)
    preferred_times = Column(JSON, default=list)
    preferred_days = Column(JSON, default=list)
    available_equipment = Column(JSON, default=list)
    session_duration_min = Column(Integer, nullable=False, default=30)
    session_duration_max = Column(Integer, nullable=False, default=60)
    workout_frequency_per_week = Column(Integer, nullable=False, default=3)
    intensity_preference = Column(String(20), nullable=False, default="intermediate")
    music_enabled = Column(Boolean, nullable=False, default=True)
    reminders_enabled = Column(Boolean, nullable=False, default=True)
    auto_progression = Column(Boolean, nullable=False, default=True)


class UserConstraint(TimestampMixin, Base):
    """Injury, schedule, equipment, location or medical limitation"""
    __tablename__ = "user_constraint"

    user_id = Column(String(255), nullable=False, index=True)
    constraint_type = Column(String(20), nullable=False)
    severity = Column(String(10), nullable=False, default="medium")
    title = Column(String(100), nullable=False)
    description = Column(Text)
    affected_body_parts = Column(JSON)
    restricted_exercises = Column(JSON)
    restricted_equipment = Column(JSON)
    time_restrictions = Column(JSON)
    start_date = Column(DateTime, nullable=False, default=utcnow)
    end_date = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)
