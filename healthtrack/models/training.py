from sqlalchemy import Column, Integer, String, DateTime, Float, Text, ForeignKey

from healthtrack.db.base import Base, TimestampMixin
from healthtrack.utils.timezone import utcnow


class TrainingSession(TimestampMixin, Base):
    __tablename__ = "training_session"

    user_id = Column(String(255), nullable=False, index=True)
    session_date = Column(DateTime, nullable=False, default=utcnow)
    duration_minutes = Column(Integer)
    notes = Column(Text)


class ExerciseLog(TimestampMixin, Base):
    """One logged exercise; rpe (rate of perceived exertion, 1-10) drives workout success"""
    __tablename__ = "exercise_log"

    user_id = Column(String(255), nullable=False, index=True)
    training_session_id = Column(Integer, ForeignKey("training_session.id"))
    exercise_name = Column(String(100), nullable=False)
    sets = Column(Integer)
    reps = Column(Integer)
    weight = Column(Float)
    rpe = Column(Integer)
    logged_at = Column(DateTime, nullable=False, default=utcnow)
