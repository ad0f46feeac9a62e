from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

from healthtrack.utils.timezone import utcnow

Base = declarative_base()


class TimestampMixin:
    """Primary key plus created/updated timestamps shared by every table"""

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
