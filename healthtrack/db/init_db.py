import logging

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from healthtrack import models  # noqa: F401  registers every table on Base.metadata
from healthtrack.db.base import Base
from healthtrack.db.session import engine
from healthtrack.models.health import HealthType

logger = logging.getLogger(__name__)

# Goal range checks rely on ids 1-5 keeping this order
HEALTH_TYPES = [
    {"slug": "weight", "display_name": "Weight", "unit": "kg", "typical_range_low": 40.0, "typical_range_high": 150.0},
    {"slug": "heart_rate", "display_name": "Heart Rate", "unit": "bpm", "typical_range_low": 50.0, "typical_range_high": 100.0},
    {"slug": "steps", "display_name": "Steps", "unit": "steps", "typical_range_low": 5000.0, "typical_range_high": 15000.0},
    {"slug": "sleep", "display_name": "Sleep", "unit": "hours", "typical_range_low": 7.0, "typical_range_high": 9.0},
    {"slug": "blood_pressure_systolic", "display_name": "Blood Pressure (Systolic)", "unit": "mmHg", "typical_range_low": 90.0, "typical_range_high": 140.0},
    {"slug": "blood_pressure_diastolic", "display_name": "Blood Pressure (Diastolic)", "unit": "mmHg", "typical_range_low": 60.0, "typical_range_high": 90.0},
    {"slug": "water_intake", "display_name": "Water Intake", "unit": "ml", "typical_range_low": 1500.0, "typical_range_high": 3500.0},
    {"slug": "calories", "display_name": "Calories", "unit": "kcal", "typical_range_low": 1500.0, "typical_range_high": 3000.0},
    {"slug": "body_fat_percentage", "display_name": "Body Fat Percentage", "unit": "%", "typical_range_low": 10.0, "typical_range_high": 35.0},
    {"slug": "blood_glucose", "display_name": "Blood Glucose", "unit": "mg/dL", "typical_range_low": 70.0, "typical_range_high": 140.0},
]


def create_tables() -> None:
    """Create any table that does not exist yet."""
    existing_tables = set(inspect(engine).get_table_names())
    missing_tables = [name for name in Base.metadata.tables if name not in existing_tables]
    if missing_tables:
        logger.info(f"Creating missing database tables: {missing_tables}")
        Base.metadata.create_all(bind=engine)
    else:
        logger.info("All required database tables exist")


def seed_health_types(db: Session) -> int:
    """Insert the health type catalogue when the table is empty; returns rows added."""
    if db.query(HealthType.id).first() is not None:
        return 0
    for position, data in enumerate(HEALTH_TYPES, start=1):
        db.add(HealthType(id=position, **data))
    db.commit()
    logger.info(f"Seeded {len(HEALTH_TYPES)} health types")
    return len(HEALTH_TYPES)
