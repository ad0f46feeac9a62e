from datetime import datetime, timedelta
from typing import Optional, List, Literal

from croniter import croniter
from pydantic import BaseModel, Field, field_validator, model_validator

from healthtrack.utils.timezone import to_utc_naive, utcnow

HEALTH_UNITS = [
    "kg", "lbs", "mmHg", "bpm", "steps", "hours", "ml", "oz",
    "kcal", "minutes", "mg/dL", "mmol/L", "°C", "°F", "%",
]

# Per-unit ceilings applied on top of the global value ceiling
UNIT_MAXIMUMS = {"%": 100, "hours": 24, "minutes": 1440}

MAX_RECORD_VALUE = 10000

# Reasonable target ranges keyed by health type id
GOAL_TARGET_RANGES = {
    1: (30, 300),      # weight (kg)
    2: (50, 200),      # heart rate (bpm)
    3: (1000, 50000),  # steps
    4: (1, 24),        # sleep (hours)
    5: (30, 300),      # blood pressure systolic (mmHg)
}

GoalStatus = Literal["active", "completed", "paused"]


def _check_unit(unit: str) -> str:
    if unit not in HEALTH_UNITS:
        raise ValueError(f"Invalid unit. Must be one of: {', '.join(HEALTH_UNITS)}")
    return unit


def _check_recorded_at(value: datetime) -> datetime:
    value = to_utc_naive(value)
    now = utcnow()
    if value > now:
        raise ValueError("Recorded date cannot be in the future")
    if value < now - timedelta(days=365):
        raise ValueError("Recorded date cannot be more than one year ago")
    return value


def _check_value_for_unit(value: Optional[float], unit: Optional[str]) -> None:
    if value is None or unit is None:
        return
    ceiling = UNIT_MAXIMUMS.get(unit)
    if ceiling is not None and value > ceiling:
        raise ValueError("Value is not reasonable for the specified unit")


# Health type schemas
class HealthTypeResponse(BaseModel):
    id: int
    slug: str
    display_name: str
    unit: str
    typical_range_low: Optional[float] = None
    typical_range_high: Optional[float] = None

    class Config:
        from_attributes = True


# Health record schemas
class HealthRecordCreate(BaseModel):
    type_id: int = Field(..., gt=0, description="Health type ID")
    value: float = Field(..., gt=0, le=MAX_RECORD_VALUE, description="Measured value")
    unit: str = Field(..., min_length=1, max_length=20)
    recorded_at: datetime = Field(..., description="When the measurement was taken")

    @field_validator("unit")
    @classmethod
    def unit_is_known(cls, v: str) -> str:
        return _check_unit(v)

    @field_validator("recorded_at")
    @classmethod
    def recorded_at_in_window(cls, v: datetime) -> datetime:
        return _check_recorded_at(v)

    @model_validator(mode="after")
    def value_matches_unit(self) -> "HealthRecordCreate":
        _check_value_for_unit(self.value, self.unit)
        return self


class HealthRecordUpdate(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    type_id: Optional[int] = Field(None, gt=0)
    value: Optional[float] = Field(None, gt=0, le=MAX_RECORD_VALUE)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    recorded_at: Optional[datetime] = None

    @field_validator("unit")
    @classmethod
    def unit_is_known(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_unit(v)

    @field_validator("recorded_at")
    @classmethod
    def recorded_at_in_window(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _check_recorded_at(v)

    @model_validator(mode="after")
    def has_changes(self) -> "HealthRecordUpdate":
        if not (self.model_fields_set - {"id"}):
            raise ValueError("At least one field must be provided for update")
        _check_value_for_unit(self.value, self.unit)
        return self


class HealthRecordBulkCreate(BaseModel):
    records: List[HealthRecordCreate] = Field(..., min_length=1, max_length=50)


class HealthRecordResponse(BaseModel):
    id: int
    user_id: str
    type_id: int
    value: float
    unit: str
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HealthRecordWithType(HealthRecordResponse):
    health_type: Optional[HealthTypeResponse] = None


# Health goal schemas
class HealthGoalCreate(BaseModel):
    type_id: int = Field(..., gt=0)
    target_value: float = Field(..., gt=0)
    target_date: datetime
    status: GoalStatus = "active"

    @field_validator("target_date")
    @classmethod
    def target_date_in_future(cls, v: datetime) -> datetime:
        v = to_utc_naive(v)
        if v <= utcnow():
            raise ValueError("Target date must be in the future")
        return v

    @model_validator(mode="after")
    def target_in_range(self) -> "HealthGoalCreate":
        check_goal_target(self.type_id, self.target_value)
        return self


class HealthGoalUpdate(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    target_value: Optional[float] = Field(None, gt=0)
    target_date: Optional[datetime] = None
    status: Optional[GoalStatus] = None

    @field_validator("target_date")
    @classmethod
    def target_date_in_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        v = to_utc_naive(v)
        if v <= utcnow():
            raise ValueError("Target date must be in the future")
        return v

    @model_validator(mode="after")
    def has_changes(self) -> "HealthGoalUpdate":
        if not (self.model_fields_set - {"id"}):
            raise ValueError("At least one field must be provided for update")
        return self


class HealthGoalResponse(BaseModel):
    id: int
    user_id: str
    type_id: int
    target_value: float
    target_date: datetime
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def check_goal_target(type_id: int, target_value: float) -> None:
    bounds = GOAL_TARGET_RANGES.get(type_id)
    if bounds and not (bounds[0] <= target_value <= bounds[1]):
        raise ValueError(
            f"Target value for this health type must be between {bounds[0]} and {bounds[1]}"
        )


# Health reminder schemas
def _check_cron(expr: str) -> str:
    expr = expr.strip()
    if not expr:
        raise ValueError("Cron expression is required")
    if expr.startswith("@"):
        valid = expr in ("@yearly", "@annually", "@monthly", "@weekly", "@daily", "@hourly")
    else:
        valid = len(expr.split()) == 5 and croniter.is_valid(expr)
    if not valid:
        raise ValueError(
            'Invalid cron expression format. Use standard cron syntax (e.g., "0 9 * * *") '
            'or named schedules (e.g., "@daily")'
        )
    return expr


def _check_message(message: str) -> str:
    message = message.strip()
    if not message:
        raise ValueError("Reminder message is required")
    if len(message) > 500:
        raise ValueError("Reminder message must be 500 characters or less")
    return message


class HealthReminderCreate(BaseModel):
    type_id: int = Field(..., gt=0)
    cron_expr: str
    message: str
    active: bool

    @field_validator("cron_expr")
    @classmethod
    def cron_is_valid(cls, v: str) -> str:
        return _check_cron(v)

    @field_validator("message")
    @classmethod
    def message_is_valid(cls, v: str) -> str:
        return _check_message(v)


class HealthReminderUpdate(BaseModel):
    id: Optional[int] = Field(None, gt=0)
    type_id: Optional[int] = Field(None, gt=0)
    cron_expr: Optional[str] = None
    message: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("cron_expr")
    @classmethod
    def cron_is_valid(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_cron(v)

    @field_validator("message")
    @classmethod
    def message_is_valid(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_message(v)


class HealthReminderResponse(BaseModel):
    id: int
    user_id: str
    type_id: int
    cron_expr: str
    message: str
    active: bool
    next_run_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
