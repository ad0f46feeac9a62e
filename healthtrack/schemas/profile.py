from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from healthtrack.utils.timezone import to_utc_naive, utcnow

FitnessLevel = Literal["beginner", "intermediate", "advanced"]
ActivityLevel = Literal["sedentary", "light", "moderate", "active", "very_active"]
FitnessGoalType = Literal[
    "weight_loss",
    "muscle_gain",
    "endurance",
    "strength",
    "flexibility",
    "general_fitness",
    "rehabilitation",
    "maintenance",
]
GoalPriority = Literal["low", "medium", "high", "critical"]
FitnessGoalStatus = Literal["active", "paused", "completed", "abandoned", "archived"]
WorkoutType = Literal[
    "strength", "cardio", "yoga", "pilates", "crossfit", "running",
    "cycling", "swimming", "hiking", "dancing", "martial_arts", "sports",
]
Equipment = Literal[
    "none", "dumbbells", "barbell", "resistance_bands", "kettlebell", "treadmill",
    "bike", "rowing_machine", "pull_up_bar", "yoga_mat", "foam_roller", "medicine_ball",
]
PreferredTime = Literal["early_morning", "morning", "late_morning", "afternoon", "evening", "night", "late_night"]
DayOfWeek = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
IntensityPreference = Literal["beginner", "intermediate", "advanced"]
ConstraintType = Literal["injury", "schedule", "equipment", "location", "medical"]
Severity = Literal["low", "medium", "high"]

MINIMUM_AGE = 13
MAX_GOAL_HORIZON = timedelta(days=730)


def _age_on(born: date, today: date) -> int:
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


# Profile schemas
class UserProfileBase(BaseModel):
    fitness_level: Optional[FitnessLevel] = None
    experience_years: Optional[int] = Field(None, ge=0, le=80)
    timezone: Optional[str] = Field(None, min_length=1, max_length=50)
    date_of_birth: Optional[date] = None
    height: Optional[float] = Field(None, ge=50, le=300, description="Height in cm")
    weight: Optional[float] = Field(None, ge=20, le=500, description="Weight in kg")
    activity_level: Optional[ActivityLevel] = None

    @field_validator("date_of_birth")
    @classmethod
    def old_enough(cls, v: Optional[date]) -> Optional[date]:
        if v is None:
            return v
        today = utcnow().date()
        if v > today:
            raise ValueError("Date of birth cannot be in the future")
        if _age_on(v, today) < MINIMUM_AGE:
            raise ValueError(f"User must be at least {MINIMUM_AGE} years old")
        return v


class UserProfileCreate(UserProfileBase):
    pass


class UserProfileUpdate(UserProfileBase):
    # Optimistic concurrency: reject when the stored profile is newer
    updated_at: Optional[datetime] = None

    @field_validator("updated_at")
    @classmethod
    def normalize_updated_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def has_changes(self) -> "UserProfileUpdate":
        if not (self.model_fields_set - {"updated_at"}):
            raise ValueError("At least one field must be provided for update")
        return self


class UserProfileResponse(BaseModel):
    id: int
    user_id: str
    fitness_level: Optional[str] = None
    experience_years: Optional[int] = None
    timezone: Optional[str] = None
    date_of_birth: Optional[date] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    activity_level: Optional[str] = None
    profile_completeness: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Fitness goal schemas
def _check_goal_date(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    v = to_utc_naive(v)
    now = utcnow()
    if v <= now or v > now + MAX_GOAL_HORIZON:
        raise ValueError("Target date must be in the future but within 2 years")
    return v


def check_goal_plan(goal_type: Optional[str], target_value: Optional[float], target_date: Optional[datetime]) -> None:
    if goal_type == "weight_loss" and target_value and target_value > 50:
        raise ValueError("Goal target or timeline is not reasonable for the specified goal type")
    if goal_type == "muscle_gain" and target_value and target_value > 30:
        raise ValueError("Goal target or timeline is not reasonable for the specified goal type")
    if target_date is not None:
        days = (target_date - utcnow()).days
        if (goal_type == "weight_loss" and days < 30) or (goal_type == "muscle_gain" and days < 60):
            raise ValueError("Goal target or timeline is not reasonable for the specified goal type")


class FitnessGoalCreate(BaseModel):
    goal_type: FitnessGoalType
    target_value: Optional[float] = Field(None, gt=0)
    target_unit: Optional[str] = Field(None, max_length=20)
    target_date: Optional[datetime] = None
    priority: GoalPriority = "medium"
    status: FitnessGoalStatus = "active"
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("target_date")
    @classmethod
    def target_date_window(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_goal_date(v)

    @model_validator(mode="after")
    def reasonable_plan(self) -> "FitnessGoalCreate":
        check_goal_plan(self.goal_type, self.target_value, self.target_date)
        return self


class FitnessGoalUpdate(BaseModel):
    id: int = Field(..., gt=0)
    goal_type: Optional[FitnessGoalType] = None
    target_value: Optional[float] = Field(None, gt=0)
    target_unit: Optional[str] = Field(None, max_length=20)
    target_date: Optional[datetime] = None
    priority: Optional[GoalPriority] = None
    status: Optional[FitnessGoalStatus] = None
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("target_date")
    @classmethod
    def target_date_window(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_goal_date(v)


class FitnessGoalResponse(BaseModel):
    id: int
    user_id: str
    goal_type: str
    target_value: Optional[float] = None
    target_unit: Optional[str] = None
    target_date: Optional[datetime] = None
    priority: str
    status: str
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Preference schemas
class UserPreferenceUpdate(BaseModel):
    preferred_workout_types: Optional[List[WorkoutType]] = Field(None, max_length=5)
    preferred_times: Optional[List[PreferredTime]] = None
    preferred_days: Optional[List[DayOfWeek]] = None
    available_equipment: Optional[List[Equipment]] = Field(None, max_length=10)
    session_duration_min: Optional[int] = Field(None, ge=5, le=300)
    session_duration_max: Optional[int] = Field(None, ge=5, le=300)
    workout_frequency_per_week: Optional[int] = Field(None, ge=0, le=14)
    intensity_preference: Optional[IntensityPreference] = None
    music_enabled: Optional[bool] = None
    reminders_enabled: Optional[bool] = None
    auto_progression: Optional[bool] = None

    @model_validator(mode="after")
    def check_preferences(self) -> "UserPreferenceUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one preference must be provided")
        if (
            self.session_duration_min is not None
            and self.session_duration_max is not None
            and self.session_duration_min > self.session_duration_max
        ):
            raise ValueError("Minimum session duration cannot exceed maximum session duration")
        return self


class UserPreferenceResponse(BaseModel):
    id: Optional[int] = None
    user_id: str
    preferred_workout_types: List[str] = []
    preferred_times: List[str] = []
    preferred_days: List[str] = []
    available_equipment: List[str] = []
    session_duration_min: int
    session_duration_max: int
    workout_frequency_per_week: int
    intensity_preference: str
    music_enabled: bool
    reminders_enabled: bool
    auto_progression: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("preferred_workout_types", "preferred_times", "preferred_days", "available_equipment", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


# Constraint schemas
class ConstraintFields(BaseModel):
    description: Optional[str] = Field(None, max_length=500)
    affected_body_parts: Optional[List[str]] = Field(None, max_length=10)
    restricted_exercises: Optional[List[str]] = Field(None, max_length=20)
    restricted_equipment: Optional[List[str]] = Field(None, max_length=20)
    time_restrictions: Optional[Dict[str, Any]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)


def _check_constraint_dates(start: Optional[datetime], end: Optional[datetime], is_active: Optional[bool]) -> None:
    if start and end and start > end:
        raise ValueError("Start date must be before or equal to end date")
    if end and is_active is not False and end < utcnow():
        raise ValueError("End date cannot be in the past unless constraint is resolved")


class UserConstraintCreate(ConstraintFields):
    constraint_type: ConstraintType
    title: str = Field(..., min_length=1, max_length=100)
    severity: Severity = "medium"
    is_active: bool = True

    @model_validator(mode="after")
    def check_dates(self) -> "UserConstraintCreate":
        _check_constraint_dates(self.start_date, self.end_date, self.is_active)
        return self


class UserConstraintUpdate(ConstraintFields):
    id: int = Field(..., gt=0)
    constraint_type: Optional[ConstraintType] = None
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    severity: Optional[Severity] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def check_dates(self) -> "UserConstraintUpdate":
        _check_constraint_dates(self.start_date, self.end_date, self.is_active)
        return self


class UserConstraintResponse(BaseModel):
    id: int
    user_id: str
    constraint_type: str
    severity: str
    title: str
    description: Optional[str] = None
    affected_body_parts: Optional[List[str]] = None
    restricted_exercises: Optional[List[str]] = None
    restricted_equipment: Optional[List[str]] = None
    time_restrictions: Optional[Dict[str, Any]] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
