from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from healthtrack.schemas.behavior import CamelModel
from healthtrack.utils.timezone import to_utc_naive

FrequencyPeriod = Literal["day", "week", "month"]
TimeOfDay = Literal["morning", "afternoon", "evening", "night"]
DayOfWeek = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
ContextType = Literal["environmental", "temporal", "social", "emotional"]
SortOrder = Literal["asc", "desc"]


class MicroPatternCreate(CamelModel):
    behavior_type: str = Field(..., min_length=1, max_length=50)
    frequency: int = Field(..., ge=1)
    frequency_period: FrequencyPeriod = "week"
    pattern_name: Optional[str] = Field(None, min_length=1, max_length=100)
    consistency: Optional[float] = Field(None, ge=0, le=100)
    sample_size: Optional[int] = Field(None, ge=1)
    triggers: Optional[Dict[str, Any]] = None
    outcomes: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None


class MicroPatternBulkCreate(CamelModel):
    patterns: List[MicroPatternCreate] = Field(..., min_length=1, max_length=20)


class MicroPatternUpdate(CamelModel):
    id: int = Field(..., gt=0)
    frequency: Optional[int] = Field(None, ge=1)
    triggers: Optional[Dict[str, Any]] = None
    outcomes: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None


class PatternFilters(CamelModel):
    behavior_type: Optional[str] = Field(None, max_length=50)
    pattern_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    min_strength: Optional[float] = Field(None, ge=0, le=100)
    min_confidence: Optional[float] = Field(None, ge=0, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)
    offset: int = Field(0, ge=0)
    sort_by: Literal["strength", "confidence", "frequency", "lastObserved", "createdAt"] = "lastObserved"
    sort_order: SortOrder = "desc"

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def check_range(self) -> "PatternFilters":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("Start date must be before or equal to end date")
        return self


class ContextAnalysisInput(CamelModel):
    context_type: ContextType
    context_name: str = Field(..., min_length=1, max_length=100)
    context_data: Dict[str, Any] = Field(default_factory=dict)
    time_of_day: Optional[TimeOfDay] = None
    day_of_week: Optional[DayOfWeek] = None
    location: Optional[str] = Field(None, max_length=100)
    weather: Optional[str] = Field(None, max_length=50)
    mood: Optional[str] = Field(None, max_length=50)
    energy_level: Optional[int] = Field(None, ge=1, le=10)
    stress_level: Optional[int] = Field(None, ge=1, le=10)
    social_context: Optional[str] = Field(None, max_length=50)


class ContextFilters(CamelModel):
    context_type: Optional[str] = Field(None, max_length=50)
    context_name: Optional[str] = Field(None, max_length=100)
    time_of_day: Optional[TimeOfDay] = None
    day_of_week: Optional[DayOfWeek] = None
    is_active: Optional[bool] = None
    min_predictive_power: Optional[float] = Field(None, ge=0, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)
    offset: int = Field(0, ge=0)
    sort_by: Literal["predictivePower", "frequency", "lastObserved", "createdAt"] = "lastObserved"
    sort_order: SortOrder = "desc"

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)


class DetectPatternsRequest(CamelModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def check_range(self) -> "DetectPatternsRequest":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("Start date must be before or equal to end date")
        return self


class MicroPatternResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    user_id: str
    pattern_name: str
    behavior_type: str
    frequency: int
    frequency_period: str
    consistency: float
    strength: float
    triggers: Optional[Dict[str, Any]] = None
    outcomes: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
    correlations: Optional[List[Dict[str, Any]]] = None
    confidence: float
    sample_size: int
    first_observed: datetime
    last_observed: datetime
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ContextPatternResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    user_id: str
    context_type: str
    context_name: str
    context_data: Optional[Dict[str, Any]] = None
    frequency: int
    time_of_day: Optional[str] = None
    day_of_week: Optional[str] = None
    location: Optional[str] = None
    weather: Optional[str] = None
    mood: Optional[str] = None
    energy_level: Optional[int] = None
    stress_level: Optional[int] = None
    social_context: Optional[str] = None
    behavior_correlations: Optional[Any] = None
    outcome_impact: Optional[Any] = None
    predictive_power: float
    first_observed: datetime
    last_observed: datetime
    is_active: bool
    created_at: datetime
    updated_at: datetime


class MicroBehaviorTrack(CamelModel):
    behavior_type: str = Field(..., min_length=1, max_length=50)
    consistency: Optional[float] = Field(None, ge=0, le=100)
    triggers: Optional[Dict[str, Any]] = None
    outcomes: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
