import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from healthtrack.utils.timezone import to_utc_naive

EntityType = Literal["health_record", "training_session", "exercise_log", "health_goal", "ui_interaction"]

ENTITY_TYPES = ("health_record", "training_session", "exercise_log", "health_goal", "ui_interaction")

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

COMMON_EVENTS = {
    "workout_started",
    "workout_completed",
    "workout_paused",
    "health_record_added",
    "health_record_updated",
    "health_record_deleted",
    "health_record_viewed",
    "health_records_queried",
    "goal_created",
    "goal_updated",
    "goal_achieved",
    "goal_progress_viewed",
    "training_plan_created",
    "training_plan_started",
    "exercise_log_created",
    "ui_click",
    "ui_view",
    "ui_interaction",
    "page_view",
    "component_mounted",
    "health_overview_viewed",
    "exercise_overview_viewed",
    "stats_viewed",
    "quick_action_clicked",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Context sub-objects
class DeviceInfo(CamelModel):
    user_agent: Optional[str] = Field(None, max_length=500)
    platform: Optional[str] = Field(None, max_length=50)
    screen_width: Optional[int] = Field(None, ge=1, le=10000)
    screen_height: Optional[int] = Field(None, ge=1, le=10000)
    device_type: Optional[Literal["mobile", "tablet", "desktop"]] = None
    browser: Optional[str] = Field(None, max_length=50)
    os: Optional[str] = Field(None, max_length=50)


class Position(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None


class Viewport(BaseModel):
    width: Optional[int] = Field(None, ge=1)
    height: Optional[int] = Field(None, ge=1)


class UIState(CamelModel):
    component_name: Optional[str] = Field(None, max_length=100)
    route: Optional[str] = Field(None, max_length=200)
    action: Optional[str] = Field(None, max_length=100)
    element_id: Optional[str] = Field(None, max_length=100)
    element_type: Optional[str] = Field(None, max_length=50)
    position: Optional[Position] = None
    viewport: Optional[Viewport] = None


class EnvironmentData(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    timestamp: Optional[datetime] = None
    timezone: Optional[str] = Field(None, max_length=50)
    locale: Optional[str] = Field(None, max_length=10)
    session_duration: Optional[int] = Field(None, ge=0)
    page_load_time: Optional[float] = Field(None, ge=0)
    network_type: Optional[Literal["slow-2g", "2g", "3g", "4g", "wifi", "ethernet", "unknown"]] = None
    referrer: Optional[str] = Field(None, max_length=500)


class HealthData(CamelModel):
    record_type: Optional[str] = Field(None, max_length=50)
    value: Optional[float] = None
    unit: Optional[str] = Field(None, max_length=20)
    goal_id: Optional[int] = Field(None, gt=0)


class ExerciseData(CamelModel):
    exercise_type: Optional[str] = Field(None, max_length=100)
    duration: Optional[float] = Field(None, ge=0)
    intensity: Optional[Literal["low", "moderate", "high"]] = None
    plan_id: Optional[int] = Field(None, gt=0)
    session_id: Optional[int] = Field(None, gt=0)


class PerformanceData(CamelModel):
    load_time: Optional[float] = Field(None, ge=0)
    render_time: Optional[float] = Field(None, ge=0)
    interaction_time: Optional[float] = Field(None, ge=0)


class EventContext(CamelModel):
    """
    Context attached to a behavioral event.

    Besides the typed blocks, free-form keys such as behaviorType, mood,
    location, timeOfDay, energyLevel, success, completed and outcome are kept
    as-is; the analytics services read them.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    device: Optional[DeviceInfo] = None
    ui: Optional[UIState] = None
    environment: Optional[EnvironmentData] = None
    custom: Optional[Dict[str, Any]] = None
    health_data: Optional[HealthData] = None
    exercise_data: Optional[ExerciseData] = None
    performance: Optional[PerformanceData] = None


def _check_identifier(value: str, label: str) -> str:
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"{label} must contain only alphanumeric characters, underscores, and hyphens")
    return value


class BehaviorEventCreate(CamelModel):
    event_name: str = Field(..., min_length=1, max_length=100)
    entity_type: EntityType
    entity_id: Optional[int] = Field(None, gt=0)
    context: Optional[EventContext] = None
    session_id: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator("event_name")
    @classmethod
    def event_name_format(cls, v: str) -> str:
        _check_identifier(v, "Event name")
        if v not in COMMON_EVENTS and "_" not in v:
            raise ValueError("Event name should be a known event or follow snake_case convention with underscores")
        return v

    @field_validator("session_id")
    @classmethod
    def session_id_format(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_identifier(v, "Session ID")

    @model_validator(mode="after")
    def entity_rules(self) -> "BehaviorEventCreate":
        if self.entity_type != "ui_interaction" and not self.entity_id:
            raise ValueError("Entity ID is required for non-UI interaction events")
        if self.entity_type == "ui_interaction" and (self.context is None or self.context.ui is None):
            raise ValueError("UI interaction events must include UI context data")
        return self

    def context_dict(self) -> Optional[Dict[str, Any]]:
        if self.context is None:
            return None
        return self.context.model_dump(mode="json", by_alias=True, exclude_none=True)


class BehaviorEventBulkCreate(CamelModel):
    events: List[BehaviorEventCreate] = Field(..., min_length=1, max_length=50)

    @model_validator(mode="after")
    def single_session(self) -> "BehaviorEventBulkCreate":
        session_ids = {event.session_id for event in self.events if event.session_id is not None}
        if len(session_ids) > 1:
            raise ValueError("All events in a bulk operation should have the same session ID")
        return self


SortField = Literal["createdAt", "eventName", "entityType"]


class BehaviorEventQuery(CamelModel):
    event_name: Optional[str] = Field(None, max_length=100)
    entity_type: Optional[EntityType] = None
    entity_id: Optional[int] = Field(None, gt=0)
    session_id: Optional[str] = Field(None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)
    offset: int = Field(0, ge=0)
    sort_by: SortField = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def check_ranges(self) -> "BehaviorEventQuery":
        if self.start_date and self.end_date:
            if self.start_date > self.end_date:
                raise ValueError("Start date must be before or equal to end date")
            if self.end_date - self.start_date > timedelta(days=365):
                raise ValueError("Date range cannot exceed one year")
        if self.entity_id and not self.entity_type:
            raise ValueError("Entity type must be provided when filtering by entity ID")
        return self


class BehaviorEventResponse(CamelModel):
    id: int
    user_id: str
    event_name: str
    entity_type: str
    entity_id: Optional[int] = None
    context: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
