import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.services.habit_strength import HabitStrengthAnalyticsService
from healthtrack.utils.timezone import isoformat_now

logger = logging.getLogger(__name__)

router = APIRouter()

TimeRange = Literal["7d", "30d", "90d", "1y"]
WorkoutTimeRange = Literal["30d", "90d", "1y"]


def analytics_response(data: Any, user_id: str, **meta: Any) -> Dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "meta": {**meta, "userId": user_id, "generatedAt": isoformat_now()},
    }


@router.get("/frequency")
def get_behavior_frequency(
    time_range: TimeRange = Query("30d", alias="timeRange"),
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    aggregation: Literal["daily", "weekly"] = Query("daily"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        points, summary = HabitStrengthAnalyticsService(db).frequency_series(
            user_id, time_range, behavior_type, aggregation
        )
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return analytics_response(
        points,
        user_id,
        timeRange=time_range,
        behaviorType=behavior_type,
        aggregation=aggregation,
        **summary,
    )


@router.get("/summary")
def get_behavior_summary(
    time_range: TimeRange = Query("30d", alias="timeRange"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        data, meta = HabitStrengthAnalyticsService(db).summary(user_id, time_range)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return analytics_response(data, user_id, timeRange=time_range, **meta)


@router.get("/patterns")
def get_behavior_patterns(
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    min_confidence: float = Query(70, alias="minConfidence", ge=0, le=100),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        patterns = HabitStrengthAnalyticsService(db).recognize_patterns(user_id, behavior_type, min_confidence)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    patterns.sort(key=lambda pattern: pattern["confidence"], reverse=True)
    return analytics_response(
        patterns[:limit],
        user_id,
        behaviorType=behavior_type,
        minConfidence=min_confidence,
        limit=limit,
        totalPatterns=len(patterns),
        returnedPatterns=min(limit, len(patterns)),
    )


@router.get("/habit-strength")
def get_habit_strength(
    time_range: TimeRange = Query("30d", alias="timeRange"),
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        data = HabitStrengthAnalyticsService(db).calculate_habit_strength(user_id, behavior_type, time_range)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return analytics_response(data, user_id, timeRange=time_range, behaviorType=behavior_type)


@router.get("/context-patterns")
def get_workout_context_patterns(
    time_range: WorkoutTimeRange = Query("90d", alias="timeRange"),
    min_predictive_power: float = Query(50, alias="minPredictivePower", ge=0, le=100),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        contexts = HabitStrengthAnalyticsService(db).analyze_workout_contexts(user_id, time_range)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    filtered = [context for context in contexts if context["predictivePower"] >= min_predictive_power]
    return analytics_response(
        filtered,
        user_id,
        timeRange=time_range,
        minPredictivePower=min_predictive_power,
        totalPatterns=len(contexts),
        filteredPatterns=len(filtered),
    )
