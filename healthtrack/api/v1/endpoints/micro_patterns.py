import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.models.behavior import MicroBehaviorPattern
from healthtrack.schemas.micro_behavior import (
    ContextAnalysisInput,
    ContextFilters,
    DetectPatternsRequest,
    MicroBehaviorTrack,
    MicroPatternBulkCreate,
    MicroPatternUpdate,
    PatternFilters,
)
from healthtrack.services.behavior_event_service import first_error_message
from healthtrack.services.micro_behavior_service import (
    MicroBehaviorService,
    serialize_context_pattern,
    serialize_pattern,
)
from healthtrack.utils.timezone import isoformat_now, isoformat_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_DETECTION_WINDOW = timedelta(days=30)


def validate_query(model, request: Request, user_id: str):
    params = {key: value for key, value in request.query_params.items() if key != "includeInsights"}
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        logger.warning(f"Invalid micro-pattern query from user {user_id}: {first_error_message(exc)}")
        raise HTTPException(status_code=422, detail=f"Invalid query parameters: {first_error_message(exc)}")


def summarize_patterns(patterns: Sequence[MicroBehaviorPattern]) -> Dict[str, Any]:
    """Overview of a page of patterns with simple coaching recommendations."""
    strong = [pattern for pattern in patterns if (pattern.strength or 0) >= 70]
    frequent = [pattern for pattern in patterns if (pattern.frequency or 0) >= 10]
    confident = [pattern for pattern in patterns if (pattern.confidence or 0) >= 80]
    by_type = Counter(pattern.behavior_type for pattern in patterns)

    recommendations: List[str] = []
    if patterns and len(strong) < len(patterns) / 2:
        recommendations.append("Focus on building consistency in your weaker behavior patterns")
    if patterns and len(frequent) < len(patterns) / 3:
        recommendations.append("Try increasing the frequency of your positive behaviors")
    if by_type:
        top_type = by_type.most_common(1)[0][0]
        recommendations.append(f"Your {top_type} patterns are most common - leverage this strength")
    if not patterns:
        recommendations.append("Keep tracking your activities so patterns can be detected")

    return {
        "totalPatterns": len(patterns),
        "strongPatterns": len(strong),
        "frequentPatterns": len(frequent),
        "highConfidencePatterns": len(confident),
        "patternsByType": dict(by_type),
        "recommendations": recommendations,
    }


def unpack_patterns(payload: Any) -> List[Any]:
    if isinstance(payload, dict) and "patterns" in payload:
        return payload["patterns"] if isinstance(payload["patterns"], list) else [payload["patterns"]]
    if isinstance(payload, list):
        return payload
    return [payload]


@router.get("/micro-patterns")
def list_micro_patterns(
    request: Request,
    include_insights: bool = Query(False, alias="includeInsights"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    filters = validate_query(PatternFilters, request, user_id)
    service = MicroBehaviorService(db)
    try:
        patterns = service.get_patterns(user_id, filters)
        total = service.count_patterns(user_id, filters)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)

    result: Dict[str, Any] = {
        "patterns": [serialize_pattern(pattern) for pattern in patterns],
        "pagination": {
            "total": total,
            "limit": filters.limit,
            "offset": filters.offset,
            "hasMore": filters.offset + len(patterns) < total,
        },
    }
    if include_insights:
        result["insights"] = summarize_patterns(patterns)
    return result


@router.post("/micro-patterns", status_code=status.HTTP_201_CREATED)
def create_micro_patterns(
    payload: Any = Body(...),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        bulk = MicroPatternBulkCreate.model_validate({"patterns": unpack_patterns(payload)})
    except ValidationError as exc:
        logger.warning(f"Micro-pattern validation failed for user {user_id}: {first_error_message(exc)}")
        raise HTTPException(status_code=422, detail=f"Validation failed: {first_error_message(exc)}")

    try:
        created = MicroBehaviorService(db).create_patterns(
            user_id, [item.model_dump(exclude_none=True) for item in bulk.patterns]
        )
    except HealthTrackError as exc:
        deps.raise_http_error(exc)

    for pattern in created:
        if pattern.confidence < 50:
            logger.warning(f"Low-confidence pattern {pattern.id} created for user {user_id}: {pattern.confidence:.1f}")
        if pattern.strength > 80 and pattern.frequency < 3:
            logger.warning(
                f"Pattern {pattern.id} for user {user_id} has high strength ({pattern.strength:.1f}) "
                f"from only {pattern.frequency} occurrences"
            )
    return {
        "patterns": [serialize_pattern(pattern) for pattern in created],
        "message": f"{len(created)} micro-behavior pattern(s) created successfully",
        "count": len(created),
    }


@router.put("/micro-patterns")
def update_micro_pattern(
    pattern_in: MicroPatternUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    updates = pattern_in.model_dump(exclude_unset=True, exclude={"id"})
    try:
        pattern = MicroBehaviorService(db).update_pattern(user_id, pattern_in.id, updates)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"pattern": serialize_pattern(pattern), "message": "Micro-behavior pattern updated successfully"}


@router.delete("/micro-patterns")
def delete_micro_pattern(
    id: Optional[str] = Query(None),
    archive: bool = Query(True),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    pattern_id = deps.parse_id(id, "pattern")
    service = MicroBehaviorService(db)
    try:
        if archive:
            service.archive_pattern(user_id, pattern_id)
            message = "Micro-behavior pattern archived successfully"
        else:
            service.delete_pattern(user_id, pattern_id)
            message = "Micro-behavior pattern deleted successfully"
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"message": message}


@router.post("/micro-patterns/track")
def track_micro_behavior(
    track_in: MicroBehaviorTrack,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    """Count one more occurrence of a behavior, creating its pattern on first sight."""
    data = track_in.model_dump(exclude_none=True, exclude={"behavior_type"})
    try:
        pattern = MicroBehaviorService(db).track_micro_behavior(user_id, track_in.behavior_type, data)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"pattern": serialize_pattern(pattern), "message": "Micro-behavior tracked successfully"}


@router.post("/micro-patterns/detect")
def detect_micro_patterns(
    request_in: Optional[DetectPatternsRequest] = Body(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    request_in = request_in or DetectPatternsRequest()
    end = request_in.end_date or utcnow()
    start = request_in.start_date or end - DEFAULT_DETECTION_WINDOW
    if start > end:
        raise HTTPException(status_code=422, detail="Start date must be before or equal to end date")

    try:
        detected = MicroBehaviorService(db).detect_patterns(user_id, start, end)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "patterns": detected,
        "count": len(detected),
        "storedCount": sum(1 for pattern in detected if "storedPatternId" in pattern),
        "timeframe": {"start": isoformat_utc(start), "end": isoformat_utc(end)},
    }


@router.get("/micro-patterns/insights")
def get_micro_pattern_insights(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        insights = MicroBehaviorService(db).generate_insights(user_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"insights": insights, "generatedAt": isoformat_now()}


@router.get("/micro-patterns/frequency")
def get_micro_pattern_frequency(
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        return MicroBehaviorService(db).analyze_behavior_frequency(user_id, behavior_type)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)


@router.get("/micro-patterns/triggers")
def get_micro_pattern_triggers(
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        triggers = MicroBehaviorService(db).identify_triggers(user_id, behavior_type)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"triggers": triggers, "count": len(triggers)}


@router.get("/micro-patterns/outcomes")
def get_micro_pattern_outcomes(
    behavior_type: Optional[str] = Query(None, alias="behaviorType", max_length=50),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        return MicroBehaviorService(db).measure_outcomes(user_id, behavior_type)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)


@router.get("/micro-patterns/export")
def export_micro_patterns(
    format: str = Query("json"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        exported = MicroBehaviorService(db).export_pattern_data(user_id, format)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    if format == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="micro-patterns.csv"'},
        )
    return exported


@router.get("/context-patterns")
def list_context_patterns(
    request: Request,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    filters = validate_query(ContextFilters, request, user_id)
    service = MicroBehaviorService(db)
    try:
        contexts = service.get_context_patterns(user_id, filters)
        total = service.count_context_patterns(user_id, filters)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "contextPatterns": [serialize_context_pattern(context) for context in contexts],
        "pagination": {
            "total": total,
            "limit": filters.limit,
            "offset": filters.offset,
            "hasMore": filters.offset + len(contexts) < total,
        },
    }


@router.post("/context-patterns")
def analyze_context_pattern(
    context_in: ContextAnalysisInput,
    response: Response,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        context = MicroBehaviorService(db).analyze_context(user_id, context_in.model_dump())
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    created = context.frequency == 1
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {
        "contextPattern": serialize_context_pattern(context),
        "message": "Context pattern created successfully" if created else "Context pattern updated successfully",
    }


@router.post("/correlations")
def correlate_context_behavior(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        correlations = MicroBehaviorService(db).correlate_context_behavior(user_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"correlations": correlations, "count": len(correlations)}
