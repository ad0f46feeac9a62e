import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.core.config import settings
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.schemas.profile import (
    ConstraintType,
    FitnessGoalCreate,
    FitnessGoalResponse,
    FitnessGoalStatus,
    FitnessGoalType,
    FitnessGoalUpdate,
    Severity,
    UserConstraintCreate,
    UserConstraintResponse,
    UserConstraintUpdate,
    UserPreferenceResponse,
    UserPreferenceUpdate,
    UserProfileCreate,
    UserProfileResponse,
    UserProfileUpdate,
    check_goal_plan,
)
from healthtrack.services.profile_service import DEFAULT_PREFERENCES, UserProfileService
from healthtrack.utils.timezone import isoformat_now, isoformat_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def completion_meta(completeness: int, **extra: Any) -> Dict[str, Any]:
    threshold = settings.PROFILE_COMPLETION_THRESHOLD
    return {
        "completeness": completeness,
        "completion_threshold": threshold,
        "is_complete": completeness >= threshold,
        **extra,
    }


# Profile

@router.get("")
def get_profile(
    include_related: bool = Query(False, alias="includeRelated"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = UserProfileService(db)
    try:
        found = service.get_profile(user_id, include_related=include_related)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    if found is None:
        raise HTTPException(status_code=404, detail="User profile not found")

    profile = found["profile"]
    result: Dict[str, Any] = {
        "profile": UserProfileResponse.model_validate(profile),
        "stats": service.get_profile_stats(user_id),
        "meta": completion_meta(profile.profile_completeness),
    }
    if include_related:
        preferences = found["preferences"]
        result["fitnessGoals"] = [FitnessGoalResponse.model_validate(goal) for goal in found["fitness_goals"]]
        result["preferences"] = UserPreferenceResponse.model_validate(preferences) if preferences else None
        result["constraints"] = [UserConstraintResponse.model_validate(item) for item in found["constraints"]]
    return result


@router.post("", status_code=status.HTTP_201_CREATED)
def create_profile(
    profile_in: UserProfileCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = UserProfileService(db)
    try:
        profile = service.create_profile(user_id, profile_in.model_dump(exclude_none=True))
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "profile": UserProfileResponse.model_validate(profile),
        "stats": service.get_profile_stats(user_id),
        "message": "User profile created successfully",
        "meta": completion_meta(profile.profile_completeness),
    }


@router.put("")
def update_profile(
    profile_in: UserProfileUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = UserProfileService(db)
    found = service.get_profile(user_id)
    if found is None:
        raise HTTPException(status_code=404, detail="User profile not found")

    stored = found["profile"]
    if profile_in.updated_at is not None and stored.updated_at > profile_in.updated_at:
        logger.warning(f"Stale profile update rejected for user {user_id}")
        raise HTTPException(
            status_code=409,
            detail="Profile has been modified by another request. Please refresh and try again.",
        )

    updates = profile_in.model_dump(exclude_unset=True, exclude={"updated_at"})
    try:
        profile = service.update_profile(user_id, updates)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "profile": UserProfileResponse.model_validate(profile),
        "stats": service.get_profile_stats(user_id),
        "message": "User profile updated successfully",
        "meta": completion_meta(profile.profile_completeness, updated_fields=sorted(updates)),
    }


@router.delete("")
def delete_profile(
    confirm: bool = Query(False),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Profile deletion requires explicit confirmation")
    try:
        UserProfileService(db).delete_profile(user_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"message": "User profile deleted successfully"}


# Preferences

@router.get("/preferences")
def get_preferences(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    preferences = UserProfileService(db).get_preferences(user_id)
    if preferences is None:
        return {
            "preferences": UserPreferenceResponse(user_id=user_id, **DEFAULT_PREFERENCES),
            "isDefault": True,
            "message": "Default preferences returned - no custom preferences set",
        }
    return {
        "preferences": UserPreferenceResponse.model_validate(preferences),
        "isDefault": False,
        "lastUpdated": isoformat_utc(preferences.updated_at),
    }


@router.put("/preferences")
def update_preferences(
    preferences_in: UserPreferenceUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    changes = preferences_in.model_dump(exclude_unset=True, exclude_none=True)
    try:
        preferences = UserProfileService(db).update_preferences(user_id, changes)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "preferences": UserPreferenceResponse.model_validate(preferences),
        "message": "Preferences updated successfully",
        "updatedFields": sorted(changes),
    }


@router.delete("/preferences")
def reset_preferences(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        preferences = UserProfileService(db).reset_preferences(user_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "preferences": UserPreferenceResponse.model_validate(preferences),
        "message": "Preferences reset to defaults successfully",
        "resetAt": isoformat_now(),
    }


# Constraints

@router.get("/constraints")
def list_constraints(
    constraint_type: Optional[ConstraintType] = Query(None),
    severity: Optional[Severity] = Query(None),
    active_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        constraints, total = UserProfileService(db).list_constraints(
            user_id,
            constraint_type=constraint_type,
            severity=severity,
            active_only=active_only,
            limit=limit,
            offset=offset,
        )
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "constraints": [UserConstraintResponse.model_validate(item) for item in constraints],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(constraints) < total,
        },
    }


@router.post("/constraints", status_code=status.HTTP_201_CREATED)
def create_constraint(
    constraint_in: UserConstraintCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        constraint = UserProfileService(db).add_constraint(user_id, constraint_in.model_dump(exclude_none=True))
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "constraint": UserConstraintResponse.model_validate(constraint),
        "message": "Constraint created successfully",
    }


@router.put("/constraints")
def update_constraint(
    constraint_in: UserConstraintUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    updates = constraint_in.model_dump(exclude_unset=True, exclude={"id"})
    try:
        constraint = UserProfileService(db).update_constraint(user_id, constraint_in.id, updates)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {
        "constraint": UserConstraintResponse.model_validate(constraint),
        "message": "Constraint updated successfully",
    }


@router.delete("/constraints")
def remove_constraint(
    id: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    constraint_id = deps.parse_id(id, "constraint")
    try:
        UserProfileService(db).remove_constraint(user_id, constraint_id)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"message": "Constraint removed successfully"}


# Fitness goals

@router.get("/goals")
def list_fitness_goals(
    goal_status: Optional[FitnessGoalStatus] = Query(None, alias="status"),
    goal_type: Optional[FitnessGoalType] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        goals = UserProfileService(db).get_fitness_goals(user_id, status=goal_status, goal_type=goal_type)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"goals": [FitnessGoalResponse.model_validate(goal) for goal in goals], "total": len(goals)}


@router.post("/goals", status_code=status.HTTP_201_CREATED)
def create_fitness_goal(
    goal_in: FitnessGoalCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    try:
        goal = UserProfileService(db).add_fitness_goal(user_id, goal_in.model_dump(exclude_none=True))
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"goal": FitnessGoalResponse.model_validate(goal), "message": "Fitness goal created successfully"}


@router.put("/goals")
def update_fitness_goal(
    goal_in: FitnessGoalUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    service = UserProfileService(db)
    updates = goal_in.model_dump(exclude_unset=True, exclude={"id"})
    current = service.get_fitness_goal(user_id, goal_in.id)
    if current is not None and updates.keys() & {"goal_type", "target_value", "target_date"}:
        try:
            check_goal_plan(
                updates.get("goal_type", current.goal_type),
                updates.get("target_value", current.target_value),
                updates.get("target_date", current.target_date),
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))

    try:
        goal = service.update_fitness_goal(user_id, goal_in.id, updates)
    except HealthTrackError as exc:
        deps.raise_http_error(exc)
    return {"goal": FitnessGoalResponse.model_validate(goal), "message": "Fitness goal updated successfully"}
