import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from healthtrack.api import deps
from healthtrack.crud import health_goals, health_types
from healthtrack.models.health import HealthGoal
from healthtrack.schemas.health import (
    GoalStatus,
    HealthGoalCreate,
    HealthGoalResponse,
    HealthGoalUpdate,
    HealthTypeResponse,
    check_goal_target,
)
from healthtrack.services.health_service import HealthService

logger = logging.getLogger(__name__)

router = APIRouter()


def goal_with_progress(service: HealthService, goal: HealthGoal) -> Dict[str, Any]:
    data = HealthGoalResponse.model_validate(goal).model_dump()
    data["progress"] = service.goal_progress(goal)
    data["healthType"] = HealthTypeResponse.model_validate(goal.health_type) if goal.health_type else None
    return data


@router.get("/goals")
def list_health_goals(
    type_id: Optional[int] = Query(None, gt=0),
    goal_status: Optional[GoalStatus] = Query(None, alias="status"),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    goals = health_goals.list_for_user(db, user_id, type_id=type_id, status=goal_status)
    service = HealthService(db)
    return {"goals": [goal_with_progress(service, goal) for goal in goals], "total": len(goals)}


@router.get("/active-goals")
def list_active_goals(
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    goals = health_goals.list_for_user(db, user_id, status="active")
    service = HealthService(db)
    return {"goals": [goal_with_progress(service, goal) for goal in goals], "total": len(goals)}


@router.post("/goals", status_code=status.HTTP_201_CREATED)
def create_health_goal(
    goal_in: HealthGoalCreate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    if health_types.get(db, goal_in.type_id) is None:
        raise HTTPException(status_code=400, detail="Invalid health type")
    if goal_in.status == "active" and health_goals.get_active_for_type(db, user_id, goal_in.type_id):
        raise HTTPException(status_code=409, detail="An active goal already exists for this health type")

    goal = health_goals.create(db, user_id, goal_in.model_dump())
    db.commit()
    logger.info(f"Created health goal {goal.id} for user {user_id} (type {goal.type_id}, target {goal.target_value})")
    return {
        "goal": goal_with_progress(HealthService(db), goal),
        "message": "Health goal created successfully",
    }


@router.patch("/goals")
def update_health_goal(
    goal_in: HealthGoalUpdate,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    if goal_in.id is None:
        raise HTTPException(status_code=400, detail="Goal ID is required")
    goal = health_goals.get_for_user(db, goal_in.id, user_id)
    if goal is None:
        raise HTTPException(status_code=404, detail="Goal not found")

    changes = goal_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
    if "target_value" in changes:
        try:
            check_goal_target(goal.type_id, changes["target_value"])
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))

    service = HealthService(db)
    if changes.get("status") == "completed" and goal.status != "completed":
        progress = service.goal_progress(goal)
        if progress["progressPercentage"] < 100:
            logger.warning(
                f"Goal {goal.id} for user {user_id} marked completed at "
                f"{progress['progressPercentage']}% of its target"
            )

    health_goals.update(db, goal, changes)
    db.commit()
    logger.info(f"Updated health goal {goal.id} for user {user_id}: {sorted(changes)}")
    return {
        "goal": goal_with_progress(service, goal),
        "message": "Health goal updated successfully",
    }


@router.delete("/goals")
def delete_health_goal(
    id: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.rate_limit),
):
    goal_id = deps.parse_id(id, "goal")
    goal = health_goals.get_for_user(db, goal_id, user_id)
    if goal is None:
        raise HTTPException(status_code=404, detail="Goal not found")

    # Goals are never removed, only paused
    health_goals.update(db, goal, {"status": "paused"})
    db.commit()
    logger.info(f"Paused health goal {goal_id} for user {user_id}")
    return {"message": "Health goal deleted successfully"}
