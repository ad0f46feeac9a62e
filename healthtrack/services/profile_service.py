"""
User profile management: the profile itself, fitness goals, workout
preferences and physical/schedule constraints.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, case, desc
from sqlalchemy.orm import Session

from healthtrack.core.exceptions import ConflictError, NotFoundError, ValidationFailure
from healthtrack.models.profile import UserConstraint, UserFitnessGoal, UserPreference, UserProfile
from healthtrack.services.behavior_event_service import ensure_user_id
from healthtrack.utils.timezone import utcnow

logger = logging.getLogger(__name__)

COMPLETENESS_FIELDS = (
    "fitness_level",
    "experience_years",
    "timezone",
    "date_of_birth",
    "height",
    "weight",
    "activity_level",
)

PROFILE_DEFAULTS = {
    "fitness_level": "beginner",
    "experience_years": 0,
    "timezone": "UTC",
    "activity_level": "moderate",
}

DEFAULT_PREFERENCES = {
    "preferred_workout_types": [],
    "preferred_times": [],
    "preferred_days": [],
    "available_equipment": [],
    "session_duration_min": 30,
    "session_duration_max": 60,
    "workout_frequency_per_week": 3,
    "intensity_preference": "intermediate",
    "music_enabled": True,
    "reminders_enabled": True,
    "auto_progression": True,
}

SEVERITY_RANK = case(
    (UserConstraint.severity == "high", 3),
    (UserConstraint.severity == "medium", 2),
    (UserConstraint.severity == "low", 1),
    else_=0,
)

PRIORITY_RANK = case(
    (UserFitnessGoal.priority == "critical", 4),
    (UserFitnessGoal.priority == "high", 3),
    (UserFitnessGoal.priority == "medium", 2),
    (UserFitnessGoal.priority == "low", 1),
    else_=0,
)


def calculate_profile_completeness(profile: Dict[str, Any]) -> int:
    """Percentage of the core profile fields that are filled in."""
    completed = [field for field in COMPLETENESS_FIELDS if profile.get(field) not in (None, "")]
    return round(len(completed) / len(COMPLETENESS_FIELDS) * 100)


def profile_as_dict(profile: UserProfile) -> Dict[str, Any]:
    return {field: getattr(profile, field) for field in COMPLETENESS_FIELDS}


class UserProfileService:
    def __init__(self, db: Session):
        self.db = db

    # Profile

    def _profile(self, user_id: str) -> Optional[UserProfile]:
        return self.db.query(UserProfile).filter(UserProfile.user_id == user_id).first()

    def _require_profile(self, user_id: str) -> UserProfile:
        profile = self._profile(user_id)
        if profile is None:
            raise NotFoundError("User profile not found")
        return profile

    def create_profile(self, user_id: str, data: Dict[str, Any]) -> UserProfile:
        ensure_user_id(user_id)
        if self._profile(user_id) is not None:
            raise ConflictError("User profile already exists")

        values = {**PROFILE_DEFAULTS, **{key: value for key, value in data.items() if value is not None}}
        profile = UserProfile(
            user_id=user_id,
            profile_completeness=calculate_profile_completeness(values),
            **values,
        )
        self.db.add(profile)
        self.db.commit()
        logger.info(f"Created profile {profile.id} for user {user_id} ({profile.profile_completeness}% complete)")
        return profile

    def update_profile(self, user_id: str, updates: Dict[str, Any]) -> UserProfile:
        ensure_user_id(user_id)
        profile = self._require_profile(user_id)
        for field, value in updates.items():
            setattr(profile, field, value)
        if any(field in COMPLETENESS_FIELDS for field in updates):
            profile.profile_completeness = calculate_profile_completeness(profile_as_dict(profile))
        self.db.commit()
        logger.info(
            f"Updated profile for user {user_id}: {sorted(updates)} "
            f"({profile.profile_completeness}% complete)"
        )
        return profile

    def get_profile(self, user_id: str, include_related: bool = False) -> Optional[Dict[str, Any]]:
        """The profile row plus, optionally, goals, preferences and active constraints."""
        ensure_user_id(user_id)
        profile = self._profile(user_id)
        if profile is None:
            return None
        result: Dict[str, Any] = {"profile": profile}
        if include_related:
            result["fitness_goals"] = self.get_fitness_goals(user_id)
            result["preferences"] = self.get_preferences(user_id)
            result["constraints"] = self.get_active_constraints(user_id)
        logger.debug(f"Retrieved profile for user {user_id} (related={include_related})")
        return result

    def delete_profile(self, user_id: str) -> None:
        """Remove the profile and everything hanging off it in one transaction."""
        ensure_user_id(user_id)
        profile = self._require_profile(user_id)
        try:
            for model in (UserConstraint, UserPreference, UserFitnessGoal):
                self.db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
            self.db.delete(profile)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to delete profile for user {user_id}", exc_info=True)
            raise
        logger.info(f"Deleted profile {profile.id} and related data for user {user_id}")

    def get_profile_stats(self, user_id: str) -> Dict[str, Any]:
        ensure_user_id(user_id)
        profile = self._profile(user_id)
        return {
            "profileCompleteness": profile.profile_completeness if profile else 0,
            "activeGoalsCount": len(self.get_fitness_goals(user_id, status="active")),
            "activeConstraintsCount": len(self.get_active_constraints(user_id)),
            "hasPreferences": self.get_preferences(user_id) is not None,
        }

    # Fitness goals

    def add_fitness_goal(self, user_id: str, data: Dict[str, Any]) -> UserFitnessGoal:
        ensure_user_id(user_id)
        self._require_profile(user_id)
        goal = UserFitnessGoal(user_id=user_id, **data)
        self.db.add(goal)
        self.db.commit()
        logger.info(f"Created fitness goal {goal.id} ({goal.goal_type}) for user {user_id}")
        return goal

    def get_fitness_goal(self, user_id: str, goal_id: int) -> Optional[UserFitnessGoal]:
        ensure_user_id(user_id)
        return self.db.query(UserFitnessGoal).filter(
            and_(UserFitnessGoal.id == goal_id, UserFitnessGoal.user_id == user_id)
        ).first()

    def update_fitness_goal(self, user_id: str, goal_id: int, updates: Dict[str, Any]) -> UserFitnessGoal:
        if not goal_id or goal_id <= 0:
            raise ValidationFailure("Invalid goal ID")
        goal = self.get_fitness_goal(user_id, goal_id)
        if goal is None:
            raise NotFoundError("Fitness goal not found")
        for field, value in updates.items():
            setattr(goal, field, value)
        self.db.commit()
        logger.info(f"Updated fitness goal {goal_id} for user {user_id}: {sorted(updates)}")
        return goal

    def get_fitness_goals(
        self,
        user_id: str,
        status: Optional[str] = None,
        goal_type: Optional[str] = None,
    ) -> List[UserFitnessGoal]:
        ensure_user_id(user_id)
        q = self.db.query(UserFitnessGoal).filter(UserFitnessGoal.user_id == user_id)
        if status:
            q = q.filter(UserFitnessGoal.status == status)
        if goal_type:
            q = q.filter(UserFitnessGoal.goal_type == goal_type)
        return q.order_by(
            desc(PRIORITY_RANK), desc(UserFitnessGoal.created_at), desc(UserFitnessGoal.id)
        ).all()

    # Preferences

    def get_preferences(self, user_id: str) -> Optional[UserPreference]:
        ensure_user_id(user_id)
        return self.db.query(UserPreference).filter(UserPreference.user_id == user_id).first()

    def update_preferences(self, user_id: str, changes: Dict[str, Any]) -> UserPreference:
        """Create or update the user's preferences with the given fields."""
        ensure_user_id(user_id)
        preferences = self.get_preferences(user_id)
        created = preferences is None
        if created:
            preferences = UserPreference(user_id=user_id, **{**DEFAULT_PREFERENCES, **changes})
            self.db.add(preferences)
        else:
            for field, value in changes.items():
                setattr(preferences, field, value)

        if preferences.session_duration_min > preferences.session_duration_max:
            self.db.rollback()
            raise ValidationFailure("Minimum session duration cannot exceed maximum session duration")
        self.db.commit()
        logger.info(f"{'Created' if created else 'Updated'} preferences for user {user_id}: {sorted(changes)}")
        return preferences

    def reset_preferences(self, user_id: str) -> UserPreference:
        defaults = {
            key: list(value) if isinstance(value, list) else value
            for key, value in DEFAULT_PREFERENCES.items()
        }
        return self.update_preferences(user_id, defaults)

    # Constraints

    def _owned_constraint(self, user_id: str, constraint_id: int) -> UserConstraint:
        if not constraint_id or constraint_id <= 0:
            raise ValidationFailure("Invalid constraint ID")
        constraint = self.db.query(UserConstraint).filter(
            and_(UserConstraint.id == constraint_id, UserConstraint.user_id == user_id)
        ).first()
        if constraint is None:
            raise NotFoundError("Constraint not found")
        return constraint

    def _check_injury_overlap(self, user_id: str, body_parts: Optional[List[str]], exclude_id: Optional[int] = None) -> None:
        if not body_parts:
            return
        q = self.db.query(UserConstraint).filter(
            and_(
                UserConstraint.user_id == user_id,
                UserConstraint.constraint_type == "injury",
                UserConstraint.is_active == True,  # noqa: E712
            )
        )
        if exclude_id is not None:
            q = q.filter(UserConstraint.id != exclude_id)
        requested = set(body_parts)
        for existing in q.all():
            if requested & set(existing.affected_body_parts or []):
                logger.warning(
                    f"Injury constraint for user {user_id} overlaps active constraint {existing.id}: "
                    f"{sorted(requested & set(existing.affected_body_parts))}"
                )
                raise ConflictError("Constraint conflicts with existing active constraint in the same area")

    def add_constraint(self, user_id: str, data: Dict[str, Any]) -> UserConstraint:
        ensure_user_id(user_id)
        data = dict(data)
        if data.get("constraint_type") == "injury" and data.get("is_active", True):
            self._check_injury_overlap(user_id, data.get("affected_body_parts"))

        data["severity"] = data.get("severity") or "medium"
        data["start_date"] = data.get("start_date") or utcnow()
        constraint = UserConstraint(user_id=user_id, **data)
        self.db.add(constraint)
        self.db.commit()
        logger.info(
            f"Added {constraint.severity} {constraint.constraint_type} constraint {constraint.id} for user {user_id}"
        )
        return constraint

    def update_constraint(self, user_id: str, constraint_id: int, updates: Dict[str, Any]) -> UserConstraint:
        ensure_user_id(user_id)
        constraint = self._owned_constraint(user_id, constraint_id)
        constraint_type = updates.get("constraint_type", constraint.constraint_type)
        is_active = updates.get("is_active", constraint.is_active)
        if constraint_type == "injury" and is_active:
            self._check_injury_overlap(
                user_id, updates.get("affected_body_parts", constraint.affected_body_parts), exclude_id=constraint.id
            )

        start = updates.get("start_date", constraint.start_date)
        end = updates.get("end_date", constraint.end_date)
        if start and end and start > end:
            raise ValidationFailure("Start date must be before or equal to end date")

        for field, value in updates.items():
            setattr(constraint, field, value)
        self.db.commit()
        logger.info(f"Updated constraint {constraint_id} for user {user_id}: {sorted(updates)}")
        return constraint

    def remove_constraint(self, user_id: str, constraint_id: int) -> UserConstraint:
        """Resolve a constraint; the row is kept with is_active false."""
        ensure_user_id(user_id)
        constraint = self._owned_constraint(user_id, constraint_id)
        constraint.is_active = False
        self.db.commit()
        logger.info(f"Resolved constraint {constraint_id} for user {user_id}")
        return constraint

    def get_active_constraints(self, user_id: str) -> List[UserConstraint]:
        ensure_user_id(user_id)
        return (
            self.db.query(UserConstraint)
            .filter(and_(UserConstraint.user_id == user_id, UserConstraint.is_active == True))  # noqa: E712
            .order_by(desc(SEVERITY_RANK), desc(UserConstraint.created_at), desc(UserConstraint.id))
            .all()
        )

    def list_constraints(
        self,
        user_id: str,
        *,
        constraint_type: Optional[str] = None,
        severity: Optional[str] = None,
        active_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[UserConstraint], int]:
        ensure_user_id(user_id)
        q = self.db.query(UserConstraint).filter(UserConstraint.user_id == user_id)
        if constraint_type:
            q = q.filter(UserConstraint.constraint_type == constraint_type)
        if severity:
            q = q.filter(UserConstraint.severity == severity)
        if active_only:
            q = q.filter(UserConstraint.is_active == True)  # noqa: E712
        total = q.count()
        items = (
            q.order_by(desc(UserConstraint.created_at), desc(UserConstraint.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total
