from .health import (
    HealthType,
    HealthRecord,
    HealthGoal,
    HealthReminder,
)
from .training import TrainingSession, ExerciseLog
from .behavior import (
    BehavioralEvent,
    MicroBehaviorPattern,
    ContextPattern,
)
from .profile import (
    UserProfile,
    UserFitnessGoal,
    UserPreference,
    UserConstraint,
)
