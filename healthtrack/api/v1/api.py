from fastapi import APIRouter, Depends

from healthtrack.api import deps
from healthtrack.api.v1.endpoints import health
from healthtrack.api.v1.endpoints import health_goals
from healthtrack.api.v1.endpoints import health_reminders
from healthtrack.api.v1.endpoints import behavior_events
from healthtrack.api.v1.endpoints import behavior_analytics
from healthtrack.api.v1.endpoints import micro_patterns
from healthtrack.api.v1.endpoints import profile

health_enabled = [Depends(deps.require_feature("ENABLE_HEALTH_MGMT"))]
behavior_enabled = [Depends(deps.require_feature("ENABLE_BEHAVIOR_TRACKING"))]
micro_behavior_enabled = [Depends(deps.require_feature("ENABLE_MICRO_BEHAVIOR_TRACKING"))]
profiles_enabled = [Depends(deps.require_feature("ENABLE_USER_PROFILES"))]

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"], dependencies=health_enabled)
api_router.include_router(health_goals.router, prefix="/health", tags=["health-goals"], dependencies=health_enabled)
api_router.include_router(
    health_reminders.router, prefix="/health", tags=["health-reminders"], dependencies=health_enabled
)
api_router.include_router(
    behavior_events.router, prefix="/behavior", tags=["behavior"], dependencies=behavior_enabled
)
api_router.include_router(
    behavior_analytics.router,
    prefix="/behavior/analytics",
    tags=["behavior-analytics"],
    dependencies=behavior_enabled,
)
api_router.include_router(
    micro_patterns.router, prefix="/behavior", tags=["micro-behavior"], dependencies=micro_behavior_enabled
)
api_router.include_router(profile.router, prefix="/profile", tags=["profile"], dependencies=profiles_enabled)
