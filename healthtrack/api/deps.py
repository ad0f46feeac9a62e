import logging
from typing import Callable, Generator, NoReturn, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from healthtrack.core.config import settings
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.core.rate_limit import rate_limiter
from healthtrack.core.security import decode_access_token
from healthtrack.db.session import SessionLocal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

FEATURE_NAMES = {
    "ENABLE_HEALTH_MGMT": "Health management",
    "ENABLE_BEHAVIOR_TRACKING": "Behavior tracking",
    "ENABLE_MICRO_BEHAVIOR_TRACKING": "Micro-behavior tracking",
    "ENABLE_USER_PROFILES": "User profiles",
}


def get_db() -> Generator:
    try:
        db = SessionLocal()
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        try:
            db.close()
        except Exception:
            pass


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    user_id = decode_access_token(credentials.credentials) if credentials else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def rate_limit(user_id: str = Depends(get_current_user_id)) -> str:
    """Authenticated user id, after charging one request to the user's window."""
    result = rate_limiter.check(user_id)
    if not result.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": "60", "X-RateLimit-Limit": str(result.limit)},
        )
    return user_id


def require_feature(flag: str) -> Callable[[], None]:
    """Dependency factory rejecting requests with 503 while a feature flag is off."""
    feature = FEATURE_NAMES.get(flag, flag)

    def check_feature() -> None:
        if not getattr(settings, flag, False):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"{feature} feature is not enabled",
            )

    return check_feature


def parse_id(raw: Optional[str], label: str) -> int:
    """Positive integer id from a query string value, 400 otherwise."""
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        value = 0
    if value <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label} ID")
    return value


def raise_http_error(exc: HealthTrackError) -> NoReturn:
    """Re-raise a service error as the matching HTTP error."""
    if exc.status_code >= 500:
        logger.error(f"Service error: {exc.message}")
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
