"""
In-memory rate limiter with a sliding one-minute window, keyed by user ID.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from healthtrack.core.config import settings
from healthtrack.utils.timezone import utcnow

logger = logging.getLogger(__name__)

WINDOW_DURATION = 60


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime


class RateLimiter:
    """Thread-safe sliding window limiter. A limit of 0 allows everything."""

    def __init__(self, limit_per_minute: int):
        self.limit = limit_per_minute
        self.windows: Dict[str, List[datetime]] = defaultdict(list)
        self.lock = threading.Lock()
        self.last_sweep: Optional[datetime] = None

    def check(self, key: str, current_time: Optional[datetime] = None) -> RateLimitResult:
        current_time = current_time or utcnow()
        if self.limit <= 0:
            return RateLimitResult(allowed=True, remaining=0, limit=0, reset_at=current_time)

        with self.lock:
            cutoff_time = current_time - timedelta(seconds=WINDOW_DURATION)
            self._sweep(cutoff_time, current_time)
            window = [ts for ts in self.windows[key] if ts > cutoff_time]
            self.windows[key] = window

            if len(window) < self.limit:
                window.append(current_time)
                return RateLimitResult(
                    allowed=True,
                    remaining=self.limit - len(window),
                    limit=self.limit,
                    reset_at=current_time + timedelta(seconds=WINDOW_DURATION),
                )

            logger.warning(f"Rate limit exceeded for {key}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=self.limit,
                reset_at=window[0] + timedelta(seconds=WINDOW_DURATION),
            )

    def _sweep(self, cutoff_time: datetime, current_time: datetime) -> None:
        """Drop keys whose whole window has expired, at most once per window."""
        if self.last_sweep is not None and current_time - self.last_sweep < timedelta(seconds=WINDOW_DURATION):
            return
        self.last_sweep = current_time
        idle = [key for key, window in self.windows.items() if not window or window[-1] <= cutoff_time]
        for key in idle:
            del self.windows[key]
        if idle:
            logger.debug(f"Evicted {len(idle)} idle rate limit windows")

    def reset(self) -> None:
        with self.lock:
            self.windows.clear()
            self.last_sweep = None


rate_limiter = RateLimiter(settings.RATE_LIMIT_PER_MINUTE)
