"""
Health analytics: goal progress, dashboard stats, time-bucketed trends and
linear-regression predictions over a user's health records.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from healthtrack.core.cache import analytics_cache
from healthtrack.core.exceptions import NotFoundError, ValidationFailure
from healthtrack.crud import health_goals, health_records, health_types
from healthtrack.models.health import HealthGoal, HealthRecord, HealthType
from healthtrack.utils.statistics import (
    calculate_mean,
    calculate_prediction_accuracy,
    calculate_slope,
    datetime_to_numeric,
    generate_confidence_interval,
    generate_future_predictions,
    linear_regression,
)
from healthtrack.utils.timezone import isoformat_utc, to_utc_naive, utcnow

logger = logging.getLogger(__name__)

AGGREGATIONS = ("daily", "weekly", "monthly")
DEFAULT_ANALYTICS_DAYS = 30
PREDICTION_HISTORY_DAYS = 90
PREDICTION_CONFIDENCE = 0.95


def bucket_key(recorded_at: datetime, aggregation: str) -> str:
    if aggregation == "weekly":
        year, week, _ = recorded_at.isocalendar()
        return f"{year}-W{week:02d}"
    if aggregation == "monthly":
        return recorded_at.strftime("%Y-%m")
    return recorded_at.strftime("%Y-%m-%d")


def bucket_records(records: List[HealthRecord], aggregation: str = "daily") -> List[Dict[str, Any]]:
    """Average/min/max/count per period, ordered by period."""
    buckets: Dict[str, List[float]] = {}
    for record in records:
        buckets.setdefault(bucket_key(record.recorded_at, aggregation), []).append(float(record.value))
    return [
        {
            "date": key,
            "value": calculate_mean(values),
            "min": min(values),
            "max": max(values),
            "count": len(values),
        }
        for key, values in sorted(buckets.items())
    ]


def analytics_cache_key(
    user_id: str,
    type_slug: str,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    aggregation: str,
) -> str:
    start = start_date.isoformat() if start_date else None
    end = end_date.isoformat() if end_date else None
    return f"{user_id}-{type_slug}-{start}-{end}-{aggregation}"


def invalidate_user_analytics(user_id: str) -> None:
    removed = analytics_cache.invalidate_prefix(f"{user_id}-")
    if removed:
        logger.debug(f"Dropped {removed} cached analytics responses for user {user_id}")


class HealthService:
    def __init__(self, db: Session):
        self.db = db

    def goal_progress(self, goal: HealthGoal, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Progress of a goal against the latest record of its type."""
        now = now or utcnow()
        latest = health_records.latest_of_type(self.db, goal.user_id, goal.type_id)
        current_value = float(latest.value) if latest is not None else None

        progress = 0.0
        if current_value is not None and goal.target_value:
            progress = round(min(current_value / float(goal.target_value) * 100, 100.0), 2)

        days_remaining = math.ceil((goal.target_date - now).total_seconds() / 86400)
        return {
            "currentValue": current_value,
            "progressPercentage": progress,
            "daysRemaining": days_remaining,
            "isOverdue": days_remaining < 0,
            "lastRecordedAt": isoformat_utc(latest.recorded_at) if latest is not None else None,
        }

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        now = utcnow()
        week_ago = now - timedelta(days=7)
        two_weeks_ago = now - timedelta(days=14)

        weekly = health_records.count_for_user(self.db, user_id, start=week_ago)
        previous = health_records.count_for_user(self.db, user_id, start=two_weeks_ago, end=week_ago)
        if previous > 0:
            weekly_progress = round((weekly - previous) / previous * 100)
        else:
            weekly_progress = 100 if weekly > 0 else 0

        return {
            "totalRecords": health_records.count_for_user(self.db, user_id),
            "activeGoals": health_goals.count_by_status(self.db, user_id, "active"),
            "completedGoals": health_goals.count_by_status(self.db, user_id, "completed"),
            "weeklyRecords": weekly,
            "previousWeekRecords": previous,
            "weeklyProgress": weekly_progress,
        }

    def _health_type(self, type_slug: str) -> HealthType:
        health_type = health_types.get_by_slug(self.db, type_slug)
        if health_type is None:
            raise NotFoundError("Invalid health type")
        return health_type

    def get_analytics(
        self,
        user_id: str,
        type_slug: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        aggregation: str = "daily",
    ) -> Dict[str, Any]:
        if aggregation not in AGGREGATIONS:
            raise ValidationFailure(f"Aggregation must be one of: {', '.join(AGGREGATIONS)}")

        start_date = to_utc_naive(start_date)
        end_date = to_utc_naive(end_date)
        cache_key = analytics_cache_key(user_id, type_slug, start_date, end_date, aggregation)
        cached = analytics_cache.get(cache_key)
        if cached is not None:
            logger.info(f"Returning cached analytics data for user {user_id}, type {type_slug}")
            return cached

        health_type = self._health_type(type_slug)
        end = end_date or utcnow()
        start = start_date or end - timedelta(days=DEFAULT_ANALYTICS_DAYS)
        if start > end:
            raise ValidationFailure("Start date must be before or equal to end date")

        records = health_records.in_range(self.db, user_id, health_type.id, start, end)
        data = bucket_records(records, aggregation)
        slope = calculate_slope([point["value"] for point in data])
        latest = health_records.latest_of_type(self.db, user_id, health_type.id)

        response = {
            "type": health_type.slug,
            "displayName": health_type.display_name,
            "unit": health_type.unit,
            "aggregation": aggregation,
            "dateRange": {"start": isoformat_utc(start), "end": isoformat_utc(end)},
            "summary": {
                "currentValue": float(latest.value) if latest is not None else None,
                "trend": "increasing" if slope > 0 else "decreasing" if slope < 0 else "stable",
                "trendValue": abs(slope),
                "totalRecords": sum(point["count"] for point in data),
            },
            "data": data,
            "typicalRange": {
                "low": health_type.typical_range_low,
                "high": health_type.typical_range_high,
            },
        }
        analytics_cache.set(cache_key, response)
        logger.info(
            f"Health analytics for user {user_id}, type {type_slug}: "
            f"{response['summary']['totalRecords']} records in {len(data)} {aggregation} buckets"
        )
        return response

    def get_predictions(self, user_id: str, type_slug: str, periods: int = 7) -> Dict[str, Any]:
        """Extrapolate daily averages of the last 90 days `periods` days ahead."""
        if periods < 1 or periods > 90:
            raise ValidationFailure("Periods must be between 1 and 90")

        health_type = self._health_type(type_slug)
        end = utcnow()
        records = health_records.in_range(
            self.db, user_id, health_type.id, end - timedelta(days=PREDICTION_HISTORY_DAYS), end
        )
        daily = bucket_records(records, "daily")
        if len(daily) < 2:
            raise ValidationFailure("At least 2 days of data are required for predictions")

        points = [
            (datetime_to_numeric(datetime.strptime(point["date"], "%Y-%m-%d")), point["value"])
            for point in daily
        ]
        regression = linear_regression(points)
        last_date = datetime.strptime(daily[-1]["date"], "%Y-%m-%d")

        predictions = generate_future_predictions(regression, last_date, periods)
        for prediction in predictions:
            prediction["confidenceInterval"] = generate_confidence_interval(
                prediction["value"], PREDICTION_CONFIDENCE, regression.residual_std, len(points)
            )

        fitted = [regression.slope * x + regression.intercept for x, _ in points]
        accuracy = calculate_prediction_accuracy([y for _, y in points], fitted)

        logger.info(
            f"Predictions for user {user_id}, type {type_slug}: {periods} days from {len(points)} daily points "
            f"(r2={regression.r_squared:.3f})"
        )
        return {
            "type": health_type.slug,
            "unit": health_type.unit,
            "historical": daily,
            "predictions": predictions,
            "regression": regression.to_dict(),
            "accuracy": accuracy,
            "confidenceLevel": PREDICTION_CONFIDENCE,
        }
