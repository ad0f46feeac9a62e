"""
Habit-strength analytics over behavioral events.

Scores how established a behavior is (frequency, consistency, supporting
patterns), recognizes recurring behaviors with their temporal and contextual
signature, and ranks workout contexts by how well they predict success.
"""

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, desc
from sqlalchemy.orm import Session

from healthtrack.models.behavior import BehavioralEvent, MicroBehaviorPattern
from healthtrack.models.training import ExerciseLog
from healthtrack.services.behavior_event_service import ensure_user_id
from healthtrack.utils.statistics import calculate_mean, calculate_variance, window_consistency
from healthtrack.utils.timezone import isoformat_utc, start_for_time_range, utcnow

logger = logging.getLogger(__name__)

TREND_WINDOWS = {"7d": 2, "30d": 4}
DEFAULT_TREND_WINDOWS = 8

PATTERN_LOOKBACK = timedelta(days=90)
MIN_EVENTS_FOR_PATTERNS = 5

WORKOUT_ENTITY_TYPES = {"training_session", "exercise_log", "workout_completed"}
SUCCESS_LOG_WINDOW = timedelta(hours=2)
SUCCESS_RPE = 6

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def context_label(value: Any) -> str:
    """String form of a context value as clients send it (true/false for booleans)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def event_context(event: BehavioralEvent) -> Dict[str, Any]:
    return event.context if isinstance(event.context, dict) else {}


def days_between(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / 86400)


def daily_frequencies(events: Sequence[BehavioralEvent], start: datetime, end: datetime) -> List[int]:
    """Event counts for every calendar day from `start` through `end`, both inclusive."""
    first_day = start.date()
    counts = [0] * ((end.date() - first_day).days + 1)
    for event in events:
        index = (event.created_at.date() - first_day).days
        if 0 <= index < len(counts):
            counts[index] += 1
    return counts


class HabitStrengthAnalyticsService:
    def __init__(self, db: Session):
        self.db = db

    # Queries

    def _events(
        self,
        user_id: str,
        start: datetime,
        end: Optional[datetime] = None,
        behavior_type: Optional[str] = None,
    ) -> List[BehavioralEvent]:
        q = self.db.query(BehavioralEvent).filter(
            and_(BehavioralEvent.user_id == user_id, BehavioralEvent.created_at >= start)
        )
        if end is not None:
            q = q.filter(BehavioralEvent.created_at <= end)
        events = q.order_by(desc(BehavioralEvent.created_at), desc(BehavioralEvent.id)).all()
        if behavior_type:
            events = [event for event in events if event_context(event).get("behaviorType") == behavior_type]
        return events

    def _patterns(self, user_id: str, behavior_type: Optional[str] = None) -> List[MicroBehaviorPattern]:
        q = self.db.query(MicroBehaviorPattern).filter(MicroBehaviorPattern.user_id == user_id)
        if behavior_type:
            q = q.filter(MicroBehaviorPattern.behavior_type == behavior_type)
        return q.all()

    # Habit strength

    def calculate_habit_strength(
        self,
        user_id: str,
        behavior_type: Optional[str] = None,
        time_range: str = "30d",
    ) -> Dict[str, Any]:
        ensure_user_id(user_id)
        end = utcnow()
        start = start_for_time_range(time_range, end)
        events = self._events(user_id, start, end, behavior_type)
        patterns = self._patterns(user_id, behavior_type)

        total_days = days_between(start, end)
        event_days = len({event.created_at.date() for event in events})
        frequency_score = min(100.0, event_days / total_days * 100) if total_days else 0.0
        consistency_score = window_consistency(daily_frequencies(events, start, end))
        context_score = self._context_score(patterns)

        habit_strength = round(frequency_score * 0.4 + consistency_score * 0.4 + context_score * 0.2)
        confidence = min(100.0, len(events) / 30 * 100) * 0.7 + consistency_score * 0.3

        result = {
            "habitStrength": habit_strength,
            "consistencyScore": round(consistency_score),
            "frequencyScore": round(frequency_score),
            "contextScore": round(context_score),
            "trend": self._trend(events, start, end, time_range),
            "confidence": round(confidence),
            "sampleSize": len(events),
            "predictiveFactors": self._predictive_factors(patterns),
        }
        logger.debug(f"Habit strength for user {user_id} ({behavior_type or 'all'}, {time_range}): {result}")
        return result

    @staticmethod
    def _context_score(patterns: Sequence[MicroBehaviorPattern]) -> float:
        if not patterns:
            return 0.0
        avg_strength = calculate_mean([pattern.strength or 0 for pattern in patterns])
        avg_confidence = calculate_mean([pattern.confidence or 0 for pattern in patterns])
        return (avg_strength + avg_confidence) / 2

    @staticmethod
    def _trend(events: Sequence[BehavioralEvent], start: datetime, end: datetime, time_range: str) -> str:
        """Compare event counts of consecutive equal windows across the range."""
        if len(events) < 4:
            return "stable"

        windows = TREND_WINDOWS.get(time_range, DEFAULT_TREND_WINDOWS)
        span = (end - start) / windows
        counts = [0] * windows
        for event in events:
            index = int((event.created_at - start) / span) if span else 0
            counts[min(max(index, 0), windows - 1)] += 1

        increasing = sum(1 for current, following in zip(counts, counts[1:]) if following > current)
        decreasing = sum(1 for current, following in zip(counts, counts[1:]) if following < current)
        if increasing > decreasing:
            return "increasing"
        if decreasing > increasing:
            return "decreasing"
        return "stable"

    @staticmethod
    def _predictive_factors(patterns: Sequence[MicroBehaviorPattern]) -> List[str]:
        factors: List[str] = []
        for pattern in patterns:
            triggers = pattern.triggers
            if isinstance(triggers, list):
                factors.extend(item for item in triggers if isinstance(item, str))
            elif isinstance(triggers, dict):
                factors.extend(value for value in triggers.values() if isinstance(value, str))
            if isinstance(pattern.context, dict):
                factors.extend(value for value in pattern.context.values() if isinstance(value, str) and value)
        return [factor for factor, _ in Counter(factors).most_common(5)]

    # Pattern recognition

    def recognize_patterns(
        self,
        user_id: str,
        behavior_type: Optional[str] = None,
        min_confidence: float = 70,
    ) -> List[Dict[str, Any]]:
        ensure_user_id(user_id)
        now = utcnow()
        events = self._events(user_id, now - PATTERN_LOOKBACK, behavior_type=behavior_type)
        if len(events) < MIN_EVENTS_FOR_PATTERNS:
            return []

        groups: Dict[str, List[BehavioralEvent]] = {}
        for event in events:
            key = event_context(event).get("behaviorType") or event.entity_type or "unknown"
            groups.setdefault(key, []).append(event)

        results = []
        for behavior, group in groups.items():
            avg_frequency = self._average_daily_frequency(group)
            temporal_consistency, peak_times = self._temporal_signature(group)
            triggers, outcomes = self._context_signature(group)

            strength = (
                min(100.0, avg_frequency * 100) * 0.5
                + temporal_consistency * 0.3
                + min(100.0, (len(triggers) + len(outcomes)) * 20) * 0.2
            )
            span_days = days_between(group[-1].created_at, group[0].created_at)
            confidence = min(100.0, len(group) / max(span_days, 1) * 100) * 0.6 + strength * 0.4
            if confidence < min_confidence:
                continue

            results.append({
                "patternId": f"pattern_{behavior}_{int(now.timestamp() * 1000)}",
                "behaviorType": behavior,
                "strength": round(strength),
                "frequency": avg_frequency,
                "consistency": temporal_consistency,
                "peakTimes": peak_times,
                "triggers": triggers,
                "outcomes": outcomes,
                "confidence": round(confidence),
                "recommendation": self._recommendation(behavior, strength, triggers),
            })

        logger.info(
            f"Recognized {len(results)} of {len(groups)} behavior groups for user {user_id} "
            f"(min confidence {min_confidence})"
        )
        return results

    @staticmethod
    def _average_daily_frequency(events: Sequence[BehavioralEvent]) -> float:
        # events are newest first
        return calculate_mean(daily_frequencies(events, events[-1].created_at, events[0].created_at))

    @staticmethod
    def _temporal_signature(events: Sequence[BehavioralEvent]) -> Tuple[float, List[str]]:
        hour_counts = [0] * 24
        day_counts = [0] * 7
        for event in events:
            hour_counts[event.created_at.hour] += 1
            # Sunday first
            day_counts[(event.created_at.weekday() + 1) % 7] += 1

        consistency = max(0.0, 100 - (calculate_variance(hour_counts) + calculate_variance(day_counts)) / 2)
        peak_hour = hour_counts.index(max(hour_counts))
        peak_day = day_counts.index(max(day_counts))
        return consistency, [f"{peak_hour}:00", DAY_NAMES[peak_day]]

    @staticmethod
    def _context_signature(events: Sequence[BehavioralEvent]) -> Tuple[List[str], List[str]]:
        triggers: List[str] = []
        outcomes: List[str] = []
        for event in events:
            context = event_context(event)
            for key, prefix in (("mood", "mood"), ("energyLevel", "energy"), ("location", "location"), ("timeOfDay", "time")):
                if context.get(key):
                    triggers.append(f"{prefix}:{context_label(context[key])}")
            if context.get("outcome"):
                outcomes.append(context_label(context["outcome"]))
            if context.get("success") is not None:
                outcomes.append(f"success:{context_label(context['success'])}")

        # unique, first-seen order
        return list(dict.fromkeys(triggers))[:5], list(dict.fromkeys(outcomes))[:3]

    @staticmethod
    def _recommendation(behavior: str, strength: float, triggers: Sequence[str]) -> str:
        if strength >= 80:
            return f"Excellent {behavior} habit! Focus on maintaining consistency."
        if strength >= 60:
            target = triggers[0] if triggers else "better timing"
            return f"Good {behavior} pattern. Try optimizing for {target}."
        if strength >= 40:
            return f"Developing {behavior} habit. Increase frequency and consistency."
        return f"Focus on establishing a regular {behavior} routine. Start small and be consistent."

    # Workout contexts

    def analyze_workout_contexts(self, user_id: str, time_range: str = "90d") -> List[Dict[str, Any]]:
        ensure_user_id(user_id)
        end = utcnow()
        start = start_for_time_range(time_range, end)

        workout_events = [
            event for event in self._events(user_id, start, end)
            if event.entity_type in WORKOUT_ENTITY_TYPES
            or event_context(event).get("entityType") in WORKOUT_ENTITY_TYPES
        ]
        exercise_logs = (
            self.db.query(ExerciseLog)
            .filter(
                and_(
                    ExerciseLog.user_id == user_id,
                    ExerciseLog.logged_at >= start,
                    ExerciseLog.logged_at <= end,
                )
            )
            .all()
        )

        groups: Dict[str, List[BehavioralEvent]] = {}
        for event in workout_events:
            groups.setdefault(self._primary_context(event), []).append(event)

        overall_rate = self._success_rate(workout_events, exercise_logs)
        results = []
        for context, events in groups.items():
            success_rate = self._success_rate(events, exercise_logs)
            conditions = self._conditions(events)
            results.append({
                "context": context,
                "successRate": round(success_rate),
                "frequency": len(events),
                "predictivePower": round(max(0.0, min(100.0, 50 + (success_rate - overall_rate)))),
                "conditions": conditions,
                "optimization": self._optimization(context, success_rate, conditions),
            })

        results.sort(key=lambda item: item["predictivePower"], reverse=True)
        logger.info(
            f"Analyzed {len(workout_events)} workout events in {len(results)} contexts for user {user_id} "
            f"(overall success {overall_rate:.1f}%)"
        )
        return results

    @staticmethod
    def _primary_context(event: BehavioralEvent) -> str:
        context = event_context(event)
        for key, prefix in (("timeOfDay", "time"), ("location", "location"), ("mood", "mood"), ("energyLevel", "energy")):
            if context.get(key):
                return f"{prefix}:{context_label(context[key])}"
        return "general"

    @staticmethod
    def _success_rate(events: Sequence[BehavioralEvent], exercise_logs: Sequence[ExerciseLog]) -> float:
        if not events:
            return 0.0
        successful = 0
        for event in events:
            related = [log for log in exercise_logs if abs(log.logged_at - event.created_at) < SUCCESS_LOG_WINDOW]
            good_effort = any((log.rpe or 0) >= SUCCESS_RPE for log in related)
            context = event_context(event)
            if good_effort or context.get("completed") or context.get("success"):
                successful += 1
        return successful / len(events) * 100

    @staticmethod
    def _conditions(events: Sequence[BehavioralEvent]) -> Dict[str, Optional[str]]:
        """Most common value of each context key across the events."""
        values: Dict[str, Counter] = {}
        for event in events:
            for key, value in event_context(event).items():
                values.setdefault(key, Counter())[context_label(value)] += 1
        return {key: counter.most_common(1)[0][0] if counter else None for key, counter in values.items()}

    @staticmethod
    def _optimization(context: str, success_rate: float, conditions: Dict[str, Any]) -> str:
        if success_rate >= 80:
            listed = ", ".join(f"{key}: {value}" for key, value in list(conditions.items())[:3])
            return f"Excellent context! Maintain these conditions: {listed}"
        if success_rate >= 60:
            first = next(iter(conditions), "timing")
            return f"Good context. Try optimizing {first} for better results."
        return f"Consider changing context conditions or avoiding {context} for workouts."

    # Dashboard series

    def frequency_series(
        self,
        user_id: str,
        time_range: str = "30d",
        behavior_type: Optional[str] = None,
        aggregation: str = "daily",
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Per-day or per-week event counts with rolling consistency and strength."""
        ensure_user_id(user_id)
        end = utcnow()
        start = start_for_time_range(time_range, end)
        events = self._events(user_id, start, end, behavior_type)

        buckets: Dict[str, int] = {}
        for event in events:
            if aggregation == "weekly":
                year, week, _ = event.created_at.isocalendar()
                key = f"{year}-W{week:02d}"
            else:
                key = event.created_at.strftime("%Y-%m-%d")
            buckets[key] = buckets.get(key, 0) + 1
        ordered = sorted(buckets.items())

        patterns = self._patterns(user_id, behavior_type)
        avg_pattern_strength = calculate_mean([pattern.strength or 0 for pattern in patterns]) if patterns else 50
        expected_frequency = calculate_mean([pattern.frequency or 0 for pattern in patterns]) if patterns else 1

        frequencies = [count for _, count in ordered]
        window_size = min(7, len(frequencies))
        points = []
        for index, (date, count) in enumerate(ordered):
            window_start = max(0, index - window_size // 2)
            window = frequencies[window_start:window_start + window_size]
            ratio = count / expected_frequency if expected_frequency > 0 else 0
            points.append({
                "date": date,
                "frequency": count,
                "consistency": round(window_consistency(window)),
                "strength": round(min(100.0, max(0.0, avg_pattern_strength * ratio))),
            })

        total = sum(frequencies)
        summary = {
            "totalDataPoints": len(points),
            "totalFrequency": total,
            "avgFrequency": round(total / len(points), 2) if points else 0,
            "avgConsistency": round(calculate_mean([point["consistency"] for point in points])),
            "avgStrength": round(calculate_mean([point["strength"] for point in points])),
            "dateRange": {"start": isoformat_utc(start), "end": isoformat_utc(end)},
        }
        return points, summary

    def summary(self, user_id: str, time_range: str = "30d") -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ensure_user_id(user_id)
        end = utcnow()
        start = start_for_time_range(time_range, end)
        events = self._events(user_id, start, end)
        patterns = self._patterns(user_id)

        habit = self.calculate_habit_strength(user_id, None, time_range)
        established = [pattern for pattern in patterns if (pattern.strength or 0) >= 30]

        context_counts: Counter = Counter()
        for event in events:
            context = event_context(event)
            if context_label(context.get("success")) != "true":
                continue
            for key, prefix in (("timeOfDay", "time"), ("location", "location"), ("mood", "mood")):
                if context.get(key):
                    context_counts[f"{prefix}:{context_label(context[key])}"] += 1

        data = {
            "totalEvents": len(events),
            "activePatterns": sum(1 for pattern in patterns if (pattern.strength or 0) >= 50),
            "habitStrengthAvg": habit["habitStrength"],
            "consistencyScore": round(calculate_mean([
                (pattern.consistency or 0) * (pattern.strength or 0) / 100 for pattern in established
            ])),
            "topContext": context_counts.most_common(1)[0][0] if context_counts else "No dominant context",
            "weeklyTrend": habit["trend"],
            "predictionAccuracy": round(calculate_mean([pattern.strength or 0 for pattern in established])),
        }
        logger.info(f"Behavior analytics summary for user {user_id} ({time_range}): {data}")
        return data, {"dateRange": {"start": isoformat_utc(start), "end": isoformat_utc(end)}}
