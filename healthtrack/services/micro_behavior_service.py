"""
Micro-behavior pattern analysis.

Patterns are derived aggregates of behavioral events: how often a behavior
happens, how regularly, and how confident we are that it is a real habit.
Context patterns capture the situations (time of day, mood, location...) the
behaviors happen in, and correlations link the two by temporal overlap.
"""

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, asc, desc
from sqlalchemy.orm import Session

from healthtrack.core.exceptions import NotFoundError, ValidationFailure
from healthtrack.models.behavior import BehavioralEvent, ContextPattern, MicroBehaviorPattern
from healthtrack.schemas.behavior import BehaviorEventResponse
from healthtrack.schemas.micro_behavior import (
    ContextFilters,
    ContextPatternResponse,
    MicroPatternResponse,
    PatternFilters,
)
from healthtrack.services.behavior_event_service import ensure_user_id
from healthtrack.utils.statistics import calculate_mean, consistency_from_intervals
from healthtrack.utils.timezone import isoformat_now, to_utc_naive, utcnow

logger = logging.getLogger(__name__)

PATTERN_SORT_COLUMNS = {
    "strength": MicroBehaviorPattern.strength,
    "confidence": MicroBehaviorPattern.confidence,
    "frequency": MicroBehaviorPattern.frequency,
    "lastObserved": MicroBehaviorPattern.last_observed,
    "createdAt": MicroBehaviorPattern.created_at,
}

CONTEXT_SORT_COLUMNS = {
    "predictivePower": ContextPattern.predictive_power,
    "frequency": ContextPattern.frequency,
    "lastObserved": ContextPattern.last_observed,
    "createdAt": ContextPattern.created_at,
}

# Hour ranges as [start, end); night wraps past midnight
TIME_OF_DAY_RANGES = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 22),
    "night": (22, 6),
}

CONTEXT_FIELDS = (
    "time_of_day",
    "day_of_week",
    "location",
    "weather",
    "mood",
    "energy_level",
    "stress_level",
    "social_context",
)

RECENT_WINDOW = timedelta(days=30)

CSV_HEADER = ["Pattern ID", "Behavior Type", "Frequency", "Strength", "Confidence", "Created At"]


def calculate_pattern_strength(frequency: float, consistency: Optional[float] = None) -> float:
    base_strength = min(100.0, frequency * 10)
    return min(100.0, base_strength + (consistency or 50) * 0.3)


def calculate_pattern_confidence(sample_size: Optional[int] = None, consistency: Optional[float] = None) -> float:
    sample_size_score = min(50.0, (sample_size or 1) * 5)
    return min(100.0, sample_size_score + (consistency or 50) * 0.5)


def hour_in_time_of_day(hour: int, time_of_day: str) -> bool:
    bounds = TIME_OF_DAY_RANGES.get(time_of_day)
    if bounds is None:
        return True
    start, end = bounds
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def serialize_pattern(pattern: MicroBehaviorPattern) -> Dict[str, Any]:
    return MicroPatternResponse.model_validate(pattern).model_dump(mode="json", by_alias=True)


def serialize_context_pattern(context: ContextPattern) -> Dict[str, Any]:
    return ContextPatternResponse.model_validate(context).model_dump(mode="json", by_alias=True)


class MicroBehaviorService:
    def __init__(self, db: Session):
        self.db = db

    # Pattern detection

    def detect_patterns(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Group the user's events by name and score each group.

        Groups with confidence >= 50 are reported; those with confidence >= 70
        are also stored as micro-behavior patterns.
        """
        ensure_user_id(user_id)
        q = self.db.query(BehavioralEvent).filter(BehavioralEvent.user_id == user_id)
        if start_date:
            q = q.filter(BehavioralEvent.created_at >= to_utc_naive(start_date))
        if end_date:
            q = q.filter(BehavioralEvent.created_at <= to_utc_naive(end_date))
        events = q.order_by(desc(BehavioralEvent.created_at)).all()

        groups: Dict[str, List[BehavioralEvent]] = {}
        for event in events:
            groups.setdefault(event.event_name, []).append(event)

        detected = []
        stored = 0
        for event_name, group in groups.items():
            pattern = self._score_event_group(event_name, group)
            if pattern["confidence"] < 50:
                continue
            if pattern["confidence"] >= 70:
                created = self.create_pattern(user_id, {
                    "pattern_name": pattern["name"],
                    "behavior_type": pattern["type"],
                    "frequency": pattern["frequency"],
                    "frequency_period": pattern["period"],
                    "consistency": pattern["consistency"],
                    "triggers": pattern["triggers"],
                    "outcomes": pattern["outcomes"],
                    "context": pattern["context"],
                })
                pattern["storedPatternId"] = created.id
                stored += 1
            detected.append(pattern)

        logger.info(
            f"Pattern detection for user {user_id}: {len(events)} events, "
            f"{len(detected)} patterns detected, {stored} stored"
        )
        return detected

    def _score_event_group(self, event_name: str, events: Sequence[BehavioralEvent]) -> Dict[str, Any]:
        timestamps = [event.created_at for event in events]
        frequency = len(events)
        consistency = consistency_from_intervals(timestamps)
        timespan_ms = self._timespan_ms(timestamps)

        completions = [
            event for event in events
            if any(marker in event.event_name for marker in ("completed", "achieved", "finished"))
        ]
        contexts = [event.context for event in events if event.context]

        return {
            "name": f"{event_name}_pattern",
            "type": event_name,
            "frequency": frequency,
            "period": "week",
            "consistency": consistency,
            "confidence": min(95.0, frequency * consistency / 10),
            "triggers": self._extract_triggers(contexts),
            "outcomes": {
                "frequency": frequency,
                "timespan": timespan_ms,
                "success_rate": len(completions) / frequency * 100 if frequency else 0,
            },
            "context": {
                "sample_size": frequency,
                "context_availability": len(contexts) / frequency if frequency else 0,
                "common_patterns": self._common_context_patterns(contexts),
            },
        }

    @staticmethod
    def _timespan_ms(timestamps: Sequence[datetime]) -> float:
        if len(timestamps) < 2:
            return 0
        return (max(timestamps) - min(timestamps)).total_seconds() * 1000

    @staticmethod
    def _extract_triggers(contexts: Sequence[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
        triggers: Dict[str, Dict[str, int]] = {}
        for context in contexts:
            for source, label in (("environment", "environmental"), ("ui", "ui")):
                block = context.get(source)
                if not isinstance(block, dict):
                    continue
                bucket = triggers.setdefault(label, {})
                for key in block:
                    bucket[key] = bucket.get(key, 0) + 1
        return triggers

    @staticmethod
    def _common_context_patterns(contexts: Sequence[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
        patterns: Dict[str, Dict[str, int]] = {}
        for context in contexts:
            for key, value in context.items():
                bucket = patterns.setdefault(key, {})
                if isinstance(value, dict):
                    for sub_key in value:
                        bucket[sub_key] = bucket.get(sub_key, 0) + 1
        return patterns

    # Pattern CRUD

    def create_pattern(self, user_id: str, data: Dict[str, Any], commit: bool = True) -> MicroBehaviorPattern:
        ensure_user_id(user_id)
        if not data.get("behavior_type") or not data.get("frequency"):
            raise ValidationFailure("Behavior type and frequency are required")

        now = utcnow()
        consistency = data.get("consistency")
        sample_size = data.get("sample_size") or 1
        pattern_name = data.get("pattern_name") or f"{data['behavior_type']}_pattern_{int(now.timestamp() * 1000)}"

        pattern = MicroBehaviorPattern(
            user_id=user_id,
            pattern_name=pattern_name,
            behavior_type=data["behavior_type"],
            frequency=data["frequency"],
            frequency_period=data.get("frequency_period") or "week",
            consistency=consistency or 0,
            strength=calculate_pattern_strength(data["frequency"], consistency),
            triggers=data.get("triggers"),
            outcomes=data.get("outcomes"),
            context=data.get("context"),
            correlations=None,
            confidence=calculate_pattern_confidence(sample_size, consistency),
            sample_size=sample_size,
            first_observed=now,
            last_observed=now,
            is_active=True,
        )
        self.db.add(pattern)
        if commit:
            self.db.commit()
        else:
            self.db.flush()

        logger.info(
            f"Created micro-behavior pattern {pattern.id} ({pattern.behavior_type}) for user {user_id}: "
            f"strength={pattern.strength:.1f}, confidence={pattern.confidence:.1f}"
        )
        return pattern

    def create_patterns(self, user_id: str, items: Sequence[Dict[str, Any]]) -> List[MicroBehaviorPattern]:
        """Create several patterns in one transaction."""
        try:
            created = [self.create_pattern(user_id, item, commit=False) for item in items]
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return created

    def _owned_pattern(self, user_id: str, pattern_id: int) -> MicroBehaviorPattern:
        pattern = self.db.query(MicroBehaviorPattern).filter(
            and_(MicroBehaviorPattern.id == pattern_id, MicroBehaviorPattern.user_id == user_id)
        ).first()
        if pattern is None:
            raise NotFoundError("Pattern not found or access denied")
        return pattern

    def update_pattern(self, user_id: str, pattern_id: int, updates: Dict[str, Any]) -> MicroBehaviorPattern:
        ensure_user_id(user_id)
        if not pattern_id or pattern_id <= 0:
            raise ValidationFailure("Invalid pattern ID")

        pattern = self._owned_pattern(user_id, pattern_id)
        prior_sample_size = pattern.sample_size or 0
        pattern.last_observed = utcnow()
        pattern.sample_size = prior_sample_size + 1

        for field in ("triggers", "outcomes", "context"):
            if updates.get(field) is not None:
                setattr(pattern, field, updates[field])

        if updates.get("frequency") is not None:
            pattern.frequency = updates["frequency"]
            consistency = updates.get("consistency", pattern.consistency)
            pattern.strength = calculate_pattern_strength(pattern.frequency, consistency)
            pattern.confidence = calculate_pattern_confidence(prior_sample_size, consistency)

        self.db.commit()
        logger.info(f"Updated micro-behavior pattern {pattern_id} for user {user_id}: {sorted(updates)}")
        return pattern

    def _pattern_query(self, user_id: str, filters: PatternFilters):
        q = self.db.query(MicroBehaviorPattern).filter(MicroBehaviorPattern.user_id == user_id)
        if filters.behavior_type:
            q = q.filter(MicroBehaviorPattern.behavior_type == filters.behavior_type)
        if filters.pattern_name:
            q = q.filter(MicroBehaviorPattern.pattern_name == filters.pattern_name)
        if filters.is_active is not None:
            q = q.filter(MicroBehaviorPattern.is_active == filters.is_active)
        if filters.min_strength is not None:
            q = q.filter(MicroBehaviorPattern.strength >= filters.min_strength)
        if filters.min_confidence is not None:
            q = q.filter(MicroBehaviorPattern.confidence >= filters.min_confidence)
        if filters.start_date:
            q = q.filter(MicroBehaviorPattern.first_observed >= filters.start_date)
        if filters.end_date:
            q = q.filter(MicroBehaviorPattern.last_observed <= filters.end_date)
        return q

    def get_patterns(self, user_id: str, filters: Optional[PatternFilters] = None) -> List[MicroBehaviorPattern]:
        ensure_user_id(user_id)
        filters = filters or PatternFilters()
        column = PATTERN_SORT_COLUMNS[filters.sort_by]
        order = asc(column) if filters.sort_order == "asc" else desc(column)
        return (
            self._pattern_query(user_id, filters)
            .order_by(order, desc(MicroBehaviorPattern.id))
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )

    def count_patterns(self, user_id: str, filters: Optional[PatternFilters] = None) -> int:
        ensure_user_id(user_id)
        return self._pattern_query(user_id, filters or PatternFilters()).count()

    def _active_patterns(self, user_id: str, behavior_type: Optional[str] = None) -> List[MicroBehaviorPattern]:
        q = self.db.query(MicroBehaviorPattern).filter(
            and_(MicroBehaviorPattern.user_id == user_id, MicroBehaviorPattern.is_active == True)  # noqa: E712
        )
        if behavior_type:
            q = q.filter(MicroBehaviorPattern.behavior_type == behavior_type)
        return q.order_by(desc(MicroBehaviorPattern.last_observed), desc(MicroBehaviorPattern.id)).all()

    def archive_pattern(self, user_id: str, pattern_id: int) -> MicroBehaviorPattern:
        ensure_user_id(user_id)
        pattern = self._owned_pattern(user_id, pattern_id)
        pattern.is_active = False
        self.db.commit()
        logger.info(f"Archived micro-behavior pattern {pattern_id} for user {user_id}")
        return pattern

    def delete_pattern(self, user_id: str, pattern_id: int) -> None:
        ensure_user_id(user_id)
        pattern = self._owned_pattern(user_id, pattern_id)
        self.db.delete(pattern)
        self.db.commit()
        logger.info(f"Deleted micro-behavior pattern {pattern_id} for user {user_id}")

    def track_micro_behavior(self, user_id: str, behavior_type: str, data: Optional[Dict[str, Any]] = None) -> MicroBehaviorPattern:
        """Bump the active pattern for a behavior type, creating it on first sight."""
        ensure_user_id(user_id)
        data = dict(data or {})
        existing = self._active_patterns(user_id, behavior_type)
        if existing:
            pattern = existing[0]
            data["frequency"] = (pattern.frequency or 0) + 1
            return self.update_pattern(user_id, pattern.id, data)
        data.setdefault("frequency", 1)
        data["behavior_type"] = behavior_type
        return self.create_pattern(user_id, data)

    # Context patterns

    def analyze_context(self, user_id: str, context_data: Dict[str, Any]) -> ContextPattern:
        """Upsert a context pattern keyed by (user, context type, context name)."""
        ensure_user_id(user_id)
        if not context_data.get("context_type") or not context_data.get("context_name"):
            raise ValidationFailure("Context type and name are required")

        existing = self.db.query(ContextPattern).filter(
            and_(
                ContextPattern.user_id == user_id,
                ContextPattern.context_type == context_data["context_type"],
                ContextPattern.context_name == context_data["context_name"],
            )
        ).first()

        if existing is None:
            return self._create_context_pattern(user_id, context_data)

        existing.frequency = (existing.frequency or 0) + 1
        existing.last_observed = utcnow()
        existing.context_data = {**(existing.context_data or {}), **(context_data.get("context_data") or {})}
        for field in CONTEXT_FIELDS:
            if context_data.get(field) is not None:
                setattr(existing, field, context_data[field])
        self.db.commit()
        logger.info(f"Updated context pattern {existing.id} for user {user_id} (frequency {existing.frequency})")
        return existing

    def _create_context_pattern(self, user_id: str, context_data: Dict[str, Any]) -> ContextPattern:
        now = utcnow()
        context = ContextPattern(
            user_id=user_id,
            context_type=context_data["context_type"],
            context_name=context_data["context_name"],
            context_data=context_data.get("context_data") or {},
            frequency=1,
            behavior_correlations=None,
            outcome_impact=None,
            predictive_power=0,
            first_observed=now,
            last_observed=now,
            is_active=True,
            **{field: context_data.get(field) for field in CONTEXT_FIELDS},
        )
        self.db.add(context)
        self.db.commit()
        logger.info(
            f"Created context pattern {context.id} ({context.context_type}/{context.context_name}) for user {user_id}"
        )
        return context

    def _context_query(self, user_id: str, filters: ContextFilters):
        q = self.db.query(ContextPattern).filter(ContextPattern.user_id == user_id)
        if filters.context_type:
            q = q.filter(ContextPattern.context_type == filters.context_type)
        if filters.context_name:
            q = q.filter(ContextPattern.context_name == filters.context_name)
        if filters.time_of_day:
            q = q.filter(ContextPattern.time_of_day == filters.time_of_day)
        if filters.day_of_week:
            q = q.filter(ContextPattern.day_of_week == filters.day_of_week)
        if filters.is_active is not None:
            q = q.filter(ContextPattern.is_active == filters.is_active)
        if filters.min_predictive_power is not None:
            q = q.filter(ContextPattern.predictive_power >= filters.min_predictive_power)
        if filters.start_date:
            q = q.filter(ContextPattern.first_observed >= filters.start_date)
        if filters.end_date:
            q = q.filter(ContextPattern.last_observed <= filters.end_date)
        return q

    def get_context_patterns(self, user_id: str, filters: Optional[ContextFilters] = None) -> List[ContextPattern]:
        ensure_user_id(user_id)
        filters = filters or ContextFilters()
        column = CONTEXT_SORT_COLUMNS[filters.sort_by]
        order = asc(column) if filters.sort_order == "asc" else desc(column)
        return (
            self._context_query(user_id, filters)
            .order_by(order, desc(ContextPattern.id))
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )

    def count_context_patterns(self, user_id: str, filters: Optional[ContextFilters] = None) -> int:
        ensure_user_id(user_id)
        return self._context_query(user_id, filters or ContextFilters()).count()

    def _active_contexts(self, user_id: str) -> List[ContextPattern]:
        return (
            self.db.query(ContextPattern)
            .filter(and_(ContextPattern.user_id == user_id, ContextPattern.is_active == True))  # noqa: E712
            .order_by(desc(ContextPattern.last_observed), desc(ContextPattern.id))
            .all()
        )

    # Correlations

    @staticmethod
    def correlation_strength(pattern: MicroBehaviorPattern, context: ContextPattern) -> Dict[str, float]:
        """Temporal overlap of the two observation windows relative to their average length."""
        overlap_start = max(pattern.first_observed, context.first_observed)
        overlap_end = min(pattern.last_observed, context.last_observed)
        overlap = max(0.0, (overlap_end - overlap_start).total_seconds())

        pattern_duration = (pattern.last_observed - pattern.first_observed).total_seconds()
        context_duration = (context.last_observed - context.first_observed).total_seconds()
        avg_duration = (pattern_duration + context_duration) / 2

        strength = overlap / avg_duration if avg_duration > 0 else 0.0
        significance = min(pattern.confidence or 0, context.predictive_power or 50) / 100
        return {"strength": strength, "significance": significance}

    def correlate_context_behavior(self, user_id: str) -> List[Dict[str, Any]]:
        ensure_user_id(user_id)
        patterns = self._active_patterns(user_id)
        contexts = self._active_contexts(user_id)

        correlations = []
        for pattern in patterns:
            for context in contexts:
                score = self.correlation_strength(pattern, context)
                if score["strength"] < 0.3:
                    continue
                correlations.append({
                    "behaviorPatternId": pattern.id,
                    "contextPatternId": context.id,
                    "behaviorType": pattern.behavior_type,
                    "contextType": context.context_type,
                    "strength": score["strength"],
                    "significance": score["significance"],
                })

        by_id = {pattern.id: pattern for pattern in patterns}
        persisted = 0
        for correlation in correlations:
            if correlation["strength"] < 0.5:
                continue
            pattern = by_id[correlation["behaviorPatternId"]]
            stored = [
                item for item in (pattern.correlations or [])
                if item.get("contextPatternId") != correlation["contextPatternId"]
            ]
            stored.append({
                "contextPatternId": correlation["contextPatternId"],
                "strength": correlation["strength"],
                "type": correlation["contextType"],
            })
            pattern.correlations = stored
            persisted += 1
        if persisted:
            self.db.commit()

        logger.info(
            f"Correlated {len(patterns)} patterns with {len(contexts)} contexts for user {user_id}: "
            f"{len(correlations)} correlations, {persisted} stored"
        )
        return correlations

    # Aggregate analysis

    def analyze_behavior_frequency(self, user_id: str, behavior_type: Optional[str] = None) -> Dict[str, Any]:
        ensure_user_id(user_id)
        patterns = self._active_patterns(user_id, behavior_type)
        if not patterns:
            return {
                "totalOccurrences": 0,
                "averageFrequency": 0,
                "frequencyTrend": "stable",
                "consistency": 0,
                "patternCount": 0,
                "recentPatternCount": 0,
            }

        total = sum(pattern.frequency or 0 for pattern in patterns)
        average = total / len(patterns)
        consistency = calculate_mean([pattern.consistency or 0 for pattern in patterns])

        cutoff = utcnow() - RECENT_WINDOW
        recent = [pattern for pattern in patterns if pattern.last_observed >= cutoff]
        recent_average = calculate_mean([pattern.frequency or 0 for pattern in recent])

        trend = "stable"
        if recent_average > average * 1.1:
            trend = "increasing"
        elif recent_average < average * 0.9:
            trend = "decreasing"

        return {
            "totalOccurrences": total,
            "averageFrequency": average,
            "frequencyTrend": trend,
            "consistency": consistency,
            "patternCount": len(patterns),
            "recentPatternCount": len(recent),
        }

    def identify_triggers(self, user_id: str, behavior_type: Optional[str] = None) -> List[Dict[str, Any]]:
        ensure_user_id(user_id)
        triggers = []
        for pattern in self._active_patterns(user_id, behavior_type):
            for trigger_type, trigger_data in (pattern.triggers or {}).items():
                triggers.append({
                    "patternId": pattern.id,
                    "behaviorType": pattern.behavior_type,
                    "triggerType": trigger_type,
                    "triggerData": trigger_data,
                    "strength": pattern.strength,
                    "confidence": pattern.confidence,
                })
        return triggers

    def measure_outcomes(self, user_id: str, behavior_type: Optional[str] = None) -> Dict[str, Any]:
        ensure_user_id(user_id)
        patterns = self._active_patterns(user_id, behavior_type)
        outcomes = {
            "totalPatterns": len(patterns),
            "averageStrength": 0,
            "averageConfidence": 0,
            "successfulPatterns": 0,
            "improvingPatterns": 0,
            "decliningPatterns": 0,
        }
        if not patterns:
            return outcomes

        outcomes["averageStrength"] = calculate_mean([pattern.strength or 0 for pattern in patterns])
        outcomes["averageConfidence"] = calculate_mean([pattern.confidence or 0 for pattern in patterns])
        outcomes["successfulPatterns"] = sum(1 for pattern in patterns if (pattern.strength or 0) >= 70)

        cutoff = utcnow() - RECENT_WINDOW
        for pattern in patterns:
            recent = pattern.last_observed > cutoff
            if recent and (pattern.strength or 0) >= 70:
                outcomes["improvingPatterns"] += 1
            elif not recent or (pattern.strength or 0) < 50:
                outcomes["decliningPatterns"] += 1
        return outcomes

    def enrich_behavior_events(self, user_id: str, events: Sequence[BehavioralEvent]) -> List[Dict[str, Any]]:
        """Attach the relevant patterns and contexts to each event."""
        ensure_user_id(user_id)
        if events is None:
            raise ValidationFailure("Events array is required")

        patterns = self._active_patterns(user_id)
        contexts = self._active_contexts(user_id)
        enriched = []
        for event in events:
            payload = BehaviorEventResponse.model_validate(event).model_dump(mode="json", by_alias=True)
            payload["microBehaviorData"] = {
                "patterns": [
                    serialize_pattern(pattern) for pattern in patterns
                    if self._pattern_relevant(pattern, event)
                ],
                "context": [
                    serialize_context_pattern(context) for context in contexts
                    if self._context_relevant(context, event)
                ],
                "enrichmentTimestamp": isoformat_now(),
            }
            enriched.append(payload)
        return enriched

    @staticmethod
    def _pattern_relevant(pattern: MicroBehaviorPattern, event: BehavioralEvent) -> bool:
        behavior_type = pattern.behavior_type
        return (
            behavior_type == event.event_name
            or behavior_type in event.event_name
            or event.event_name in behavior_type
        )

    @staticmethod
    def _context_relevant(context: ContextPattern, event: BehavioralEvent) -> bool:
        if not event.context:
            return False
        if context.time_of_day:
            return hour_in_time_of_day(event.created_at.hour, context.time_of_day)
        return True

    # Insights

    def generate_insights(self, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        ensure_user_id(user_id)
        patterns = self._active_patterns(user_id)
        correlations = self.correlate_context_behavior(user_id)

        pattern_insights = [
            {
                "type": "pattern",
                "title": f"Strong {pattern.behavior_type} Pattern Detected",
                "description": (
                    f"You have a consistent {pattern.behavior_type} pattern "
                    f"with {round(pattern.strength)}% strength"
                ),
                "confidence": pattern.confidence,
                "actionable": True,
                "recommendations": self._pattern_recommendations(pattern),
                "data": {"patternId": pattern.id, "behaviorType": pattern.behavior_type},
            }
            for pattern in patterns
            if pattern.strength >= 70 and pattern.confidence >= 80
        ]

        correlation_insights = [
            {
                "type": "correlation",
                "title": "Context-Behavior Correlation Found",
                "description": (
                    f"Strong correlation between {correlation['contextType']} "
                    f"and {correlation['behaviorType']}"
                ),
                "confidence": correlation["strength"] * 100,
                "actionable": True,
                "recommendations": [
                    f"Use {correlation['contextType']} context to enhance {correlation['behaviorType']} behavior",
                    "Monitor this correlation to optimize your behavior patterns",
                    "Consider environmental factors when planning activities",
                ],
                "data": correlation,
            }
            for correlation in correlations
            if correlation["strength"] >= 0.7
        ]

        insights = {
            "patterns": pattern_insights,
            "correlations": correlation_insights,
            "anomalies": self._detect_anomalies(patterns),
        }
        logger.info(
            f"Generated insights for user {user_id}: {len(pattern_insights)} patterns, "
            f"{len(correlation_insights)} correlations, {len(insights['anomalies'])} anomalies"
        )
        return insights

    @staticmethod
    def _pattern_recommendations(pattern: MicroBehaviorPattern) -> List[str]:
        if pattern.strength >= 80:
            recommendations = [f"Maintain your consistent {pattern.behavior_type} pattern"]
        elif pattern.strength >= 60:
            recommendations = [f"Work on strengthening your {pattern.behavior_type} pattern"]
        else:
            recommendations = [f"Focus on building consistency in your {pattern.behavior_type} behavior"]
        if pattern.triggers:
            recommendations.append("Leverage your identified triggers to maintain this pattern")
        return recommendations

    @staticmethod
    def _detect_anomalies(patterns: Sequence[MicroBehaviorPattern]) -> List[Dict[str, Any]]:
        anomalies = []
        for pattern in patterns:
            data = {"patternId": pattern.id, "behaviorType": pattern.behavior_type}
            if (pattern.strength or 0) < 30 and (pattern.confidence or 0) > 70:
                anomalies.append({
                    "type": "strength_drop",
                    "title": "Unusual Behavior Pattern",
                    "description": f"Significant drop in {pattern.behavior_type} pattern strength",
                    "confidence": 85,
                    "actionable": True,
                    "recommendations": [
                        "Review recent changes in routine or environment",
                        "Consider factors that might be disrupting this pattern",
                    ],
                    "data": data,
                })
            if (pattern.consistency or 0) < 40 and (pattern.frequency or 0) > 10:
                anomalies.append({
                    "type": "inconsistency",
                    "title": "Unusual Behavior Pattern",
                    "description": f"High frequency but low consistency in {pattern.behavior_type}",
                    "confidence": 75,
                    "actionable": True,
                    "recommendations": [
                        "Work on establishing a more regular schedule",
                        "Identify and minimize disruptive factors",
                    ],
                    "data": data,
                })
        return anomalies

    # Export

    def export_pattern_data(self, user_id: str, format: str = "json") -> Any:
        """Active patterns and contexts as a JSON-ready dict, or CSV text."""
        ensure_user_id(user_id)
        if format not in ("json", "csv"):
            raise ValidationFailure("Format must be json or csv")

        patterns = self._active_patterns(user_id)
        logger.info(f"Exporting {len(patterns)} patterns for user {user_id} as {format}")

        if format == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(CSV_HEADER)
            for pattern in patterns:
                writer.writerow([
                    pattern.id,
                    pattern.behavior_type,
                    pattern.frequency,
                    pattern.strength or 0,
                    pattern.confidence or 0,
                    pattern.created_at.isoformat(),
                ])
            return buffer.getvalue().rstrip("\n")

        contexts = self._active_contexts(user_id)
        return {
            "userId": user_id,
            "patterns": [serialize_pattern(pattern) for pattern in patterns],
            "contextPatterns": [serialize_context_pattern(context) for context in contexts],
            "summary": {
                "totalPatterns": len(patterns),
                "totalContextPatterns": len(contexts),
                "averageStrength": calculate_mean([pattern.strength or 0 for pattern in patterns]),
                "averageConfidence": calculate_mean([pattern.confidence or 0 for pattern in patterns]),
                "exportDate": isoformat_now(),
            },
        }
