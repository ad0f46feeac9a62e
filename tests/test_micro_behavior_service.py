from datetime import timedelta

import pytest

from healthtrack.core.exceptions import InvalidUserError, NotFoundError, ValidationFailure
from healthtrack.models.behavior import BehavioralEvent, ContextPattern, MicroBehaviorPattern
from healthtrack.schemas.micro_behavior import PatternFilters
from healthtrack.services.micro_behavior_service import (
    CSV_HEADER,
    MicroBehaviorService,
    calculate_pattern_confidence,
    calculate_pattern_strength,
    hour_in_time_of_day,
)
from healthtrack.utils.timezone import utcnow
from tests.conftest import OTHER_USER_ID, TEST_USER_ID


def add_events(db, event_name, count, every=timedelta(days=1), **context):
    start = utcnow() - every * count
    for index in range(count):
        db.add(BehavioralEvent(
            user_id=TEST_USER_ID,
            event_name=event_name,
            entity_type="ui_interaction",
            context=context or None,
            created_at=start + every * index,
        ))
    db.commit()


def observed_pattern(db, first_days_ago, last_days_ago, **fields):
    now = utcnow()
    values = {
        "user_id": TEST_USER_ID,
        "pattern_name": "walking_pattern",
        "behavior_type": "walking",
        "frequency": 5,
        "strength": 75,
        "confidence": 90,
        "first_observed": now - timedelta(days=first_days_ago),
        "last_observed": now - timedelta(days=last_days_ago),
    }
    values.update(fields)
    pattern = MicroBehaviorPattern(**values)
    db.add(pattern)
    db.commit()
    return pattern


def observed_context(db, first_days_ago, last_days_ago, **fields):
    now = utcnow()
    values = {
        "user_id": TEST_USER_ID,
        "context_type": "temporal",
        "context_name": "early",
        "first_observed": now - timedelta(days=first_days_ago),
        "last_observed": now - timedelta(days=last_days_ago),
    }
    values.update(fields)
    context = ContextPattern(**values)
    db.add(context)
    db.commit()
    return context


def test_strength_and_confidence_formulas():
    assert calculate_pattern_strength(5) == pytest.approx(65.0)
    assert calculate_pattern_strength(5, 80) == pytest.approx(74.0)
    assert calculate_pattern_strength(20, 100) == 100.0
    assert calculate_pattern_confidence() == pytest.approx(30.0)
    assert calculate_pattern_confidence(10, 80) == pytest.approx(90.0)


def test_hour_ranges_wrap_at_night():
    assert hour_in_time_of_day(6, "morning")
    assert not hour_in_time_of_day(12, "morning")
    assert hour_in_time_of_day(23, "night")
    assert hour_in_time_of_day(3, "night")
    assert not hour_in_time_of_day(12, "night")
    assert hour_in_time_of_day(12, "unknown")


def test_empty_user_is_rejected(db):
    with pytest.raises(InvalidUserError):
        MicroBehaviorService(db).get_patterns("")


def test_create_pattern(db):
    pattern = MicroBehaviorService(db).create_pattern(
        TEST_USER_ID, {"behavior_type": "walking", "frequency": 5, "consistency": 80, "sample_size": 10}
    )
    assert pattern.id is not None
    assert pattern.pattern_name.startswith("walking_pattern_")
    assert pattern.strength == pytest.approx(74.0)
    assert pattern.confidence == pytest.approx(90.0)
    assert pattern.frequency_period == "week"
    assert pattern.is_active is True


def test_create_pattern_requires_type_and_frequency(db):
    with pytest.raises(ValidationFailure):
        MicroBehaviorService(db).create_pattern(TEST_USER_ID, {"behavior_type": "walking"})


def test_update_pattern_recomputes_scores(db):
    service = MicroBehaviorService(db)
    pattern = service.create_pattern(TEST_USER_ID, {"behavior_type": "walking", "frequency": 2})

    updated = service.update_pattern(TEST_USER_ID, pattern.id, {"frequency": 8, "triggers": {"alarm": 1}})
    assert updated.sample_size == 2
    assert updated.frequency == 8
    # consistency stays 0 once stored, which falls back to 50 in the formulas
    assert updated.strength == pytest.approx(95.0)
    # confidence is scored on the sample size before this observation
    assert updated.confidence == pytest.approx(30.0)
    assert updated.triggers == {"alarm": 1}


def test_update_pattern_ownership(db):
    service = MicroBehaviorService(db)
    pattern = service.create_pattern(TEST_USER_ID, {"behavior_type": "walking", "frequency": 2})
    with pytest.raises(NotFoundError):
        service.update_pattern(OTHER_USER_ID, pattern.id, {"frequency": 3})
    with pytest.raises(ValidationFailure):
        service.update_pattern(TEST_USER_ID, 0, {"frequency": 3})


def test_get_patterns_filters_and_sorting(db):
    service = MicroBehaviorService(db)
    weak = service.create_pattern(TEST_USER_ID, {"behavior_type": "walking", "frequency": 1})
    strong = service.create_pattern(TEST_USER_ID, {"behavior_type": "running", "frequency": 9})
    service.archive_pattern(TEST_USER_ID, weak.id)

    ordered = service.get_patterns(TEST_USER_ID, PatternFilters(sort_by="strength", sort_order="asc"))
    assert [pattern.id for pattern in ordered] == [weak.id, strong.id]

    active = service.get_patterns(TEST_USER_ID, PatternFilters(is_active=True))
    assert [pattern.id for pattern in active] == [strong.id]
    assert service.count_patterns(TEST_USER_ID, PatternFilters(min_strength=90)) == 1
    assert service.count_patterns(OTHER_USER_ID) == 0


def test_detect_patterns_reports_and_stores_by_confidence(db):
    add_events(db, "workout_completed", 10, ui={"route": "/workouts"})
    add_events(db, "page_view", 6)
    add_events(db, "ui_click", 2)

    detected = MicroBehaviorService(db).detect_patterns(TEST_USER_ID)
    by_type = {pattern["type"]: pattern for pattern in detected}
    assert set(by_type) == {"workout_completed", "page_view"}

    workout = by_type["workout_completed"]
    assert workout["confidence"] == pytest.approx(95.0)
    assert workout["consistency"] == pytest.approx(100.0)
    assert workout["outcomes"]["success_rate"] == 100
    assert workout["triggers"] == {"ui": {"route": 10}}
    assert workout["context"]["context_availability"] == 1
    assert "storedPatternId" in workout

    page_view = by_type["page_view"]
    assert page_view["confidence"] == pytest.approx(60.0)
    assert "storedPatternId" not in page_view

    stored = db.query(MicroBehaviorPattern).filter(MicroBehaviorPattern.user_id == TEST_USER_ID).all()
    assert [pattern.behavior_type for pattern in stored] == ["workout_completed"]
    assert stored[0].consistency == pytest.approx(100.0)


def test_detect_patterns_respects_timeframe(db):
    add_events(db, "workout_completed", 10)
    now = utcnow()
    detected = MicroBehaviorService(db).detect_patterns(TEST_USER_ID, now - timedelta(hours=1), now)
    assert detected == []


def test_analyze_context_upserts(db):
    service = MicroBehaviorService(db)
    created = service.analyze_context(TEST_USER_ID, {
        "context_type": "temporal",
        "context_name": "before_work",
        "context_data": {"alarm": True},
        "time_of_day": "morning",
    })
    assert created.frequency == 1
    assert created.predictive_power == 0

    updated = service.analyze_context(TEST_USER_ID, {
        "context_type": "temporal",
        "context_name": "before_work",
        "context_data": {"coffee": True},
        "mood": "calm",
    })
    assert updated.id == created.id
    assert updated.frequency == 2
    assert updated.context_data == {"alarm": True, "coffee": True}
    assert updated.time_of_day == "morning"
    assert updated.mood == "calm"

    with pytest.raises(ValidationFailure):
        service.analyze_context(TEST_USER_ID, {"context_type": "temporal"})


def test_correlations_require_overlap_and_dedupe(db):
    pattern = observed_pattern(db, 10, 0)
    overlapping = observed_context(db, 10, 0)
    observed_context(db, 40, 30, context_name="last_month")

    service = MicroBehaviorService(db)
    correlations = service.correlate_context_behavior(TEST_USER_ID)
    assert len(correlations) == 1
    correlation = correlations[0]
    assert correlation["contextPatternId"] == overlapping.id
    assert correlation["strength"] == pytest.approx(1.0)
    # predictive power 0 falls back to 50
    assert correlation["significance"] == pytest.approx(0.5)

    service.correlate_context_behavior(TEST_USER_ID)
    db.refresh(pattern)
    assert len(pattern.correlations) == 1
    assert pattern.correlations[0]["contextPatternId"] == overlapping.id


def test_track_micro_behavior_creates_then_bumps(db):
    service = MicroBehaviorService(db)
    first = service.track_micro_behavior(TEST_USER_ID, "hydration")
    assert first.frequency == 1

    second = service.track_micro_behavior(TEST_USER_ID, "hydration", {"context": {"place": "desk"}})
    assert second.id == first.id
    assert second.frequency == 2
    assert second.sample_size == 2
    assert second.context == {"place": "desk"}


def test_frequency_analysis(db):
    service = MicroBehaviorService(db)
    assert service.analyze_behavior_frequency(TEST_USER_ID) == {
        "totalOccurrences": 0,
        "averageFrequency": 0,
        "frequencyTrend": "stable",
        "consistency": 0,
        "patternCount": 0,
        "recentPatternCount": 0,
    }

    observed_pattern(db, 100, 60, frequency=2, consistency=40)
    observed_pattern(db, 10, 1, frequency=10, consistency=60)
    result = service.analyze_behavior_frequency(TEST_USER_ID)
    assert result["totalOccurrences"] == 12
    assert result["averageFrequency"] == 6
    assert result["consistency"] == pytest.approx(50.0)
    assert result["recentPatternCount"] == 1
    assert result["frequencyTrend"] == "increasing"


def test_triggers_and_outcomes(db):
    observed_pattern(db, 10, 1, triggers={"environmental": {"timezone": 3}, "ui": {"route": 2}})
    observed_pattern(db, 100, 60, strength=40, behavior_type="reading")
    service = MicroBehaviorService(db)

    triggers = service.identify_triggers(TEST_USER_ID)
    assert {item["triggerType"] for item in triggers} == {"environmental", "ui"}
    assert service.identify_triggers(TEST_USER_ID, "reading") == []

    outcomes = service.measure_outcomes(TEST_USER_ID)
    assert outcomes["totalPatterns"] == 2
    assert outcomes["successfulPatterns"] == 1
    assert outcomes["improvingPatterns"] == 1
    assert outcomes["decliningPatterns"] == 1
    assert outcomes["averageStrength"] == pytest.approx(57.5)


def test_enrich_behavior_events(db):
    observed_pattern(db, 10, 0, behavior_type="workout")
    observed_pattern(db, 10, 0, behavior_type="reading")
    morning = observed_context(db, 10, 0, time_of_day="morning")
    observed_context(db, 10, 0, context_name="late", time_of_day="night")
    anytime = observed_context(db, 10, 0, context_name="anytime")

    created_at = (utcnow() - timedelta(days=1)).replace(hour=7)
    event = BehavioralEvent(
        user_id=TEST_USER_ID,
        event_name="workout_completed",
        entity_type="ui_interaction",
        context={"ui": {"route": "/"}},
        created_at=created_at,
    )
    bare = BehavioralEvent(user_id=TEST_USER_ID, event_name="page_view", entity_type="ui_interaction")
    db.add_all([event, bare])
    db.commit()

    enriched = MicroBehaviorService(db).enrich_behavior_events(TEST_USER_ID, [event, bare])
    data = enriched[0]["microBehaviorData"]
    assert [pattern["behaviorType"] for pattern in data["patterns"]] == ["workout"]
    assert {context["id"] for context in data["context"]} == {morning.id, anytime.id}
    assert enriched[1]["microBehaviorData"]["context"] == []


def test_generate_insights(db):
    observed_pattern(db, 10, 0, strength=85, confidence=90, triggers={"ui": {"route": 1}})
    observed_pattern(db, 10, 0, behavior_type="snacking", strength=20, confidence=80)
    observed_pattern(db, 10, 0, behavior_type="scrolling", strength=50, confidence=60, consistency=10, frequency=15)
    observed_context(db, 10, 0)

    insights = MicroBehaviorService(db).generate_insights(TEST_USER_ID)
    assert [item["data"]["behaviorType"] for item in insights["patterns"]] == ["walking"]
    assert insights["patterns"][0]["recommendations"] == [
        "Maintain your consistent walking pattern",
        "Leverage your identified triggers to maintain this pattern",
    ]
    assert len(insights["correlations"]) == 3
    assert all(item["confidence"] == pytest.approx(100.0) for item in insights["correlations"])
    assert sorted(item["type"] for item in insights["anomalies"]) == ["inconsistency", "strength_drop"]


def test_export_pattern_data(db):
    service = MicroBehaviorService(db)
    empty = service.export_pattern_data(TEST_USER_ID)
    assert empty["summary"]["totalPatterns"] == 0
    assert empty["summary"]["averageStrength"] == 0

    pattern = service.create_pattern(TEST_USER_ID, {"behavior_type": "walking", "frequency": 5})
    lines = service.export_pattern_data(TEST_USER_ID, "csv").split("\n")
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1].startswith(f"{pattern.id},walking,5,65.0,30.0,")

    with pytest.raises(ValidationFailure):
        service.export_pattern_data(TEST_USER_ID, "xml")
