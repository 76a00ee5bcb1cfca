"""Serialisation round-trips and JSON conversion of domain models."""

from datetime import datetime

from core.models import (
    AffectedDevice,
    DeviceCategory,
    DeviceSnapshot,
    ForecastPoint,
    Priority,
    Reading,
    Recommendation,
)
from core.serialization import to_jsonable

T0 = datetime(2025, 7, 15, 18, 30)


def test_reading_round_trip() -> None:
    reading = Reading(
        timestamp=T0,
        total_power=3180.0,
        devices=(DeviceSnapshot("hvac_001", 2800.0, True), DeviceSnapshot("washer_001", 0.0, False)),
    )
    assert Reading.from_dict(reading.to_dict()) == reading


def test_forecast_point_round_trip() -> None:
    point = ForecastPoint(
        hour=18,
        predicted_usage=4200.0,
        predicted_cost=0.5,
        confidence=0.8,
        time_context="evening_peak",
        peak_probability=1.0,
        cost_tier="peak",
        source="ai",
        factors="peak hours, high occupancy",
        weather_factor=1.3,
        seasonal_factor=1.2,
        confidence_adjusted=0.72,
        generated_at=T0,
    )
    assert ForecastPoint.from_dict(point.to_dict()) == point


def test_recommendation_round_trip() -> None:
    rec = Recommendation(
        id="rule_peak_precool",
        title="Pre-cool Before Peak Rates",
        description="Lower thermostat now",
        category="hvac",
        potential_savings=1.8,
        priority=Priority.HIGH,
        difficulty="easy",
        estimated_time="1 minute",
        devices=["hvac_001"],
        action="set_temperature",
        value="69",
        source="rule_based",
        generated_at=T0,
        affected_devices=[AffectedDevice("hvac_001", "Thermostat", DeviceCategory.HVAC, 2800.0, True)],
        urgency_score=1.0,
        feasibility_score=1.0,
        comfort_impact=0.7,
        automation_level="semi_automatic",
        impact_category="medium",
        prerequisites=["Ensure HVAC system is operational"],
        composite_score=0.8,
        rank=1,
        recommendation_strength="recommended",
    )
    assert Recommendation.from_dict(rec.to_dict()) == rec


def test_to_jsonable_handles_nested_dataclasses_and_enums() -> None:
    payload = {
        "status": Priority.HIGH,
        "at": T0,
        "items": (AffectedDevice("a", "A", DeviceCategory.APPLIANCE, 0.0, False),),
    }

    assert to_jsonable(payload) == {
        "status": "high",
        "at": "2025-07-15T18:30:00",
        "items": [{"id": "a", "name": "A", "category": "appliance", "current_power": 0.0, "is_on": False}],
    }
