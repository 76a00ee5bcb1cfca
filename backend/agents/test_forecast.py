"""Tests for the forecast agent."""

import asyncio
import json
from datetime import datetime, timedelta

import pytest

from agents.forecast import HORIZON, ForecastAgent, trend_factor
from core.config import SystemConfig
from core.events import EventBus, EventType
from core.models import Device, DeviceCategory, ForecastPoint, Reading
from fakes import FakeLLM

T0 = datetime(2025, 7, 15, 14, 0)


def _devices() -> list[Device]:
    return [Device("hvac_001", "Thermostat", DeviceCategory.HVAC, "Living Room", True, 2800.0, target_temp=72.0)]


def _readings(powers: list[float], start: datetime = T0) -> list[Reading]:
    return [Reading(timestamp=start + timedelta(seconds=30 * i), total_power=p) for i, p in enumerate(powers)]


def _agent(
    llm: FakeLLM, readings: list[Reading], now: list[datetime] | None = None, bus: EventBus | None = None
) -> ForecastAgent:
    clock = now if now is not None else [T0]

    async def snapshot() -> tuple[list[Device], list[Reading]]:
        return _devices(), readings

    return ForecastAgent(llm, snapshot, bus=bus, clock=lambda: clock[0])


def _assert_sane(points: list[ForecastPoint]) -> None:
    assert len(points) == HORIZON
    assert [p.hour for p in points] == [(points[0].hour + i) % 24 for i in range(HORIZON)]
    for p in points:
        assert 0 < p.predicted_usage < 20_000
        assert 0 <= p.confidence <= 1


def test_short_history_gives_baseline_curve() -> None:
    agent = _agent(FakeLLM(), _readings([2000.0] * 10), now=[datetime(2025, 7, 15, 6, 0)])

    points = asyncio.run(agent.run_cycle())

    _assert_sane(points)
    assert points[0].hour == 6
    assert {p.source for p in points} == {"baseline"}
    assert {p.confidence for p in points} == {0.7}
    by_hour = {p.hour: p for p in points}
    assert by_hour[8].predicted_usage == 3600.0
    assert by_hour[8].predicted_cost == pytest.approx(0.432)
    assert by_hour[2].predicted_usage == 600.0
    assert by_hour[13].predicted_usage == 2000.0
    assert by_hour[8].time_context == "morning_peak"


def test_ai_forecast_is_validated_clamped_and_filled() -> None:
    predictions = [{"hour": i, "predictedUsage": 2500, "predictedCost": 0.3, "confidence": 0.9} for i in range(24)]
    predictions[0]["predictedUsage"] = 25_000  # implausible, dropped
    predictions[1]["predictedUsage"] = 100  # clamped up
    predictions[2]["confidence"] = 1.5  # out of range, dropped
    predictions[3]["predictedCost"] = 9.0  # clamped down
    predictions[4]["predictedUsage"] = 5000  # 18:00, a forecast peak
    llm = FakeLLM(json.dumps({"predictions": predictions}))
    agent = _agent(llm, _readings([2000.0] * 30))

    points = asyncio.run(agent.run_cycle())

    _assert_sane(points)
    assert llm.params[0].temperature == 0.4
    assert [p.source for p in points[:5]] == ["statistical", "ai", "statistical", "ai", "ai"]
    assert points[0].predicted_usage == 2000.0
    assert points[1].predicted_usage == 500.0
    assert points[3].predicted_cost == 5.0
    assert points[1].confidence_adjusted == pytest.approx(0.9 * 0.95)
    assert points[1].weather_factor == 1.3
    assert points[1].seasonal_factor == 1.2

    peaks = agent.peak_points()
    assert [p.hour for p in peaks] == [18]
    assert peaks[0].peak_probability == 1.0
    assert agent.point_for_hour(18) is peaks[0]


def test_llm_failure_gives_statistical_forecast() -> None:
    agent = _agent(FakeLLM("the model rambles without JSON"), _readings([1800.0] * 30))

    points = asyncio.run(agent.run_cycle())

    _assert_sane(points)
    assert {p.source for p in points} == {"statistical"}
    assert {p.confidence for p in points} == {0.75}
    assert points[0].predicted_usage == 1800.0  # hour 14 seen in history
    assert points[1].predicted_usage == 2000.0  # unseen hour default


def test_stalled_llm_times_out_to_statistics() -> None:
    readings = _readings([1800.0] * 30)

    async def snapshot() -> tuple[list[Device], list[Reading]]:
        return _devices(), readings

    agent = ForecastAgent(
        FakeLLM("{}", delay_s=5.0), snapshot, config=SystemConfig(llm_timeout_s=0.05), clock=lambda: T0
    )

    points = asyncio.run(asyncio.wait_for(agent.run_cycle(), timeout=2.0))

    _assert_sane(points)
    assert {p.source for p in points} == {"statistical"}


def test_trend_factor() -> None:
    assert trend_factor(_readings([1000.0] * 40)) == 1.0
    assert trend_factor(_readings([1000.0] * 24 + [2000.0] * 24)) == 2.0


def test_accuracy_compares_hour_old_forecast_with_latest_reading() -> None:
    now = [T0]
    agent = _agent(FakeLLM(configured=False), _readings([2000.0] * 29 + [2500.0]), now=now)

    async def two_cycles() -> None:
        await agent.run_cycle()
        now[0] = T0 + timedelta(hours=1)
        await agent.run_cycle()

    asyncio.run(two_cycles())

    assert len(agent.history) == 2
    assert agent.last_accuracy == pytest.approx(0.8)


def test_update_is_published_with_schedule() -> None:
    bus = EventBus()
    sub = bus.subscribe()
    agent = _agent(FakeLLM(), _readings([2000.0] * 5), bus=bus)

    asyncio.run(agent.run_cycle())

    events = sub.pending()
    assert [e.type for e in events] == [EventType.PREDICTIONS_UPDATE]
    payload = events[0].to_dict()["data"]
    assert len(payload["predictions"]) == HORIZON
    assert payload["last_update"] == T0.isoformat()
    assert payload["next_update"] == (T0 + timedelta(minutes=5)).isoformat()
