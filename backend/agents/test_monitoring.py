"""Tests for the monitoring agent and its statistics helpers."""

import asyncio
import json
from datetime import datetime, timedelta

from agents.monitoring import (
    MonitoringAgent,
    analyze_device_performance,
    compute_statistics,
    detect_anomalies,
    efficiency_trend,
)
from core.config import DEFAULT, SystemConfig
from core.events import EventBus, EventType
from core.models import Device, DeviceCategory, HealthStatus, Reading
from fakes import FakeLLM
from llm.client import RequestError

T0 = datetime(2025, 7, 15, 14, 0)


def _devices() -> list[Device]:
    return [
        Device("hvac_001", "Thermostat", DeviceCategory.HVAC, "Living Room", True, 1200.0, target_temp=72.0),
        Device("lighting_001", "Lights", DeviceCategory.LIGHTING, "Kitchen", True, 200.0, brightness=100),
        Device("washer_001", "Washer", DeviceCategory.APPLIANCE, "Laundry", True, 600.0),
    ]


def _readings(powers: list[float]) -> list[Reading]:
    return [Reading(timestamp=T0 + timedelta(seconds=30 * i), total_power=p) for i, p in enumerate(powers)]


def _agent(
    llm: FakeLLM,
    devices: list[Device],
    readings: list[Reading],
    bus: EventBus | None = None,
    config: SystemConfig = DEFAULT,
) -> MonitoringAgent:
    async def snapshot() -> tuple[list[Device], list[Reading]]:
        return devices, readings

    return MonitoringAgent(llm, snapshot, bus=bus, config=config, clock=lambda: T0)


_INSIGHT = json.dumps(
    {
        "efficiency_score": 0.82,
        "peak_usage_time": "7:00 PM",
        "anomalies": [],
        "insights": ["Usage is steady"],
        "potential_issues": ["HVAC filter may need replacement"],
    }
)


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------


def test_compute_statistics() -> None:
    stats = compute_statistics(_readings([1000, 2000, 3000]))
    assert stats is not None
    assert stats.average_usage == 2000
    assert stats.max_usage == 3000
    assert stats.min_usage == 1000
    assert stats.peak_hour == 14
    assert stats.data_points == 3
    assert abs(stats.usage_variability - 816.4966 / 2000) < 1e-3


def test_spike_after_flat_history_is_an_anomaly() -> None:
    readings = _readings([2000.0] * 30 + [4000.0])

    anomalies = detect_anomalies(readings, _devices(), DEFAULT.anomaly_threshold)

    deviations = [a for a in anomalies if a.type == "usage_deviation"]
    assert len(deviations) == 1
    assert deviations[0].severity == "high"
    assert deviations[0].baseline_usage == 2000
    assert deviations[0].current_usage == 4000


def test_flat_history_has_no_anomaly() -> None:
    assert detect_anomalies(_readings([2000.0] * 40), _devices(), 0.3) == []


def test_short_history_skips_deviation_check() -> None:
    assert detect_anomalies(_readings([2000.0] * 18 + [9000.0]), _devices(), 0.3) == []


def test_device_on_at_zero_power_is_a_malfunction() -> None:
    devices = _devices()
    devices[0].current_power = 0.0

    anomalies = detect_anomalies([], devices, 0.3)

    assert [(a.type, a.device_id) for a in anomalies] == [("device_malfunction", "hvac_001")]


def test_device_performance_classification() -> None:
    devices = [
        Device("a", "A", DeviceCategory.HVAC, "x", True, 4500.0),
        Device("b", "B", DeviceCategory.LIGHTING, "x", True, 100.0),
        Device("c", "C", DeviceCategory.APPLIANCE, "x", False, 0.0),
    ]
    performance = analyze_device_performance(devices, DEFAULT)
    assert [p.status for p in performance] == ["high_consumption", "low_consumption", "normal"]
    assert performance[2].efficiency_ratio == 1.0


def test_efficiency_trend() -> None:
    assert efficiency_trend([0.7]).trend == "insufficient_data"
    assert efficiency_trend([0.7, 0.72, 0.8]).trend == "improving"
    assert efficiency_trend([0.8, 0.7]).trend == "declining"
    assert efficiency_trend([0.8, 0.78]).trend == "stable"


# -----------------------------------------------------------------------------
# Agent cycle
# -----------------------------------------------------------------------------


def test_insufficient_history_is_a_no_op() -> None:
    bus = EventBus()
    sub = bus.subscribe()
    agent = _agent(FakeLLM(_INSIGHT), _devices(), _readings([2000.0] * 5), bus)

    assert asyncio.run(agent.run_cycle()) is None
    assert agent.current_analysis is None
    assert sub.pending() == []


def test_ai_analysis_is_published() -> None:
    bus = EventBus()
    sub = bus.subscribe()
    llm = FakeLLM(_INSIGHT)
    agent = _agent(llm, _devices(), _readings([2000.0] * 30 + [4000.0]), bus)

    analysis = asyncio.run(agent.run_cycle())

    assert analysis is not None
    assert analysis.source == "ai"
    assert analysis.ai_insights.efficiency_score == 0.82
    assert any(a.type == "usage_deviation" for a in analysis.anomalies)
    assert [tip.action for tip in analysis.recommendations] == ["schedule_maintenance"]
    assert llm.params[0].temperature == 0.3
    events = sub.pending()
    assert [e.type for e in events] == [EventType.ANALYSIS_UPDATE]
    assert events[0].data is analysis


def test_llm_failure_falls_back_to_statistics() -> None:
    agent = _agent(FakeLLM("I cannot answer that."), _devices(), _readings([2000.0] * 12))

    analysis = asyncio.run(agent.run_cycle())

    assert analysis is not None
    assert analysis.source == "statistical"
    assert not analysis.ai_insights.available
    assert analysis.ai_insights.efficiency_score == 0.75
    assert analysis.ai_insights.anomalies == []
    assert analysis.ai_insights.insights
    assert analysis.statistics is not None and analysis.statistics.average_usage == 2000


def test_stalled_llm_times_out_to_statistics() -> None:
    llm = FakeLLM(_INSIGHT, delay_s=5.0)
    agent = _agent(llm, _devices(), _readings([2000.0] * 12), config=SystemConfig(llm_timeout_s=0.05))

    analysis = asyncio.run(asyncio.wait_for(agent.run_cycle(), timeout=2.0))

    assert analysis is not None
    assert analysis.source == "statistical"
    assert analysis.ai_insights.error == "llm timeout"


def test_unconfigured_llm_still_produces_analysis() -> None:
    agent = _agent(FakeLLM(configured=False), _devices(), _readings([2000.0] * 12))
    analysis = asyncio.run(agent.run_cycle())
    assert analysis is not None
    assert analysis.ai_insights.error == "llm not configured"


def test_trend_uses_only_ai_scores() -> None:
    scores = [0.6, 0.7, 0.8]
    responses: list[str | Exception] = [json.dumps({"efficiency_score": s}) for s in scores]
    responses.insert(1, RequestError("down"))
    agent = _agent(FakeLLM(*responses), _devices(), _readings([2000.0] * 12))

    async def cycles() -> None:
        for _ in range(4):
            await agent.run_cycle()

    asyncio.run(cycles())

    assert len(agent.history) == 4
    trend = agent.history[-1].efficiency_trend
    assert trend.data_points == 3
    assert trend.trend == "improving"


def test_health_reports_llm_status_and_counts() -> None:
    agent = _agent(FakeLLM(_INSIGHT), _devices(), _readings([2000.0] * 12))
    asyncio.run(agent.run_cycle())

    health = asyncio.run(agent.health_check())

    assert health.status == HealthStatus.HEALTHY
    assert health.details["analysis_count"] == 1
    assert health.details["last_update"] == T0.isoformat()
