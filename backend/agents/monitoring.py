"""Monitoring agent: efficiency assessment and anomaly detection.

Each cycle combines an LLM assessment of recent behaviour with statistics
computed locally from the reading history. The statistics never depend on
the LLM, so a failed call only downgrades the insight block.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, override

import numpy as np

from agents.base import Agent, Clock, SnapshotFn, TextGenerator
from core.config import DEFAULT, SystemConfig, base_load_for
from core.events import EventBus, EventType
from core.models import (
    AIInsights,
    Analysis,
    Anomaly,
    Device,
    DevicePerformance,
    EfficiencyTrend,
    MaintenanceTip,
    Priority,
    Reading,
    UsageStatistics,
)
from llm.parsing import Fallback, Parsed
from llm.schemas import InsightPayload

logger = logging.getLogger(__name__)

_MIN_ANOMALY_READINGS = 20
_RECENT_WINDOW = 10  # readings averaged as "current" usage
_BASELINE_WINDOW = 20  # readings before the recent window used as baseline
_HIGH_DEVIATION = 0.5
_HIGH_CONSUMPTION_RATIO = 1.3
_LOW_CONSUMPTION_RATIO = 0.7
_TREND_WINDOW = 5
_TREND_THRESHOLD = 0.05
_FALLBACK_EFFICIENCY = 0.75
_LOW_EFFICIENCY = 0.7


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def compute_statistics(readings: list[Reading]) -> UsageStatistics | None:
    if not readings:
        return None

    usage = np.array([r.total_power for r in readings], dtype=float)
    avg = float(np.mean(usage))
    std = float(np.std(usage))

    by_hour: dict[int, list[float]] = defaultdict(list)
    for r in readings:
        by_hour[r.timestamp.hour].append(r.total_power)
    hourly = {hour: float(np.mean(values)) for hour, values in by_hour.items()}
    peak_hour = max(hourly, key=lambda h: hourly[h])

    return UsageStatistics(
        average_usage=round(avg),
        max_usage=round(float(np.max(usage))),
        min_usage=round(float(np.min(usage))),
        standard_deviation=round(std),
        peak_hour=peak_hour,
        peak_usage=round(hourly[peak_hour]),
        usage_variability=std / avg if avg > 0 else 0.0,
        data_points=len(readings),
    )


def analyze_device_performance(devices: list[Device], config: SystemConfig) -> list[DevicePerformance]:
    performance: list[DevicePerformance] = []
    for device in devices:
        expected = base_load_for(device.category, config)
        ratio = device.current_power / expected if device.is_on else 1.0

        if ratio > _HIGH_CONSUMPTION_RATIO:
            status = "high_consumption"
        elif ratio < _LOW_CONSUMPTION_RATIO:
            status = "low_consumption"
        else:
            status = "normal"

        performance.append(
            DevicePerformance(
                device_id=device.id,
                device_name=device.name,
                current_power=device.current_power,
                expected_power=expected,
                efficiency_ratio=round(ratio, 2),
                status=status,
                is_on=device.is_on,
                daily_cost=device.todays_cost,
            )
        )
    return performance


def detect_anomalies(readings: list[Reading], devices: list[Device], threshold: float) -> list[Anomaly]:
    """Usage deviation against the preceding baseline, plus devices on at zero power.

    The deviation check compares the baseline with both the recent-window
    average and the latest single reading, and reports the larger of the two.
    """
    anomalies: list[Anomaly] = []

    if len(readings) >= _MIN_ANOMALY_READINGS:
        recent = readings[-_RECENT_WINDOW:]
        baseline = readings[-(_RECENT_WINDOW + _BASELINE_WINDOW) : -_RECENT_WINDOW]
        baseline_avg = float(np.mean([r.total_power for r in baseline]))

        if baseline_avg > 0:
            recent_avg = float(np.mean([r.total_power for r in recent]))
            latest = readings[-1].total_power
            current = max(recent_avg, latest, key=lambda v: abs(v - baseline_avg))
            deviation = abs(current - baseline_avg) / baseline_avg

            if deviation >= threshold:
                direction = "increased" if current > baseline_avg else "decreased"
                anomalies.append(
                    Anomaly(
                        type="usage_deviation",
                        severity="high" if deviation > _HIGH_DEVIATION else "medium",
                        description=f"Usage {direction} by {deviation * 100:.1f}%",
                        current_usage=round(current),
                        baseline_usage=round(baseline_avg),
                        deviation_percent=round(deviation * 100),
                    )
                )

    for device in devices:
        if device.is_on and device.current_power == 0:
            anomalies.append(
                Anomaly(
                    type="device_malfunction",
                    severity="high",
                    description=f"{device.name} shows as ON but consuming no power",
                    device_id=device.id,
                )
            )

    return anomalies


def efficiency_trend(scores: list[float]) -> EfficiencyTrend:
    """Trend between the first and last of the given efficiency scores."""
    if len(scores) < 2:
        return EfficiencyTrend(trend="insufficient_data", data_points=len(scores))

    change = scores[-1] - scores[0]
    if change > _TREND_THRESHOLD:
        trend = "improving"
    elif change < -_TREND_THRESHOLD:
        trend = "declining"
    else:
        trend = "stable"

    return EfficiencyTrend(
        trend=trend,
        change_percent=round(change * 100),
        current_score=round(scores[-1] * 100),
        data_points=len(scores),
    )


def maintenance_tips(insights: AIInsights) -> list[MaintenanceTip]:
    tips = [
        MaintenanceTip(type="maintenance", priority=Priority.MEDIUM, description=issue, action="schedule_maintenance")
        for issue in insights.potential_issues
    ]
    if insights.available and insights.efficiency_score < _LOW_EFFICIENCY:
        tips.append(
            MaintenanceTip(
                type="efficiency",
                priority=Priority.HIGH,
                description="Overall system efficiency is below optimal",
                action="review_settings",
            )
        )
    return tips


# ---------------------------------------------------------------------------
# Prompt and fallback
# ---------------------------------------------------------------------------


def analysis_prompt(devices: list[Device], readings: list[Reading]) -> str:
    device_lines = "\n".join(
        f"- {d.name} ({d.category}): {d.current_power:.0f}W, Status: {'ON' if d.is_on else 'OFF'}" for d in devices
    )
    usage_lines = "\n".join(
        f"{r.timestamp.strftime('%H:%M:%S')}: {r.total_power:.0f}W" for r in readings[-_RECENT_WINDOW:]
    )
    return f"""You are an expert energy efficiency analyst. Analyze the following smart home energy data and provide insights.

CURRENT DEVICES:
{device_lines}

RECENT USAGE PATTERN:
{usage_lines}

Provide analysis in this exact JSON format (no other text):
{{
  "efficiency_score": 0.85,
  "peak_usage_time": "7:00 PM",
  "anomalies": ["HVAC running 23% above normal"],
  "insights": ["Peak usage occurs during dinner preparation"],
  "potential_issues": ["HVAC may need filter replacement"]
}}"""


def fallback_insights(stats: UsageStatistics | None, reason: str) -> AIInsights:
    if stats is None:
        return AIInsights(efficiency_score=_FALLBACK_EFFICIENCY, available=False, error=reason)
    return AIInsights(
        efficiency_score=_FALLBACK_EFFICIENCY,
        peak_usage_time=f"{stats.peak_hour:02d}:00",
        insights=[
            f"Average load {stats.average_usage}W over {stats.data_points} readings, "
            f"highest around {stats.peak_hour:02d}:00"
        ],
        available=False,
        error=reason,
    )


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class MonitoringAgent(Agent):
    name = "monitor"

    def __init__(
        self,
        llm: TextGenerator,
        snapshot: SnapshotFn,
        bus: EventBus | None = None,
        config: SystemConfig = DEFAULT,
        clock: Clock = datetime.now,
    ) -> None:
        super().__init__(llm, snapshot, bus, config, clock)
        self.current_analysis: Analysis | None = None
        self.history: list[Analysis] = []

    @override
    async def run_cycle(self) -> Analysis | None:
        devices, readings = await self._snapshot()
        if len(readings) < self.config.monitor_min_readings:
            logger.debug("Insufficient data for analysis (%d readings)", len(readings))
            return None

        stats = compute_statistics(readings[-self.config.stats_window :])

        match await self._ask(analysis_prompt(devices, readings), 0.3, InsightPayload):
            case Parsed(value=payload):
                insights = AIInsights(**payload.model_dump())
                source = "ai"
            case Fallback(reason=reason):
                insights = fallback_insights(stats, reason)
                source = "statistical"

        previous_scores = [
            a.ai_insights.efficiency_score for a in self.history[-(_TREND_WINDOW - 1) :] if a.ai_insights.available
        ]
        scores = previous_scores + ([insights.efficiency_score] if insights.available else [])

        analysis = Analysis(
            timestamp=self.clock(),
            ai_insights=insights,
            statistics=stats,
            device_performance=analyze_device_performance(devices, self.config),
            anomalies=detect_anomalies(readings, devices, self.config.anomaly_threshold),
            efficiency_trend=efficiency_trend(scores),
            recommendations=maintenance_tips(insights),
            source=source,
        )

        self.current_analysis = analysis
        self.history.append(analysis)
        del self.history[: -self.config.analysis_history_size]
        self._mark_updated()

        logger.info("Energy analysis completed (%s), efficiency %.1f%%", source, insights.efficiency_score * 100)
        if analysis.anomalies:
            logger.info("Anomalies detected: %s", ", ".join(a.description for a in analysis.anomalies))

        self._publish(EventType.ANALYSIS_UPDATE, analysis)
        return analysis

    @override
    def _health_details(self) -> dict[str, Any]:
        details = super()._health_details()
        details["analysis_count"] = len(self.history)
        return details
