"""Optimization agent: ranked, applicable cost-saving recommendations.

Recommendations come from the LLM when it answers with something usable and
from a deterministic rule set otherwise. Either way they go through the same
scoring pipeline (``agents.scoring``) and the published list is never empty.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, override

from agents import scoring
from agents.base import Agent, Clock, SnapshotFn, TextGenerator
from core import tariff
from core.config import DEFAULT, SystemConfig
from core.events import EventBus, EventType
from core.models import (
    AppliedRecommendation,
    ApplyResult,
    ControlResult,
    Device,
    DeviceCategory,
    ForecastPoint,
    Priority,
    Recommendation,
)
from llm.parsing import Fallback, Parsed
from llm.schemas import RecommendationItem, RecommendationsPayload, validate_items

logger = logging.getLogger(__name__)

type ForecastFn = Callable[[], list[ForecastPoint]]
type ControlFn = Callable[[str, str, str | None], Awaitable[ControlResult]]

_HIGH_TOTAL_W = 3000.0
_HIGH_DEVICE_W = 2000.0
_BRIGHT_LIGHT = 85
_DIMMED_BRIGHTNESS = "75"
_PRECOOL_MIN_SETPOINT = 70
_PRECOOL_DROP = 3
_PEAK_SETPOINT_DROP = 2
_PEAK_PROBABILITY = 0.7
_OFF_PEAK_START = "23:00"
_PROMPT_FORECAST_HOURS = 6


@dataclass
class OptimizationRecord:
    timestamp: datetime
    total_recommendations: int
    high_priority_count: int
    total_potential_savings: float
    categories: dict[str, dict[str, float]] = field(default_factory=dict)
    average_composite_score: float = 0.0


# ---------------------------------------------------------------------------
# Rule-based recommendations
# ---------------------------------------------------------------------------


def optimization_action(device: Device) -> str:
    match device.category:
        case DeviceCategory.HVAC | DeviceCategory.WATER_HEATER:
            return "set_temperature"
        case DeviceCategory.LIGHTING:
            return "set_brightness"
        case DeviceCategory.APPLIANCE:
            return "schedule"
        case _:
            return "optimize"


def optimization_value(device: Device) -> str:
    match device.category:
        case DeviceCategory.HVAC:
            return f"{device.target_temp - 2:g}" if device.target_temp else "70"
        case DeviceCategory.LIGHTING:
            return str(max(50, device.brightness - 20)) if device.brightness else "75"
        case DeviceCategory.WATER_HEATER:
            return "115"
        case DeviceCategory.APPLIANCE:
            return _OFF_PEAK_START
        case _:
            return "auto"


def _rule(
    rec_id: str,
    title: str,
    description: str,
    category: str,
    savings: float,
    priority: Priority,
    estimated_time: str,
    devices: list[str],
    action: str,
    value: str,
) -> Recommendation:
    return Recommendation(
        id=rec_id,
        title=title,
        description=description,
        category=category,
        potential_savings=savings,
        priority=priority,
        difficulty="easy",
        estimated_time=estimated_time,
        devices=devices,
        action=action,
        value=value,
        source="rule_based",
    )


def rule_based_recommendations(
    devices: list[Device], hour: int, forecast: list[ForecastPoint] | None = None
) -> list[Recommendation]:
    """Deterministic heuristics used when the LLM gives nothing usable. Never empty."""
    recs: list[Recommendation] = []
    total = sum(d.current_power for d in devices)

    if total > _HIGH_TOTAL_W and devices:
        top = max(devices, key=lambda d: d.current_power)
        if top.current_power > _HIGH_DEVICE_W:
            recs.append(
                _rule(
                    "rule_high_usage",
                    "Reduce High Energy Device",
                    f"{top.name} is using {top.current_power:.0f}W. Consider optimizing its settings.",
                    top.category.value,
                    1.5,
                    Priority.HIGH,
                    "3 minutes",
                    [top.id],
                    optimization_action(top),
                    optimization_value(top),
                )
            )

    hvac = next((d for d in devices if d.category == DeviceCategory.HVAC and d.is_on), None)

    if 17 <= hour <= 19 and hvac is not None and hvac.target_temp and hvac.target_temp > _PRECOOL_MIN_SETPOINT:
        recs.append(
            _rule(
                "rule_peak_precool",
                "Pre-cool Before Peak Rates",
                "Lower thermostat now to avoid higher peak electricity rates",
                "hvac",
                1.8,
                Priority.HIGH,
                "1 minute",
                [hvac.id],
                "set_temperature",
                f"{hvac.target_temp - _PRECOOL_DROP:g}",
            )
        )

    if hour >= 20:
        appliance = next((d for d in devices if d.category == DeviceCategory.APPLIANCE and not d.is_on), None)
        if appliance is not None:
            recs.append(
                _rule(
                    "rule_late_schedule",
                    "Schedule for Off-Peak Hours",
                    "Run appliances after 11 PM for significant savings",
                    "appliance",
                    0.95,
                    Priority.MEDIUM,
                    "2 minutes",
                    [appliance.id],
                    "schedule",
                    _OFF_PEAK_START,
                )
            )

    for light in devices:
        if light.category == DeviceCategory.LIGHTING and light.is_on and (light.brightness or 0) > _BRIGHT_LIGHT:
            recs.append(
                _rule(
                    f"rule_light_{light.id}",
                    "Optimize Lighting Efficiency",
                    "Reduce brightness slightly for energy savings with minimal impact",
                    "lighting",
                    0.4,
                    Priority.LOW,
                    "30 seconds",
                    [light.id],
                    "set_brightness",
                    _DIMMED_BRIGHTNESS,
                )
            )

    if forecast and hvac is not None and any(p.peak_probability > _PEAK_PROBABILITY for p in forecast):
        value = f"{hvac.target_temp - _PEAK_SETPOINT_DROP:g}" if hvac.target_temp else "70"
        recs.append(
            _rule(
                "rule_hvac_peak",
                "Optimize HVAC for Peak Hours",
                "Adjust thermostat to reduce usage during predicted peak hours",
                "hvac",
                1.5,
                Priority.HIGH,
                "2 minutes",
                [hvac.id],
                "set_temperature",
                value,
            )
        )

    if not recs:
        recs.append(
            _rule(
                "rule_general",
                "System Running Efficiently",
                "Your energy system is well-optimized. Monitor for new opportunities.",
                "general",
                0.25,
                Priority.LOW,
                "1 minute",
                [],
                "monitor",
                "continue",
            )
        )
    return recs


def from_item(item: RecommendationItem) -> Recommendation:
    return Recommendation(
        id=item.id or "",
        title=item.title,
        description=item.description,
        category=item.category,
        potential_savings=item.potential_savings,
        priority=Priority(item.priority) if item.priority else None,
        difficulty=item.difficulty,
        estimated_time=item.estimated_time,
        devices=list(item.devices),
        action=item.action,
        value=item.value,
        source="ai",
    )


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def _device_status_lines(devices: list[Device]) -> str:
    lines = []
    for d in devices:
        line = f"- {d.name} [{d.id}] ({d.category}): {d.current_power:.0f}W, {'ON' if d.is_on else 'OFF'}"
        if d.target_temp:
            line += f", Target: {d.target_temp:g}°F"
        if d.brightness:
            line += f", Brightness: {d.brightness}%"
        lines.append(line)
    return "\n".join(lines)


def _situation(devices: list[Device], hour: int) -> str:
    total = sum(d.current_power for d in devices)
    active = sum(1 for d in devices if d.is_on)
    return f"""CURRENT SITUATION:
- Time: {hour}:00
- Total Usage: {total:.0f}W
- Active Devices: {active}/{len(devices)}

DEVICE STATUS:
{_device_status_lines(devices)}"""


_RECOMMENDATION_FORMAT = """{
  "recommendations": [
    {
      "id": "rec_001",
      "title": "Pre-cool Before Peak Hours",
      "description": "Set thermostat to 68°F for next 2 hours to avoid peak rates",
      "category": "hvac",
      "potentialSavings": 1.25,
      "priority": "high",
      "difficulty": "easy",
      "estimatedTime": "5 minutes",
      "devices": ["hvac_001"],
      "action": "set_temperature",
      "value": "68"
    }
  ]
}"""


def immediate_prompt(devices: list[Device], hour: int) -> str:
    return f"""You are a smart home energy optimization expert. Generate immediate actionable recommendations based on current device status.

{_situation(devices, hour)}

TIME CONTEXT:
{tariff.time_context_description(hour)}

Generate 2-4 immediate optimization recommendations in this exact JSON format (no other text):
{_RECOMMENDATION_FORMAT}"""


def forecast_prompt(devices: list[Device], forecast: list[ForecastPoint], hour: int) -> str:
    upcoming = "\n".join(
        f"Hour {p.hour}: {p.predicted_usage:.0f}W ({'high' if p.confidence > 0.8 else 'medium'} confidence)"
        for p in forecast[:_PROMPT_FORECAST_HOURS]
    )
    return f"""You are a smart home energy optimization expert. Generate actionable recommendations to reduce energy costs while maintaining comfort.

{_situation(devices, hour)}

UPCOMING USAGE PREDICTIONS:
{upcoming}

Generate 2-4 optimization recommendations in this exact JSON format (no other text):
{_RECOMMENDATION_FORMAT}"""


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class OptimizationAgent(Agent):
    name = "optimization"

    def __init__(
        self,
        llm: TextGenerator,
        snapshot: SnapshotFn,
        forecast: ForecastFn,
        bus: EventBus | None = None,
        config: SystemConfig = DEFAULT,
        clock: Clock = datetime.now,
    ) -> None:
        super().__init__(llm, snapshot, bus, config, clock)
        self._forecast = forecast
        self.recommendations: list[Recommendation] = []
        self.applied: list[AppliedRecommendation] = []
        self.history: list[OptimizationRecord] = []
        self.savings_tracked = 0.0
        self._apply_lock = asyncio.Lock()

    @override
    async def run_cycle(self) -> list[Recommendation]:
        devices, _ = await self._snapshot()
        forecast = self._forecast()
        now = self.clock()

        if forecast:
            prompt = forecast_prompt(devices, forecast, now.hour)
        else:
            logger.info("No forecast available, generating immediate recommendations")
            prompt = immediate_prompt(devices, now.hour)

        raw: list[Recommendation] = []
        match await self._ask(prompt, 0.5, RecommendationsPayload):
            case Parsed(value=payload):
                raw = [from_item(item) for item in validate_items(payload.recommendations, RecommendationItem)]
                if not raw:
                    logger.warning("%s: no valid recommendations in LLM response", self.name)
            case Fallback():
                pass
        if not raw:
            raw = rule_based_recommendations(devices, now.hour, forecast)

        self.recommendations = scoring.rank([scoring.enhance(rec, devices, now) for rec in raw])
        self._record(now)
        self._mark_updated()

        high = len(self.by_priority(Priority.HIGH))
        logger.info("Generated %d recommendations (%s)", len(self.recommendations), raw[0].source)
        if high:
            logger.info("%d high-priority recommendations available", high)

        self._publish(EventType.RECOMMENDATIONS_UPDATE, self.update_payload())
        return self.recommendations

    def _record(self, now: datetime) -> None:
        recs = self.recommendations
        self.history.append(
            OptimizationRecord(
                timestamp=now,
                total_recommendations=len(recs),
                high_priority_count=len(self.by_priority(Priority.HIGH)),
                total_potential_savings=self.total_potential_savings(),
                categories=self.by_category(),
                average_composite_score=sum(r.composite_score for r in recs) / len(recs) if recs else 0.0,
            )
        )
        del self.history[: -self.config.optimization_history_size]

    async def apply_recommendation(self, recommendation_id: str, control: ControlFn) -> ApplyResult:
        """Issue the recommendation's action to each of its devices.

        The recommendation stays active if any device command fails. Applies
        are serialised so one recommendation is never counted twice.
        """
        async with self._apply_lock:
            return await self._apply(recommendation_id, control)

    async def _apply(self, recommendation_id: str, control: ControlFn) -> ApplyResult:
        rec = next((r for r in self.recommendations if r.id == recommendation_id), None)
        if rec is None:
            return ApplyResult(success=False, message="Recommendation not found")

        logger.info("Applying recommendation: %s", rec.title)
        for device_id in rec.devices:
            result = await control(device_id, rec.action, rec.value)
            if not result.success:
                logger.warning("Failed to apply %s on %s: %s", rec.id, device_id, result.error)
                return ApplyResult(success=False, message=f"Failed to control device {device_id}: {result.error}")

        self.applied.append(AppliedRecommendation(recommendation=rec, applied_at=self.clock()))
        self.savings_tracked += rec.potential_savings
        self.recommendations = [r for r in self.recommendations if r.id != recommendation_id]
        logger.info("Recommendation applied, estimated savings $%.2f", rec.potential_savings)

        self._publish(EventType.RECOMMENDATIONS_UPDATE, self.update_payload())
        return ApplyResult(
            success=True,
            message="Recommendation applied successfully",
            estimated_savings=rec.potential_savings,
            total_tracked_savings=self.savings_tracked,
        )

    def by_priority(self, priority: Priority) -> list[Recommendation]:
        return [r for r in self.recommendations if r.priority == priority]

    def by_category(self) -> dict[str, dict[str, float]]:
        categories: dict[str, dict[str, float]] = {}
        for rec in self.recommendations:
            entry = categories.setdefault(rec.category or "general", {"count": 0, "total_savings": 0.0})
            entry["count"] += 1
            entry["total_savings"] += rec.potential_savings
        return categories

    def total_potential_savings(self) -> float:
        return sum(r.potential_savings for r in self.recommendations)

    def update_payload(self) -> dict[str, Any]:
        return {
            "recommendations": self.recommendations,
            "last_update": self.last_update,
            "total_potential_savings": self.total_potential_savings(),
            "high_priority_count": len(self.by_priority(Priority.HIGH)),
            "applied_count": len(self.applied),
            "total_tracked_savings": self.savings_tracked,
        }

    def stats(self) -> dict[str, Any]:
        return {
            "total_recommendations": len(self.recommendations),
            "applied_recommendations": len(self.applied),
            "total_tracked_savings": self.savings_tracked,
            "categories": self.by_category(),
            "last_update": self.last_update,
            "optimization_history_count": len(self.history),
        }

    @override
    def _health_details(self) -> dict[str, Any]:
        details = super()._health_details()
        details["recommendations_count"] = len(self.recommendations)
        details["applied_count"] = len(self.applied)
        return details
