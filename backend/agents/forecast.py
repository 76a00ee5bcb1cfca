"""Forecast agent: rolling 24-hour usage forecast.

With enough history the LLM is asked for hourly predictions which are then
validated, clamped and enriched with tariff context. Hours the model got
wrong are filled from a statistical forecast built from per-hour averages,
which also stands in for the whole forecast whenever the LLM path fails.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, override

import numpy as np

from agents.base import Agent, Clock, SnapshotFn, TextGenerator
from core import tariff
from core.config import DEFAULT, SystemConfig
from core.events import EventBus, EventType
from core.models import Device, ForecastPoint, Reading
from llm.parsing import Fallback, Parsed
from llm.schemas import ForecastPayload, PredictionItem, validate_items

logger = logging.getLogger(__name__)

HORIZON = 24  # hourly points per forecast

# Validation and clamping bounds
_MAX_PLAUSIBLE_USAGE_W = 20_000.0
_MIN_USAGE_W, _MAX_USAGE_W = 500.0, 15_000.0
_MIN_COST, _MAX_COST = 0.1, 5.0
_MIN_CONFIDENCE, _MAX_CONFIDENCE = 0.3, 1.0

_BASELINE_CONFIDENCE = 0.7
_STATISTICAL_CONFIDENCE = 0.75
_TREND_WINDOW = 24  # readings per half of the trend comparison
_PEAK_PROBABILITY = 0.7

# Accuracy is measured against a forecast made roughly one hour earlier
_ACCURACY_MIN_AGE = timedelta(hours=0.9)
_ACCURACY_MAX_AGE = timedelta(hours=1.1)

_CONFIDENCE_ADJUSTMENT = {
    "morning_peak": 0.9,
    "evening_peak": 0.9,
    "daytime_normal": 0.95,
    "night_transition": 0.85,
    "overnight_low": 0.8,
}


@dataclass(frozen=True)
class ForecastRecord:
    """Predicted usage per hour as issued at ``timestamp``."""

    timestamp: datetime
    usage_by_hour: dict[int, float]


# ---------------------------------------------------------------------------
# Point construction
# ---------------------------------------------------------------------------


def adjust_confidence(confidence: float, context: str) -> float:
    return min(1.0, confidence * _CONFIDENCE_ADJUSTMENT.get(context, 1.0))


def make_point(
    hour: int,
    usage: float,
    cost: float,
    confidence: float,
    source: str,
    now: datetime,
    factors: str | None = None,
) -> ForecastPoint:
    """Build a forecast point with tariff context derived from ``hour``."""
    context = tariff.time_context(hour)
    return ForecastPoint(
        hour=hour,
        predicted_usage=usage,
        predicted_cost=cost,
        confidence=confidence,
        time_context=context,
        peak_probability=tariff.peak_probability(hour, usage),
        cost_tier=tariff.cost_tier(hour),
        source=source,
        factors=factors if factors else tariff.time_factors(hour),
        weather_factor=tariff.weather_factor(hour, now),
        seasonal_factor=tariff.seasonal_factor(now),
        confidence_adjusted=adjust_confidence(confidence, context),
        generated_at=now,
    )


def _hours_from(current_hour: int) -> list[int]:
    return [(current_hour + i) % 24 for i in range(HORIZON)]


def baseline_forecast(now: datetime, config: SystemConfig) -> list[ForecastPoint]:
    """Fixed time-of-day curve over the configured base load."""
    points = []
    for hour in _hours_from(now.hour):
        usage = config.forecast_base_usage_w * tariff.time_multiplier(hour)
        cost = usage * config.price_per_kwh / 1000
        points.append(make_point(hour, usage, cost, _BASELINE_CONFIDENCE, "baseline", now))
    return points


def hourly_averages(readings: list[Reading]) -> dict[int, float]:
    by_hour: dict[int, list[float]] = defaultdict(list)
    for r in readings:
        by_hour[r.timestamp.hour].append(r.total_power)
    return {hour: float(np.mean(values)) for hour, values in by_hour.items()}


def trend_factor(readings: list[Reading]) -> float:
    """Ratio of the latest window's mean usage to the window before it."""
    if len(readings) < 2 * _TREND_WINDOW:
        return 1.0
    recent = np.mean([r.total_power for r in readings[-_TREND_WINDOW:]])
    previous = np.mean([r.total_power for r in readings[-2 * _TREND_WINDOW : -_TREND_WINDOW]])
    if previous <= 0:
        return 1.0
    return float(recent / previous)


def statistical_forecast(readings: list[Reading], now: datetime, config: SystemConfig) -> list[ForecastPoint]:
    averages = hourly_averages(readings)
    factor = trend_factor(readings)
    points = []
    for hour in _hours_from(now.hour):
        usage = averages.get(hour, config.forecast_base_usage_w) * factor
        usage = min(_MAX_USAGE_W, max(_MIN_USAGE_W, usage))
        cost = usage * config.price_per_kwh / 1000
        points.append(make_point(hour, usage, cost, _STATISTICAL_CONFIDENCE, "statistical", now))
    return points


def _plausible(item: PredictionItem) -> bool:
    return 0 < item.predicted_usage < _MAX_PLAUSIBLE_USAGE_W and 0 < item.confidence <= 1


def ai_forecast(items: list[PredictionItem], fill: list[ForecastPoint], now: datetime) -> list[ForecastPoint]:
    """Turn validated model predictions into a full 24-point forecast.

    The i-th prediction is taken to describe the i-th upcoming hour. Items
    failing the plausibility check are dropped and their hours taken from
    ``fill``, which must cover the same hours in the same order.
    """
    by_hour: dict[int, ForecastPoint] = {}
    for index, item in enumerate(items[:HORIZON]):
        if not _plausible(item):
            continue
        hour = (now.hour + index) % 24
        by_hour[hour] = make_point(
            hour,
            min(_MAX_USAGE_W, max(_MIN_USAGE_W, item.predicted_usage)),
            min(_MAX_COST, max(_MIN_COST, item.predicted_cost)),
            min(_MAX_CONFIDENCE, max(_MIN_CONFIDENCE, item.confidence)),
            "ai",
            now,
            factors=item.factors,
        )
    return [by_hour.get(point.hour, point) for point in fill]


def forecast_prompt(devices: list[Device], readings: list[Reading], current_hour: int) -> str:
    device_lines = "\n".join(f"- {d.name}: {d.current_power:.0f}W ({d.category})" for d in devices)
    recent = readings[-HORIZON:]
    history_lines = "\n".join(
        f"Hour {(current_hour - len(recent) + 1 + i) % 24}: {r.total_power:.0f}W" for i, r in enumerate(recent)
    )
    return f"""You are an energy forecasting expert. Generate 24-hour energy usage predictions for a smart home.

CURRENT DEVICES & USAGE:
{device_lines}

HISTORICAL HOURLY PATTERNS (last 24 hours):
{history_lines}

CURRENT TIME: {current_hour}:00

Generate predictions for the next 24 hours in this exact JSON format (no other text):
{{
  "predictions": [
    {{"hour": 0, "predictedUsage": 1200, "predictedCost": 0.24, "confidence": 0.85, "factors": "off-peak, low occupancy"}},
    {{"hour": 1, "predictedUsage": 1100, "predictedCost": 0.22, "confidence": 0.87, "factors": "off-peak, minimal activity"}}
  ]
}}"""


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class ForecastAgent(Agent):
    name = "forecast"

    def __init__(
        self,
        llm: TextGenerator,
        snapshot: SnapshotFn,
        bus: EventBus | None = None,
        config: SystemConfig = DEFAULT,
        clock: Clock = datetime.now,
    ) -> None:
        super().__init__(llm, snapshot, bus, config, clock)
        self.forecast: list[ForecastPoint] = []
        self.history: list[ForecastRecord] = []
        self.last_accuracy: float | None = None

    @override
    async def run_cycle(self) -> list[ForecastPoint]:
        devices, readings = await self._snapshot()
        now = self.clock()

        if len(readings) < self.config.forecast_min_readings:
            logger.debug("Insufficient history for forecasting (%d readings), using baseline", len(readings))
            forecast = baseline_forecast(now, self.config)
        else:
            statistical = statistical_forecast(readings, now, self.config)
            match await self._ask(forecast_prompt(devices, readings, now.hour), 0.4, ForecastPayload):
                case Parsed(value=payload):
                    items = validate_items(payload.predictions, PredictionItem)
                    forecast = ai_forecast(items, statistical, now)
                    filled = sum(1 for p in forecast if p.source != "ai")
                    if filled:
                        logger.info("Filled %d forecast hour(s) from statistics", filled)
                case Fallback():
                    forecast = statistical

        self.forecast = forecast
        self._record(now)
        self.last_accuracy = self.accuracy(now, readings)
        self._mark_updated()

        logger.info("Forecast generated (%s), %d hourly points", forecast[0].source, len(forecast))
        if self.last_accuracy is not None:
            logger.info("Forecast accuracy: %.1f%%", self.last_accuracy * 100)

        self._publish(EventType.PREDICTIONS_UPDATE, self.update_payload(now))
        return forecast

    def _record(self, now: datetime) -> None:
        self.history.append(ForecastRecord(now, {p.hour: p.predicted_usage for p in self.forecast}))
        del self.history[: -self.config.forecast_history_size]

    def accuracy(self, now: datetime, readings: list[Reading]) -> float | None:
        """Accuracy of the forecast issued about an hour ago for the current hour."""
        if len(self.history) < 2 or len(readings) < self.config.forecast_min_readings:
            return None
        actual = readings[-1].total_power
        if actual <= 0:
            return None
        for record in self.history:
            if _ACCURACY_MIN_AGE <= now - record.timestamp <= _ACCURACY_MAX_AGE:
                predicted = record.usage_by_hour.get(now.hour)
                if predicted is None:
                    return None
                return max(0.0, 1 - abs(predicted - actual) / actual)
        return None

    def update_payload(self, now: datetime) -> dict[str, Any]:
        return {
            "predictions": self.forecast,
            "last_update": self.last_update,
            "next_update": now + timedelta(seconds=self.config.forecast_interval_s),
        }

    def peak_points(self) -> list[ForecastPoint]:
        peaks = [p for p in self.forecast if p.peak_probability > _PEAK_PROBABILITY]
        return sorted(peaks, key=lambda p: p.predicted_usage, reverse=True)

    def point_for_hour(self, hour: int) -> ForecastPoint | None:
        return next((p for p in self.forecast if p.hour == hour), None)

    @override
    def _health_details(self) -> dict[str, Any]:
        details = super()._health_details()
        details["predictions_count"] = len(self.forecast)
        details["history_count"] = len(self.history)
        return details
