"""Recommendation scoring and ranking.

Pure functions over ``Recommendation``: each raw recommendation is enhanced
with urgency, feasibility and comfort estimates, then the list is scored,
de-duplicated and ranked.
"""

import math
import re
import uuid
from datetime import datetime

from core.models import AffectedDevice, Device, Priority, Recommendation

HIGH_DRAW_W = 3000.0

# Composite score weights, summing to 1
_W_SAVINGS = 0.30
_W_URGENCY = 0.25
_W_FEASIBILITY = 0.20
_W_COMFORT = 0.15
_W_IMPLEMENTATION = 0.10

_SAVINGS_NORMALISER = 2.0  # currency units counted as full savings score
_IMPLEMENTATION_NORMALISER = 30.0  # minutes counted as slowest
_DEFAULT_MINUTES = 5

_COMFORT_IMPACT = {
    "hvac": 0.7,
    "water_heater": 0.4,
    "lighting": 0.3,
    "appliance": 0.1,
    "appliances": 0.1,
}
_DEFAULT_COMFORT_IMPACT = 0.3

_IMPLEMENTATION_TIME = {
    "set_temperature": "2 minutes",
    "set_brightness": "1 minute",
    "schedule": "5 minutes",
    "turn_off": "30 seconds",
    "turn_on": "30 seconds",
}

_TIME_PATTERN = re.compile(r"(\d+)\s*(minute|min|second|sec)", re.IGNORECASE)


def new_recommendation_id() -> str:
    return f"opt_{uuid.uuid4().hex[:12]}"


def is_appliance_category(category: str) -> bool:
    return category in ("appliance", "appliances")


def parse_minutes(text: str | None) -> int:
    """Minutes in a free-text duration such as "2 minutes" or "30 seconds"."""
    if not text:
        return _DEFAULT_MINUTES
    match = _TIME_PATTERN.search(text)
    if match is None:
        return _DEFAULT_MINUTES
    value = int(match.group(1))
    if match.group(2).lower().startswith("sec"):
        return math.ceil(value / 60)
    return value


def urgency_score(rec: Recommendation, hour: int) -> float:
    urgency = 0.5
    if rec.category == "hvac" and 16 <= hour <= 18:
        urgency += 0.3
    if is_appliance_category(rec.category) and 21 <= hour <= 23:
        urgency += 0.2
    if rec.potential_savings > 1.0:
        urgency += 0.2
    if any(d.current_power > HIGH_DRAW_W for d in rec.affected_devices):
        urgency += 0.2
    return min(1.0, urgency)


def feasibility_score(rec: Recommendation) -> float:
    feasibility = 0.8
    if rec.difficulty == "easy":
        feasibility += 0.2
    elif rec.difficulty == "hard":
        feasibility -= 0.3
    if rec.action != "turn_on" and any(not d.is_on for d in rec.affected_devices):
        feasibility -= 0.2
    return max(0.1, min(1.0, feasibility))


def comfort_impact(category: str) -> float:
    return _COMFORT_IMPACT.get(category, _DEFAULT_COMFORT_IMPACT)


def automation_level(action: str) -> str:
    if action == "schedule":
        return "automatic"
    if action in ("set_temperature", "set_brightness"):
        return "semi_automatic"
    return "manual"


def impact_category(savings: float) -> str:
    if savings >= 2.0:
        return "high"
    if savings >= 1.0:
        return "medium"
    if savings >= 0.5:
        return "low"
    return "minimal"


def prerequisites(rec: Recommendation) -> list[str]:
    items = []
    if rec.category == "hvac":
        items += ["Ensure HVAC system is operational", "Check current temperature settings"]
    if rec.automation_level == "automatic":
        items.append("Smart scheduling capability required")
    return items


def implementation_time(action: str) -> str:
    return _IMPLEMENTATION_TIME.get(action, f"{_DEFAULT_MINUTES} minutes")


def recommendation_strength(score: float) -> str:
    if score > 0.8:
        return "strongly_recommended"
    if score > 0.6:
        return "recommended"
    if score > 0.4:
        return "consider"
    return "optional"


def derived_priority(score: float) -> Priority:
    if score > 0.8:
        return Priority.HIGH
    if score > 0.6:
        return Priority.MEDIUM
    return Priority.LOW


def composite_score(rec: Recommendation) -> float:
    savings = min(1.0, rec.potential_savings / _SAVINGS_NORMALISER)
    implementation = 1.0 - min(1.0, parse_minutes(rec.estimated_time) / _IMPLEMENTATION_NORMALISER)
    return (
        _W_SAVINGS * savings
        + _W_URGENCY * rec.urgency_score
        + _W_FEASIBILITY * rec.feasibility_score
        + _W_COMFORT * (1.0 - rec.comfort_impact)
        + _W_IMPLEMENTATION * implementation
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def enhance(rec: Recommendation, devices: list[Device], now: datetime) -> Recommendation:
    """Fill in identity, device context and the per-recommendation scores."""
    by_id = {d.id: d for d in devices}
    if not rec.id:
        rec.id = new_recommendation_id()
    if rec.generated_at is None:
        rec.generated_at = now
    if not rec.estimated_time:
        rec.estimated_time = implementation_time(rec.action)

    rec.affected_devices = [
        AffectedDevice(id=d.id, name=d.name, category=d.category, current_power=d.current_power, is_on=d.is_on)
        for d in (by_id.get(device_id) for device_id in rec.devices)
        if d is not None
    ]
    rec.urgency_score = urgency_score(rec, now.hour)
    rec.feasibility_score = feasibility_score(rec)
    rec.comfort_impact = comfort_impact(rec.category)
    rec.automation_level = automation_level(rec.action)
    rec.impact_category = impact_category(rec.potential_savings)
    rec.prerequisites = prerequisites(rec)
    rec.composite_score = composite_score(rec)
    return rec


def _duplicate_key(rec: Recommendation) -> tuple[str, frozenset[str]] | None:
    if not rec.devices:
        return None
    return rec.action, frozenset(rec.devices)


def rank(recommendations: list[Recommendation]) -> list[Recommendation]:
    """Sort by composite score, drop duplicates, then assign priority and rank.

    Two recommendations are duplicates when they share an id or apply the same
    action to the same set of devices; the higher-scored one is kept.
    """
    ordered = sorted(recommendations, key=lambda r: r.composite_score, reverse=True)

    kept: list[Recommendation] = []
    seen_ids: set[str] = set()
    seen_keys: set[tuple[str, frozenset[str]]] = set()
    for rec in ordered:
        key = _duplicate_key(rec)
        if rec.id in seen_ids or (key is not None and key in seen_keys):
            continue
        seen_ids.add(rec.id)
        if key is not None:
            seen_keys.add(key)
        kept.append(rec)

    for position, rec in enumerate(kept, start=1):
        if rec.priority is None:
            rec.priority = derived_priority(rec.composite_score)
        rec.rank = position
        rec.recommendation_strength = recommendation_strength(rec.composite_score)
    return kept
