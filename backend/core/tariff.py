"""Time-of-day usage curve and tariff bands.

Shared by the telemetry tick, the forecast agent and the optimizer so that
every component agrees on what "peak" means.
"""

from datetime import datetime

_PEAK_MULTIPLIER = 1.8
_OFF_PEAK_MULTIPLIER = 0.3
_HIGH_USAGE_W = 3000.0


def is_usage_peak_hour(hour: int) -> bool:
    """Hours where household load is expected to peak (07-09, 18-21)."""
    return 7 <= hour <= 9 or 18 <= hour <= 21


def is_tariff_peak_hour(hour: int) -> bool:
    """Hours billed at the peak rate (07-09, 17-21)."""
    return 7 <= hour <= 9 or 17 <= hour <= 21


def is_off_peak_hour(hour: int) -> bool:
    return hour >= 23 or hour <= 6


def time_multiplier(hour: int) -> float:
    """Load multiplier applied to base usage for the given hour."""
    if is_usage_peak_hour(hour):
        return _PEAK_MULTIPLIER
    if is_off_peak_hour(hour):
        return _OFF_PEAK_MULTIPLIER
    return 1.0


def time_context(hour: int) -> str:
    if 6 <= hour <= 9:
        return "morning_peak"
    if 10 <= hour <= 16:
        return "daytime_normal"
    if 17 <= hour <= 21:
        return "evening_peak"
    if 22 <= hour <= 23:
        return "night_transition"
    return "overnight_low"


def time_context_description(hour: int) -> str:
    """Human-readable rate context, used in LLM prompts."""
    match time_context(hour):
        case "morning_peak":
            return "Morning peak hours - high energy rates expected"
        case "daytime_normal":
            return "Daytime normal hours - standard energy rates"
        case "evening_peak":
            return "Evening peak hours - highest energy rates"
        case "night_transition":
            return "Late evening - transitioning to off-peak rates"
        case _:
            return "Overnight hours - lowest energy rates available"


def time_factors(hour: int) -> str:
    if is_off_peak_hour(hour):
        return "off-peak, low occupancy"
    if is_usage_peak_hour(hour):
        return "peak hours, high occupancy"
    return "normal hours, moderate activity"


def cost_tier(hour: int) -> str:
    if is_tariff_peak_hour(hour):
        return "peak"
    if is_off_peak_hour(hour):
        return "off_peak"
    return "standard"


def peak_probability(hour: int, usage_w: float) -> float:
    probability = 0.1
    if is_tariff_peak_hour(hour):
        probability += 0.6
    if usage_w > _HIGH_USAGE_W:
        probability += 0.3
    return min(1.0, round(probability, 2))


def season(moment: datetime) -> str:
    month = moment.month
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "fall"
    return "winter"


def weather_factor(hour: int, moment: datetime) -> float:
    """Simplified weather load factor: afternoon cooling in summer, heating peaks in winter."""
    current = season(moment)
    if current == "summer" and 12 <= hour <= 18:
        return 1.3
    if current == "winter" and (6 <= hour <= 9 or 17 <= hour <= 22):
        return 1.2
    return 1.0


def seasonal_factor(moment: datetime) -> float:
    month = moment.month
    if 6 <= month <= 9:
        return 1.2
    if month == 12 or month <= 3:
        return 1.1
    return 1.0
