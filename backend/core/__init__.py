"""Core domain models, device store, event bus and scheduling."""

from core.events import Event, EventBus, EventType, Subscription
from core.models import (
    Analysis,
    ApplyResult,
    ControlResult,
    Device,
    DeviceCategory,
    DeviceSnapshot,
    ForecastPoint,
    Reading,
    Recommendation,
)
from core.scheduler import PeriodicTask
from core.store import DeviceStore

__all__ = [
    "Analysis",
    "ApplyResult",
    "ControlResult",
    "Device",
    "DeviceCategory",
    "DeviceSnapshot",
    "DeviceStore",
    "Event",
    "EventBus",
    "EventType",
    "ForecastPoint",
    "PeriodicTask",
    "Reading",
    "Recommendation",
    "Subscription",
]
