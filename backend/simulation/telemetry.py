"""Simulated device telemetry.

Each tick drifts the power draw of every running device around its category
base load, scaled by the time-of-day curve and a bounded random jitter, and
accumulates today's energy and cost.
"""

import random
from collections.abc import Callable
from datetime import datetime

from core import tariff
from core.config import DEFAULT, SystemConfig, base_load_for
from core.models import Device, DeviceCategory, DeviceSnapshot, Reading

_SECONDS_PER_HOUR = 3600.0


class TelemetrySimulator:
    def __init__(
        self,
        config: SystemConfig = DEFAULT,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self._rng = rng or random.Random()
        self._clock = clock

    def device_power(self, device: Device, hour: int) -> float:
        """Instantaneous draw for ``device`` at ``hour`` (0 when off)."""
        if not device.is_on:
            return 0.0
        power = base_load_for(device.category, self.config) * tariff.time_multiplier(hour)
        power *= self._rng.uniform(self.config.jitter_min, self.config.jitter_max)
        if device.category == DeviceCategory.LIGHTING and device.brightness is not None:
            power *= device.brightness / 100
        return float(round(power))

    def step(self, devices: list[Device]) -> Reading:
        """Advance ``devices`` in place by one tick and return the resulting reading."""
        now = self._clock()
        tick_hours = self.config.tick_interval_s / _SECONDS_PER_HOUR
        for device in devices:
            device.current_power = self.device_power(device, now.hour)
            device.todays_usage += device.current_power / 1000 * tick_hours
            device.todays_cost = device.todays_usage * self.config.price_per_kwh

        return Reading(
            timestamp=now,
            total_power=sum(d.current_power for d in devices),
            devices=tuple(DeviceSnapshot(id=d.id, power=d.current_power, is_on=d.is_on) for d in devices),
        )
