"""Authoritative device list and reading ring buffer.

All reads hand out deep copies and all mutations run under one
``asyncio.Lock`` so the reading tick and control commands never interleave
partial updates on the same device.
"""

import asyncio
import copy
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime

from core.models import Device, Reading


class DeviceStore:
    def __init__(self, devices: Iterable[Device], capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._devices: dict[str, Device] = {d.id: copy.deepcopy(d) for d in devices}
        self._capacity = capacity
        self._readings: deque[Reading] = deque(maxlen=capacity)
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    # -- Devices -------------------------------------------------------------

    async def devices(self) -> list[Device]:
        async with self._lock:
            return [copy.deepcopy(d) for d in self._devices.values()]

    async def device(self, device_id: str) -> Device | None:
        async with self._lock:
            device = self._devices.get(device_id)
            return copy.deepcopy(device) if device else None

    async def mutate_device[T](self, device_id: str, fn: Callable[[Device], T]) -> tuple[Device, T] | None:
        """Apply ``fn`` to the live device atomically.

        Returns a copy of the mutated device and ``fn``'s result, or None when
        the id is unknown. If ``fn`` raises, the device is left untouched.
        """
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            working = copy.deepcopy(device)
            result = fn(working)
            self._devices[device_id] = working
            return copy.deepcopy(working), result

    async def mutate_all(self, fn: Callable[[list[Device]], Reading]) -> Reading:
        """Run ``fn`` over every live device and append the reading it returns."""
        async with self._lock:
            reading = fn(list(self._devices.values()))
            self._readings.append(reading)
            return reading

    # -- Readings ------------------------------------------------------------

    async def append_reading(self, reading: Reading) -> None:
        async with self._lock:
            self._readings.append(reading)

    async def readings(self, limit: int | None = None, since: datetime | None = None) -> list[Reading]:
        """Readings oldest-first, optionally bounded by count and/or start time."""
        async with self._lock:
            items = list(self._readings)
        if since is not None:
            items = [r for r in items if r.timestamp >= since]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    async def latest_reading(self) -> Reading | None:
        async with self._lock:
            return self._readings[-1] if self._readings else None

    async def snapshot(self) -> tuple[list[Device], list[Reading]]:
        """Read-consistent copy of devices and history taken under one lock."""
        async with self._lock:
            return [copy.deepcopy(d) for d in self._devices.values()], list(self._readings)
