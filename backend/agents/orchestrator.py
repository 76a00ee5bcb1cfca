"""Orchestrator: owns the device store and runs the agents on their schedules.

Every state change (new reading, device control, agent output, health pass)
is published on one ``EventBus``; the API layer forwards it to clients.
"""

import logging
import math
import random
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from agents.base import Agent, AgentHealth, Clock, TextGenerator
from agents.forecast import ForecastAgent
from agents.monitoring import MonitoringAgent
from agents.optimization import OptimizationAgent
from core.config import DEFAULT, SystemConfig, base_load_for
from core.events import EventBus, EventType
from core.models import (
    AgentStatus,
    ApplyResult,
    ControlResult,
    Device,
    DeviceCategory,
    HealthStatus,
    Reading,
)
from core.scheduler import PeriodicTask
from core.store import DeviceStore
from data import create_sample_home
from simulation import TelemetrySimulator

logger = logging.getLogger(__name__)

_TEMPERATURE_CATEGORIES = (DeviceCategory.HVAC, DeviceCategory.WATER_HEATER)
_FULL_BRIGHTNESS = 100


class ControlError(ValueError):
    """A control command that cannot be applied to the device."""


# ---------------------------------------------------------------------------
# Device control
# ---------------------------------------------------------------------------


def _number(value: str | float | None, action: str) -> float:
    if value is None:
        raise ControlError(f"{action} requires a value")
    try:
        number = float(value)
    except ValueError:
        raise ControlError(f"{action} requires a numeric value, got {value!r}") from None
    if not math.isfinite(number):
        raise ControlError(f"{action} requires a finite value, got {value!r}")
    return number


def _running_power(device: Device, config: SystemConfig) -> float:
    power = base_load_for(device.category, config)
    if device.category == DeviceCategory.LIGHTING and device.brightness is not None:
        power *= device.brightness / 100
    return power


def _set_brightness(device: Device, brightness: int, config: SystemConfig) -> None:
    previous = device.brightness
    device.brightness = brightness
    if brightness == 0:
        device.is_on = False
        device.current_power = 0.0
    elif not device.is_on:
        return
    elif not previous or device.current_power == 0:
        device.current_power = base_load_for(device.category, config) * brightness / 100
    else:
        device.current_power = device.current_power * brightness / previous


def apply_control(device: Device, action: str, value: str | float | None, config: SystemConfig = DEFAULT) -> None:
    """Mutate ``device`` according to one control command.

    Raises:
        ControlError: The action is unknown, not supported by the device's
            category, or its value cannot be parsed.
    """
    match action:
        case "toggle" | "turn_on" | "turn_off":
            was_on = device.is_on
            device.is_on = (not was_on) if action == "toggle" else action == "turn_on"
            if device.is_on != was_on:
                # A light switched on at zero brightness comes back at full brightness.
                if device.is_on and device.category == DeviceCategory.LIGHTING and device.brightness == 0:
                    device.brightness = _FULL_BRIGHTNESS
                device.current_power = _running_power(device, config) if device.is_on else 0.0
        case "set_temperature":
            if device.category not in _TEMPERATURE_CATEGORIES:
                raise ControlError(f"set_temperature is not supported for {device.category}")
            device.target_temp = _number(value, action)
        case "set_brightness":
            if device.category != DeviceCategory.LIGHTING:
                raise ControlError(f"set_brightness is not supported for {device.category}")
            brightness = _number(value, action)
            if not 0 <= brightness <= 100:
                raise ControlError(f"brightness must be within 0-100, got {value!r}")
            _set_brightness(device, round(brightness), config)
        case "schedule":
            if value is None or not str(value).strip():
                raise ControlError("schedule requires a start time label")
            device.scheduled_for = str(value).strip()
        case _:
            raise ControlError(f"Unsupported action: {action}")


def aggregate_health(statuses: Iterable[AgentStatus]) -> HealthStatus:
    """Healthy when every agent is running, degraded when some are, else unhealthy."""
    running = [s == AgentStatus.RUNNING for s in statuses]
    if running and all(running):
        return HealthStatus.HEALTHY
    if any(running):
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    def __init__(
        self,
        llm: TextGenerator,
        config: SystemConfig = DEFAULT,
        devices: Iterable[Device] | None = None,
        rng: random.Random | None = None,
        clock: Clock = datetime.now,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self.clock = clock
        self.bus = bus or EventBus()
        self.store = DeviceStore(create_sample_home() if devices is None else devices, config.history_capacity)
        self.simulator = TelemetrySimulator(config, rng, clock)

        self.monitor = MonitoringAgent(llm, self.store.snapshot, self.bus, config, clock)
        self.forecaster = ForecastAgent(llm, self.store.snapshot, self.bus, config, clock)
        self.optimizer = OptimizationAgent(
            llm, self.store.snapshot, lambda: self.forecaster.forecast, self.bus, config, clock
        )
        self.agents: list[Agent] = [self.monitor, self.forecaster, self.optimizer]

        self.last_health: HealthStatus | None = None
        self._tasks = [
            PeriodicTask("tick", config.tick_interval_s, self.tick),
            PeriodicTask("monitor", config.monitor_interval_s, self.monitor.run_cycle, initial_delay_s=0),
            PeriodicTask("forecast", config.forecast_interval_s, self.forecaster.run_cycle, initial_delay_s=0),
            PeriodicTask(
                "optimization",
                config.optimization_interval_s,
                self.optimizer.run_cycle,
                initial_delay_s=config.optimization_initial_delay_s,
            ),
            PeriodicTask("coordination", config.coordination_interval_s, self.coordinate),
            PeriodicTask("health", config.health_interval_s, self.health_check),
        ]

    # -- Lifecycle -----------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(task.running for task in self._tasks)

    def start(self) -> None:
        for task in self._tasks:
            task.start()
        logger.info("Energy management started with %d periodic tasks", len(self._tasks))

    async def stop(self) -> None:
        """Stop every periodic task, then close the broadcast channel."""
        for task in self._tasks:
            await task.stop()
        self.bus.close()
        logger.info("Energy management stopped")

    # -- Readings ------------------------------------------------------------

    async def tick(self) -> Reading:
        """Advance simulated telemetry by one step and broadcast the reading."""
        reading = await self.store.mutate_all(self.simulator.step)
        self.bus.publish(EventType.ENERGY_UPDATE, reading)
        return reading

    async def ingest_reading(self, reading: Reading) -> None:
        """Accept a reading from an external telemetry source."""
        await self.store.append_reading(reading)
        self.bus.publish(EventType.ENERGY_UPDATE, reading)

    async def reading_history(self, limit: int | None = None, since: datetime | None = None) -> list[Reading]:
        return await self.store.readings(limit=limit, since=since)

    async def latest_reading(self) -> Reading | None:
        return await self.store.latest_reading()

    # -- Devices -------------------------------------------------------------

    async def devices(self) -> list[Device]:
        return await self.store.devices()

    async def device(self, device_id: str) -> Device | None:
        return await self.store.device(device_id)

    async def control_device(self, device_id: str, action: str, value: str | float | None = None) -> ControlResult:
        """Apply one control command. Failures are reported, never raised, and broadcast nothing."""
        try:
            outcome = await self.store.mutate_device(device_id, lambda d: apply_control(d, action, value, self.config))
        except ControlError as e:
            logger.info("Rejected %s on %s: %s", action, device_id, e)
            return ControlResult(success=False, error=str(e))
        if outcome is None:
            return ControlResult(success=False, error="Device not found")

        device, _ = outcome
        logger.info("Controlled %s: %s%s", device.name, action, f" = {value}" if value is not None else "")
        self.bus.publish(EventType.DEVICE_UPDATE, device)
        return ControlResult(success=True, device=device)

    async def apply_recommendation(self, recommendation_id: str) -> ApplyResult:
        return await self.optimizer.apply_recommendation(recommendation_id, self.control_device)

    # -- Coordination and health ---------------------------------------------

    def agent_statuses(self) -> dict[str, AgentStatus]:
        return {agent.name: agent.status for agent in self.agents}

    async def coordinate(self) -> dict[str, Any]:
        statuses = self.agent_statuses()
        if not all(s == AgentStatus.RUNNING for s in statuses.values()):
            logger.warning("Not all agents are running: %s", {k: str(v) for k, v in statuses.items()})

        summary = {
            "analysis_available": self.monitor.current_analysis is not None,
            "forecast_points": len(self.forecaster.forecast),
            "active_recommendations": len(self.optimizer.recommendations),
        }
        logger.info(
            "Coordination: analysis %s, %d forecast points, %d recommendations",
            "active" if summary["analysis_available"] else "pending",
            summary["forecast_points"],
            summary["active_recommendations"],
        )
        return summary

    async def health_check(self) -> HealthStatus:
        """Query every agent, update its status and broadcast the aggregate."""
        reports: dict[str, AgentHealth] = {}
        for agent in self.agents:
            report = await agent.health_check()
            agent.status = AgentStatus.RUNNING if report.status == HealthStatus.HEALTHY else AgentStatus.DEGRADED
            reports[agent.name] = report
            logger.info("%s agent: %s - %s", agent.name, report.status, report.message)

        overall = aggregate_health(agent.status for agent in self.agents)
        self.last_health = overall
        self.bus.publish(
            EventType.SYSTEM_HEALTH,
            {"overall_status": overall, "agents": reports, "timestamp": self.clock()},
        )
        return overall

    def system_health(self) -> HealthStatus:
        return aggregate_health(self.agent_statuses().values())

    async def system_stats(self) -> dict[str, Any]:
        devices = await self.store.devices()
        readings = await self.store.readings()
        return {
            "total_devices": len(devices),
            "active_devices": sum(1 for d in devices if d.is_on),
            "total_power": sum(d.current_power for d in devices),
            "daily_cost": sum(d.todays_cost for d in devices),
            "energy_readings_count": len(readings),
            "predictions_count": len(self.forecaster.forecast),
            "recommendations_count": len(self.optimizer.recommendations),
            "agent_status": self.agent_statuses(),
            "system_health": self.system_health(),
        }

    def readings_since(self, hours: float) -> datetime:
        return self.clock() - timedelta(hours=hours)
