"""Centralised system tunables.

Every interval and threshold the orchestrator and agents use lives here.
Create a custom ``SystemConfig`` to tweak values for testing::

    cfg = SystemConfig(history_capacity=50, tick_interval_s=0.01)
    orchestrator = Orchestrator(llm, config=cfg)
"""

from dataclasses import dataclass, field

from core.models import DeviceCategory


@dataclass(frozen=True)
class SystemConfig:
    """All system tunables, grouped by component."""

    # --- Store ---
    history_capacity: int = 1000  # readings kept (~8h at 30s ticks)

    # --- Schedules (seconds) ---
    tick_interval_s: float = 30.0
    monitor_interval_s: float = 5 * 60.0
    forecast_interval_s: float = 5 * 60.0
    optimization_interval_s: float = 10 * 60.0
    optimization_initial_delay_s: float = 2.0
    coordination_interval_s: float = 2 * 60.0
    health_interval_s: float = 5 * 60.0

    # --- Tariff ---
    price_per_kwh: float = 0.12

    # --- Telemetry simulation ---
    base_load_w: dict[DeviceCategory, float] = field(
        default_factory=lambda: {
            DeviceCategory.HVAC: 3000.0,
            DeviceCategory.WATER_HEATER: 4000.0,
            DeviceCategory.LIGHTING: 200.0,
            DeviceCategory.APPLIANCE: 1500.0,
        }
    )
    jitter_min: float = 0.8
    jitter_max: float = 1.2

    # --- LLM ---
    llm_timeout_s: float = 30.0

    # --- Monitoring ---
    monitor_min_readings: int = 10
    stats_window: int = 48  # readings in the trailing 24h-equivalent window
    anomaly_threshold: float = 0.3  # 30% deviation from baseline
    analysis_history_size: int = 100

    # --- Forecasting ---
    forecast_min_readings: int = 24
    forecast_base_usage_w: float = 2000.0
    forecast_history_size: int = 48

    # --- Optimization ---
    optimization_history_size: int = 100


DEFAULT = SystemConfig()


def base_load_for(category: DeviceCategory, config: SystemConfig = DEFAULT) -> float:
    """Expected draw of a running device of the given category (W)."""
    return config.base_load_w.get(category, 1000.0)
