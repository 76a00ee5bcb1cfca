"""Core data models for the home energy system."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class DeviceCategory(StrEnum):
    HVAC = "hvac"
    WATER_HEATER = "water_heater"
    LIGHTING = "lighting"
    APPLIANCE = "appliance"


class AgentStatus(StrEnum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Devices and readings
# ---------------------------------------------------------------------------


@dataclass
class Device:
    """A controllable appliance. Mutated only through the device store."""

    id: str
    name: str
    category: DeviceCategory
    location: str
    is_on: bool
    current_power: float  # W
    todays_usage: float = 0.0  # kWh
    todays_cost: float = 0.0
    target_temp: float | None = None  # °F, hvac only
    brightness: int | None = None  # %, lighting only
    scheduled_for: str | None = None  # off-peak start label set by the "schedule" action


@dataclass(frozen=True)
class DeviceSnapshot:
    id: str
    power: float
    is_on: bool


@dataclass(frozen=True)
class Reading:
    timestamp: datetime
    total_power: float  # W
    devices: tuple[DeviceSnapshot, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_power": self.total_power,
            "devices": [{"id": d.id, "power": d.power, "is_on": d.is_on} for d in self.devices],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reading":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            total_power=float(data["total_power"]),
            devices=tuple(
                DeviceSnapshot(id=d["id"], power=float(d["power"]), is_on=bool(d["is_on"]))
                for d in data.get("devices", [])
            ),
        )


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------


@dataclass
class AIInsights:
    """LLM assessment block. ``available`` is False when it was substituted."""

    efficiency_score: float
    peak_usage_time: str | None = None
    anomalies: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    potential_issues: list[str] = field(default_factory=list)
    available: bool = True
    error: str | None = None


@dataclass
class UsageStatistics:
    average_usage: int
    max_usage: int
    min_usage: int
    standard_deviation: int
    peak_hour: int
    peak_usage: int
    usage_variability: float  # coefficient of variation
    data_points: int


@dataclass
class DevicePerformance:
    device_id: str
    device_name: str
    current_power: float
    expected_power: float
    efficiency_ratio: float
    status: str  # "high_consumption" | "low_consumption" | "normal"
    is_on: bool
    daily_cost: float


@dataclass
class Anomaly:
    type: str  # "usage_deviation" | "device_malfunction"
    severity: str
    description: str
    device_id: str | None = None
    current_usage: int | None = None
    baseline_usage: int | None = None
    deviation_percent: int | None = None


@dataclass
class EfficiencyTrend:
    trend: str  # "improving" | "declining" | "stable" | "insufficient_data"
    change_percent: int | None = None
    current_score: int | None = None
    data_points: int = 0


@dataclass
class MaintenanceTip:
    type: str
    priority: Priority
    description: str
    action: str


@dataclass
class Analysis:
    timestamp: datetime
    ai_insights: AIInsights
    statistics: UsageStatistics | None
    device_performance: list[DevicePerformance]
    anomalies: list[Anomaly]
    efficiency_trend: EfficiencyTrend
    recommendations: list[MaintenanceTip] = field(default_factory=list)
    source: str = "ai"


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------


@dataclass
class ForecastPoint:
    hour: int
    predicted_usage: float  # W
    predicted_cost: float
    confidence: float
    time_context: str
    peak_probability: float
    cost_tier: str
    source: str
    factors: str = ""
    weather_factor: float = 1.0
    seasonal_factor: float = 1.0
    confidence_adjusted: float | None = None
    generated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hour": self.hour,
            "predicted_usage": self.predicted_usage,
            "predicted_cost": self.predicted_cost,
            "confidence": self.confidence,
            "time_context": self.time_context,
            "peak_probability": self.peak_probability,
            "cost_tier": self.cost_tier,
            "source": self.source,
            "factors": self.factors,
            "weather_factor": self.weather_factor,
            "seasonal_factor": self.seasonal_factor,
            "confidence_adjusted": self.confidence_adjusted,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ForecastPoint":
        generated_at = data.get("generated_at")
        adjusted = data.get("confidence_adjusted")
        return cls(
            hour=int(data["hour"]),
            predicted_usage=float(data["predicted_usage"]),
            predicted_cost=float(data["predicted_cost"]),
            confidence=float(data["confidence"]),
            time_context=data["time_context"],
            peak_probability=float(data["peak_probability"]),
            cost_tier=data["cost_tier"],
            source=data["source"],
            factors=data.get("factors", ""),
            weather_factor=float(data.get("weather_factor", 1.0)),
            seasonal_factor=float(data.get("seasonal_factor", 1.0)),
            confidence_adjusted=float(adjusted) if adjusted is not None else None,
            generated_at=datetime.fromisoformat(generated_at) if generated_at else None,
        )


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AffectedDevice:
    id: str
    name: str
    category: DeviceCategory
    current_power: float
    is_on: bool


@dataclass
class Recommendation:
    id: str
    title: str
    description: str
    category: str
    potential_savings: float
    priority: Priority | None
    difficulty: str
    estimated_time: str | None
    devices: list[str]
    action: str
    value: str | None = None
    source: str = "ai"
    generated_at: datetime | None = None

    # Derived by scoring
    affected_devices: list[AffectedDevice] = field(default_factory=list)
    urgency_score: float = 0.5
    feasibility_score: float = 0.7
    comfort_impact: float = 0.3
    automation_level: str = "manual"
    impact_category: str = "minimal"
    prerequisites: list[str] = field(default_factory=list)
    composite_score: float = 0.0
    rank: int = 0
    recommendation_strength: str = "optional"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "potential_savings": self.potential_savings,
            "priority": self.priority.value if self.priority else None,
            "difficulty": self.difficulty,
            "estimated_time": self.estimated_time,
            "devices": list(self.devices),
            "action": self.action,
            "value": self.value,
            "source": self.source,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "affected_devices": [
                {
                    "id": d.id,
                    "name": d.name,
                    "category": d.category.value,
                    "current_power": d.current_power,
                    "is_on": d.is_on,
                }
                for d in self.affected_devices
            ],
            "urgency_score": self.urgency_score,
            "feasibility_score": self.feasibility_score,
            "comfort_impact": self.comfort_impact,
            "automation_level": self.automation_level,
            "impact_category": self.impact_category,
            "prerequisites": list(self.prerequisites),
            "composite_score": self.composite_score,
            "rank": self.rank,
            "recommendation_strength": self.recommendation_strength,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recommendation":
        priority = data.get("priority")
        generated_at = data.get("generated_at")
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            category=data.get("category", "general"),
            potential_savings=float(data.get("potential_savings", 0.0)),
            priority=Priority(priority) if priority else None,
            difficulty=data.get("difficulty", "easy"),
            estimated_time=data.get("estimated_time"),
            devices=list(data.get("devices", [])),
            action=data.get("action", "monitor"),
            value=data.get("value"),
            source=data.get("source", "ai"),
            generated_at=datetime.fromisoformat(generated_at) if generated_at else None,
            affected_devices=[
                AffectedDevice(
                    id=d["id"],
                    name=d["name"],
                    category=DeviceCategory(d["category"]),
                    current_power=float(d["current_power"]),
                    is_on=bool(d["is_on"]),
                )
                for d in data.get("affected_devices", [])
            ],
            urgency_score=float(data.get("urgency_score", 0.5)),
            feasibility_score=float(data.get("feasibility_score", 0.7)),
            comfort_impact=float(data.get("comfort_impact", 0.3)),
            automation_level=data.get("automation_level", "manual"),
            impact_category=data.get("impact_category", "minimal"),
            prerequisites=list(data.get("prerequisites", [])),
            composite_score=float(data.get("composite_score", 0.0)),
            rank=int(data.get("rank", 0)),
            recommendation_strength=data.get("recommendation_strength", "optional"),
        )


@dataclass
class AppliedRecommendation:
    recommendation: Recommendation
    applied_at: datetime
    status: str = "applied"


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass
class ControlResult:
    success: bool
    device: Device | None = None
    error: str | None = None


@dataclass
class ApplyResult:
    success: bool
    message: str
    estimated_savings: float | None = None
    total_tracked_savings: float | None = None
