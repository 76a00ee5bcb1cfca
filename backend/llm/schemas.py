"""Pydantic schemas for the JSON payloads each agent asks the LLM for.

List payloads are validated item by item (``validate_items``) so one bad
entry is dropped instead of discarding the whole response.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MAX_SAVINGS = 50.0


class InsightPayload(BaseModel):
    efficiency_score: float
    peak_usage_time: str | None = None
    anomalies: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    potential_issues: list[str] = Field(default_factory=list)

    @field_validator("efficiency_score")
    @classmethod
    def normalise_score(cls, v: float) -> float:
        # Models sometimes answer in percent.
        if 1.0 < v <= 100.0:
            v = v / 100.0
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"efficiency_score {v} outside [0, 1]")
        return v


class PredictionItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hour: int | None = None
    predicted_usage: float = Field(alias="predictedUsage")
    predicted_cost: float = Field(default=0.0, alias="predictedCost")
    confidence: float
    factors: str = ""


class ForecastPayload(BaseModel):
    predictions: list[dict[str, Any]]


class RecommendationItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    title: str = Field(min_length=1)
    description: str = ""
    category: str = "general"
    potential_savings: float = Field(default=0.0, alias="potentialSavings")
    priority: Literal["low", "medium", "high"] | None = None
    difficulty: str = "medium"
    estimated_time: str | None = Field(default=None, alias="estimatedTime")
    devices: list[str] = Field(default_factory=list)
    action: str = "monitor"
    value: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> Any:
        if isinstance(v, int | float) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("potential_savings")
    @classmethod
    def clamp_savings(cls, v: float) -> float:
        return max(0.0, min(MAX_SAVINGS, v))

    @field_validator("priority", mode="before")
    @classmethod
    def lower_priority(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class RecommendationsPayload(BaseModel):
    recommendations: list[dict[str, Any]]


def validate_items[M: BaseModel](items: list[dict[str, Any]], model: type[M]) -> list[M]:
    valid: list[M] = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("Dropping invalid %s: %s", model.__name__, e)
    return valid
