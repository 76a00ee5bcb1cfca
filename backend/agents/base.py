"""Agent base class and the contracts agents share with the orchestrator."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel

from core.config import DEFAULT, SystemConfig
from core.events import EventBus, EventType
from core.models import AgentStatus, Device, HealthStatus, Reading
from llm.client import LLMError, LLMHealth, UnconfiguredError
from llm.config import DEFAULT_SAMPLING, SamplingParams
from llm.parsing import Fallback, ParseResult, parse_payload

logger = logging.getLogger(__name__)

type Snapshot = tuple[list[Device], list[Reading]]
type SnapshotFn = Callable[[], Awaitable[Snapshot]]
type Clock = Callable[[], datetime]


class TextGenerator(Protocol):
    """What agents need from an LLM client."""

    @property
    def is_configured(self) -> bool: ...

    async def generate_text(self, prompt: str, params: SamplingParams = DEFAULT_SAMPLING) -> str: ...

    async def health_check(self) -> LLMHealth: ...


@dataclass
class AgentHealth:
    agent: str
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)


class Agent(ABC):
    """An analysis agent run on its own schedule by the orchestrator.

    Subclasses implement ``run_cycle``; LLM access goes through ``_ask`` which
    turns every backend failure into a ``Fallback`` so a cycle never fails
    because the model did.
    """

    name: str = "agent"

    def __init__(
        self,
        llm: TextGenerator,
        snapshot: SnapshotFn,
        bus: EventBus | None = None,
        config: SystemConfig = DEFAULT,
        clock: Clock = datetime.now,
    ) -> None:
        self.llm = llm
        self._snapshot = snapshot
        self.bus = bus
        self.config = config
        self.clock = clock
        self.status = AgentStatus.INITIALIZING
        self.last_update: datetime | None = None
        self.cycles = 0

    @abstractmethod
    async def run_cycle(self) -> object: ...

    def _publish(self, event_type: EventType, data: Any) -> None:
        if self.bus is not None:
            self.bus.publish(event_type, data)

    def _mark_updated(self) -> None:
        self.last_update = self.clock()
        self.cycles += 1
        if self.status == AgentStatus.INITIALIZING:
            self.status = AgentStatus.RUNNING

    async def _ask[M: BaseModel](self, prompt: str, temperature: float, model: type[M]) -> ParseResult[M]:
        params = DEFAULT_SAMPLING.with_temperature(temperature)
        try:
            text = await asyncio.wait_for(self.llm.generate_text(prompt, params), timeout=self.config.llm_timeout_s)
        except UnconfiguredError:
            return Fallback("llm not configured")
        except TimeoutError:
            logger.warning("%s: LLM call timed out after %.0fs", self.name, self.config.llm_timeout_s)
            return Fallback("llm timeout")
        except LLMError as e:
            logger.warning("%s: LLM call failed: %s", self.name, e)
            return Fallback(str(e))

        result = parse_payload(text, model)
        if isinstance(result, Fallback):
            logger.warning("%s: unusable LLM response (%s)", self.name, result.reason)
        return result

    def _health_details(self) -> dict[str, Any]:
        return {"last_update": self.last_update.isoformat() if self.last_update else None}

    async def health_check(self) -> AgentHealth:
        llm_health = await self.llm.health_check()
        return AgentHealth(
            agent=self.name,
            status=llm_health.status,
            message=f"{self.name}: {llm_health.message}",
            details=self._health_details(),
        )
