"""Scripted stand-in for ``LLMClient`` used by the agent tests."""

import asyncio

from core.models import HealthStatus
from llm.client import LLMHealth, RequestError, UnconfiguredError
from llm.config import DEFAULT_SAMPLING, SamplingParams


class FakeLLM:
    """Returns queued responses in order and raises queued exceptions.

    Once the queue is empty every call fails with ``RequestError``, which the
    agents treat like any other backend outage. ``delay_s`` stalls each call
    before it answers.
    """

    def __init__(
        self,
        *responses: str | Exception,
        configured: bool = True,
        health: HealthStatus = HealthStatus.HEALTHY,
        delay_s: float = 0.0,
    ) -> None:
        self.responses = list(responses)
        self.configured = configured
        self.health = health
        self.delay_s = delay_s
        self.prompts: list[str] = []
        self.params: list[SamplingParams] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate_text(self, prompt: str, params: SamplingParams = DEFAULT_SAMPLING) -> str:
        if not self.configured:
            raise UnconfiguredError("No API key configured")
        self.prompts.append(prompt)
        self.params.append(params)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if not self.responses:
            raise RequestError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def health_check(self) -> LLMHealth:
        if not self.configured:
            return LLMHealth(HealthStatus.DEGRADED, "No API key - using fallback mode")
        return LLMHealth(self.health, f"scripted {self.health}")
