"""Text-generation client for the hosted LLM backend.

The client exchanges an API key for a short-lived bearer token (cached and
refreshed shortly before expiry) and posts prompts to the generation
endpoint. It never retries: callers decide whether to fall back.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from core.models import HealthStatus
from llm.config import DEFAULT_SAMPLING, LLMSettings, SamplingParams

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base class for every failure the LLM client reports."""


class UnconfiguredError(LLMError):
    """No credentials supplied; no network call was attempted."""


class AuthError(LLMError):
    """The credential exchange failed."""


class RequestError(LLMError):
    """Network failure, timeout, non-2xx status or malformed response body."""


@dataclass(frozen=True)
class LLMHealth:
    status: HealthStatus
    message: str


class LLMClient:
    def __init__(self, settings: LLMSettings, clock: Callable[[], float] = time.monotonic) -> None:
        self.settings = settings
        self._clock = clock
        self._token: str | None = None
        self._token_expiry: float = 0.0
        self._token_lock = asyncio.Lock()
        if not settings.is_configured:
            logger.warning("LLM credentials missing, agents will run in fallback mode")

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.settings.timeout_s)

    def _cached_token(self) -> str | None:
        if self._token is not None and self._clock() < self._token_expiry:
            return self._token
        return None

    async def _access_token(self, session: aiohttp.ClientSession) -> str:
        async with self._token_lock:
            cached = self._cached_token()
            if cached is not None:
                return cached

            form = {
                "grant_type": "urn:ibm:params:oauth:grant-type:apikey",
                "apikey": self.settings.api_key or "",
            }
            try:
                async with session.post(
                    self.settings.iam_url, data=form, headers={"Accept": "application/json"}
                ) as response:
                    response.raise_for_status()
                    body: dict[str, Any] = await response.json(content_type=None)
                token = str(body["access_token"])
                expires_in = float(body.get("expires_in", 3600))
            except (aiohttp.ClientError, TimeoutError, KeyError, TypeError, ValueError) as e:
                self._token = None
                raise AuthError(f"Credential refresh failed: {e}") from e

            self._token = token
            self._token_expiry = self._clock() + expires_in - self.settings.token_refresh_margin_s
            logger.info("LLM access token refreshed")
            return token

    async def generate_text(self, prompt: str, params: SamplingParams = DEFAULT_SAMPLING) -> str:
        """Generate a completion for ``prompt``.

        Raises:
            UnconfiguredError: No credentials are configured.
            AuthError: The bearer token could not be obtained.
            RequestError: The generation call failed or returned an unexpected body.
        """
        if not self.is_configured:
            raise UnconfiguredError("No API key configured")

        payload = {
            "model_id": self.settings.model_id,
            "input": prompt,
            "parameters": params.to_payload(),
            "project_id": self.settings.project_id,
        }
        async with aiohttp.ClientSession(timeout=self._timeout()) as session:
            token = await self._access_token(session)
            headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
            logger.debug("Requesting generation from %s", self.settings.model_id)
            try:
                async with session.post(self.settings.generation_url, json=payload, headers=headers) as response:
                    response.raise_for_status()
                    body: dict[str, Any] = await response.json(content_type=None)
                return str(body["results"][0]["generated_text"])
            except (aiohttp.ClientError, TimeoutError) as e:
                raise RequestError(f"Generation request failed: {e}") from e
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise RequestError(f"Malformed generation response: {e}") from e

    async def health_check(self) -> LLMHealth:
        """Report backend availability without issuing a generation call."""
        if not self.is_configured:
            return LLMHealth(HealthStatus.DEGRADED, "No API key - using fallback mode")
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                await self._access_token(session)
        except AuthError as e:
            return LLMHealth(HealthStatus.UNHEALTHY, str(e))
        return LLMHealth(HealthStatus.HEALTHY, "LLM service operational")
