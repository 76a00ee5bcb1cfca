"""Tests for the LLM client against an in-process aiohttp server."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from aiohttp import test_utils, web

from core.models import HealthStatus
from llm.client import AuthError, LLMClient, RequestError, UnconfiguredError
from llm.config import LLMSettings, SamplingParams


class Backend:
    """Fake token and generation endpoints with switchable failures."""

    def __init__(self) -> None:
        self.token_requests = 0
        self.bodies: list[dict[str, Any]] = []
        self.token_status = 200
        self.generation_status = 200
        self.generation_body: Any = {"results": [{"generated_text": '{"ok": true}'}]}

    async def token(self, request: web.Request) -> web.Response:
        self.token_requests += 1
        form = await request.post()
        if form.get("apikey") != "secret":
            return web.json_response({"error": "bad key"}, status=400)
        if self.token_status != 200:
            return web.json_response({"error": "denied"}, status=self.token_status)
        return web.json_response({"access_token": f"tok-{self.token_requests}", "expires_in": 3600})

    async def generate(self, request: web.Request) -> web.Response:
        if request.headers.get("Authorization", "").split(" ")[0] != "Bearer":
            return web.json_response({}, status=401)
        self.bodies.append(await request.json())
        return web.json_response(self.generation_body, status=self.generation_status)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/identity/token", self.token)
        app.router.add_post("/ml/v1/text/generation", self.generate)
        return app


async def _serve[T](backend: Backend, fn: Callable[[LLMSettings], Awaitable[T]]) -> T:
    server = test_utils.TestServer(backend.app())
    await server.start_server()
    try:
        root = f"http://{server.host}:{server.port}"
        settings = LLMSettings(
            api_key="secret",
            project_id="proj",
            base_url=root,
            iam_url=f"{root}/identity/token",
            model_id="test-model",
            timeout_s=5.0,
        )
        return await fn(settings)
    finally:
        await server.close()


def test_generate_text_sends_expected_body_and_caches_token() -> None:
    backend = Backend()

    async def scenario(settings: LLMSettings) -> list[str]:
        client = LLMClient(settings)
        params = SamplingParams(temperature=0.3)
        return [await client.generate_text("hello", params), await client.generate_text("again", params)]

    texts = asyncio.run(_serve(backend, scenario))

    assert texts == ['{"ok": true}', '{"ok": true}']
    assert backend.token_requests == 1
    body = backend.bodies[0]
    assert body["model_id"] == "test-model"
    assert body["input"] == "hello"
    assert body["project_id"] == "proj"
    assert body["parameters"]["temperature"] == 0.3
    assert body["parameters"]["stop_sequences"] == ["\n\n", "###", "---"]


def test_token_is_refreshed_before_expiry() -> None:
    backend = Backend()
    now = [0.0]

    async def scenario(settings: LLMSettings) -> None:
        client = LLMClient(settings, clock=lambda: now[0])
        await client.generate_text("one")
        now[0] = 3500.0  # still inside the validity window
        await client.generate_text("two")
        now[0] = 3545.0  # within 60 s of expiry
        await client.generate_text("three")

    asyncio.run(_serve(backend, scenario))
    assert backend.token_requests == 2


def test_unconfigured_client_fails_without_network() -> None:
    client = LLMClient(LLMSettings(api_key=None, project_id="proj", base_url="http://127.0.0.1:9"))
    with pytest.raises(UnconfiguredError):
        asyncio.run(client.generate_text("hello"))


def test_auth_failure_raises_auth_error() -> None:
    backend = Backend()
    backend.token_status = 403

    async def scenario(settings: LLMSettings) -> None:
        await LLMClient(settings).generate_text("hello")

    with pytest.raises(AuthError):
        asyncio.run(_serve(backend, scenario))
    assert backend.bodies == []


def test_server_error_raises_request_error() -> None:
    backend = Backend()
    backend.generation_status = 500

    async def scenario(settings: LLMSettings) -> None:
        await LLMClient(settings).generate_text("hello")

    with pytest.raises(RequestError):
        asyncio.run(_serve(backend, scenario))


def test_malformed_body_raises_request_error() -> None:
    backend = Backend()
    backend.generation_body = {"results": []}

    async def scenario(settings: LLMSettings) -> None:
        await LLMClient(settings).generate_text("hello")

    with pytest.raises(RequestError):
        asyncio.run(_serve(backend, scenario))


def test_health_check() -> None:
    backend = Backend()

    async def healthy(settings: LLMSettings) -> HealthStatus:
        return (await LLMClient(settings).health_check()).status

    assert asyncio.run(_serve(backend, healthy)) == HealthStatus.HEALTHY
    assert backend.bodies == []

    backend.token_status = 401
    assert asyncio.run(_serve(backend, healthy)) == HealthStatus.UNHEALTHY

    unconfigured = LLMClient(LLMSettings())
    assert asyncio.run(unconfigured.health_check()).status == HealthStatus.DEGRADED
