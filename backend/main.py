"""FastAPI entry point - thin layer over the orchestrator."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from agents import Orchestrator
from core.models import Priority
from core.serialization import to_jsonable
from llm import LLMClient, LLMSettings

load_dotenv()

logging.basicConfig(level=logging.WARNING, format="%(name)s | %(message)s")
for _name in ("agents", "llm.client"):
    logging.getLogger(_name).setLevel(logging.INFO)

logger = logging.getLogger(__name__)

llm = LLMClient(LLMSettings.from_env())
orchestrator = Orchestrator(llm)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    orchestrator.start()
    yield
    await orchestrator.stop()


app = FastAPI(title="Home Energy Intelligence API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ControlRequest(BaseModel):
    action: str
    value: str | float | None = None


# --- Devices ---


@app.get("/devices")
async def get_devices() -> list[dict[str, Any]]:
    return to_jsonable(await orchestrator.devices())


@app.get("/devices/{device_id}")
async def get_device(device_id: str) -> dict[str, Any]:
    device = await orchestrator.device(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return to_jsonable(device)


@app.post("/devices/{device_id}/control")
async def control_device(device_id: str, request: ControlRequest) -> dict[str, Any]:
    if await orchestrator.device(device_id) is None:
        raise HTTPException(status_code=404, detail="Device not found")
    result = await orchestrator.control_device(device_id, request.action, request.value)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return to_jsonable(result)


# --- Energy ---


@app.get("/energy/current")
async def get_current_energy() -> dict[str, Any]:
    return {
        "reading": to_jsonable(await orchestrator.latest_reading()),
        "stats": to_jsonable(await orchestrator.system_stats()),
    }


@app.get("/energy/history")
async def get_energy_history(
    limit: int = Query(default=100, ge=1),
    hours: float | None = Query(default=None, gt=0),
) -> list[dict[str, Any]]:
    since = orchestrator.readings_since(hours) if hours is not None else None
    return to_jsonable(await orchestrator.reading_history(limit=limit, since=since))


# --- Predictions ---


@app.get("/predictions")
def get_predictions() -> dict[str, Any]:
    forecaster = orchestrator.forecaster
    return to_jsonable(
        {
            "predictions": forecaster.forecast,
            "last_update": forecaster.last_update,
            "accuracy": forecaster.last_accuracy,
        }
    )


@app.get("/predictions/peaks")
def get_peak_predictions() -> list[dict[str, Any]]:
    return to_jsonable(orchestrator.forecaster.peak_points())


# --- Optimization ---


@app.get("/optimization/recommendations")
def get_recommendations(priority: Priority | None = None) -> list[dict[str, Any]]:
    optimizer = orchestrator.optimizer
    recs = optimizer.by_priority(priority) if priority else optimizer.recommendations
    return to_jsonable(recs)


@app.post("/optimization/recommendations/{recommendation_id}/apply")
async def apply_recommendation(recommendation_id: str) -> dict[str, Any]:
    if not any(r.id == recommendation_id for r in orchestrator.optimizer.recommendations):
        raise HTTPException(status_code=404, detail="Recommendation not found")
    result = await orchestrator.apply_recommendation(recommendation_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return to_jsonable(result)


@app.get("/optimization/stats")
def get_optimization_stats() -> dict[str, Any]:
    return to_jsonable(orchestrator.optimizer.stats())


# --- Analysis and health ---


@app.get("/analysis")
def get_analysis() -> dict[str, Any]:
    analysis = orchestrator.monitor.current_analysis
    if analysis is None:
        return {"status": "insufficient_data", "message": "Need more readings before the first analysis"}
    return to_jsonable(analysis)


@app.get("/health")
async def get_health() -> dict[str, Any]:
    llm_health = await llm.health_check()
    return to_jsonable(
        {
            "status": orchestrator.system_health(),
            "agents": orchestrator.agent_statuses(),
            "llm": llm_health,
            "stats": await orchestrator.system_stats(),
        }
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    subscription = orchestrator.bus.subscribe()
    try:
        async for event in subscription:
            await websocket.send_json(event.to_dict())
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        if subscription.dropped:
            logger.info("WebSocket client missed %d events", subscription.dropped)
