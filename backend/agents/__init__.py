"""Analysis agents and the orchestrator that schedules them."""

from agents.base import Agent, AgentHealth, TextGenerator
from agents.forecast import ForecastAgent
from agents.monitoring import MonitoringAgent
from agents.optimization import OptimizationAgent
from agents.orchestrator import Orchestrator, apply_control

__all__ = [
    "Agent",
    "AgentHealth",
    "ForecastAgent",
    "MonitoringAgent",
    "OptimizationAgent",
    "Orchestrator",
    "TextGenerator",
    "apply_control",
]
