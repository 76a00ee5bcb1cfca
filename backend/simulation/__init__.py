"""Simulation module - device telemetry drift."""

from simulation.telemetry import TelemetrySimulator

__all__ = ["TelemetrySimulator"]
