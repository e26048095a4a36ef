"""Seeded scenario simulation of the lock engine."""

from .runner import ScenarioRunner, SimulationClock, SimulationResult, StepSnapshot

__all__ = ["ScenarioRunner", "SimulationClock", "SimulationResult", "StepSnapshot"]
