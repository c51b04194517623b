"""Core simulation modules."""

from .data_structures import ReplicateRecord, SimulationSummary
from .study_engine import SimulationEngine

__all__ = ["ReplicateRecord", "SimulationSummary", "SimulationEngine"]
