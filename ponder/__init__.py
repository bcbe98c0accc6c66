"""Autonomous thinking loop.

Generates its own questions, deliberates on them through an external
collaborator, scores the outcome on empathy, coherence and dissonance,
adapts the weighting of those axes online, and periodically consolidates
what it has accumulated.

The pieces:
- cognitive: cooldown gate, category balance, trigger scheduling, the loop
- scoring: axis scoring, heuristics, weight adaptation
- memory: record schemas, repository contract, belief consolidation
- dreams: the consolidation sweep
"""

from ponder.config import (
    ConsolidationConfig,
    CooldownConfig,
    EnergyConfig,
    PonderConfig,
    ScoringConfig,
    TriggerConfig,
    WeightAdapterConfig,
)
from ponder.energy import EnergyLevel, EnergyManager
from ponder.errors import EvaluatorUnavailableError, PhaseFailedError, PonderError
from ponder.evaluator import Evaluator, EvaluatorResult, run_evaluator
from ponder.events import EventKind, EventSink, PonderEvent, RecordingEventSink

__version__ = "0.1.0"

__all__ = [
    # Config
    "PonderConfig",
    "CooldownConfig",
    "TriggerConfig",
    "ScoringConfig",
    "WeightAdapterConfig",
    "EnergyConfig",
    "ConsolidationConfig",
    # Energy
    "EnergyLevel",
    "EnergyManager",
    # Errors
    "PonderError",
    "EvaluatorUnavailableError",
    "PhaseFailedError",
    # Collaborators
    "Evaluator",
    "EvaluatorResult",
    "run_evaluator",
    "EventKind",
    "EventSink",
    "PonderEvent",
    "RecordingEventSink",
]
