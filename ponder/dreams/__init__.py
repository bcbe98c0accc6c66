"""Consolidation sweeps: pattern extraction, belief consolidation, pruning, tension resolution."""

from ponder.dreams.base import (
    PHASE_PROGRESS,
    ConsolidationReport,
    PhaseOutcome,
    PhaseStatus,
    SleepPhase,
)
from ponder.dreams.consolidation import (
    ConsolidationScheduler,
    infer_emotional_tone,
    parse_prune_indices,
)

__all__ = [
    # Base types
    "SleepPhase",
    "PhaseStatus",
    "PhaseOutcome",
    "ConsolidationReport",
    "PHASE_PROGRESS",
    # Scheduler
    "ConsolidationScheduler",
    "parse_prune_indices",
    "infer_emotional_tone",
]
