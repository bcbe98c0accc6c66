"""Memory records, storage contract and belief consolidation."""

from ponder.memory.consolidator import BeliefConsolidator, ConsolidationOutcome, MergeOutcome
from ponder.memory.repository import GuardedRepository, InMemoryRepository, Repository
from ponder.memory.schemas import (
    CoreBelief,
    DeliberationRecord,
    DreamPattern,
    Insight,
    QuestionCategory,
    SignificantThought,
    SleepLog,
    Trigger,
    TriggerSource,
    UnresolvedIdea,
)

__all__ = [
    # Schemas
    "QuestionCategory",
    "TriggerSource",
    "Trigger",
    "UnresolvedIdea",
    "SignificantThought",
    "CoreBelief",
    "DreamPattern",
    "Insight",
    "DeliberationRecord",
    "SleepLog",
    # Storage
    "Repository",
    "InMemoryRepository",
    "GuardedRepository",
    # Consolidation
    "BeliefConsolidator",
    "ConsolidationOutcome",
    "MergeOutcome",
]
