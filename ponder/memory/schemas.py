"""Pydantic schemas for memory records and triggers.

This module defines what the loop persists between cycles:
- QuestionCategory / TriggerSource: enumerations used by triggers
- Trigger: a self-generated question seeding one deliberation
- UnresolvedIdea: backlog of questions still worth considering
- SignificantThought: notable statements kept after a deliberation
- CoreBelief: long-lived beliefs consolidated from thoughts
- DreamPattern: abstract patterns found during consolidation
- Insight: low-weight records such as tension resolutions
- DeliberationRecord: per-cycle score summary, sampled for tensions
- SleepLog: structured log of one consolidation sweep
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ponder.utils import utc_now


def new_id(prefix: str) -> str:
    """Generate a short prefixed identifier such as ``trg:3f2a...``."""
    return f"{prefix}:{uuid.uuid4().hex[:12]}"


class QuestionCategory(str, Enum):
    """Kinds of questions the loop asks itself."""
    PHILOSOPHICAL = "philosophical"
    EXISTENTIAL = "existential"
    EPISTEMIC = "epistemic"
    CREATIVE = "creative"
    ETHICAL = "ethical"
    CONSCIOUSNESS = "consciousness"
    TEMPORAL = "temporal"
    PARADOXICAL = "paradoxical"
    ONTOLOGICAL = "ontological"
    METACOGNITIVE = "metacognitive"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["QuestionCategory"]:
        """Lenient lookup by value; returns None for unknown names."""
        if not value:
            return None
        cleaned = value.strip().strip("*").strip().lower()
        try:
            return cls(cleaned)
        except ValueError:
            return None


class TriggerSource(str, Enum):
    """Where a trigger came from."""
    MANUAL = "manual"      # Explicitly queued by an operator
    EVOLVED = "evolved"    # Synthesized from backlog, thoughts and beliefs
    BACKLOG = "backlog"    # Picked from the unresolved-idea backlog
    RANDOM = "random"      # Seed question with no history behind it


def priority_for_importance(importance: float) -> int:
    """Map importance in [0, 1] onto priority 1 (low) .. 4 (urgent)."""
    if importance >= 0.85:
        return 4
    if importance >= 0.7:
        return 3
    if importance >= 0.4:
        return 2
    return 1


class Trigger(BaseModel):
    """A question that seeds exactly one deliberation cycle.

    Immutable after creation. Priority is derived from importance when not
    given explicitly.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("trg"))
    question: str = Field(min_length=1)
    category: QuestionCategory
    importance: float = Field(ge=0.0, le=1.0)
    priority: int = Field(ge=1, le=4)
    energy_cost: float = Field(default=10.0, ge=0.0)
    source: TriggerSource
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def _derive_priority(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("priority") is None:
            data = dict(data)
            data["priority"] = priority_for_importance(float(data.get("importance", 0.0)))
        return data


class UnresolvedIdea(BaseModel):
    """A question in the backlog, waiting to be deliberated."""
    id: str = Field(default_factory=lambda: new_id("idea"))
    question: str
    category: QuestionCategory = QuestionCategory.PHILOSOPHICAL
    importance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    consideration_count: int = 0
    last_considered: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class SignificantThought(BaseModel):
    """A notable statement retained from a deliberation."""
    id: str = Field(default_factory=lambda: new_id("thought"))
    content: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    agent_id: str = ""
    category: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class CoreBelief(BaseModel):
    """A long-lived belief consolidated from many thoughts."""
    id: str = Field(default_factory=lambda: new_id("belief"))
    content: str
    category: str = "general"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    reinforcement_count: int = 1
    source_thought_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class DreamPattern(BaseModel):
    """An abstract pattern extracted during consolidation."""
    id: str = Field(default_factory=lambda: new_id("pattern"))
    pattern: str
    emotional_tone: str = "neutral"
    source_thought_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class Insight(BaseModel):
    """A low-weight insight, e.g. a synthesized resolution of a tension."""
    id: str = Field(default_factory=lambda: new_id("insight"))
    kind: str
    content: str
    reasoning: str = ""
    weight: float = Field(default=0.3, ge=0.0, le=1.0)
    source_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class DeliberationRecord(BaseModel):
    """Score summary of one completed deliberation cycle."""
    id: str = Field(default_factory=lambda: new_id("cycle"))
    trigger_id: str
    question: str
    category: Optional[QuestionCategory] = None
    empathy: float = Field(ge=0.0, le=1.0)
    coherence: float = Field(ge=0.0, le=1.0)
    dissonance: float = Field(ge=0.0, le=1.0)
    weighted_total: float = Field(ge=0.0, le=1.0)
    synthesis: str = ""
    created_at: datetime = Field(default_factory=utc_now)


class SleepLog(BaseModel):
    """Structured log of one consolidation sweep."""
    id: str = Field(default_factory=lambda: new_id("sleep"))
    reason: str
    phases: list[str] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
    energy_before: float = 0.0
    energy_after: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)
