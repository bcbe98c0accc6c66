"""Pydantic schemas for deliberation scoring.

This module defines the data that flows through scoring and weight
adaptation:
- Statement / Critique / AuditResult: artifacts of one deliberation cycle
- DeliberationArtifacts: everything the ScoreEngine needs for one cycle
- AxisWeights: the current empathy/coherence/dissonance weighting
- AxisScores: one cycle's axis scores and weighted total
- ImpactAssessment: paradigm shift detection for manual triggers
- WeightHistoryEntry: append-only audit row for weight changes
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ponder.utils import utc_now


DEFAULT_WEIGHTS = (0.33, 0.33, 0.34)


class Axis(str, Enum):
    """The three value axes a deliberation is scored on."""
    EMPATHY = "empathy"
    COHERENCE = "coherence"
    DISSONANCE = "dissonance"


AXES = (Axis.EMPATHY, Axis.COHERENCE, Axis.DISSONANCE)


class Statement(BaseModel):
    """One agent's contribution to a deliberation."""
    agent_id: str
    content: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    emotional_tone: Optional[str] = None
    logical_coherence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class Critique(BaseModel):
    """One agent's critique of another agent's statement."""
    reviewer_id: str
    target_agent_id: str
    criticism: str = ""
    insights: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    alternative_perspective: Optional[str] = None
    agreement_level: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class AuditResult(BaseModel):
    """Safety/ethics review of a deliberation."""
    safety_score: float = Field(default=1.0, ge=0.0, le=1.0)
    ethics_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    concerns: list[str] = Field(default_factory=list)
    notes: str = ""


class DeliberationArtifacts(BaseModel):
    """Output of one completed deliberation cycle."""
    cycle_id: str
    statements: list[Statement] = Field(default_factory=list)
    critiques: list[Critique] = Field(default_factory=list)
    audit: Optional[AuditResult] = None
    synthesis: str = ""


class AxisWeights(BaseModel):
    """Current weighting of the three axes.

    Weights sum to 1.0 and each lies within the adapter's bounds. Only the
    WeightAdapter produces new instances; every instance is persisted as a
    new history row.
    """
    empathy: float = Field(default=DEFAULT_WEIGHTS[0], ge=0.0, le=1.0)
    coherence: float = Field(default=DEFAULT_WEIGHTS[1], ge=0.0, le=1.0)
    dissonance: float = Field(default=DEFAULT_WEIGHTS[2], ge=0.0, le=1.0)
    version: int = Field(default=1, ge=1)
    timestamp: datetime = Field(default_factory=utc_now)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.empathy, self.coherence, self.dissonance)

    def get(self, axis: Axis) -> float:
        return getattr(self, axis.value)

    @property
    def total(self) -> float:
        return self.empathy + self.coherence + self.dissonance

    def is_finite(self) -> bool:
        return all(math.isfinite(w) for w in self.as_tuple())


class AxisScores(BaseModel):
    """Axis scores for one deliberation cycle. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    empathy: float = Field(ge=0.0, le=1.0)
    coherence: float = Field(ge=0.0, le=1.0)
    dissonance: float = Field(ge=0.0, le=1.0)
    weighted_total: float = Field(ge=0.0, le=1.0)
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.empathy, self.coherence, self.dissonance)

    def get(self, axis: Axis) -> float:
        return getattr(self, axis.value)


class ImpactAssessment(BaseModel):
    """How disruptive a manually requested deliberation turned out to be."""
    dissonance_spike: float = Field(ge=0.0, le=1.0)
    controversy: float = Field(ge=0.0, le=1.0)
    controversy_method: str = "heuristic"
    is_paradigm_shift: bool = False
    reasons: list[str] = Field(default_factory=list)


class WeightHistoryEntry(BaseModel):
    """Append-only audit row describing one weight set."""
    timestamp: datetime = Field(default_factory=utc_now)
    empathy: float
    coherence: float
    dissonance: float
    version: int
    trigger_type: str = "deliberation"
    context: dict[str, Any] = Field(default_factory=dict)

    def to_weights(self) -> AxisWeights:
        return AxisWeights(
            empathy=self.empathy,
            coherence=self.coherence,
            dissonance=self.dissonance,
            version=self.version,
            timestamp=self.timestamp,
        )
