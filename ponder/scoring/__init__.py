"""Deliberation scoring and axis weight adaptation.

Three axes:
- empathy: recognition of feelings and other perspectives
- coherence: logical consistency and alignment of contributions
- dissonance: honest engagement with ethical tension and contradiction

The ScoreEngine rates a deliberation on each axis; the WeightAdapter uses
the result to shift the weighting between axes over time.
"""

from ponder.scoring.engine import AxisEvaluation, ScoreAnalysis, ScoreAssessment, ScoreEngine
from ponder.scoring.schemas import (
    AXES,
    DEFAULT_WEIGHTS,
    AuditResult,
    Axis,
    AxisScores,
    AxisWeights,
    Critique,
    DeliberationArtifacts,
    ImpactAssessment,
    Statement,
    WeightHistoryEntry,
)
from ponder.scoring.weights import WeightAdapter, WeightUpdate

__all__ = [
    # Schemas
    "Axis",
    "AXES",
    "DEFAULT_WEIGHTS",
    "Statement",
    "Critique",
    "AuditResult",
    "DeliberationArtifacts",
    "AxisWeights",
    "AxisScores",
    "ImpactAssessment",
    "WeightHistoryEntry",
    # Scoring
    "ScoreEngine",
    "ScoreAssessment",
    "AxisEvaluation",
    "ScoreAnalysis",
    # Weights
    "WeightAdapter",
    "WeightUpdate",
]
