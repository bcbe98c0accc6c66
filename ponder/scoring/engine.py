"""Score engine: rating a finished deliberation on three axes.

For each axis the evaluator is asked for a ``<Axis> score: <number>`` line
and a ``Reason:`` line. A score is accepted only if it parses and lies in
[0, 1]. Anything else (timeouts, prose, ``1.4``, ``-0.2``) counts as an
evaluator miss and the deterministic heuristic blend is used instead. An
out-of-range number is never clamped into range and accepted.

The weighted total is the dot product of the axis scores with the current
axis weights.

Manually requested deliberations additionally get an impact assessment:
a paradigm shift is flagged when dissonance jumps sharply, when critiques
are highly controversial, when dissonance is extreme, or when a moderate
jump coincides with moderate controversy.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from ponder.config import ScoringConfig
from ponder.evaluator import run_evaluator
from ponder.events import EventKind, EventSink, emit_event
from ponder.memory.schemas import Trigger, TriggerSource
from ponder.parsing import parse_labeled_number, parse_labeled_text
from ponder.scoring.heuristics import SIGNALS, blend, clamp, controversy_level
from ponder.scoring.schemas import (
    AXES,
    Axis,
    AxisScores,
    AxisWeights,
    DeliberationArtifacts,
    ImpactAssessment,
)

if TYPE_CHECKING:
    from ponder.evaluator import Evaluator

logger = logging.getLogger(__name__)

AXIS_LABELS = {
    Axis.EMPATHY: "Empathy score",
    Axis.COHERENCE: "Coherence score",
    Axis.DISSONANCE: "Dissonance score",
}

AXIS_QUESTIONS = {
    Axis.EMPATHY: "How well did the participants recognize feelings and take other perspectives?",
    Axis.COHERENCE: "How logically consistent and mutually aligned were the contributions?",
    Axis.DISSONANCE: "How honestly did the deliberation face ethical tension and unresolved contradiction?",
}

CONTROVERSY_LABEL = "Controversy"

SYSTEM_PROMPT = "You are a careful reviewer of multi-agent deliberations. Answer in the requested format."

PROMPT_ITEM_LIMIT = 5
PROMPT_ITEM_CHARS = 200


@dataclass
class AxisEvaluation:
    """Score of one axis and how it was obtained."""
    axis: Axis
    score: float
    method: str  # "evaluator" or "heuristic"
    rationale: Optional[str] = None
    signals: dict[str, float] = field(default_factory=dict)


@dataclass
class ScoreAssessment:
    """Everything the engine produced for one deliberation."""
    scores: AxisScores
    evaluations: dict[Axis, AxisEvaluation]
    impact: Optional[ImpactAssessment] = None

    @property
    def methods(self) -> dict[str, str]:
        return {axis.value: e.method for axis, e in self.evaluations.items()}


@dataclass
class ScoreAnalysis:
    """Axes that stood out in either direction."""
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)


class ScoreEngine:
    """Scores deliberations and tracks the recent score trajectory.

    Args:
        evaluator: Optional text evaluator; heuristics are used without one
        event_sink: Optional observer of per-axis evaluations
        config: Scoring parameters
    """

    def __init__(
        self,
        evaluator: Optional["Evaluator"] = None,
        event_sink: Optional[EventSink] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.config = config or ScoringConfig()
        self._evaluator = evaluator
        self._event_sink = event_sink
        self._previous: deque[AxisScores] = deque(maxlen=self.config.previous_scores_window)

    @property
    def previous_scores(self) -> list[AxisScores]:
        return list(self._previous)

    async def score(
        self,
        artifacts: DeliberationArtifacts,
        weights: AxisWeights,
        trigger: Optional[Trigger] = None,
        system_state: Optional[dict[str, Any]] = None,
    ) -> ScoreAssessment:
        """Score a completed deliberation.

        Args:
            artifacts: Statements, critiques and audit of the deliberation
            weights: Current axis weights for the weighted total
            trigger: Trigger that seeded the deliberation
            system_state: Energy/load snapshot stored in the score context

        Returns:
            ScoreAssessment with scores, per-axis details and, for manual
            triggers, an impact assessment
        """
        evaluations = {}
        for axis in AXES:
            evaluations[axis] = await self.evaluate_axis(axis, artifacts)

        values = {axis: evaluations[axis].score for axis in AXES}
        weighted_total = clamp(sum(values[axis] * weights.get(axis) for axis in AXES))
        previous = self._previous[-1] if self._previous else None

        scores = AxisScores(
            empathy=values[Axis.EMPATHY],
            coherence=values[Axis.COHERENCE],
            dissonance=values[Axis.DISSONANCE],
            weighted_total=weighted_total,
            context={
                "source_id": artifacts.cycle_id,
                "trigger_id": trigger.id if trigger else None,
                "previous_scores": [
                    {"empathy": p.empathy, "coherence": p.coherence, "dissonance": p.dissonance}
                    for p in self._previous
                ],
                "emotional_state": self._infer_emotional_state(artifacts),
                "system_state": dict(system_state or {}),
                "weights_version": weights.version,
            },
        )

        impact = None
        if trigger is not None and trigger.source == TriggerSource.MANUAL:
            impact = await self.assess_impact(scores, artifacts, previous)

        self._previous.append(scores)
        logger.info(
            f"Scored {artifacts.cycle_id}: empathy={scores.empathy:.3f} "
            f"coherence={scores.coherence:.3f} dissonance={scores.dissonance:.3f} "
            f"total={weighted_total:.3f}"
        )
        return ScoreAssessment(scores=scores, evaluations=evaluations, impact=impact)

    async def evaluate_axis(self, axis: Axis, artifacts: DeliberationArtifacts) -> AxisEvaluation:
        """Score one axis, preferring a valid evaluator answer."""
        signals = SIGNALS[axis](artifacts)
        evaluation = None

        if self.config.use_evaluator and self._evaluator is not None:
            result = await run_evaluator(
                self._evaluator,
                self._build_axis_prompt(axis, artifacts),
                SYSTEM_PROMPT,
                self.config.evaluator_timeout,
            )
            if result.usable:
                value = parse_labeled_number(result.content, AXIS_LABELS[axis])
                if value is not None and 0.0 <= value <= 1.0:
                    evaluation = AxisEvaluation(
                        axis=axis,
                        score=value,
                        method="evaluator",
                        rationale=parse_labeled_text(result.content, "Reason"),
                        signals=signals,
                    )
                else:
                    logger.warning(f"Rejected evaluator {axis.value} score: {value!r}")

        if evaluation is None:
            weights = getattr(self.config, f"{axis.value}_weights")
            evaluation = AxisEvaluation(
                axis=axis,
                score=blend(signals, weights),
                method="heuristic",
                rationale="Heuristic blend of " + ", ".join(
                    f"{name}={value:.2f}" for name, value in signals.items()
                ),
                signals=signals,
            )

        emit_event(
            self._event_sink,
            EventKind.EVALUATION_COMPLETED,
            cycle_id=artifacts.cycle_id,
            axis=axis.value,
            score=evaluation.score,
            method=evaluation.method,
            rationale=evaluation.rationale,
        )
        return evaluation

    async def assess_impact(
        self,
        scores: AxisScores,
        artifacts: DeliberationArtifacts,
        previous: Optional[AxisScores],
    ) -> ImpactAssessment:
        """Decide whether a manual deliberation caused a paradigm shift."""
        cfg = self.config
        spike = 0.0 if previous is None else max(0.0, scores.dissonance - previous.dissonance)
        controversy, method = await self._controversy(artifacts)

        reasons = []
        if spike > cfg.spike_threshold:
            reasons.append(f"dissonance rose by {spike:.2f}")
        if controversy > cfg.controversy_threshold:
            reasons.append(f"controversy at {controversy:.2f}")
        if scores.dissonance > cfg.dissonance_threshold:
            reasons.append(f"dissonance at {scores.dissonance:.2f}")
        if spike > cfg.moderate_spike_threshold and controversy > cfg.moderate_controversy_threshold:
            reasons.append("moderate spike with moderate controversy")

        if reasons:
            logger.info(f"Paradigm shift detected: {'; '.join(reasons)}")
        return ImpactAssessment(
            dissonance_spike=clamp(spike),
            controversy=controversy,
            controversy_method=method,
            is_paradigm_shift=bool(reasons),
            reasons=reasons,
        )

    def analyze(self, scores: AxisScores) -> ScoreAnalysis:
        analysis = ScoreAnalysis()
        for axis in AXES:
            value = scores.get(axis)
            if value > self.config.strength_threshold:
                analysis.strengths.append(axis.value)
            elif value < self.config.weakness_threshold:
                analysis.weaknesses.append(axis.value)
        return analysis

    def recommendations(self, scores: AxisScores) -> list[str]:
        """Plain suggestions for the axes that lag behind."""
        advice = []
        if scores.empathy < 0.6:
            advice.append("Give more weight to the feelings and viewpoints of others.")
        if scores.coherence < 0.6:
            advice.append("Tighten the reasoning so contributions support one another.")
        if scores.dissonance < 0.5:
            advice.append("Engage ethical tensions and contradictions instead of smoothing them over.")
        return advice

    async def _controversy(self, artifacts: DeliberationArtifacts) -> tuple[float, str]:
        critiques = artifacts.critiques
        if not critiques:
            return 0.0, "heuristic"

        if self.config.use_evaluator and self._evaluator is not None:
            listing = "\n".join(
                f"- {c.reviewer_id} on {c.target_agent_id}: {c.criticism[:PROMPT_ITEM_CHARS]}"
                for c in critiques[:PROMPT_ITEM_LIMIT]
            )
            prompt = (
                f"Critiques exchanged during a deliberation:\n{listing}\n\n"
                "How strongly do the participants disagree, from 0 (consensus) to 1 (open conflict)?\n"
                f"{CONTROVERSY_LABEL}: <number>"
            )
            result = await run_evaluator(
                self._evaluator, prompt, SYSTEM_PROMPT, self.config.evaluator_timeout
            )
            if result.usable:
                value = parse_labeled_number(result.content, CONTROVERSY_LABEL)
                if value is not None and 0.0 <= value <= 1.0:
                    return value, "evaluator"
                logger.warning(f"Rejected evaluator controversy: {value!r}")

        return controversy_level(critiques), "heuristic"

    def _build_axis_prompt(self, axis: Axis, artifacts: DeliberationArtifacts) -> str:
        statements = "\n".join(
            f"- {s.agent_id} (confidence {s.confidence:.2f}): {s.content[:PROMPT_ITEM_CHARS]}"
            for s in artifacts.statements[:PROMPT_ITEM_LIMIT]
        ) or "- (none)"
        critiques = "\n".join(
            f"- {c.reviewer_id} on {c.target_agent_id}: {c.criticism[:PROMPT_ITEM_CHARS]}"
            for c in artifacts.critiques[:PROMPT_ITEM_LIMIT]
        ) or "- (none)"
        audit = artifacts.audit
        audit_line = (
            f"safety {audit.safety_score:.2f}, concerns: {', '.join(audit.concerns) or 'none'}"
            if audit else "not available"
        )
        return (
            f"Statements:\n{statements}\n\nCritiques:\n{critiques}\n\nAudit: {audit_line}\n\n"
            f"{AXIS_QUESTIONS[axis]}\n"
            f"{AXIS_LABELS[axis]}: <number between 0 and 1>\n"
            "Reason: <one sentence>"
        )

    def _infer_emotional_state(self, artifacts: DeliberationArtifacts) -> dict[str, Any]:
        statements = artifacts.statements
        if not statements:
            return {"dominant_tone": "neutral", "tone_ratio": 0.0, "mean_confidence": 0.5, "uncertainty": 0.0}
        tones = Counter(s.emotional_tone for s in statements if s.emotional_tone)
        return {
            "dominant_tone": tones.most_common(1)[0][0] if tones else "neutral",
            "tone_ratio": sum(tones.values()) / len(statements),
            "mean_confidence": sum(s.confidence for s in statements) / len(statements),
            "uncertainty": sum(1 for s in statements if s.confidence < 0.6) / len(statements),
        }
