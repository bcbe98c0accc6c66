"""Deterministic heuristic signals for axis scoring.

Used whenever the evaluator cannot provide a valid score. Every signal is
purely syntactic or statistical (fractions, means, variances, keyword
presence) and clamped to [0, 1]. Empty inputs produce neutral values rather
than NaN.

Empathy:     emotional_recognition, perspective_taking,
             compassionate_response, social_awareness
Coherence:   logical_consistency, value_alignment, goal_congruence,
             system_harmony
Dissonance:  ethical_awareness, contradiction_recognition,
             moral_complexity, uncertainty_tolerance
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

import numpy as np

from ponder.scoring.schemas import Axis, Critique, DeliberationArtifacts, Statement

T = TypeVar("T")

LOW_CONFIDENCE = 0.6

COMPASSION_TERMS = ("understand", "empath", "compassion", "care", "caring", "support", "kindness")
SOCIAL_TERMS = ("others", "people", "society", "community", "relationship", "together")
ETHICAL_TERMS = (
    "ethic", "moral", "right", "wrong", "good", "evil", "duty", "justice",
    "fair", "harm", "virtue", "responsib", "dignity",
)
MORAL_COMPLEXITY_TERMS = (
    "dilemma", "trade-off", "tradeoff", "tension", "conflict", "ambigu",
    "competing", "nuance", "moral", "ethic",
)
CONTROVERSY_TERMS = (
    "conflict", "tension", "disagree", "contradict", "oppose", "reject",
    "inconsistent", "flaw",
)


def _pattern(terms: Sequence[str]) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(re.escape(t) for t in terms) + r")", re.IGNORECASE)


_COMPASSION = _pattern(COMPASSION_TERMS)
_SOCIAL = _pattern(SOCIAL_TERMS)
_ETHICAL = _pattern(ETHICAL_TERMS)
_MORAL = _pattern(MORAL_COMPLEXITY_TERMS)
_CONTROVERSY = _pattern(CONTROVERSY_TERMS)
_WORD = re.compile(r"\w+")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp to [low, high]; NaN becomes low."""
    if value != value:
        return low
    return max(low, min(high, value))


def _fraction(items: Sequence[T], predicate: Callable[[T], bool]) -> float:
    if not items:
        return 0.0
    return sum(1 for item in items if predicate(item)) / len(items)


def _critique_text(critique: Critique) -> str:
    return " ".join([critique.criticism, *critique.insights, *critique.weaknesses])


def blend(signals: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted sum of signals, clamped to [0, 1]."""
    return clamp(sum(clamp(signals.get(name, 0.0)) * w for name, w in weights.items()))


# ----------------------------------------------------------------------
# Empathy
# ----------------------------------------------------------------------

def empathy_signals(artifacts: DeliberationArtifacts) -> dict[str, float]:
    statements, critiques = artifacts.statements, artifacts.critiques
    return {
        "emotional_recognition": _fraction(statements, lambda s: bool(s.emotional_tone)),
        "perspective_taking": _fraction(critiques, lambda c: bool(c.alternative_perspective)),
        "compassionate_response": _fraction(statements, lambda s: bool(_COMPASSION.search(s.content))),
        "social_awareness": _fraction(critiques, lambda c: bool(_SOCIAL.search(c.criticism))),
    }


# ----------------------------------------------------------------------
# Coherence
# ----------------------------------------------------------------------

def logical_consistency(statements: Sequence[Statement]) -> float:
    values = [s.logical_coherence for s in statements if s.logical_coherence is not None]
    return clamp(float(np.mean(values))) if values else 0.5


def value_alignment(statements: Sequence[Statement]) -> float:
    if not statements:
        return 0.5
    return clamp(float(np.mean([s.confidence for s in statements])))


def goal_congruence(statements: Sequence[Statement]) -> float:
    """High when contributions are of similar length (a shared focus)."""
    if not statements:
        return 0.5
    lengths = np.array([len(s.content) for s in statements], dtype=float)
    mean = lengths.mean()
    if mean <= 0:
        return 0.5
    normalized_variance = min(1.0, float(lengths.var()) / mean)
    return clamp(max(0.1, 1.0 - normalized_variance))


def system_harmony(statements: Sequence[Statement]) -> float:
    """High when agents are about equally confident."""
    by_agent: dict[str, list[float]] = {}
    for statement in statements:
        by_agent.setdefault(statement.agent_id, []).append(statement.confidence)
    if len(by_agent) <= 1:
        return 0.7
    agent_means = [float(np.mean(values)) for values in by_agent.values()]
    return clamp(max(0.1, 1.0 - float(np.var(agent_means))))


def coherence_signals(artifacts: DeliberationArtifacts) -> dict[str, float]:
    statements = artifacts.statements
    return {
        "logical_consistency": logical_consistency(statements),
        "value_alignment": value_alignment(statements),
        "goal_congruence": goal_congruence(statements),
        "system_harmony": system_harmony(statements),
    }


# ----------------------------------------------------------------------
# Dissonance
# ----------------------------------------------------------------------

def ethical_term_density(texts: Iterable[str]) -> float:
    """Ethical vocabulary per word, scaled so 1 term in 10 words reads as 1.0."""
    words = 0
    hits = 0
    for text in texts:
        words += len(_WORD.findall(text))
        hits += len(_ETHICAL.findall(text))
    if words == 0:
        return 0.0
    return clamp(10.0 * hits / words)


def moral_complexity(statements: Sequence[Statement]) -> float:
    if not statements:
        return 0.3
    moral_density = _fraction(statements, lambda s: bool(_MORAL.search(s.content)))
    confidence_variance = float(np.var([s.confidence for s in statements]))
    return clamp(moral_density * 2 + min(0.5, confidence_variance * 2))


def dissonance_signals(artifacts: DeliberationArtifacts) -> dict[str, float]:
    statements, critiques = artifacts.statements, artifacts.critiques
    audit = artifacts.audit
    if audit is not None and audit.ethics_score is not None:
        ethical_awareness = clamp(audit.ethics_score)
    else:
        ethical_awareness = ethical_term_density(
            [s.content for s in statements] + [_critique_text(c) for c in critiques]
        )
    low_confidence = _fraction(statements, lambda s: s.confidence < LOW_CONFIDENCE)
    return {
        "ethical_awareness": ethical_awareness,
        "contradiction_recognition": _fraction(
            critiques, lambda c: c.agreement_level is not None and c.agreement_level < 0
        ),
        "moral_complexity": moral_complexity(statements),
        "uncertainty_tolerance": clamp(0.3 + 0.7 * low_confidence),
    }


SIGNALS: dict[Axis, Callable[[DeliberationArtifacts], dict[str, float]]] = {
    Axis.EMPATHY: empathy_signals,
    Axis.COHERENCE: coherence_signals,
    Axis.DISSONANCE: dissonance_signals,
}


def controversy_level(critiques: Sequence[Critique]) -> float:
    """Share of critique points that voice conflict or disagreement."""
    points = [p for c in critiques for p in (c.criticism, *c.insights, *c.weaknesses) if p]
    if not points:
        return 0.0
    return clamp(_fraction(points, lambda p: bool(_CONTROVERSY.search(p))))
