"""Category balance for self-generated questions.

The loop should not ask itself about the same kind of thing over and over.
The balancer keeps a rolling record of recently generated questions and
compares each category's share against its target weight:

- overused: more than 1.5x its expected share in the window
- underused: less than 0.5x its expected share, once the window holds more
  than a handful of questions

The trigger scheduler uses these flags to bias selection, and asks for a
recommended category when it synthesizes a new question.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from ponder.memory.schemas import QuestionCategory
from ponder.memory.similarity import jaccard, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryProfile:
    """Target share and recommendation cooldown of one category."""
    category: QuestionCategory
    weight: float
    cooldown: float  # Seconds before the category is recommended again


# Relative target weights; normalized by the balancer
DEFAULT_PROFILES: tuple[CategoryProfile, ...] = (
    CategoryProfile(QuestionCategory.PHILOSOPHICAL, 0.25, 300.0),
    CategoryProfile(QuestionCategory.EXISTENTIAL, 0.18, 450.0),
    CategoryProfile(QuestionCategory.EPISTEMIC, 0.16, 240.0),
    CategoryProfile(QuestionCategory.CREATIVE, 0.15, 180.0),
    CategoryProfile(QuestionCategory.ETHICAL, 0.10, 360.0),
    CategoryProfile(QuestionCategory.CONSCIOUSNESS, 0.20, 300.0),
    CategoryProfile(QuestionCategory.TEMPORAL, 0.10, 240.0),
    CategoryProfile(QuestionCategory.PARADOXICAL, 0.08, 420.0),
    CategoryProfile(QuestionCategory.ONTOLOGICAL, 0.12, 390.0),
    CategoryProfile(QuestionCategory.METACOGNITIVE, 0.15, 300.0),
)

OVERUSE_FACTOR = 1.5
UNDERUSE_FACTOR = 0.5
MIN_SAMPLES_FOR_UNDERUSE = 5
DIVERSITY_LOOKBACK = 10


@dataclass
class QuestionRecord:
    """A generated question as seen by the balancer."""
    question: str
    category: QuestionCategory
    importance: float
    timestamp: float


@dataclass
class CategoryBalance:
    """Recent usage of one category relative to its target."""
    category: QuestionCategory
    recent_count: int
    expected: float
    target_weight: float
    recommended_weight: float
    overused: bool
    underused: bool


class CategoryBalancer:
    """Rolling category distribution of generated questions.

    Args:
        profiles: Category targets; defaults to DEFAULT_PROFILES
        window: Seconds of history considered "recent"
        history_size: Maximum number of remembered questions
        clock: Seconds since an arbitrary epoch
    """

    def __init__(
        self,
        profiles: tuple[CategoryProfile, ...] = DEFAULT_PROFILES,
        window: float = 7200.0,
        history_size: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        if not profiles:
            raise ValueError("At least one category profile is required")
        total = sum(p.weight for p in profiles)
        if total <= 0:
            raise ValueError("Category weights must sum to a positive value")
        self._profiles = {p.category: p for p in profiles}
        self._weights = {p.category: p.weight / total for p in profiles}
        self._window = window
        self._clock = clock
        self._history: deque[QuestionRecord] = deque(maxlen=history_size)
        self._last_used: dict[QuestionCategory, float] = {}

    @property
    def categories(self) -> list[QuestionCategory]:
        return list(self._profiles)

    @property
    def history(self) -> list[QuestionRecord]:
        return list(self._history)

    def record(
        self,
        question: str,
        category: QuestionCategory,
        importance: float,
        now: Optional[float] = None,
    ) -> None:
        """Remember a generated question."""
        now = self._clock() if now is None else now
        self._history.append(QuestionRecord(question, category, importance, now))
        self._last_used[category] = now

    def balance(self, now: Optional[float] = None) -> dict[QuestionCategory, CategoryBalance]:
        """Usage of every category within the recent window."""
        now = self._clock() if now is None else now
        recent = [r for r in self._history if now - r.timestamp <= self._window]
        total = len(recent)
        counts: dict[QuestionCategory, int] = {}
        for record in recent:
            counts[record.category] = counts.get(record.category, 0) + 1

        result = {}
        for category, weight in self._weights.items():
            count = counts.get(category, 0)
            expected = total * weight
            overused = total > 0 and count > expected * OVERUSE_FACTOR
            underused = total > MIN_SAMPLES_FOR_UNDERUSE and count < expected * UNDERUSE_FACTOR
            if overused:
                recommended = max(0.05, weight * 0.7)
            elif underused:
                recommended = min(0.5, weight * 1.3)
            else:
                recommended = weight
            result[category] = CategoryBalance(
                category=category,
                recent_count=count,
                expected=expected,
                target_weight=weight,
                recommended_weight=recommended,
                overused=overused,
                underused=underused,
            )
        return result

    def recommended_category(
        self,
        now: Optional[float] = None,
        is_available: Optional[Callable[[QuestionCategory], bool]] = None,
    ) -> QuestionCategory:
        """Category the next synthesized question should belong to.

        Categories still inside their recommendation cooldown, or rejected
        by ``is_available``, are skipped. Among the rest the most
        under-represented underused category wins, otherwise the one with
        the highest recommended weight. When every category is unavailable
        the least recently used one is returned.
        """
        now = self._clock() if now is None else now
        balance = self.balance(now)

        def available(category: QuestionCategory) -> bool:
            last = self._last_used.get(category)
            if last is not None and now - last < self._profiles[category].cooldown:
                return False
            return is_available is None or is_available(category)

        candidates = [b for b in balance.values() if available(b.category)]
        if not candidates:
            return min(self._profiles, key=lambda c: self._last_used.get(c, float("-inf")))

        underused = [b for b in candidates if b.underused]
        if underused:
            return min(underused, key=lambda b: b.recent_count / max(b.expected, 1e-9)).category
        return max(candidates, key=lambda b: b.recommended_weight).category

    def diversity_score(self, question: str) -> float:
        """1.0 for a question unlike any recent one, 0.0 for a repeat."""
        recent = list(self._history)[-DIVERSITY_LOOKBACK:]
        if not recent:
            return 1.0
        words = tokenize(question)
        return 1.0 - max(jaccard(words, tokenize(r.question)) for r in recent)
