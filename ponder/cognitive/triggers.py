"""Trigger scheduler: choosing the next question to deliberate on.

Strategies are tried in priority order, each short-circuiting the rest:

1. Manual: an explicitly queued trigger, consumed exactly once
2. Evolved: with probability ``evolve_probability``, and only when there is
   history to build on, synthesize a new question from the top backlog
   items, the most confident recent thoughts and the strongest beliefs.
   The evaluator is asked for a ``Question:`` and a ``Category:`` line;
   when it fails, a template combines the same material instead.
3. Backlog: a weighted draw from the unresolved-idea backlog. Importance is
   scaled by a category balance multiplier so that underused categories
   surface more often and overused ones less.

Every produced trigger is recorded with the category balancer, saved, and
announced on the event sink. When nothing is available the scheduler
returns None; that is a normal outcome, not an error.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from ponder.cognitive.categories import CategoryBalance, CategoryBalancer
from ponder.config import TriggerConfig
from ponder.evaluator import run_evaluator
from ponder.events import EventKind, EventSink, emit_event
from ponder.memory.schemas import (
    CoreBelief,
    QuestionCategory,
    SignificantThought,
    Trigger,
    TriggerSource,
    UnresolvedIdea,
)
from ponder.parsing import parse_labeled_text

if TYPE_CHECKING:
    from ponder.cognitive.cooldown import CooldownGate
    from ponder.evaluator import Evaluator
    from ponder.memory.repository import Repository

logger = logging.getLogger(__name__)

MANUAL_IMPORTANCE = 0.8

SYSTEM_PROMPT = (
    "You help a reflective system decide what to think about next. "
    "Answer only in the requested format."
)

# Templates for evolved questions when the evaluator is unavailable.
# {idea}, {thought} and {belief} are filled from the context snapshot.
IDEA_TEMPLATES = (
    'What deeper question grows out of "{idea}"?',
    'What would it take to finally settle "{idea}"?',
)
THOUGHT_TEMPLATES = (
    'Given that "{thought}", what follows that has not been asked yet?',
)
BELIEF_TEMPLATES = (
    'If the belief "{belief}" were wrong, what would be visible that is hidden now?',
)
COMBINED_TEMPLATES = (
    'How does "{thought}" change the open question "{idea}"?',
)
GENERIC_TEMPLATES = (
    "Where might the conclusions reached so far contain a blind spot?",
    "Looking back over recent reflection, which aspect deserves attention next?",
)


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


class TriggerScheduler:
    """Produces the next trigger for the thinking loop.

    Args:
        repository: Source of backlog, thoughts and beliefs; sink for triggers
        balancer: Rolling category distribution
        evaluator: Optional text evaluator for evolved questions
        event_sink: Optional observer of generated triggers
        rng: Random source for strategy choice and weighted selection
        config: Strategy parameters
        gate: Optional cooldown gate; categories still cooling down are not
            recommended
        clock: Seconds since an arbitrary epoch
    """

    def __init__(
        self,
        repository: "Repository",
        balancer: Optional[CategoryBalancer] = None,
        evaluator: Optional["Evaluator"] = None,
        event_sink: Optional[EventSink] = None,
        rng: Optional[np.random.Generator] = None,
        config: Optional[TriggerConfig] = None,
        gate: Optional["CooldownGate"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or TriggerConfig()
        self._repository = repository
        self._balancer = balancer or CategoryBalancer(
            window=self.config.balance_window,
            history_size=self.config.balance_history,
            clock=clock,
        )
        self._evaluator = evaluator
        self._event_sink = event_sink
        self._rng = rng if rng is not None else np.random.default_rng()
        self._gate = gate
        self._clock = clock
        self._manual: deque[Trigger] = deque()

    @property
    def balancer(self) -> CategoryBalancer:
        return self._balancer

    @property
    def pending_manual(self) -> int:
        return len(self._manual)

    @property
    def next_cost(self) -> float:
        """Most energy the next trigger can cost.

        A queued manual trigger always comes first, so its cost is exact.
        Otherwise evolved and backlog questions are both possible.
        """
        if self._manual:
            return self._manual[0].energy_cost
        costs = [self._energy_cost(TriggerSource.BACKLOG)]
        if self.config.evolve_probability > 0:
            costs.append(self._energy_cost(TriggerSource.EVOLVED))
        return max(costs)

    def queue_manual(
        self,
        question: str,
        category: QuestionCategory = QuestionCategory.PHILOSOPHICAL,
        importance: float = MANUAL_IMPORTANCE,
        context: Optional[dict[str, Any]] = None,
    ) -> Trigger:
        """Queue an operator-supplied question ahead of every other strategy."""
        trigger = Trigger(
            question=question,
            category=category,
            importance=importance,
            energy_cost=self._energy_cost(TriggerSource.MANUAL),
            source=TriggerSource.MANUAL,
            context=context or {"strategy": "manual"},
        )
        self._manual.append(trigger)
        return trigger

    def queue_trigger(self, trigger: Trigger) -> None:
        self._manual.append(trigger)

    def requeue(self, trigger: Trigger) -> None:
        """Put a trigger back at the front of the manual queue."""
        self._manual.appendleft(trigger)

    async def next_trigger(self) -> Optional[Trigger]:
        """Produce the next trigger, or None if no candidate exists."""
        now = self._clock()
        try:
            trigger = await self._produce(now)
        except Exception as e:
            logger.warning(f"Trigger generation failed: {e}")
            return None

        if trigger is None:
            logger.debug("No trigger candidates available")
            return None
        await self._publish(trigger, now)
        return trigger

    async def _produce(self, now: float) -> Optional[Trigger]:
        if self._manual:
            return self._manual.popleft()

        cfg = self.config
        ideas = await self._repository.get_unresolved_ideas(cfg.context_backlog_limit)
        thoughts = await self._repository.get_significant_thoughts(cfg.context_thought_limit)
        beliefs = await self._repository.get_core_beliefs(cfg.context_belief_limit)

        if (ideas or thoughts or beliefs) and self._rng.random() < cfg.evolve_probability:
            evolved = await self._evolve(ideas, thoughts, beliefs, now)
            if evolved is not None:
                return evolved

        return await self._select_from_backlog(now)

    async def _publish(self, trigger: Trigger, now: float) -> None:
        self._balancer.record(trigger.question, trigger.category, trigger.importance, now)
        try:
            await self._repository.save_trigger(trigger)
        except Exception as e:
            logger.warning(f"Failed to save trigger {trigger.id}: {e}")
        logger.info(
            f"Trigger [{trigger.source.value}/{trigger.category.value}] "
            f"importance={trigger.importance:.2f}: {trigger.question[:60]}"
        )
        emit_event(
            self._event_sink,
            EventKind.TRIGGER_GENERATED,
            trigger_id=trigger.id,
            question=trigger.question,
            category=trigger.category.value,
            source=trigger.source.value,
            importance=trigger.importance,
            priority=trigger.priority,
        )

    # ------------------------------------------------------------------
    # Evolved questions
    # ------------------------------------------------------------------

    async def _evolve(
        self,
        ideas: list[UnresolvedIdea],
        thoughts: list[SignificantThought],
        beliefs: list[CoreBelief],
        now: float,
    ) -> Optional[Trigger]:
        recommended = self._recommended_category(now)
        balance = self._balancer.balance(now)
        context = self._build_context(ideas, thoughts, beliefs)
        context["recommended_category"] = recommended.value

        parsed = None
        if self._evaluator is not None:
            result = await run_evaluator(
                self._evaluator,
                self._build_prompt(context, recommended),
                SYSTEM_PROMPT,
                self.config.evaluator_timeout,
            )
            if result.usable:
                parsed = self._parse_evolved(result.content, recommended)
                if parsed is None:
                    logger.warning("Evolved question response did not parse, using template")

        if parsed is not None:
            question, category, reason = parsed
            if balance[category].overused:
                logger.debug(f"Category {category.value} overused, using {recommended.value}")
                category = recommended
            context.update(strategy="evolved", method="evaluator", reason=reason)
            importance = self.config.evolved_importance
        else:
            question = self._template_question(context)
            category = recommended
            context.update(strategy="evolved", method="template")
            importance = self.config.template_importance

        return Trigger(
            question=question,
            category=category,
            importance=importance,
            energy_cost=self._energy_cost(TriggerSource.EVOLVED),
            source=TriggerSource.EVOLVED,
            context=context,
        )

    def _build_context(
        self,
        ideas: list[UnresolvedIdea],
        thoughts: list[SignificantThought],
        beliefs: list[CoreBelief],
    ) -> dict[str, Any]:
        cfg = self.config
        top_ideas = sorted(
            ideas,
            key=lambda i: i.importance if i.importance is not None else cfg.default_importance,
            reverse=True,
        )[: cfg.context_items]
        top_thoughts = sorted(thoughts, key=lambda t: t.confidence, reverse=True)[: cfg.context_items]
        top_beliefs = sorted(beliefs, key=lambda b: b.strength, reverse=True)[: cfg.context_items]
        return {
            "backlog": [_truncate(i.question, cfg.context_chars) for i in top_ideas],
            "thoughts": [_truncate(t.content, cfg.context_chars) for t in top_thoughts],
            "beliefs": [_truncate(b.content, cfg.context_chars) for b in top_beliefs],
        }

    def _build_prompt(self, context: dict[str, Any], recommended: QuestionCategory) -> str:
        sections = []
        for title, key in (
            ("Open questions", "backlog"),
            ("Recent thoughts", "thoughts"),
            ("Current beliefs", "beliefs"),
        ):
            if context[key]:
                sections.append(f"{title}:\n" + "\n".join(f"- {item}" for item in context[key]))
        categories = ", ".join(c.value for c in QuestionCategory)
        return (
            "\n\n".join(sections)
            + "\n\nPropose one new question that builds on this material without repeating it.\n"
            f"Prefer the category '{recommended.value}'. Valid categories: {categories}.\n\n"
            "Question: <the question>\n"
            "Category: <one category>\n"
            "Reason: <one sentence>"
        )

    def _parse_evolved(
        self, content: str, recommended: QuestionCategory
    ) -> Optional[tuple[str, QuestionCategory, Optional[str]]]:
        question = parse_labeled_text(content, "Question")
        category_text = parse_labeled_text(content, "Category")
        if not question or category_text is None:
            return None
        category = QuestionCategory.parse(category_text)
        if category is None:
            logger.debug(f"Unknown category '{category_text}', using {recommended.value}")
            category = recommended
        return question, category, parse_labeled_text(content, "Reason")

    def _template_question(self, context: dict[str, Any]) -> str:
        idea = context["backlog"][0] if context["backlog"] else None
        thought = context["thoughts"][0] if context["thoughts"] else None
        belief = context["beliefs"][0] if context["beliefs"] else None

        options: list[str] = []
        if idea:
            options += [t.format(idea=idea) for t in IDEA_TEMPLATES]
        if thought:
            options += [t.format(thought=thought) for t in THOUGHT_TEMPLATES]
        if belief:
            options += [t.format(belief=belief) for t in BELIEF_TEMPLATES]
        if idea and thought:
            options += [t.format(idea=idea, thought=thought) for t in COMBINED_TEMPLATES]
        options += GENERIC_TEMPLATES
        return options[int(self._rng.integers(len(options)))]

    # ------------------------------------------------------------------
    # Backlog selection
    # ------------------------------------------------------------------

    async def _select_from_backlog(self, now: float) -> Optional[Trigger]:
        ideas = await self._repository.get_unresolved_ideas(self.config.backlog_limit)
        if not ideas:
            return None

        balance = self._balancer.balance(now)
        weights = np.array([self.selection_weight(idea, balance) for idea in ideas], dtype=float)
        total = weights.sum()
        probabilities = weights / total if total > 0 else None
        index = int(self._rng.choice(len(ideas), p=probabilities))
        idea = ideas[index]

        await self._repository.mark_idea_considered(idea.id)
        importance = idea.importance if idea.importance is not None else self.config.default_importance
        return Trigger(
            question=idea.question,
            category=idea.category,
            importance=importance,
            energy_cost=self._energy_cost(TriggerSource.BACKLOG),
            source=TriggerSource.BACKLOG,
            context={
                "strategy": "backlog",
                "idea_id": idea.id,
                "consideration_count": idea.consideration_count + 1,
                "selection_weight": float(weights[index]),
                "candidates": len(ideas),
            },
        )

    def selection_weight(
        self,
        idea: UnresolvedIdea,
        balance: dict[QuestionCategory, CategoryBalance],
    ) -> float:
        """Importance scaled by the category balance multiplier."""
        importance = idea.importance if idea.importance is not None else self.config.default_importance
        entry = balance.get(idea.category)
        if entry is None:
            return importance
        if entry.underused:
            return importance * self.config.underused_multiplier
        if entry.overused:
            return importance * self.config.overused_multiplier
        return importance

    def _recommended_category(self, now: float) -> QuestionCategory:
        if self._gate is None:
            return self._balancer.recommended_category(now)
        gate = self._gate
        return self._balancer.recommended_category(
            now, is_available=lambda c: gate.category_ready(c.value, now)
        )

    def _energy_cost(self, source: TriggerSource) -> float:
        return self.config.energy_costs.get(source.value, 10.0)
