"""Persistence contract for the thinking loop.

The loop never talks to a storage engine directly. It needs a narrow set of
async accessors, captured by the ``Repository`` protocol:

- backlog: unresolved ideas and the triggers produced from them
- thoughts: significant thoughts, including "oldest N older than X with
  confidence >= Y" and delete-by-id-list
- beliefs, dream patterns, insights, deliberation records, sleep logs
- weight history: append-only, never overwritten

Two implementations ship with the package:

- ``InMemoryRepository``: dictionary-backed, used in tests and by
  applications that do not need durability
- ``GuardedRepository``: wraps any repository, bounds each call with a
  timeout and degrades to safe defaults (empty lists, zero deletions, the
  default weight split) when storage is unavailable
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import Optional, Protocol, TypeVar, runtime_checkable

from ponder.memory.schemas import (
    CoreBelief,
    DeliberationRecord,
    DreamPattern,
    Insight,
    SignificantThought,
    SleepLog,
    Trigger,
    UnresolvedIdea,
)
from ponder.scoring.schemas import AxisWeights, WeightHistoryEntry
from ponder.utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Repository(Protocol):
    """Storage accessors required by the loop."""

    async def get_unresolved_ideas(self, limit: int) -> list[UnresolvedIdea]: ...

    async def save_unresolved_idea(self, idea: UnresolvedIdea) -> None: ...

    async def mark_idea_considered(self, idea_id: str) -> None: ...

    async def save_trigger(self, trigger: Trigger) -> None: ...

    async def save_significant_thought(self, thought: SignificantThought) -> None: ...

    async def get_significant_thoughts(
        self, limit: int, min_confidence: float = 0.0
    ) -> list[SignificantThought]: ...

    async def get_old_significant_thoughts(
        self, older_than: timedelta, min_confidence: float, limit: int
    ) -> list[SignificantThought]: ...

    async def delete_significant_thoughts(self, ids: Iterable[str]) -> int: ...

    async def get_core_beliefs(self, limit: int) -> list[CoreBelief]: ...

    async def save_core_belief(self, belief: CoreBelief) -> None: ...

    async def delete_core_beliefs(self, ids: Iterable[str]) -> int: ...

    async def save_dream_pattern(self, pattern: DreamPattern) -> None: ...

    async def save_insight(self, insight: Insight) -> None: ...

    async def save_deliberation(self, record: DeliberationRecord) -> None: ...

    async def get_high_dissonance_deliberations(
        self, min_dissonance: float, within: timedelta, limit: int
    ) -> list[DeliberationRecord]: ...

    async def save_sleep_log(self, log: SleepLog) -> None: ...

    async def append_weight_history(self, entry: WeightHistoryEntry) -> None: ...

    async def get_weight_history(self, limit: int) -> list[WeightHistoryEntry]: ...

    async def get_latest_weights(self) -> Optional[AxisWeights]: ...


class InMemoryRepository:
    """Dictionary-backed repository.

    Ages are measured against an injectable clock so that tests can move
    time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self.ideas: dict[str, UnresolvedIdea] = {}
        self.triggers: list[Trigger] = []
        self.thoughts: dict[str, SignificantThought] = {}
        self.beliefs: dict[str, CoreBelief] = {}
        self.patterns: list[DreamPattern] = []
        self.insights: list[Insight] = []
        self.deliberations: list[DeliberationRecord] = []
        self.sleep_logs: list[SleepLog] = []
        self.weight_history: list[WeightHistoryEntry] = []

    async def get_unresolved_ideas(self, limit: int) -> list[UnresolvedIdea]:
        ideas = sorted(
            self.ideas.values(),
            key=lambda i: (i.importance if i.importance is not None else 0.5, i.created_at),
            reverse=True,
        )
        return ideas[:limit]

    async def save_unresolved_idea(self, idea: UnresolvedIdea) -> None:
        self.ideas[idea.id] = idea

    async def mark_idea_considered(self, idea_id: str) -> None:
        idea = self.ideas.get(idea_id)
        if idea is None:
            return
        self.ideas[idea_id] = idea.model_copy(update={
            "consideration_count": idea.consideration_count + 1,
            "last_considered": self._clock(),
        })

    async def save_trigger(self, trigger: Trigger) -> None:
        self.triggers.append(trigger)

    async def save_significant_thought(self, thought: SignificantThought) -> None:
        self.thoughts[thought.id] = thought

    async def get_significant_thoughts(
        self, limit: int, min_confidence: float = 0.0
    ) -> list[SignificantThought]:
        thoughts = [t for t in self.thoughts.values() if t.confidence >= min_confidence]
        thoughts.sort(key=lambda t: t.created_at, reverse=True)
        return thoughts[:limit]

    async def get_old_significant_thoughts(
        self, older_than: timedelta, min_confidence: float, limit: int
    ) -> list[SignificantThought]:
        cutoff = self._clock() - older_than
        thoughts = [
            t for t in self.thoughts.values()
            if t.created_at < cutoff and t.confidence >= min_confidence
        ]
        thoughts.sort(key=lambda t: t.created_at)
        return thoughts[:limit]

    async def delete_significant_thoughts(self, ids: Iterable[str]) -> int:
        deleted = 0
        for thought_id in set(ids):
            if self.thoughts.pop(thought_id, None) is not None:
                deleted += 1
        return deleted

    async def get_core_beliefs(self, limit: int) -> list[CoreBelief]:
        beliefs = sorted(
            self.beliefs.values(),
            key=lambda b: (b.strength, b.confidence),
            reverse=True,
        )
        return beliefs[:limit]

    async def save_core_belief(self, belief: CoreBelief) -> None:
        self.beliefs[belief.id] = belief

    async def delete_core_beliefs(self, ids: Iterable[str]) -> int:
        deleted = 0
        for belief_id in set(ids):
            if self.beliefs.pop(belief_id, None) is not None:
                deleted += 1
        return deleted

    async def save_dream_pattern(self, pattern: DreamPattern) -> None:
        self.patterns.append(pattern)

    async def save_insight(self, insight: Insight) -> None:
        self.insights.append(insight)

    async def save_deliberation(self, record: DeliberationRecord) -> None:
        self.deliberations.append(record)

    async def get_high_dissonance_deliberations(
        self, min_dissonance: float, within: timedelta, limit: int
    ) -> list[DeliberationRecord]:
        cutoff = self._clock() - within
        records = [
            r for r in self.deliberations
            if r.dissonance >= min_dissonance and r.created_at >= cutoff
        ]
        records.sort(key=lambda r: r.dissonance, reverse=True)
        return records[:limit]

    async def save_sleep_log(self, log: SleepLog) -> None:
        self.sleep_logs.append(log)

    async def append_weight_history(self, entry: WeightHistoryEntry) -> None:
        self.weight_history.append(entry)

    async def get_weight_history(self, limit: int) -> list[WeightHistoryEntry]:
        return list(reversed(self.weight_history[-limit:])) if limit > 0 else []

    async def get_latest_weights(self) -> Optional[AxisWeights]:
        if not self.weight_history:
            return None
        return self.weight_history[-1].to_weights()


class GuardedRepository:
    """Timeout-bounded wrapper that never raises storage errors.

    Reads fall back to empty results, deletions report zero, writes are
    logged and dropped. Cancellation still propagates to the caller.

    Args:
        inner: Repository doing the actual work
        timeout: Seconds allowed per call
    """

    def __init__(self, inner: Repository, timeout: float = 5.0):
        self._inner = inner
        self._timeout = timeout

    async def _guard(self, operation: str, call: Awaitable[T], default: T) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Repository {operation} timed out after {self._timeout}s")
        except Exception as e:
            logger.warning(f"Repository {operation} failed: {e}")
        return default

    async def get_unresolved_ideas(self, limit: int) -> list[UnresolvedIdea]:
        return await self._guard(
            "get_unresolved_ideas", self._inner.get_unresolved_ideas(limit), []
        )

    async def save_unresolved_idea(self, idea: UnresolvedIdea) -> None:
        await self._guard("save_unresolved_idea", self._inner.save_unresolved_idea(idea), None)

    async def mark_idea_considered(self, idea_id: str) -> None:
        await self._guard("mark_idea_considered", self._inner.mark_idea_considered(idea_id), None)

    async def save_trigger(self, trigger: Trigger) -> None:
        await self._guard("save_trigger", self._inner.save_trigger(trigger), None)

    async def save_significant_thought(self, thought: SignificantThought) -> None:
        await self._guard(
            "save_significant_thought", self._inner.save_significant_thought(thought), None
        )

    async def get_significant_thoughts(
        self, limit: int, min_confidence: float = 0.0
    ) -> list[SignificantThought]:
        return await self._guard(
            "get_significant_thoughts",
            self._inner.get_significant_thoughts(limit, min_confidence),
            [],
        )

    async def get_old_significant_thoughts(
        self, older_than: timedelta, min_confidence: float, limit: int
    ) -> list[SignificantThought]:
        return await self._guard(
            "get_old_significant_thoughts",
            self._inner.get_old_significant_thoughts(older_than, min_confidence, limit),
            [],
        )

    async def delete_significant_thoughts(self, ids: Iterable[str]) -> int:
        return await self._guard(
            "delete_significant_thoughts",
            self._inner.delete_significant_thoughts(list(ids)),
            0,
        )

    async def get_core_beliefs(self, limit: int) -> list[CoreBelief]:
        return await self._guard("get_core_beliefs", self._inner.get_core_beliefs(limit), [])

    async def save_core_belief(self, belief: CoreBelief) -> None:
        await self._guard("save_core_belief", self._inner.save_core_belief(belief), None)

    async def delete_core_beliefs(self, ids: Iterable[str]) -> int:
        return await self._guard(
            "delete_core_beliefs", self._inner.delete_core_beliefs(list(ids)), 0
        )

    async def save_dream_pattern(self, pattern: DreamPattern) -> None:
        await self._guard("save_dream_pattern", self._inner.save_dream_pattern(pattern), None)

    async def save_insight(self, insight: Insight) -> None:
        await self._guard("save_insight", self._inner.save_insight(insight), None)

    async def save_deliberation(self, record: DeliberationRecord) -> None:
        await self._guard("save_deliberation", self._inner.save_deliberation(record), None)

    async def get_high_dissonance_deliberations(
        self, min_dissonance: float, within: timedelta, limit: int
    ) -> list[DeliberationRecord]:
        return await self._guard(
            "get_high_dissonance_deliberations",
            self._inner.get_high_dissonance_deliberations(min_dissonance, within, limit),
            [],
        )

    async def save_sleep_log(self, log: SleepLog) -> None:
        await self._guard("save_sleep_log", self._inner.save_sleep_log(log), None)

    async def append_weight_history(self, entry: WeightHistoryEntry) -> None:
        await self._guard(
            "append_weight_history", self._inner.append_weight_history(entry), None
        )

    async def get_weight_history(self, limit: int) -> list[WeightHistoryEntry]:
        return await self._guard(
            "get_weight_history", self._inner.get_weight_history(limit), []
        )

    async def get_latest_weights(self) -> Optional[AxisWeights]:
        return await self._guard(
            "get_latest_weights", self._inner.get_latest_weights(), AxisWeights()
        )
