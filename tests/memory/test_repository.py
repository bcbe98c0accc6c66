"""Tests for the in-memory and guarded repositories."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from ponder.memory.repository import GuardedRepository, InMemoryRepository, Repository
from ponder.memory.schemas import (
    DeliberationRecord,
    SignificantThought,
    UnresolvedIdea,
)
from ponder.scoring.schemas import AxisWeights, WeightHistoryEntry

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def thought(content, age_hours, confidence=0.8):
    return SignificantThought(
        content=content,
        confidence=confidence,
        created_at=NOW - timedelta(hours=age_hours),
    )


@pytest.fixture
def repo():
    return InMemoryRepository(clock=lambda: NOW)


class TestInMemoryRepository:
    """Tests for InMemoryRepository."""

    def test_satisfies_protocol(self, repo):
        """The in-memory store implements the Repository protocol."""
        assert isinstance(repo, Repository)

    @pytest.mark.asyncio
    async def test_ideas_ordered_by_importance(self, repo):
        """The backlog is served most important first."""
        await repo.save_unresolved_idea(UnresolvedIdea(question="low", importance=0.2))
        await repo.save_unresolved_idea(UnresolvedIdea(question="high", importance=0.9))
        await repo.save_unresolved_idea(UnresolvedIdea(question="unset"))

        ideas = await repo.get_unresolved_ideas(10)

        assert [i.question for i in ideas] == ["high", "unset", "low"]

    @pytest.mark.asyncio
    async def test_mark_idea_considered(self, repo):
        """Considering an idea bumps its count and timestamp."""
        idea = UnresolvedIdea(question="q")
        await repo.save_unresolved_idea(idea)

        await repo.mark_idea_considered(idea.id)
        await repo.mark_idea_considered("idea:missing")

        stored = repo.ideas[idea.id]
        assert stored.consideration_count == 1
        assert stored.last_considered == NOW

    @pytest.mark.asyncio
    async def test_old_thoughts_oldest_first(self, repo):
        """Aged thoughts are filtered by age and confidence, oldest first."""
        for t in (
            thought("fresh", 0.5),
            thought("older", 5),
            thought("oldest", 50),
            thought("old but unsure", 10, confidence=0.3),
        ):
            await repo.save_significant_thought(t)

        old = await repo.get_old_significant_thoughts(timedelta(hours=1), 0.5, 10)

        assert [t.content for t in old] == ["oldest", "older"]

    @pytest.mark.asyncio
    async def test_recent_thoughts_newest_first(self, repo):
        """Recent thoughts are served newest first with a confidence floor."""
        for t in (thought("a", 3), thought("b", 1), thought("c", 2, confidence=0.2)):
            await repo.save_significant_thought(t)

        recent = await repo.get_significant_thoughts(10, min_confidence=0.5)

        assert [t.content for t in recent] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_delete_counts_only_existing(self, repo):
        """Deletion reports how many records actually went away."""
        t = thought("x", 1)
        await repo.save_significant_thought(t)

        deleted = await repo.delete_significant_thoughts([t.id, t.id, "thought:nope"])

        assert deleted == 1
        assert repo.thoughts == {}

    @pytest.mark.asyncio
    async def test_high_dissonance_within_window(self, repo):
        """Only recent high-dissonance cycles are returned."""
        def record(dissonance, age_days):
            return DeliberationRecord(
                trigger_id="trg:1", question="q", empathy=0.5, coherence=0.5,
                dissonance=dissonance, weighted_total=0.5,
                created_at=NOW - timedelta(days=age_days),
            )

        for r in (record(0.9, 1), record(0.75, 2), record(0.4, 1), record(0.95, 10)):
            await repo.save_deliberation(r)

        found = await repo.get_high_dissonance_deliberations(0.7, timedelta(days=7), 10)

        assert [r.dissonance for r in found] == [0.9, 0.75]

    @pytest.mark.asyncio
    async def test_weight_history_is_append_only(self, repo):
        """Latest weights come from the last appended row."""
        assert await repo.get_latest_weights() is None

        for version in (1, 2, 3):
            await repo.append_weight_history(WeightHistoryEntry(
                empathy=0.4, coherence=0.3, dissonance=0.3, version=version,
            ))

        latest = await repo.get_latest_weights()
        history = await repo.get_weight_history(2)
        assert latest.version == 3
        assert [e.version for e in history] == [3, 2]
        assert len(repo.weight_history) == 3


class TestGuardedRepository:
    """Tests for GuardedRepository."""

    @pytest.mark.asyncio
    async def test_passes_through(self, repo):
        """Healthy calls reach the inner repository."""
        guarded = GuardedRepository(repo)
        await guarded.save_unresolved_idea(UnresolvedIdea(question="q"))

        ideas = await guarded.get_unresolved_ideas(5)

        assert [i.question for i in ideas] == ["q"]

    @pytest.mark.asyncio
    async def test_failures_degrade_to_defaults(self):
        """Storage errors become empty results."""
        inner = AsyncMock()
        inner.get_unresolved_ideas.side_effect = ConnectionError("down")
        inner.delete_significant_thoughts.side_effect = ConnectionError("down")
        inner.save_trigger.side_effect = ConnectionError("down")
        inner.get_latest_weights.side_effect = ConnectionError("down")
        guarded = GuardedRepository(inner)

        assert await guarded.get_unresolved_ideas(5) == []
        assert await guarded.delete_significant_thoughts(["a"]) == 0
        assert await guarded.save_trigger(object()) is None
        weights = await guarded.get_latest_weights()
        assert weights.as_tuple() == AxisWeights().as_tuple()

    @pytest.mark.asyncio
    async def test_timeout_degrades(self):
        """A hung call is abandoned after the timeout."""
        inner = AsyncMock()

        async def hang(limit):
            await asyncio.sleep(10)

        inner.get_core_beliefs.side_effect = hang
        guarded = GuardedRepository(inner, timeout=0.01)

        assert await guarded.get_core_beliefs(5) == []
