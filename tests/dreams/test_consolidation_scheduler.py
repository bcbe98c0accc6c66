"""Tests for the consolidation sweep."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from ponder.cognitive.cooldown import CooldownGate
from ponder.config import EnergyConfig
from ponder.dreams.base import PhaseStatus, SleepPhase
from ponder.dreams.consolidation import (
    ConsolidationScheduler,
    infer_emotional_tone,
    parse_prune_indices,
)
from ponder.energy import EnergyManager
from ponder.evaluator import EvaluatorResult
from ponder.events import EventKind
from ponder.memory.repository import InMemoryRepository
from ponder.memory.schemas import DeliberationRecord, SignificantThought

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def aged(content, hours, confidence=0.8, category=None):
    return SignificantThought(
        content=content,
        confidence=confidence,
        category=category,
        created_at=NOW - timedelta(hours=hours),
    )


async def fill(repo, thoughts):
    for t in thoughts:
        await repo.save_significant_thought(t)


@pytest.fixture
def repo():
    return InMemoryRepository(clock=lambda: NOW)


@pytest.fixture
def energy(clock):
    return EnergyManager(EnergyConfig(initial=6.0), clock=clock)


class TestSweep:
    """Tests for the overall sweep behavior."""

    @pytest.mark.asyncio
    async def test_failsafe_runs_without_evaluator(self, repo, energy):
        """Thoughts past the failsafe age are deleted even with no evaluator."""
        await fill(repo, [aged(f"ancient {i}", 50, confidence=0.5) for i in range(3)])
        await fill(repo, [aged("fresh", 0.1), aged("recent", 1.5, confidence=0.4)])
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run("manual")

        assert report.stats["thoughts_pruned_failsafe"] == 3
        assert report.stats["thoughts_pruned_ai"] == 0
        assert sorted(t.content for t in repo.thoughts.values()) == ["fresh", "recent"]
        assert report.outcome(SleepPhase.PATTERN_EXTRACTION).status == PhaseStatus.SKIPPED
        assert report.outcome(SleepPhase.PRUNING).status == PhaseStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_phases_run_in_order(self, repo, energy):
        """All four phases are reported in their fixed order."""
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run()

        assert [o.phase for o in report.phases] == [
            SleepPhase.PATTERN_EXTRACTION,
            SleepPhase.BELIEF_CONSOLIDATION,
            SleepPhase.PRUNING,
            SleepPhase.TENSION_RESOLUTION,
        ]
        assert report.success

    @pytest.mark.asyncio
    async def test_energy_restored_and_log_saved(self, repo, energy):
        """A sweep resets energy to the maximum and persists a SleepLog."""
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run("energy_critical")

        assert energy.available == 100.0
        assert report.energy_before == 6.0
        assert report.energy_after == 100.0
        assert len(repo.sleep_logs) == 1
        log = repo.sleep_logs[0]
        assert log.reason == "energy_critical"
        assert len(log.phases) == 4
        assert scheduler.last_report is report

    @pytest.mark.asyncio
    async def test_events_emitted(self, repo, energy, sink):
        """Start, per-phase progress, recovery and completion are emitted."""
        scheduler = ConsolidationScheduler(repo, energy, event_sink=sink)

        await scheduler.run()

        assert len(sink.of_kind(EventKind.CONSOLIDATION_STARTED)) == 1
        phases = sink.of_kind(EventKind.CONSOLIDATION_PHASE)
        assert [e.payload["progress"] for e in phases] == [25, 50, 75, 90]
        recovered = sink.of_kind(EventKind.ENERGY_RECOVERED)
        assert recovered[0].payload["energy_after"] == 100.0
        completed = sink.of_kind(EventKind.CONSOLIDATION_COMPLETED)
        assert completed[0].payload["success"] is True

    @pytest.mark.asyncio
    async def test_gate_dormant_during_sweep(self, energy, clock):
        """Generation is blocked while the sweep runs and released afterwards."""
        gate = CooldownGate(clock=clock)
        seen = []

        class ObservingRepository(InMemoryRepository):
            async def save_sleep_log(self, log):
                seen.append(gate.dormant)
                await super().save_sleep_log(log)

        scheduler = ConsolidationScheduler(ObservingRepository(clock=lambda: NOW), energy, gate=gate)

        await scheduler.run()

        assert seen == [True]
        assert not gate.dormant

    @pytest.mark.asyncio
    async def test_overlapping_run_refused(self, repo, energy):
        """A second sweep requested mid-sweep returns None."""
        await fill(repo, [aged(f"Thought number {i}", 0.1) for i in range(12)])
        entered = asyncio.Event()
        release = asyncio.Event()
        evaluator = AsyncMock()

        async def execute(prompt, system_prompt):
            entered.set()
            await release.wait()
            return EvaluatorResult(success=True, content="1. Honesty keeps returning as a theme")

        evaluator.execute.side_effect = execute
        scheduler = ConsolidationScheduler(repo, energy, evaluator=evaluator)

        first = asyncio.create_task(scheduler.run("scheduled"))
        await entered.wait()
        assert scheduler.is_running

        assert await scheduler.run("manual") is None

        release.set()
        report = await first
        assert report.reason == "scheduled"
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_failing_phase_is_contained(self, energy):
        """A phase that raises is recorded and the sweep continues."""

        class BrokenRepository(InMemoryRepository):
            async def get_significant_thoughts(self, limit, min_confidence=0.0):
                raise RuntimeError("index corrupted")

        repo = BrokenRepository(clock=lambda: NOW)
        await fill(repo, [aged("ancient", 60)])
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run()

        pattern = report.outcome(SleepPhase.PATTERN_EXTRACTION)
        assert pattern.status == PhaseStatus.FAILED
        assert "index corrupted" in pattern.error
        assert not report.success
        assert report.errors == ["pattern_extraction: index corrupted"]
        assert report.stats["thoughts_pruned_failsafe"] == 1
        assert energy.available == 100.0

    @pytest.mark.asyncio
    async def test_unsaved_sleep_log_still_completes(self, energy, clock, sink):
        """A failing sleep-log write leaves the sweep's report and the gate intact."""
        gate = CooldownGate(clock=clock)

        class ReadOnlyRepository(InMemoryRepository):
            async def save_sleep_log(self, log):
                raise RuntimeError("disk full")

        repo = ReadOnlyRepository(clock=lambda: NOW)
        scheduler = ConsolidationScheduler(repo, energy, gate=gate, event_sink=sink)

        report = await scheduler.run("energy_critical")

        assert report is not None
        assert report.reason == "energy_critical"
        assert energy.available == 100.0
        assert repo.sleep_logs == []
        assert not gate.dormant
        assert not scheduler.is_running
        assert len(sink.of_kind(EventKind.CONSOLIDATION_COMPLETED)) == 1


class TestPatternExtraction:
    """Tests for phase 1."""

    @pytest.mark.asyncio
    async def test_patterns_saved_and_echoes_filtered(self, repo, energy, scripted):
        """Short entries and instruction echoes are dropped."""
        await fill(repo, [aged(f"Thought number {i}", 0.1) for i in range(12)])
        reply = (
            "Here are the patterns:\n"
            "1. Honesty and trust keep returning together\n"
            "2. Respond with a numbered list\n"
            "3. Short\n"
            "4. Fear of loss shapes many questions"
        )
        scheduler = ConsolidationScheduler(repo, energy, evaluator=scripted(reply))

        report = await scheduler.run()

        assert report.stats["patterns_extracted"] == 2
        assert [p.pattern for p in repo.patterns] == [
            "Honesty and trust keep returning together",
            "Fear of loss shapes many questions",
        ]
        assert [p.emotional_tone for p in repo.patterns] == ["hopeful", "anxious"]
        assert len(repo.patterns[0].source_thought_ids) == 10

    @pytest.mark.asyncio
    async def test_too_few_thoughts_skips(self, repo, energy, scripted):
        """Fewer confident thoughts than required skips the phase."""
        await fill(repo, [aged(f"Thought number {i}", 0.1) for i in range(4)])
        evaluator = scripted()
        scheduler = ConsolidationScheduler(repo, energy, evaluator=evaluator)

        report = await scheduler.run()

        assert report.outcome(SleepPhase.PATTERN_EXTRACTION).status == PhaseStatus.SKIPPED
        evaluator.execute.assert_not_awaited()


class TestBeliefConsolidationPhase:
    """Tests for phase 2."""

    @pytest.mark.asyncio
    async def test_aged_thoughts_become_beliefs(self, repo, energy):
        """Consolidated source thoughts are removed once a belief changes."""
        await fill(repo, [
            aged(f"Honesty builds trust in situation {i}", 2, category="ethical")
            for i in range(6)
        ])
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run()

        assert report.stats["beliefs_created"] == 1
        assert report.stats["thoughts_consolidated"] == 6
        assert repo.thoughts == {}
        assert len(repo.beliefs) == 1

    @pytest.mark.asyncio
    async def test_too_few_aged_thoughts_left_alone(self, repo, energy):
        """Below the minimum record count nothing is consolidated."""
        await fill(repo, [
            aged(f"Honesty builds trust in situation {i}", 2, category="ethical")
            for i in range(4)
        ])
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run()

        assert report.stats["beliefs_created"] == 0
        assert len(repo.thoughts) == 4


class TestPruning:
    """Tests for phase 3."""

    @pytest.mark.asyncio
    async def test_evaluator_nominations_deleted(self, repo, energy, scripted):
        """Valid 1-based nominations are deleted; malformed ones are skipped."""
        await fill(repo, [aged(f"Stale thought {i}", 5 + i, confidence=0.5) for i in range(12)])
        reply = json.dumps({"to_prune": [
            {"index": 1, "reason": "duplicate"},
            {"index": 3},
            {"index": "two"},
            {"index": 99},
            {"index": 1},
        ]})
        scheduler = ConsolidationScheduler(repo, energy, evaluator=scripted(reply))

        report = await scheduler.run()

        assert report.stats["thoughts_pruned_ai"] == 2
        assert len(repo.thoughts) == 10
        remaining = {t.content for t in repo.thoughts.values()}
        # Candidates are listed oldest first
        assert "Stale thought 11" not in remaining
        assert "Stale thought 9" not in remaining

    @pytest.mark.asyncio
    async def test_evaluator_failure_keeps_failsafe(self, repo, energy, scripted):
        """A failing evaluator does not stop the age-based failsafe."""
        await fill(repo, [aged(f"Stale thought {i}", 50 + i, confidence=0.5) for i in range(12)])
        scheduler = ConsolidationScheduler(
            repo, energy, evaluator=scripted(ConnectionError("refused"))
        )

        report = await scheduler.run()

        assert report.stats["thoughts_pruned_ai"] == 0
        assert report.stats["thoughts_pruned_failsafe"] == 12
        assert report.outcome(SleepPhase.PRUNING).status == PhaseStatus.COMPLETED


class TestTensionResolution:
    """Tests for phase 4."""

    def tension(self, dissonance, days):
        return DeliberationRecord(
            trigger_id="trg:1",
            question="Is honesty always kind?",
            empathy=0.6,
            coherence=0.5,
            dissonance=dissonance,
            weighted_total=0.6,
            synthesis="Truth and comfort pull apart.",
            created_at=NOW - timedelta(days=days),
        )

    @pytest.mark.asyncio
    async def test_resolutions_saved_as_low_weight_insights(self, repo, energy, scripted):
        """Each usable resolution becomes an insight of weight 0.3."""
        record = self.tension(0.9, 1)
        await repo.save_deliberation(record)
        await repo.save_deliberation(self.tension(0.95, 10))
        reply = json.dumps({"resolutions": [
            {"synthesis": "Kind honesty chooses its moment", "reasoning": "Timing matters"},
            {"reasoning": "no synthesis here"},
        ]})
        scheduler = ConsolidationScheduler(repo, energy, evaluator=scripted(reply))

        report = await scheduler.run()

        assert report.stats["tensions_resolved"] == 1
        insight = repo.insights[0]
        assert insight.kind == "tension_resolution"
        assert insight.content == "Kind honesty chooses its moment"
        assert insight.weight == pytest.approx(0.3)
        assert insight.source_ids == [record.id]

    @pytest.mark.asyncio
    async def test_tensions_without_evaluator_skip(self, repo, energy):
        """Tensions cannot be resolved without an evaluator."""
        await repo.save_deliberation(self.tension(0.9, 1))
        scheduler = ConsolidationScheduler(repo, energy)

        report = await scheduler.run()

        assert report.outcome(SleepPhase.TENSION_RESOLUTION).status == PhaseStatus.SKIPPED
        assert repo.insights == []


class TestParsePruneIndices:
    """Tests for parse_prune_indices()."""

    def test_object_form(self):
        """Indices are read from the to_prune list."""
        content = '{"to_prune": [{"index": 2}, {"index": 4, "reason": "dup"}]}'

        assert parse_prune_indices(content, 5) == [2, 4]

    def test_bare_list_and_duplicates(self):
        """A bare list is accepted and duplicates collapse."""
        assert parse_prune_indices("[2, 1, 2, 2.0]", 3) == [2, 1]

    def test_malformed_entries_skipped(self):
        """Out-of-range, non-integer and boolean entries are ignored."""
        content = '{"to_prune": [{"index": 0}, {"index": 1.5}, {"index": true}, {"index": "3"}, {"index": 3}]}'

        assert parse_prune_indices(content, 3) == [3]

    def test_no_json(self):
        """Prose without JSON yields nothing."""
        assert parse_prune_indices("Nothing needs pruning.", 10) == []


class TestEmotionalTone:
    """Tests for infer_emotional_tone()."""

    @pytest.mark.parametrize("text, tone", [
        ("A paradox sits at the heart of hope", "conflicted"),
        ("Fear of loss colors memory", "anxious"),
        ("Growth follows patient attention", "hopeful"),
        ("I wonder what silence means", "curious"),
        ("Afternoons pass slowly", "contemplative"),
    ])
    def test_keyword_tones(self, text, tone):
        """The first matching tone wins; otherwise contemplative."""
        assert infer_emotional_tone(text) == tone
