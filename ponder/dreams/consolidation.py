"""
Consolidation scheduler: the exclusive memory maintenance sweep.

Only one sweep runs at a time. While it runs the cooldown gate is held
dormant, so no new question can be generated until the sweep finishes.
When the sweep completes energy is restored to the maximum, an energy
recovery event is emitted and a SleepLog is persisted.

Phases (each fault-isolated):

1. Pattern extraction
   Recent confident thoughts are sent to the evaluator, which replies with
   a short list of abstract patterns. Numbered, bulleted and free-text
   replies are accepted. Entries that are too short or that echo the
   instructions back are dropped.

2. Belief consolidation
   Aged, confident thoughts are folded into beliefs by the
   BeliefConsolidator. Source thoughts are deleted only if at least one
   belief was created or reinforced. Near-duplicate beliefs are merged
   afterwards.

3. Pruning
   The evaluator nominates redundant thoughts by index, as JSON. Malformed
   nominations are skipped. Independently of the evaluator, every thought
   older than the failsafe age is deleted.

4. Tension resolution
   High-dissonance deliberations from the past week are handed to the
   evaluator for synthesis, and each resolution is stored as a low-weight
   insight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from ponder.config import ConsolidationConfig
from ponder.dreams.base import (
    ConsolidationReport,
    PhaseOutcome,
    PhaseStatus,
    SleepPhase,
)
from ponder.errors import EvaluatorUnavailableError, PhaseFailedError
from ponder.evaluator import run_evaluator
from ponder.events import EventKind, EventSink, emit_event
from ponder.memory.consolidator import BeliefConsolidator
from ponder.memory.schemas import DreamPattern, Insight, SignificantThought, SleepLog
from ponder.parsing import extract_json, parse_list_items

if TYPE_CHECKING:
    from ponder.cognitive.cooldown import CooldownGate
    from ponder.energy import EnergyManager
    from ponder.evaluator import Evaluator
    from ponder.memory.repository import Repository

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are the sleeping mind of a reflective system, reviewing its memories. "
    "Answer only in the requested format."
)

# Phrases that show the evaluator repeated the request instead of answering
INSTRUCTION_ECHOES = (
    "numbered list",
    "output format",
    "respond with",
    "one per line",
    "following thoughts",
    "abstract pattern",
    "no preamble",
)

TONE_KEYWORDS = {
    "conflicted": ("tension", "conflict", "contradict", "paradox", "torn"),
    "anxious": ("fear", "anxiety", "loss", "death", "threat", "uncertain"),
    "hopeful": ("hope", "joy", "growth", "beauty", "trust", "possib"),
    "curious": ("wonder", "curious", "explore", "question", "discover"),
}

PhaseResult = tuple[str, dict[str, int]]


class ConsolidationScheduler:
    """Runs consolidation sweeps.

    Args:
        repository: Memory storage
        energy: Energy manager restored to maximum on completion
        gate: Cooldown gate held dormant during the sweep
        consolidator: Belief consolidator; built from repository/evaluator
            when not given
        evaluator: Optional text evaluator; phases that need it are skipped
            without one (the age-based failsafe still runs)
        event_sink: Optional observer of phase transitions
        config: Sweep parameters
    """

    def __init__(
        self,
        repository: "Repository",
        energy: "EnergyManager",
        gate: Optional["CooldownGate"] = None,
        consolidator: Optional[BeliefConsolidator] = None,
        evaluator: Optional["Evaluator"] = None,
        event_sink: Optional[EventSink] = None,
        config: Optional[ConsolidationConfig] = None,
    ):
        self.config = config or ConsolidationConfig()
        self._repository = repository
        self._energy = energy
        self._gate = gate
        self._evaluator = evaluator
        self._consolidator = consolidator or BeliefConsolidator(
            repository, evaluator, timeout=self.config.evaluator_timeout
        )
        self._event_sink = event_sink
        self._lock = asyncio.Lock()
        self._last_report: Optional[ConsolidationReport] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_report(self) -> Optional[ConsolidationReport]:
        return self._last_report

    async def run(self, reason: str = "scheduled") -> Optional[ConsolidationReport]:
        """Run one sweep.

        Args:
            reason: Why the sweep runs, e.g. "energy_critical", "scheduled",
                "manual"

        Returns:
            The report, or None if a sweep was already running
        """
        if self._lock.locked():
            logger.warning(f"Consolidation already running, ignoring request ({reason})")
            return None

        async with self._lock:
            if self._gate is not None:
                self._gate.set_dormant(True)
            try:
                report = await self._sweep(reason)
            finally:
                if self._gate is not None:
                    self._gate.set_dormant(False)

        self._last_report = report
        return report

    async def _sweep(self, reason: str) -> ConsolidationReport:
        start = time.perf_counter()
        report = ConsolidationReport(reason=reason, energy_before=self._energy.available)
        logger.info(f"Consolidation started ({reason}), energy {self._energy.available:.1f}")
        emit_event(self._event_sink, EventKind.CONSOLIDATION_STARTED, reason=reason)

        phases: list[tuple[SleepPhase, Callable[[], Awaitable[PhaseResult]]]] = [
            (SleepPhase.PATTERN_EXTRACTION, self._extract_patterns),
            (SleepPhase.BELIEF_CONSOLIDATION, self._consolidate_beliefs),
            (SleepPhase.PRUNING, self._prune),
            (SleepPhase.TENSION_RESOLUTION, self._resolve_tensions),
        ]
        for phase, handler in phases:
            report.phases.append(await self._run_phase(phase, handler))

        self._energy.reset()
        report.energy_after = self._energy.available
        report.duration_seconds = time.perf_counter() - start
        emit_event(
            self._event_sink,
            EventKind.ENERGY_RECOVERED,
            energy_before=report.energy_before,
            energy_after=report.energy_after,
            reason=reason,
        )

        try:
            await self._repository.save_sleep_log(SleepLog(
                reason=reason,
                phases=[o.log_line() for o in report.phases],
                stats=report.stats,
                errors=report.errors,
                duration_seconds=report.duration_seconds,
                energy_before=report.energy_before,
                energy_after=report.energy_after,
            ))
        except Exception as e:
            logger.warning(f"Failed to save sleep log: {e}")

        logger.info(
            f"Consolidation finished in {report.duration_seconds:.2f}s: {report.stats}"
        )
        emit_event(
            self._event_sink,
            EventKind.CONSOLIDATION_COMPLETED,
            reason=reason,
            stats=report.stats,
            success=report.success,
            duration_seconds=report.duration_seconds,
        )
        return report

    async def _run_phase(
        self,
        phase: SleepPhase,
        handler: Callable[[], Awaitable[PhaseResult]],
    ) -> PhaseOutcome:
        emit_event(
            self._event_sink,
            EventKind.CONSOLIDATION_PHASE,
            phase=phase.value,
            progress=phase.progress,
        )
        start = time.perf_counter()
        try:
            summary, stats = await handler()
            outcome = PhaseOutcome(phase, PhaseStatus.COMPLETED, summary, stats)
        except (EvaluatorUnavailableError, PhaseFailedError) as e:
            logger.info(f"Phase {phase.value} skipped: {e}")
            outcome = PhaseOutcome(phase, PhaseStatus.SKIPPED, summary=str(e))
        except Exception as e:
            logger.warning(f"Phase {phase.value} failed: {e}", exc_info=True)
            outcome = PhaseOutcome(phase, PhaseStatus.FAILED, error=str(e))
        outcome.duration_ms = (time.perf_counter() - start) * 1000
        return outcome

    def _require_evaluator(self) -> "Evaluator":
        if self._evaluator is None:
            raise EvaluatorUnavailableError("no evaluator configured")
        return self._evaluator

    # ------------------------------------------------------------------
    # Phase 1: pattern extraction
    # ------------------------------------------------------------------

    async def _extract_patterns(self) -> PhaseResult:
        cfg = self.config
        thoughts = await self._repository.get_significant_thoughts(
            cfg.pattern_sample_size * 5, cfg.pattern_min_confidence
        )
        if len(thoughts) < cfg.pattern_min_thoughts:
            raise PhaseFailedError(
                f"{len(thoughts)} confident thoughts, need {cfg.pattern_min_thoughts}"
            )
        evaluator = self._require_evaluator()

        sample = thoughts[: cfg.pattern_sample_size]
        listing = "\n".join(f"- {t.content}" for t in sample)
        prompt = (
            f"Recent thoughts:\n{listing}\n\n"
            f"Name up to {cfg.pattern_limit} recurring patterns behind these thoughts, "
            "each as one short abstract statement, numbered 1., 2., ..."
        )
        result = await run_evaluator(evaluator, prompt, SYSTEM_PROMPT, cfg.evaluator_timeout)
        if not result.usable:
            raise PhaseFailedError(f"evaluator gave no patterns ({result.error})")

        candidates = parse_list_items(result.content)
        if not candidates:
            candidates = [line.strip() for line in result.content.splitlines() if line.strip()]
        patterns = [p for p in candidates if self._is_pattern(p)][: cfg.pattern_limit]

        source_ids = [t.id for t in sample[:10]]
        for text in patterns:
            await self._repository.save_dream_pattern(DreamPattern(
                pattern=text,
                emotional_tone=infer_emotional_tone(text),
                source_thought_ids=source_ids,
            ))
        return f"{len(patterns)} patterns from {len(sample)} thoughts", {
            "patterns_extracted": len(patterns),
        }

    def _is_pattern(self, text: str) -> bool:
        if len(text) < self.config.min_pattern_length:
            return False
        lowered = text.lower()
        if text.rstrip().endswith(":"):
            return False
        return not any(echo in lowered for echo in INSTRUCTION_ECHOES)

    # ------------------------------------------------------------------
    # Phase 2: belief consolidation
    # ------------------------------------------------------------------

    async def _consolidate_beliefs(self) -> PhaseResult:
        cfg = self.config
        stats = {
            "beliefs_created": 0,
            "beliefs_updated": 0,
            "thoughts_consolidated": 0,
            "beliefs_merged": 0,
        }

        old_thoughts = await self._repository.get_old_significant_thoughts(
            timedelta(seconds=cfg.consolidation_min_age),
            cfg.consolidation_min_confidence,
            cfg.consolidation_limit,
        )
        if len(old_thoughts) >= cfg.consolidation_min_records:
            outcome = await self._consolidator.consolidate(
                old_thoughts, cfg.consolidation_min_confidence
            )
            stats["beliefs_created"] = outcome.beliefs_created
            stats["beliefs_updated"] = outcome.beliefs_updated
            if outcome.changed > 0:
                stats["thoughts_consolidated"] = await self._repository.delete_significant_thoughts(
                    [t.id for t in old_thoughts]
                )
        else:
            logger.debug(
                f"Only {len(old_thoughts)} aged thoughts, "
                f"need {cfg.consolidation_min_records} to consolidate"
            )

        merge = await self._consolidator.merge_similar_beliefs(cfg.merge_threshold)
        stats["beliefs_merged"] = merge.merged
        return (
            f"{stats['beliefs_created']} created, {stats['beliefs_updated']} reinforced, "
            f"{merge.merged} merged, {merge.kept} beliefs remain",
            stats,
        )

    # ------------------------------------------------------------------
    # Phase 3: pruning
    # ------------------------------------------------------------------

    async def _prune(self) -> PhaseResult:
        ai_pruned = 0
        note = ""
        try:
            ai_pruned = await self._prune_with_evaluator()
        except (EvaluatorUnavailableError, PhaseFailedError) as e:
            note = f"evaluator pruning skipped: {e}"
            logger.info(note)
        except Exception as e:
            note = f"evaluator pruning failed: {e}"
            logger.warning(note)

        failsafe = await self._repository.get_old_significant_thoughts(
            timedelta(seconds=self.config.failsafe_age), 0.0, self.config.failsafe_limit
        )
        failsafe_pruned = 0
        if failsafe:
            failsafe_pruned = await self._repository.delete_significant_thoughts(
                [t.id for t in failsafe]
            )
            logger.info(f"Failsafe pruned {failsafe_pruned} thoughts older than the failsafe age")

        summary = f"{ai_pruned} pruned by evaluator, {failsafe_pruned} by failsafe"
        if note:
            summary += f"; {note}"
        return summary, {
            "thoughts_pruned_ai": ai_pruned,
            "thoughts_pruned_failsafe": failsafe_pruned,
        }

    async def _prune_with_evaluator(self) -> int:
        cfg = self.config
        candidates = await self._repository.get_old_significant_thoughts(
            timedelta(seconds=cfg.pruning_min_age), 0.0, cfg.pruning_limit
        )
        if len(candidates) < cfg.pruning_min_records:
            raise PhaseFailedError(
                f"{len(candidates)} prunable thoughts, need {cfg.pruning_min_records}"
            )
        evaluator = self._require_evaluator()

        shown = candidates[: cfg.pruning_sample_size]
        beliefs = await self._repository.get_core_beliefs(10)
        prompt = self._build_pruning_prompt(shown, [b.content for b in beliefs])
        result = await run_evaluator(evaluator, prompt, SYSTEM_PROMPT, cfg.evaluator_timeout)
        if not result.usable:
            raise PhaseFailedError(f"evaluator gave no pruning decision ({result.error})")

        indices = parse_prune_indices(result.content, len(shown))
        if not indices:
            return 0
        return await self._repository.delete_significant_thoughts(
            [shown[i - 1].id for i in indices]
        )

    def _build_pruning_prompt(self, thoughts: list[SignificantThought], beliefs: list[str]) -> str:
        listing = "\n".join(
            f"{i}. {t.content} (confidence {t.confidence:.2f})"
            for i, t in enumerate(thoughts, start=1)
        )
        belief_section = "\n".join(f"- {b}" for b in beliefs) or "- (none yet)"
        return (
            f"Current beliefs:\n{belief_section}\n\n"
            f"Stored thoughts:\n{listing}\n\n"
            "Which thoughts are redundant, or already captured by the beliefs? "
            'Reply with JSON: {"to_prune": [{"index": <number>, "reason": "<why>"}]}'
        )

    # ------------------------------------------------------------------
    # Phase 4: tension resolution
    # ------------------------------------------------------------------

    async def _resolve_tensions(self) -> PhaseResult:
        cfg = self.config
        tensions = await self._repository.get_high_dissonance_deliberations(
            cfg.tension_min_dissonance,
            timedelta(seconds=cfg.tension_window),
            cfg.tension_limit,
        )
        if not tensions:
            return "no high-dissonance cycles", {"tensions_resolved": 0}
        evaluator = self._require_evaluator()

        listing = "\n".join(
            f"{i}. {t.question} (dissonance {t.dissonance:.2f}): {t.synthesis[:200]}"
            for i, t in enumerate(tensions, start=1)
        )
        prompt = (
            f"These deliberations ended in unresolved tension:\n{listing}\n\n"
            "Offer a synthesis that reconciles each tension. Reply with JSON: "
            '{"resolutions": [{"synthesis": "<text>", "reasoning": "<text>"}]}'
        )
        result = await run_evaluator(evaluator, prompt, SYSTEM_PROMPT, cfg.evaluator_timeout)
        if not result.usable:
            raise PhaseFailedError(f"evaluator gave no resolutions ({result.error})")

        data = extract_json(result.content)
        items = data.get("resolutions", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise PhaseFailedError("resolution response held no list")

        source_ids = [t.id for t in tensions]
        saved = 0
        for item in items:
            if not isinstance(item, dict):
                continue
            synthesis = item.get("synthesis")
            if not isinstance(synthesis, str) or not synthesis.strip():
                continue
            reasoning = item.get("reasoning")
            await self._repository.save_insight(Insight(
                kind="tension_resolution",
                content=synthesis.strip(),
                reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
                weight=cfg.insight_weight,
                source_ids=source_ids,
            ))
            saved += 1
        return f"{saved} resolutions for {len(tensions)} tensions", {"tensions_resolved": saved}


def parse_prune_indices(content: str, count: int) -> list[int]:
    """Valid 1-based indices from a ``{"to_prune": [...]}`` reply.

    Entries without an integer index in [1, count] are skipped. Duplicates
    are collapsed.
    """
    data = extract_json(content)
    if isinstance(data, dict):
        data = data.get("to_prune", [])
    if not isinstance(data, list):
        return []

    indices: list[int] = []
    for entry in data:
        raw = entry.get("index") if isinstance(entry, dict) else entry
        if isinstance(raw, bool):
            continue
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        if not isinstance(raw, int) or not 1 <= raw <= count:
            logger.debug(f"Skipping malformed prune entry: {entry!r}")
            continue
        if raw not in indices:
            indices.append(raw)
    return indices


def infer_emotional_tone(text: str) -> str:
    lowered = text.lower()
    for tone, keywords in TONE_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return tone
    return "contemplative"
