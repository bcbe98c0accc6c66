"""Deliberation loop: one thinking cycle at a time.

A tick of the loop:

    1. Recover passive energy. If energy is critical, run a consolidation
       sweep instead of thinking, and end the tick.
    2. Ask the cooldown gate whether generation is allowed, and check that
       the most expensive trigger that could come next is affordable.
    3. Produce a trigger (manual > evolved > backlog).
    4. Record the generation with the gate and pay its energy cost.
    5. Hand the trigger to the external deliberation collaborator.
    6. Score the resulting artifacts.
    7. Adapt the axis weights and persist the new weight row and a
       summary of the cycle.

Stages run strictly in sequence. A failure inside a cycle is logged and
ends that cycle only. The next tick starts fresh.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

from ponder.events import EventKind, EventSink, emit_event
from ponder.memory.schemas import DeliberationRecord, Trigger, TriggerSource
from ponder.scoring.schemas import DeliberationArtifacts

if TYPE_CHECKING:
    from ponder.cognitive.cooldown import CooldownGate
    from ponder.cognitive.triggers import TriggerScheduler
    from ponder.dreams.base import ConsolidationReport
    from ponder.dreams.consolidation import ConsolidationScheduler
    from ponder.energy import EnergyManager
    from ponder.memory.repository import Repository
    from ponder.scoring.engine import ScoreAssessment, ScoreEngine
    from ponder.scoring.weights import WeightAdapter, WeightUpdate

logger = logging.getLogger(__name__)


class Deliberator(Protocol):
    """Runs the multi-agent deliberation for a trigger."""

    async def __call__(self, trigger: Trigger) -> DeliberationArtifacts:
        ...


@dataclass
class CycleOutcome:
    """Everything one completed cycle produced."""
    trigger: Trigger
    artifacts: DeliberationArtifacts
    assessment: "ScoreAssessment"
    weight_update: "WeightUpdate"
    record: DeliberationRecord


class DeliberationLoop:
    """Wires gate, scheduler, scoring and weights into a thinking loop.

    Args:
        gate: Cooldown gate
        scheduler: Trigger scheduler
        engine: Score engine
        adapter: Weight adapter
        energy: Energy manager
        repository: Storage for weight history and cycle records
        deliberate: External deliberation collaborator
        consolidation: Optional consolidation scheduler, run when energy
            becomes critical
        event_sink: Optional observer of completed cycles
        system_load: Callable reporting system load in [0, 1]
        deliberation_timeout: Seconds allowed for one deliberation
        clock: Seconds since an arbitrary epoch
    """

    def __init__(
        self,
        gate: "CooldownGate",
        scheduler: "TriggerScheduler",
        engine: "ScoreEngine",
        adapter: "WeightAdapter",
        energy: "EnergyManager",
        repository: "Repository",
        deliberate: Deliberator,
        consolidation: Optional["ConsolidationScheduler"] = None,
        event_sink: Optional[EventSink] = None,
        system_load: Callable[[], float] = lambda: 0.0,
        deliberation_timeout: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self._gate = gate
        self._scheduler = scheduler
        self._engine = engine
        self._adapter = adapter
        self._energy = energy
        self._repository = repository
        self._deliberate = deliberate
        self._consolidation = consolidation
        self._event_sink = event_sink
        self._system_load = system_load
        self._deliberation_timeout = deliberation_timeout
        self._clock = clock
        self.cycles_completed = 0

    async def restore_weights(self) -> None:
        """Load the latest persisted weights into the adapter."""
        self._adapter.restore(await self._repository.get_latest_weights())

    async def run_cycle(self, now: Optional[float] = None) -> Optional[CycleOutcome]:
        """Run one tick.

        Returns:
            The cycle outcome, or None if no cycle ran this tick
        """
        now = self._clock() if now is None else now
        self._energy.recover(now)

        if self._energy.is_critical and self._consolidation is not None:
            logger.info(f"Energy critical ({self._energy.available:.1f}), consolidating")
            await self.consolidate("energy_critical")
            return None

        load = self._system_load()
        if not self._gate.can_generate(self._energy.ratio, load, now):
            return None

        # Nothing may be recorded for a trigger the budget cannot pay for.
        cost = self._scheduler.next_cost
        if not self._energy.can_afford(cost):
            logger.info(
                f"Not enough energy for the next trigger: needs {cost:.1f}, "
                f"{self._energy.available:.1f} available"
            )
            return None

        trigger = await self._scheduler.next_trigger()
        if trigger is None:
            return None

        if not self._energy.consume(trigger.energy_cost, f"trigger {trigger.id}"):
            logger.info(f"Not enough energy for trigger {trigger.id}, skipping")
            if trigger.source == TriggerSource.MANUAL:
                self._scheduler.requeue(trigger)
            return None
        self._gate.record_generation(trigger.category.value, now, self._energy.ratio, load)

        try:
            return await self._complete_cycle(trigger, load)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Cycle for trigger {trigger.id} failed: {e}", exc_info=True)
            return None

    async def consolidate(self, reason: str = "manual") -> Optional["ConsolidationReport"]:
        if self._consolidation is None:
            return None
        return await self._consolidation.run(reason)

    async def run(
        self,
        stop: asyncio.Event,
        interval: float = 1.0,
        max_cycles: Optional[int] = None,
    ) -> int:
        """Tick until ``stop`` is set or ``max_cycles`` cycles completed.

        Returns:
            Number of cycles completed by this call
        """
        completed = 0
        while not stop.is_set():
            outcome = await self.run_cycle()
            if outcome is not None:
                completed += 1
                if max_cycles is not None and completed >= max_cycles:
                    break
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        return completed

    async def _complete_cycle(self, trigger: Trigger, load: float) -> CycleOutcome:
        artifacts = await asyncio.wait_for(
            self._deliberate(trigger), timeout=self._deliberation_timeout
        )

        assessment = await self._engine.score(
            artifacts,
            self._adapter.weights,
            trigger,
            system_state={
                "energy": self._energy.available,
                "energy_level": self._energy.level.value,
                "system_load": load,
            },
        )
        scores = assessment.scores

        update = self._adapter.update(
            scores,
            impact=assessment.impact,
            trigger_type=trigger.source.value,
        )
        await self._repository.append_weight_history(
            self._adapter.history_entry(update, {"trigger_id": trigger.id, "cycle_id": artifacts.cycle_id})
        )

        record = DeliberationRecord(
            trigger_id=trigger.id,
            question=trigger.question,
            category=trigger.category,
            empathy=scores.empathy,
            coherence=scores.coherence,
            dissonance=scores.dissonance,
            weighted_total=scores.weighted_total,
            synthesis=artifacts.synthesis,
        )
        await self._repository.save_deliberation(record)

        self.cycles_completed += 1
        emit_event(
            self._event_sink,
            EventKind.CYCLE_COMPLETED,
            trigger_id=trigger.id,
            cycle_id=artifacts.cycle_id,
            weighted_total=scores.weighted_total,
            weights_version=update.weights.version,
            paradigm_shift=bool(assessment.impact and assessment.impact.is_paradigm_shift),
        )
        return CycleOutcome(
            trigger=trigger,
            artifacts=artifacts,
            assessment=assessment,
            weight_update=update,
            record=record,
        )
