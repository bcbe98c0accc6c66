"""Cooldown gate: may a new question be generated right now?

The gate combines several independent brakes on generation:

- Global cooldown: a fixed minimum interval between any two generations
- Energy awareness: low energy stretches the required interval (2x below
  50%, 3x below 20%)
- Load awareness: high system load stretches it (1.5x above 0.6, 2.5x
  above 0.8), and load above an energy-dependent ceiling (0.8, 0.7 below
  50% energy, 0.6 below 30%) blocks generation outright
- Burst protection: at most ``max_burst_count`` generations per rolling
  window, regardless of timers
- Dormancy: while a consolidation sweep runs nothing is generated

Per-category cooldowns are tracked separately. Their length adapts to the
conditions recorded over the last few minutes, so a category generated
under heavy load or in rapid succession rests longer.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from ponder.config import CooldownConfig
from ponder.events import EventKind, EventSink, emit_event

logger = logging.getLogger(__name__)


@dataclass
class CooldownEntry:
    """One recorded generation, kept for adaptive cooldown computation."""
    category: str
    timestamp: float
    cooldown: float
    energy: float        # Energy ratio at generation time
    system_load: float
    burst_count: int


@dataclass
class CooldownState:
    """Mutable timers of the gate."""
    category_next_allowed: dict[str, float] = field(default_factory=dict)
    global_next_allowed: float = 0.0
    last_generation: Optional[float] = None
    burst_count: int = 0
    burst_window_start: float = 0.0
    dormant: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CooldownGate:
    """Decides whether generation is currently allowed.

    Args:
        config: Cooldown configuration
        event_sink: Optional observer of cooldown and burst events
        clock: Seconds since an arbitrary epoch, injectable for tests
    """

    def __init__(
        self,
        config: Optional[CooldownConfig] = None,
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CooldownConfig()
        self._event_sink = event_sink
        self._clock = clock
        self._state = CooldownState()
        self._history: deque[CooldownEntry] = deque(maxlen=self.config.history_size)

    @property
    def state(self) -> CooldownState:
        return self._state

    @property
    def history(self) -> list[CooldownEntry]:
        return list(self._history)

    @property
    def dormant(self) -> bool:
        return self._state.dormant

    def set_dormant(self, dormant: bool) -> None:
        """Block (or unblock) all generation, e.g. during consolidation."""
        if dormant != self._state.dormant:
            logger.info(f"Cooldown gate {'entering' if dormant else 'leaving'} dormancy")
        self._state.dormant = dormant

    def can_generate(
        self,
        energy: float,
        system_load: float,
        now: Optional[float] = None,
    ) -> bool:
        """Check every brake in order.

        Args:
            energy: Energy ratio in [0, 1]
            system_load: Load in [0, 1]
            now: Current time in seconds; defaults to the gate's clock

        Returns:
            True if a question may be generated now
        """
        now = self._clock() if now is None else now
        cfg = self.config
        state = self._state

        if state.dormant:
            logger.debug("Generation blocked: dormant")
            return False

        if now < state.global_next_allowed:
            logger.debug(
                f"Generation blocked: global cooldown, {state.global_next_allowed - now:.2f}s left"
            )
            return False

        elapsed = float("inf") if state.last_generation is None else now - state.last_generation

        if cfg.energy_aware:
            if energy < 0.2 and elapsed < cfg.global_cooldown * 3:
                logger.debug(f"Generation blocked: energy {energy:.2f} needs 3x cooldown")
                return False
            if energy < 0.5 and elapsed < cfg.global_cooldown * 2:
                logger.debug(f"Generation blocked: energy {energy:.2f} needs 2x cooldown")
                return False

        if cfg.load_aware:
            if system_load > 0.8 and elapsed < cfg.global_cooldown * 2.5:
                logger.debug(f"Generation blocked: load {system_load:.2f} needs 2.5x cooldown")
                return False
            if system_load > 0.6 and elapsed < cfg.global_cooldown * 1.5:
                logger.debug(f"Generation blocked: load {system_load:.2f} needs 1.5x cooldown")
                return False
            threshold = self.adaptive_load_threshold(energy)
            if system_load > threshold:
                logger.debug(
                    f"Generation blocked: load {system_load:.2f} above {threshold:.1f} "
                    f"at energy {energy:.2f}"
                )
                return False

        if cfg.burst_protection and self._burst_active(now):
            logger.debug(
                f"Generation blocked: burst limit {state.burst_count}/{cfg.max_burst_count}"
            )
            return False

        return True

    def category_ready(self, category: str, now: Optional[float] = None) -> bool:
        """Whether the category's own cooldown has elapsed."""
        now = self._clock() if now is None else now
        return now >= self._state.category_next_allowed.get(category, 0.0)

    def time_until_ready(self, now: Optional[float] = None) -> float:
        """Seconds until the global cooldown and burst window allow generation."""
        now = self._clock() if now is None else now
        wait = max(0.0, self._state.global_next_allowed - now)
        if self.config.burst_protection and self._burst_active(now):
            wait = max(wait, self._state.burst_window_start + self.config.burst_window - now)
        return wait

    @property
    def is_in_burst_protection(self) -> bool:
        return self._burst_active(self._clock())

    def adaptive_load_threshold(self, energy: float) -> float:
        """Load above which generation is refused at this energy ratio."""
        if energy < 0.3:
            return 0.6
        if energy < 0.5:
            return 0.7
        return 0.8

    def calculate_cooldown(
        self,
        category: str,
        history: Optional[Iterable[CooldownEntry]] = None,
        now: Optional[float] = None,
    ) -> float:
        """Cooldown for a category given recent generation history.

        Args:
            category: Question category
            history: Entries to consider; defaults to the gate's own history
            now: Current time in seconds

        Returns:
            Cooldown in seconds
        """
        now = self._clock() if now is None else now
        cfg = self.config
        entries = list(self._history if history is None else history)
        base = cfg.category_cooldowns.get(category, cfg.global_cooldown)

        multiplier = 1.0
        if cfg.adaptive:
            multiplier *= self._adaptive_multiplier(category, entries, now)

        if cfg.burst_protection:
            recent = [e for e in entries if now - e.timestamp <= cfg.burst_window]
            if any(e.burst_count >= cfg.max_burst_count for e in recent):
                multiplier *= cfg.burst_cooldown_multiplier

        return base * multiplier

    def record_generation(
        self,
        category: str,
        now: Optional[float] = None,
        energy: float = 1.0,
        system_load: float = 0.0,
    ) -> float:
        """Update timers after a successful generation.

        Returns:
            The cooldown applied to the category
        """
        now = self._clock() if now is None else now
        cfg = self.config
        state = self._state

        cooldown = self.calculate_cooldown(category, now=now)
        state.category_next_allowed[category] = now + cooldown
        state.global_next_allowed = now + cfg.global_cooldown
        state.last_generation = now

        if now - state.burst_window_start > cfg.burst_window:
            state.burst_count = 0
            state.burst_window_start = now
        state.burst_count += 1

        self._history.append(CooldownEntry(
            category=category,
            timestamp=now,
            cooldown=cooldown,
            energy=energy,
            system_load=system_load,
            burst_count=state.burst_count,
        ))

        emit_event(
            self._event_sink,
            EventKind.COOLDOWN_UPDATED,
            category=category,
            cooldown=cooldown,
            global_next_allowed=state.global_next_allowed,
            burst_count=state.burst_count,
        )
        if cfg.burst_protection and state.burst_count >= cfg.max_burst_count:
            logger.info(
                f"Burst limit reached ({state.burst_count} in {cfg.burst_window:.0f}s window)"
            )
            emit_event(
                self._event_sink,
                EventKind.BURST_LIMITED,
                burst_count=state.burst_count,
                resets_at=state.burst_window_start + cfg.burst_window,
            )
        return cooldown

    def reset(self) -> None:
        """Clear all timers and history. Dormancy is preserved."""
        dormant = self._state.dormant
        self._state = CooldownState(dormant=dormant)
        self._history.clear()

    def _burst_active(self, now: float) -> bool:
        state = self._state
        if now - state.burst_window_start > self.config.burst_window:
            return False
        return state.burst_count >= self.config.max_burst_count

    def _adaptive_multiplier(
        self, category: str, entries: list[CooldownEntry], now: float
    ) -> float:
        cfg = self.config
        multiplier = 1.0

        same_category = [
            e for e in entries
            if e.category == category and now - e.timestamp <= cfg.adaptive_window
        ]
        if same_category:
            avg_load = sum(e.system_load for e in same_category) / len(same_category)
            avg_energy = sum(e.energy for e in same_category) / len(same_category)

            if avg_load > 0.7:
                multiplier *= 1.5
            elif avg_load > 0.5:
                multiplier *= 1.2

            if avg_energy > 0.8:
                multiplier *= 0.8
            elif avg_energy < 0.3:
                multiplier *= 1.4

        rapid = [e for e in entries if now - e.timestamp <= cfg.recent_window]
        if len(rapid) > 3:
            multiplier *= 1.3

        return multiplier
