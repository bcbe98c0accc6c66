"""Online adaptation of the empathy / coherence / dissonance weights.

Each update nudges the weights toward the axes that are performing well:

    adjustment = (target - score) * learning_rate
    candidate  = weight * exp(-adjustment)

so an axis scoring above its target grows and one below it shrinks. The
candidate is then projected back onto the bounded simplex: the three
weights sum to exactly 1.0 and each stays within [min_weight, max_weight].

Stability and exploration:

- Decay: the learning rate shrinks by ``decay_factor`` for every
  consecutive update that repeats the previous scores, so a stationary
  signal converges instead of drifting to the bounds.
- Perturbation: every ``perturbation_interval`` updates a small zero-sum
  random offset is added, keeping the weights off degenerate fixed points.
  The update magnitude reports the learning step only; the perturbation
  offset is reported separately.
- Paradigm shifts boost the learning rate for that update.
- Corruption: a NaN, infinite or missing score resets the weights to the
  default split instead of propagating.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from ponder.config import WeightAdapterConfig
from ponder.events import EventKind, EventSink, emit_event
from ponder.scoring.schemas import (
    AXES,
    DEFAULT_WEIGHTS,
    AxisScores,
    AxisWeights,
    ImpactAssessment,
    WeightHistoryEntry,
)
from ponder.utils import utc_now

logger = logging.getLogger(__name__)

ScoreInput = Union[AxisScores, Mapping[str, Optional[float]]]
TargetInput = Union[float, Mapping[str, float], None]


@dataclass
class WeightUpdate:
    """Result of one call to WeightAdapter.update()."""
    previous: AxisWeights
    weights: AxisWeights
    update_magnitude: float
    learning_rate: float
    convergence_metric: float
    trigger_type: str = "deliberation"
    perturbation: Optional[tuple[float, float, float]] = None
    reset: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous": self.previous.model_dump(mode="json"),
            "weights": self.weights.model_dump(mode="json"),
            "update_magnitude": self.update_magnitude,
            "learning_rate": self.learning_rate,
            "convergence_metric": self.convergence_metric,
            "trigger_type": self.trigger_type,
            "perturbation": self.perturbation,
            "reset": self.reset,
            "reason": self.reason,
        }


class WeightAdapter:
    """Owns the current axis weights and adapts them from scores.

    Args:
        config: Learning parameters and bounds
        rng: Random source for perturbation
        event_sink: Optional observer of weight changes
        initial: Starting weights; defaults to the even split
    """

    def __init__(
        self,
        config: Optional[WeightAdapterConfig] = None,
        rng: Optional[np.random.Generator] = None,
        event_sink: Optional[EventSink] = None,
        initial: Optional[AxisWeights] = None,
    ):
        self.config = config or WeightAdapterConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._event_sink = event_sink
        self._weights = AxisWeights()
        self._update_count = 0
        self._magnitudes: deque[float] = deque(maxlen=self.config.history_size)
        self._last_scores: Optional[np.ndarray] = None
        self._repeat_streak = 0
        if initial is not None:
            self.restore(initial)

    @property
    def weights(self) -> AxisWeights:
        return self._weights

    @property
    def update_count(self) -> int:
        return self._update_count

    @property
    def magnitudes(self) -> list[float]:
        return list(self._magnitudes)

    @property
    def convergence_metric(self) -> float:
        """Variance of recent update magnitudes, scaled into [0, 1].

        1.0 until enough updates have been seen to judge.
        """
        window = self.config.convergence_window
        if len(self._magnitudes) < window:
            return 1.0
        recent = list(self._magnitudes)[-window:]
        return float(min(1.0, np.var(recent) * self.config.convergence_scale))

    @property
    def is_converging(self) -> bool:
        window = self.config.convergence_window
        if len(self._magnitudes) < window:
            return False
        recent = list(self._magnitudes)[-window:]
        return self.convergence_metric < 0.1 and float(np.mean(recent)) < 0.01

    def update(
        self,
        scores: ScoreInput,
        target: TargetInput = None,
        impact: Optional[ImpactAssessment] = None,
        trigger_type: str = "deliberation",
    ) -> WeightUpdate:
        """Adapt the weights to one cycle's scores.

        Args:
            scores: Axis scores (AxisScores or a mapping by axis name)
            target: Target score, scalar or per axis; defaults to config
            impact: Impact assessment; a paradigm shift boosts the step
            trigger_type: Recorded in the history entry

        Returns:
            WeightUpdate describing the change
        """
        cfg = self.config
        vector = self._score_vector(scores)
        current = np.array(self._weights.as_tuple(), dtype=float)
        if vector is None:
            return self._reset(trigger_type, "non-finite or missing score")
        if not np.all(np.isfinite(current)):
            return self._reset(trigger_type, "non-finite weights")

        if self._last_scores is not None and np.allclose(vector, self._last_scores, rtol=0.0, atol=1e-9):
            self._repeat_streak += 1
        else:
            self._repeat_streak = 0
        self._last_scores = vector

        learning_rate = cfg.learning_rate * cfg.decay_factor ** self._repeat_streak
        if impact is not None and impact.is_paradigm_shift:
            learning_rate *= cfg.paradigm_shift_boost

        adjustment = (self._target_vector(target) - vector) * learning_rate
        candidate = self.project(current * np.exp(-adjustment))
        magnitude = float(np.linalg.norm(candidate - current))

        self._update_count += 1
        perturbation = None
        if cfg.perturbation_enabled and self._update_count % cfg.perturbation_interval == 0:
            r1, r2 = (self._rng.random(2) - 0.5) * cfg.perturbation_strength
            offset = np.array([r1, r2, -(r1 + r2)])
            candidate = self.project(candidate + offset)
            perturbation = (float(offset[0]), float(offset[1]), float(offset[2]))
            logger.debug(f"Perturbed weights by {perturbation}")

        self._magnitudes.append(magnitude)
        previous = self._weights
        self._weights = self._make_weights(candidate, previous.version + 1)

        update = WeightUpdate(
            previous=previous,
            weights=self._weights,
            update_magnitude=magnitude,
            learning_rate=learning_rate,
            convergence_metric=self.convergence_metric,
            trigger_type=trigger_type,
            perturbation=perturbation,
        )
        logger.info(
            f"Weights v{self._weights.version}: "
            f"empathy={self._weights.empathy:.3f} coherence={self._weights.coherence:.3f} "
            f"dissonance={self._weights.dissonance:.3f} (step {magnitude:.4f})"
        )
        emit_event(
            self._event_sink,
            EventKind.WEIGHTS_UPDATED,
            version=self._weights.version,
            empathy=self._weights.empathy,
            coherence=self._weights.coherence,
            dissonance=self._weights.dissonance,
            update_magnitude=magnitude,
            convergence_metric=update.convergence_metric,
            perturbed=perturbation is not None,
            interpretation=self.interpret(update),
        )
        return update

    def project(self, values: Any) -> np.ndarray:
        """Map raw weights onto the bounded simplex.

        Normalizes to sum 1, clamps to the bounds, then redistributes the
        clamping residue across the axes that still have room.
        """
        low, high = self.config.min_weight, self.config.max_weight
        w = np.asarray(values, dtype=float)
        total = w.sum()
        if not np.all(np.isfinite(w)) or not math.isfinite(total) or total <= 0:
            return np.array(DEFAULT_WEIGHTS, dtype=float)

        w = np.clip(w / total, low, high)
        residue = 1.0 - w.sum()
        if abs(residue) > 1e-12:
            room = (high - w) if residue > 0 else (w - low)
            capacity = room.sum()
            if capacity > 0:
                w = w + residue * room / capacity
        w = np.clip(w, low, high)
        return w / w.sum()

    def restore(self, weights: Optional[AxisWeights]) -> AxisWeights:
        """Load persisted weights, repairing them if they violate the bounds."""
        if weights is None:
            return self._weights
        raw = np.array(weights.as_tuple(), dtype=float)
        if not np.all(np.isfinite(raw)):
            logger.warning("Persisted weights are corrupt, using default split")
            self._weights = AxisWeights(version=weights.version + 1)
            return self._weights
        self._weights = self._make_weights(self.project(raw), weights.version)
        return self._weights

    def history_entry(
        self,
        update: WeightUpdate,
        context: Optional[dict[str, Any]] = None,
    ) -> WeightHistoryEntry:
        """Build the append-only history row for an update."""
        w = update.weights
        entry_context = {
            "update_magnitude": update.update_magnitude,
            "learning_rate": update.learning_rate,
            "convergence_metric": update.convergence_metric,
            "perturbation": update.perturbation,
            "reset": update.reset,
        }
        entry_context.update(context or {})
        return WeightHistoryEntry(
            timestamp=w.timestamp,
            empathy=w.empathy,
            coherence=w.coherence,
            dissonance=w.dissonance,
            version=w.version,
            trigger_type=update.trigger_type,
            context=entry_context,
        )

    def interpret(self, update: WeightUpdate) -> str:
        """Describe the largest shift in plain words."""
        if update.reset:
            return f"Weights reset to the default split ({update.reason})"
        axis = max(AXES, key=lambda a: abs(update.weights.get(a) - update.previous.get(a)))
        before, after = update.previous.get(axis), update.weights.get(axis)
        if abs(after - before) < 1e-4:
            return "Weights essentially unchanged"
        direction = "gained" if after > before else "lost"
        return (
            f"{axis.value.capitalize()} {direction} {abs(after - before):.3f} "
            f"({before:.3f} -> {after:.3f})"
        )

    def _reset(self, trigger_type: str, reason: str) -> WeightUpdate:
        logger.warning(f"Resetting weights to default split: {reason}")
        previous = self._weights
        self._weights = AxisWeights(version=previous.version + 1)
        self._last_scores = None
        self._repeat_streak = 0
        update = WeightUpdate(
            previous=previous,
            weights=self._weights,
            update_magnitude=0.0,
            learning_rate=0.0,
            convergence_metric=self.convergence_metric,
            trigger_type=trigger_type,
            reset=True,
            reason=reason,
        )
        emit_event(
            self._event_sink,
            EventKind.WEIGHTS_RESET,
            version=self._weights.version,
            reason=reason,
        )
        return update

    def _score_vector(self, scores: ScoreInput) -> Optional[np.ndarray]:
        if isinstance(scores, AxisScores):
            values = list(scores.as_tuple())
        else:
            values = [scores.get(axis.value) for axis in AXES]
        try:
            vector = np.array([float(v) for v in values], dtype=float)
        except (TypeError, ValueError):
            return None
        if not np.all(np.isfinite(vector)):
            return None
        return vector

    def _target_vector(self, target: TargetInput) -> np.ndarray:
        if target is None:
            return np.full(3, self.config.target_score)
        if isinstance(target, Mapping):
            return np.array(
                [float(target.get(axis.value, self.config.target_score)) for axis in AXES]
            )
        return np.full(3, float(target))

    def _make_weights(self, vector: np.ndarray, version: int) -> AxisWeights:
        return AxisWeights(
            empathy=float(vector[0]),
            coherence=float(vector[1]),
            dissonance=float(vector[2]),
            version=version,
            timestamp=utc_now(),
        )
