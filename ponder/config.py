"""Configuration for the ponder thinking loop.

Every component takes its own dataclass config. Values are validated in
``__post_init__`` so a bad configuration fails at construction time rather
than surfacing as odd behavior many cycles later.

Time values are in seconds.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any

# Base cooldown per question category. Deeper, more abstract categories
# rest longer between generations.
DEFAULT_CATEGORY_COOLDOWNS: dict[str, float] = {
    "existential": 3.0,
    "paradoxical": 2.8,
    "ontological": 2.6,
    "ethical": 2.5,
    "philosophical": 2.0,
    "consciousness": 2.0,
    "metacognitive": 1.8,
    "epistemic": 1.6,
    "creative": 1.5,
    "temporal": 1.5,
}

DEFAULT_ENERGY_COSTS: dict[str, float] = {
    "manual": 10.0,
    "evolved": 12.0,
    "backlog": 8.0,
    "random": 10.0,
}


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")


def _check_positive(name: str, value: float) -> None:
    if not value > 0:
        raise ValueError(f"{name} must be positive, got {value}")


def _check_weights(name: str, weights: dict[str, float]) -> None:
    total = sum(weights.values())
    if any(w < 0 for w in weights.values()) or not math.isclose(total, 1.0, abs_tol=1e-6):
        raise ValueError(f"{name} must be non-negative and sum to 1.0, got {weights}")


@dataclass
class CooldownConfig:
    """Rate limiting for question generation."""

    global_cooldown: float = 1.0
    category_cooldowns: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_COOLDOWNS)
    )
    max_burst_count: int = 5
    burst_window: float = 60.0
    burst_cooldown_multiplier: float = 2.0
    adaptive_window: float = 300.0  # History considered by the adaptive multiplier
    recent_window: float = 60.0     # "Rapid generation" window
    history_size: int = 50

    energy_aware: bool = True
    load_aware: bool = True
    burst_protection: bool = True
    adaptive: bool = True

    def __post_init__(self):
        _check_positive("global_cooldown", self.global_cooldown)
        for category, cooldown in self.category_cooldowns.items():
            if cooldown < 0:
                raise ValueError(f"Cooldown for {category} must be >= 0, got {cooldown}")
        if self.max_burst_count < 1:
            raise ValueError(f"max_burst_count must be >= 1, got {self.max_burst_count}")
        _check_positive("burst_window", self.burst_window)
        if self.burst_cooldown_multiplier < 1.0:
            raise ValueError(
                f"burst_cooldown_multiplier must be >= 1, got {self.burst_cooldown_multiplier}"
            )
        _check_positive("adaptive_window", self.adaptive_window)
        _check_positive("recent_window", self.recent_window)
        if self.history_size < 1:
            raise ValueError(f"history_size must be >= 1, got {self.history_size}")


@dataclass
class TriggerConfig:
    """Question selection strategy.

    The evolve probability and the balance multipliers are tunable
    parameters, not invariants.
    """

    evolve_probability: float = 0.70
    underused_multiplier: float = 3.0
    overused_multiplier: float = 0.2

    backlog_limit: int = 100
    context_backlog_limit: int = 10
    context_thought_limit: int = 5
    context_belief_limit: int = 5
    context_items: int = 3
    context_chars: int = 80

    evolved_importance: float = 0.85
    template_importance: float = 0.75
    default_importance: float = 0.5
    energy_costs: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_ENERGY_COSTS))

    balance_window: float = 7200.0
    balance_history: int = 100
    evaluator_timeout: float = 30.0

    def __post_init__(self):
        _check_unit("evolve_probability", self.evolve_probability)
        _check_positive("underused_multiplier", self.underused_multiplier)
        _check_positive("overused_multiplier", self.overused_multiplier)
        for name in ("evolved_importance", "template_importance", "default_importance"):
            _check_unit(name, getattr(self, name))
        for name in (
            "backlog_limit",
            "context_backlog_limit",
            "context_thought_limit",
            "context_belief_limit",
            "context_items",
            "context_chars",
            "balance_history",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if any(cost < 0 for cost in self.energy_costs.values()):
            raise ValueError(f"energy_costs must be >= 0, got {self.energy_costs}")
        _check_positive("balance_window", self.balance_window)
        _check_positive("evaluator_timeout", self.evaluator_timeout)


@dataclass
class ScoringConfig:
    """Axis scoring: evaluator usage, heuristic blends, impact thresholds."""

    use_evaluator: bool = True
    evaluator_timeout: float = 30.0

    empathy_weights: dict[str, float] = field(default_factory=lambda: {
        "emotional_recognition": 0.25,
        "perspective_taking": 0.25,
        "compassionate_response": 0.25,
        "social_awareness": 0.25,
    })
    coherence_weights: dict[str, float] = field(default_factory=lambda: {
        "logical_consistency": 0.25,
        "value_alignment": 0.25,
        "goal_congruence": 0.25,
        "system_harmony": 0.25,
    })
    dissonance_weights: dict[str, float] = field(default_factory=lambda: {
        "ethical_awareness": 0.25,
        "contradiction_recognition": 0.25,
        "moral_complexity": 0.25,
        "uncertainty_tolerance": 0.25,
    })

    # Paradigm shift detection (manual triggers only)
    spike_threshold: float = 0.25
    controversy_threshold: float = 0.6
    dissonance_threshold: float = 0.8
    moderate_spike_threshold: float = 0.15
    moderate_controversy_threshold: float = 0.4

    previous_scores_window: int = 5
    strength_threshold: float = 0.7
    weakness_threshold: float = 0.5

    def __post_init__(self):
        _check_positive("evaluator_timeout", self.evaluator_timeout)
        _check_weights("empathy_weights", self.empathy_weights)
        _check_weights("coherence_weights", self.coherence_weights)
        _check_weights("dissonance_weights", self.dissonance_weights)
        for name in (
            "spike_threshold",
            "controversy_threshold",
            "dissonance_threshold",
            "moderate_spike_threshold",
            "moderate_controversy_threshold",
            "strength_threshold",
            "weakness_threshold",
        ):
            _check_unit(name, getattr(self, name))
        if self.previous_scores_window < 1:
            raise ValueError(
                f"previous_scores_window must be >= 1, got {self.previous_scores_window}"
            )


@dataclass
class WeightAdapterConfig:
    """Online adaptation of the three axis weights."""

    learning_rate: float = 0.05
    target_score: float = 0.7
    min_weight: float = 0.10
    max_weight: float = 0.75
    # Learning step shrinks by this factor for every consecutive update
    # that repeats the previous scores.
    decay_factor: float = 0.85
    perturbation_enabled: bool = True
    perturbation_interval: int = 10
    perturbation_strength: float = 0.15
    paradigm_shift_boost: float = 3.0
    convergence_window: int = 5
    convergence_scale: float = 1e4
    history_size: int = 100

    def __post_init__(self):
        _check_positive("learning_rate", self.learning_rate)
        _check_unit("target_score", self.target_score)
        if not 0.0 <= self.min_weight < self.max_weight <= 1.0:
            raise ValueError(
                f"Need 0 <= min_weight < max_weight <= 1, "
                f"got {self.min_weight}, {self.max_weight}"
            )
        if 3 * self.min_weight > 1.0 or 3 * self.max_weight < 1.0:
            raise ValueError(
                f"Bounds [{self.min_weight}, {self.max_weight}] cannot hold three weights summing to 1"
            )
        if not 0.0 < self.decay_factor <= 1.0:
            raise ValueError(f"decay_factor must be in (0, 1], got {self.decay_factor}")
        if self.perturbation_interval < 1:
            raise ValueError(
                f"perturbation_interval must be >= 1, got {self.perturbation_interval}"
            )
        _check_unit("perturbation_strength", self.perturbation_strength)
        if self.paradigm_shift_boost < 1.0:
            raise ValueError(
                f"paradigm_shift_boost must be >= 1, got {self.paradigm_shift_boost}"
            )
        if self.convergence_window < 2:
            raise ValueError(f"convergence_window must be >= 2, got {self.convergence_window}")
        _check_positive("convergence_scale", self.convergence_scale)
        if self.history_size < self.convergence_window:
            raise ValueError("history_size must be >= convergence_window")


@dataclass
class EnergyConfig:
    """Energy budget consumed by generation and restored by consolidation."""

    maximum: float = 100.0
    minimum: float = 5.0
    recovery_rate: float = 2.0  # Per minute
    critical_threshold: float = 8.0
    low_threshold: float = 15.0
    initial: float | None = None

    def __post_init__(self):
        _check_positive("maximum", self.maximum)
        if not 0.0 <= self.minimum < self.maximum:
            raise ValueError(f"minimum must be in [0, maximum), got {self.minimum}")
        if self.recovery_rate < 0:
            raise ValueError(f"recovery_rate must be >= 0, got {self.recovery_rate}")
        if not 0.0 <= self.critical_threshold <= self.low_threshold <= self.maximum:
            raise ValueError("Need 0 <= critical_threshold <= low_threshold <= maximum")
        if self.initial is not None and not 0.0 <= self.initial <= self.maximum:
            raise ValueError(f"initial must be in [0, maximum], got {self.initial}")


@dataclass
class ConsolidationConfig:
    """The periodic memory consolidation sweep."""

    evaluator_timeout: float = 60.0

    # Phase 1: pattern extraction
    pattern_min_thoughts: int = 10
    pattern_sample_size: int = 20
    pattern_min_confidence: float = 0.7
    pattern_limit: int = 5
    min_pattern_length: int = 10

    # Phase 2: belief consolidation
    consolidation_min_age: float = 3600.0
    consolidation_min_confidence: float = 0.75
    consolidation_limit: int = 100
    consolidation_min_records: int = 5
    merge_threshold: float = 0.90

    # Phase 3: pruning
    pruning_min_age: float = 3 * 3600.0
    pruning_limit: int = 500
    pruning_min_records: int = 10
    pruning_sample_size: int = 50
    failsafe_age: float = 48 * 3600.0
    failsafe_limit: int = 1000

    # Phase 4: tension resolution
    tension_min_dissonance: float = 0.7
    tension_window: float = 7 * 24 * 3600.0
    tension_limit: int = 10
    insight_weight: float = 0.3

    def __post_init__(self):
        _check_positive("evaluator_timeout", self.evaluator_timeout)
        for name in (
            "pattern_min_confidence",
            "consolidation_min_confidence",
            "merge_threshold",
            "tension_min_dissonance",
            "insight_weight",
        ):
            _check_unit(name, getattr(self, name))
        for name in (
            "consolidation_min_age",
            "pruning_min_age",
            "failsafe_age",
            "tension_window",
        ):
            _check_positive(name, getattr(self, name))
        if self.pruning_min_age > self.failsafe_age:
            raise ValueError("pruning_min_age must not exceed failsafe_age")
        if self.pattern_sample_size < 1 or self.pruning_sample_size < 1:
            raise ValueError("Sample sizes must be >= 1")


@dataclass
class PonderConfig:
    """Complete configuration for one thinking loop."""

    cooldown: CooldownConfig = field(default_factory=CooldownConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    weights: WeightAdapterConfig = field(default_factory=WeightAdapterConfig)
    energy: EnergyConfig = field(default_factory=EnergyConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PonderConfig":
        """Build a config from a nested mapping such as parsed JSON or TOML.

        Missing sections and keys keep their defaults. Unknown sections or
        keys raise ValueError so that typos are not silently ignored.
        """
        sections = {f.name: f.default_factory for f in fields(cls)}
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            allowed = {f.name for f in fields(section_cls)}
            bad_keys = set(values) - allowed
            if bad_keys:
                raise ValueError(f"Unknown keys in [{name}]: {sorted(bad_keys)}")
            kwargs[name] = section_cls(**values)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a nested mapping accepted by from_dict()."""
        return asdict(self)
