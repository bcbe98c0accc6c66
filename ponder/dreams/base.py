"""
Shared types for consolidation sweeps.

A sweep is the loop's "sleep": an exclusive maintenance pass over
accumulated memory, run when energy is critical, on a schedule, or on
request. It proceeds through four phases in a fixed order:

    - Pattern extraction: abstract patterns from recent confident thoughts
    - Belief consolidation: aged thoughts folded into long-lived beliefs
    - Pruning: redundant thoughts removed, plus an age-based failsafe
    - Tension resolution: high-dissonance cycles synthesized into insights

Each phase is fault-isolated. A failing phase is recorded in the report and
the sweep moves on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SleepPhase(str, Enum):
    """Ordered phases of a consolidation sweep."""
    PATTERN_EXTRACTION = "pattern_extraction"
    BELIEF_CONSOLIDATION = "belief_consolidation"
    PRUNING = "pruning"
    TENSION_RESOLUTION = "tension_resolution"

    @property
    def progress(self) -> int:
        """Percent complete once this phase starts."""
        return PHASE_PROGRESS[self]


PHASE_PROGRESS = {
    SleepPhase.PATTERN_EXTRACTION: 25,
    SleepPhase.BELIEF_CONSOLIDATION: 50,
    SleepPhase.PRUNING: 75,
    SleepPhase.TENSION_RESOLUTION: 90,
}


class PhaseStatus(str, Enum):
    """How a phase ended."""
    COMPLETED = "completed"
    SKIPPED = "skipped"    # Preconditions not met (too few records, no evaluator)
    FAILED = "failed"      # Raised; logged and contained


@dataclass
class PhaseOutcome:
    """Result of one phase."""
    phase: SleepPhase
    status: PhaseStatus
    summary: str = ""
    stats: dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None
    duration_ms: float = 0.0

    def log_line(self) -> str:
        line = f"{self.phase.value}: {self.status.value}"
        if self.summary:
            line += f" ({self.summary})"
        if self.error:
            line += f" error={self.error}"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "status": self.status.value,
            "summary": self.summary,
            "stats": self.stats,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ConsolidationReport:
    """
    Result of a full consolidation sweep.

    Aggregates phase outcomes and statistics, and records the energy reset.
    """
    reason: str
    phases: list[PhaseOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0
    energy_before: float = 0.0
    energy_after: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def stats(self) -> dict[str, int]:
        """Statistics of all phases merged into one mapping."""
        merged: dict[str, int] = {}
        for outcome in self.phases:
            for key, value in outcome.stats.items():
                merged[key] = merged.get(key, 0) + value
        return merged

    @property
    def errors(self) -> list[str]:
        return [f"{o.phase.value}: {o.error}" for o in self.phases if o.error]

    @property
    def success(self) -> bool:
        """No phase failed outright."""
        return all(o.status != PhaseStatus.FAILED for o in self.phases)

    def outcome(self, phase: SleepPhase) -> Optional[PhaseOutcome]:
        return next((o for o in self.phases if o.phase == phase), None)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and storage."""
        return {
            "reason": self.reason,
            "phases": [o.to_dict() for o in self.phases],
            "stats": self.stats,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
            "energy_before": self.energy_before,
            "energy_after": self.energy_after,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
        }
