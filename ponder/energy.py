"""Energy budget for the thinking loop.

Generating and deliberating on a question costs energy; idle time recovers
it slowly; a consolidation sweep restores it to the maximum. The cooldown
gate reads the energy ratio to slow generation down as the budget runs low,
and the loop triggers consolidation once energy becomes critical.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ponder.config import EnergyConfig

logger = logging.getLogger(__name__)


class EnergyLevel(str, Enum):
    """Coarse energy bands."""
    CRITICAL = "critical"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    MAXIMUM = "maximum"


class EnergyState(BaseModel):
    """Snapshot of the energy budget."""
    available: float = Field(ge=0.0)
    maximum: float = Field(gt=0.0)
    recovery_rate: float = Field(ge=0.0)  # Per minute
    last_update: float

    @property
    def ratio(self) -> float:
        return self.available / self.maximum


class EnergyManager:
    """Tracks available energy.

    Args:
        config: Energy limits and recovery rate
        clock: Seconds since an arbitrary epoch, injectable for tests
    """

    def __init__(
        self,
        config: Optional[EnergyConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or EnergyConfig()
        self._clock = clock
        self._available = (
            self.config.initial if self.config.initial is not None else self.config.maximum
        )
        self._last_update = clock()

    @property
    def available(self) -> float:
        return self._available

    @property
    def maximum(self) -> float:
        return self.config.maximum

    @property
    def ratio(self) -> float:
        return self._available / self.config.maximum

    @property
    def level(self) -> EnergyLevel:
        if self._available <= self.config.critical_threshold:
            return EnergyLevel.CRITICAL
        if self._available <= self.config.low_threshold:
            return EnergyLevel.LOW
        ratio = self.ratio
        if ratio <= 0.4:
            return EnergyLevel.MODERATE
        if ratio <= 0.8:
            return EnergyLevel.HIGH
        return EnergyLevel.MAXIMUM

    @property
    def is_critical(self) -> bool:
        return self.level == EnergyLevel.CRITICAL

    def recover(self, now: Optional[float] = None) -> float:
        """Apply passive recovery for the time elapsed since the last update.

        Returns:
            Energy recovered
        """
        now = self._clock() if now is None else now
        elapsed_minutes = max(0.0, now - self._last_update) / 60.0
        self._last_update = now
        gained = min(
            self.config.maximum - self._available,
            elapsed_minutes * self.config.recovery_rate,
        )
        if gained > 0:
            self._available += gained
        return max(0.0, gained)

    def can_afford(self, amount: float) -> bool:
        """Whether spending ``amount`` would keep energy at or above the floor."""
        return self._available - amount >= self.config.minimum

    def consume(self, amount: float, activity: str = "activity") -> bool:
        """Spend energy on an activity.

        Refuses (returns False) when the spend would take energy below the
        configured floor.
        """
        if amount < 0:
            raise ValueError(f"Energy amount must be >= 0, got {amount}")
        if not self.can_afford(amount):
            logger.debug(
                f"Refused {activity}: needs {amount:.1f}, "
                f"{self._available:.1f} available (floor {self.config.minimum})"
            )
            return False
        self._available -= amount
        logger.debug(f"{activity} consumed {amount:.1f} energy, {self._available:.1f} left")
        return True

    def reset(self, now: Optional[float] = None) -> None:
        """Restore energy to the maximum."""
        self._available = self.config.maximum
        self._last_update = self._clock() if now is None else now

    def snapshot(self) -> EnergyState:
        return EnergyState(
            available=self._available,
            maximum=self.config.maximum,
            recovery_rate=self.config.recovery_rate,
            last_update=self._last_update,
        )
