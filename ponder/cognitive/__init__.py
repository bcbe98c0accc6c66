"""Question generation and the thinking loop."""

from ponder.cognitive.categories import (
    DEFAULT_PROFILES,
    CategoryBalance,
    CategoryBalancer,
    CategoryProfile,
)
from ponder.cognitive.cooldown import CooldownEntry, CooldownGate, CooldownState
from ponder.cognitive.loop import CycleOutcome, DeliberationLoop, Deliberator
from ponder.cognitive.triggers import TriggerScheduler

__all__ = [
    # Cooldown
    "CooldownGate",
    "CooldownState",
    "CooldownEntry",
    # Category balance
    "CategoryBalancer",
    "CategoryBalance",
    "CategoryProfile",
    "DEFAULT_PROFILES",
    # Triggers
    "TriggerScheduler",
    # Loop
    "DeliberationLoop",
    "Deliberator",
    "CycleOutcome",
]
