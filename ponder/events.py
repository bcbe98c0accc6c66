"""Observational events emitted by the thinking loop.

Components never talk to a transport directly. They build a ``PonderEvent``
and hand it to an injected ``EventSink``. Delivery is best effort: a sink
that raises is logged and ignored, and no component state depends on an
event having been seen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of events emitted by the loop."""
    TRIGGER_GENERATED = "trigger_generated"
    COOLDOWN_UPDATED = "cooldown_updated"
    BURST_LIMITED = "burst_limited"
    EVALUATION_COMPLETED = "evaluation_completed"
    WEIGHTS_UPDATED = "weights_updated"
    WEIGHTS_RESET = "weights_reset"
    CONSOLIDATION_STARTED = "consolidation_started"
    CONSOLIDATION_PHASE = "consolidation_phase"
    CONSOLIDATION_COMPLETED = "consolidation_completed"
    ENERGY_RECOVERED = "energy_recovered"
    CYCLE_COMPLETED = "cycle_completed"


@dataclass
class PonderEvent:
    """A single observational event."""
    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for transport."""
        return {
            "kind": self.kind.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class EventSink(Protocol):
    """Receiver for loop events."""

    def emit(self, event: PonderEvent) -> None:
        ...


class RecordingEventSink:
    """Sink that keeps every event in memory.

    Handy for tests and for embedding applications that poll rather than
    subscribe.
    """

    def __init__(self, max_events: Optional[int] = None):
        self.events: list[PonderEvent] = []
        self._max_events = max_events

    def emit(self, event: PonderEvent) -> None:
        self.events.append(event)
        if self._max_events is not None and len(self.events) > self._max_events:
            del self.events[: len(self.events) - self._max_events]

    def of_kind(self, kind: EventKind) -> list[PonderEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()


def emit_event(sink: Optional[EventSink], kind: EventKind, **payload: Any) -> None:
    """Send an event to the sink, swallowing delivery failures.

    Args:
        sink: Destination, or None to drop the event
        kind: Event kind
        **payload: Event payload
    """
    if sink is None:
        return
    try:
        sink.emit(PonderEvent(kind=kind, payload=payload))
    except Exception as e:
        logger.warning(f"Event sink failed to accept {kind.value}: {e}")
