"""Structured resolution events.

The lifecycle emits a ResolutionEvent for every status change and the
monitor emits one for every aggregation pass and every failed attempt.
Collaborators subscribe to an EventBus; the default subscriber writes each
event to the ``verdict.events`` logger with the event as ``extra_data``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("verdict.events")


class EventKind(StrEnum):
    TRANSITION = "transition"
    AGGREGATION = "aggregation"
    ATTEMPT_FAILED = "attempt_failed"


@dataclass
class ResolutionEvent:
    """One observable step in a claim's resolution."""

    kind: EventKind
    claim_id: str
    prior_state: str | None = None
    new_state: str | None = None
    confidence: float | None = None
    strategy: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "claim_id": self.claim_id,
            "prior_state": self.prior_state,
            "new_state": self.new_state,
            "confidence": self.confidence,
            "strategy": self.strategy,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


Subscriber = Callable[[ResolutionEvent], None]


class EventBus:
    """Synchronous fan-out of resolution events.

    A subscriber that raises is logged and does not stop delivery to the
    others, nor the transition that produced the event.
    """

    def __init__(self, log_events: bool = True) -> None:
        self._subscribers: list[Subscriber] = []
        if log_events:
            self.subscribe(log_event)

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, event: ResolutionEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Event subscriber %r failed on %s event for claim %s", subscriber, event.kind, event.claim_id)


def log_event(event: ResolutionEvent) -> None:
    """Default subscriber: one log line per event."""
    if event.kind is EventKind.TRANSITION:
        message = f"Claim {event.claim_id}: {event.prior_state} -> {event.new_state}"
    elif event.kind is EventKind.AGGREGATION:
        message = f"Claim {event.claim_id}: aggregated {event.confidence:.1f}% YES ({event.strategy})"
    else:
        message = f"Claim {event.claim_id}: attempt failed in {event.prior_state}"
    level = logging.WARNING if event.kind is EventKind.ATTEMPT_FAILED else logging.INFO
    event_logger.log(level, message, extra={"extra_data": event.to_dict()})


class EventRecorder:
    """Subscriber that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[ResolutionEvent] = []

    def __call__(self, event: ResolutionEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> list[ResolutionEvent]:
        return [e for e in self.events if e.kind is kind]
