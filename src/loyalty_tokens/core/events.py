"""
Loyalty contract notifications.

Events are recorded in a bounded history and delivered synchronously
to subscribers. Delivery is fire-and-forget: a failing subscriber is logged
and skipped, it never fails the operation that produced the event.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .constants import (
    EVENT_BURNED,
    EVENT_MINTED,
    EVENT_SCHEDULE_SET,
    EVENT_TRANSFERABILITY_CHANGED,
    EVENT_VESTED,
)

logger = logging.getLogger(__name__)

WILDCARD = "*"

Subscriber = Callable[["LoyaltyEvent"], None]


@dataclass(frozen=True)
class LoyaltyEvent:
    """A notification emitted after a successful state change."""

    event_type: str
    data: dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type, "timestamp": self.timestamp, "data": dict(self.data)}


def minted(identity: str, token_id: int) -> LoyaltyEvent:
    return LoyaltyEvent(EVENT_MINTED, {"identity": identity, "token_id": token_id})


def burned(caller: str, token_id: int) -> LoyaltyEvent:
    return LoyaltyEvent(EVENT_BURNED, {"caller": caller, "token_id": token_id})


def vested(caller: str, token_id: int, amount: int) -> LoyaltyEvent:
    return LoyaltyEvent(
        EVENT_VESTED, {"caller": caller, "token_id": token_id, "amount": amount}
    )


def schedule_set(caller: str, token_id: int, deadline: int) -> LoyaltyEvent:
    return LoyaltyEvent(
        EVENT_SCHEDULE_SET, {"caller": caller, "token_id": token_id, "deadline": deadline}
    )


def transferability_changed(caller: str, enabled: bool) -> LoyaltyEvent:
    return LoyaltyEvent(EVENT_TRANSFERABILITY_CHANGED, {"caller": caller, "enabled": enabled})


class EventBus:
    """
    In-process notification dispatcher.

    History keeps the most recent events only: once it passes
    ``MAX_HISTORY`` entries it is cut back to the last ``TRIM_TO``.
    """

    MAX_HISTORY = 1000
    TRIM_TO = 500

    def __init__(self) -> None:
        self.history: list[LoyaltyEvent] = []
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.RLock()

    def subscribe(self, callback: Subscriber, event_type: str = WILDCARD) -> None:
        """
        Register a callback for an event type.

        Args:
            callback: Called with each matching LoyaltyEvent
            event_type: Event name, or "*" for every event
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, callback: Subscriber, event_type: str = WILDCARD) -> bool:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def publish(self, event: LoyaltyEvent) -> int:
        """
        Record an event and deliver it to subscribers.

        Callbacks run outside the bus lock so they may subscribe or publish.

        Returns:
            Number of subscribers that received the event without error
        """
        with self._lock:
            self.history.append(event)
            if len(self.history) > self.MAX_HISTORY:
                self.history = self.history[-self.TRIM_TO:]
            targets = self._subscribers.get(event.event_type, []) + self._subscribers.get(
                WILDCARD, []
            )

        delivered = 0
        for callback in targets:
            try:
                callback(event)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Subscriber failed for %s: %s",
                    event.event_type,
                    exc,
                    exc_info=True,
                    extra={"event": "events.delivery_failed", "event_type": event.event_type},
                )
        return delivered

    def recent(self) -> list[LoyaltyEvent]:
        with self._lock:
            return list(self.history)

    def events_of(self, event_type: str) -> list[LoyaltyEvent]:
        with self._lock:
            return [event for event in self.history if event.event_type == event_type]
