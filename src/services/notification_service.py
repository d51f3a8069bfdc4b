"""Notification sink for ledger state changes.

Services emit an event after their transaction has committed. Subscribers
(websocket broadcasters, SMS gateways, cache invalidators) are outside the
ledger; a failing subscriber is logged and skipped, it never undoes the
committed change.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

PERIOD_CREATED = "period:created"
PERIOD_DELETED = "period:deleted"
PAYMENT_CREATED = "payment:created"
OBLIGATION_UPDATED = "obligation:updated"
PAYER_UPDATED = "payer:updated"
REPORTS_UPDATED = "reports:updated"

Subscriber = Callable[[str, dict[str, Any]], None]


def log_event(event: str, payload: dict[str, Any]) -> None:
    """Default subscriber: record the event in the server log."""
    logger.debug("notify.%s: %s", event, payload)


class NotificationService:
    """Fan ledger events out to registered subscribers."""

    def __init__(self, subscribers: list[Subscriber] | None = None):
        self._subscribers: list[Subscriber] = list(subscribers) if subscribers else [log_event]

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a callable receiving (event, payload)."""
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """Deliver one event to every subscriber.

        Args:
            event: Event name (e.g., "payment:created")
            payload: JSON-serialisable entity data plus foreign keys

        Returns:
            Number of subscribers that accepted the event
        """
        payload = payload or {}
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber(event, payload)
                delivered += 1
            except Exception:
                logger.exception("Notification subscriber %r failed for %s", subscriber, event)
        return delivered

    def emit_many(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        for event, payload in events:
            self.emit(event, payload)


__all__ = [
    "NotificationService",
    "PERIOD_CREATED",
    "PERIOD_DELETED",
    "PAYMENT_CREATED",
    "OBLIGATION_UPDATED",
    "PAYER_UPDATED",
    "REPORTS_UPDATED",
    "log_event",
]
