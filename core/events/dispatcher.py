"""
Evolv Event Bus — Dispatcher
============================
Routes committed domain events to registered subscribers.

Dispatch behaviour:
1. Look up subscribers by event_type
2. Execute handlers sequentially
3. Catch and log each subscriber failure
4. Continue to the next subscriber
5. NEVER undo the state transition that produced the event

Notifications are subscribers, so a mail outage can never block
an order transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from core.events.registry import SubscriberRegistry

logger = logging.getLogger("evolv.events")


@dataclass(frozen=True)
class DomainEvent:
    """A fact produced by a committed transition."""

    event_type: str
    subject_id: str
    occurred_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


def dispatch(event: DomainEvent, registry: SubscriberRegistry) -> dict:
    """
    Deliver `event` to every subscriber. Never raises.

    Returns:
        {'event_type', 'subject_id', 'subscribers_notified',
         'subscribers_failed', 'failures'}
    """
    result: Dict[str, Any] = {
        "event_type": event.event_type,
        "subject_id": event.subject_id,
        "subscribers_notified": 0,
        "subscribers_failed": 0,
        "failures": [],
    }
    failures: List[dict] = result["failures"]

    for handler, subscriber_name in registry.get_subscribers(event.event_type):
        handler_name = getattr(handler, "__qualname__", str(handler))
        try:
            handler(event)
            result["subscribers_notified"] += 1
        except Exception as exc:
            result["subscribers_failed"] += 1
            failures.append({
                "handler": handler_name,
                "subscriber": subscriber_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            logger.error(
                "Subscriber failed: %s for %s (%s): %s",
                handler_name, event.event_type, event.subject_id, exc,
                exc_info=True,
            )

    if result["subscribers_notified"] or result["subscribers_failed"]:
        logger.debug(
            "Dispatched %s (%s): %d notified, %d failed",
            event.event_type, event.subject_id,
            result["subscribers_notified"], result["subscribers_failed"],
        )
    return result


class EventBus:
    """Thin facade so services depend on one publish() call."""

    def __init__(self, registry: SubscriberRegistry | None = None):
        self._registry = registry or SubscriberRegistry()
        self._published: List[DomainEvent] = []

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    @property
    def published(self) -> List[DomainEvent]:
        return list(self._published)

    def subscribe(self, event_type: str, handler, subscriber_name: str) -> None:
        self._registry.register_subscriber(event_type, handler, subscriber_name)

    def publish(self, event: DomainEvent) -> dict:
        self._published.append(event)
        return dispatch(event, self._registry)
