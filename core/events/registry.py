"""
Evolv Event Bus — Subscriber Registry
=====================================
Controls which handlers receive which domain events.

Rules:
- Event types follow engine.domain.action.vN format
- Multiple subscribers per event type allowed
- Duplicate handler for the same event type forbidden
- In-memory, thread-safe
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)

logger = logging.getLogger("evolv.events")


class SubscriberRegistry:
    """Maps event_type → [(handler, subscriber_name)]."""

    def __init__(self):
        self._subscribers: dict[str, list[tuple[Callable, str]]] = {}
        self._lock = Lock()

    @staticmethod
    def _validate_event_type_format(event_type: str) -> None:
        if not event_type or not isinstance(event_type, str):
            raise InvalidEventTypeFormat(event_type or "")
        parts = event_type.strip().split(".")
        if len(parts) < 4 or not parts[-1].startswith("v"):
            raise InvalidEventTypeFormat(event_type)

    def register_subscriber(
        self,
        event_type: str,
        handler: Callable,
        subscriber_name: str,
    ) -> None:
        self._validate_event_type_format(event_type)

        if not callable(handler):
            raise EventBusError(f"Handler must be callable, got {type(handler)}.")

        handler_name = getattr(handler, "__qualname__", str(handler))

        with self._lock:
            entries = self._subscribers.setdefault(event_type, [])
            for existing_handler, _ in entries:
                if existing_handler is handler:
                    raise DuplicateSubscriberError(event_type, handler_name)
            entries.append((handler, subscriber_name))

        logger.debug("Subscriber registered: %s → %s (%s)", handler_name, event_type, subscriber_name)

    def get_subscribers(self, event_type: str) -> list[tuple[Callable, str]]:
        with self._lock:
            return list(self._subscribers.get(event_type, []))

    def subscriber_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))
