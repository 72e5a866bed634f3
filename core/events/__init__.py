"""
Evolv Event Bus — Public API
============================
State transitions commit first; subscribers hear about them after.
"""

from core.events.dispatcher import DomainEvent, EventBus, dispatch
from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
)
from core.events.registry import SubscriberRegistry

__all__ = [
    "DomainEvent",
    "EventBus",
    "dispatch",
    "SubscriberRegistry",
    "EventBusError",
    "InvalidEventTypeFormat",
    "DuplicateSubscriberError",
]
