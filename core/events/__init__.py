"""
SBO Events — Public API
=========================
The journal records facts; subscribers hear about them afterwards.
"""

from core.events.dispatcher import DispatchReport, SubscriberFailure, dispatch
from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventType,
    PersistRejectionCode,
    SelfSubscriptionError,
)
from core.events.journal import (
    EventRejection,
    InMemoryEventJournal,
    PersistResult,
    build_event_factory,
)
from core.events.registry import (
    EventTypeRegistry,
    SubscriberRegistry,
    Subscription,
    check_event_type,
)

__all__ = [
    "dispatch",
    "DispatchReport",
    "SubscriberFailure",
    "EventTypeRegistry",
    "SubscriberRegistry",
    "Subscription",
    "check_event_type",
    "InMemoryEventJournal",
    "PersistResult",
    "EventRejection",
    "build_event_factory",
    "EventBusError",
    "InvalidEventType",
    "DuplicateSubscriberError",
    "SelfSubscriptionError",
    "PersistRejectionCode",
]
