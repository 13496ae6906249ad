"""
SBO Events — Registries
=========================
EventTypeRegistry   which event types the journal may append.
SubscriberRegistry  which handlers hear about them afterwards.

Both start empty. SalesService registers the sales event types when it
is built; reporting or notification code subscribes to
`sales.document.totals_calculated.v1` and friends.

Event types read engine.domain.action[.version], at least three
dot-separated segments. Both registries are thread-safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List

from core.events.errors import (
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventType,
    SelfSubscriptionError,
)

logger = logging.getLogger("sbo.events")

EventHandler = Callable[[Any], Any]


def check_event_type(event_type) -> str:
    """Return the owning engine or raise InvalidEventType."""
    if not event_type or not isinstance(event_type, str):
        raise InvalidEventType(event_type or "")
    parts = event_type.strip().split(".")
    if len(parts) < 3 or not all(parts):
        raise InvalidEventType(event_type)
    return parts[0]


class EventTypeRegistry:
    """
    Usage:
        registry = EventTypeRegistry()
        registry.register("sales.document.created.v1")
        registry.is_registered("sales.document.created.v1")  # True
    """

    def __init__(self):
        self._types: set[str] = set()
        self._lock = Lock()

    def register(self, event_type: str) -> None:
        check_event_type(event_type)
        with self._lock:
            self._types.add(event_type)

    def is_registered(self, event_type: str) -> bool:
        with self._lock:
            return event_type in self._types

    def get_all_registered(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._types)

    def count(self) -> int:
        with self._lock:
            return len(self._types)


@dataclass(frozen=True)
class Subscription:
    event_type: str
    handler: EventHandler
    engine: str

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__qualname__", None) or repr(self.handler)


class SubscriberRegistry:
    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = Lock()

    def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        *,
        engine: str,
        allow_self: bool = False,
    ) -> Subscription:
        """
        Raises:
            InvalidEventType:         malformed event type
            SelfSubscriptionError:    engine listens to itself without allow_self
            DuplicateSubscriberError: same handler twice for one type
        """
        source_engine = check_event_type(event_type)
        if not callable(handler):
            raise EventBusError(
                f"Handler must be callable, got {type(handler).__name__}."
            )
        if source_engine == engine and not allow_self:
            raise SelfSubscriptionError(engine, event_type)

        subscription = Subscription(event_type, handler, engine)
        with self._lock:
            current = self._subscriptions.setdefault(event_type, [])
            if any(s.handler is handler for s in current):
                raise DuplicateSubscriberError(
                    event_type, subscription.handler_name
                )
            current.append(subscription)

        logger.info(
            f"Subscriber registered: {subscription.handler_name} → "
            f"{event_type} (engine: {engine})"
        )
        return subscription

    def subscriptions_for(self, event_type: str) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(event_type, ()))

    def subscriber_count(self, event_type: str) -> int:
        return len(self.subscriptions_for(event_type))

    def has_subscribers(self, event_type: str) -> bool:
        return self.subscriber_count(event_type) > 0
