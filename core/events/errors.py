"""
SBO Events — Errors
=====================
Only registration mistakes raise. The journal reports its refusals
as PersistResult values carrying a PersistRejectionCode.
"""


class EventBusError(Exception):
    pass


class InvalidEventType(EventBusError, ValueError):
    def __init__(self, event_type):
        self.event_type = event_type
        super().__init__(
            f"Event type '{event_type}' does not follow "
            f"engine.domain.action format."
        )


class DuplicateSubscriberError(EventBusError):
    def __init__(self, event_type: str, handler_name: str):
        self.event_type = event_type
        self.handler_name = handler_name
        super().__init__(
            f"'{handler_name}' already listens to '{event_type}'."
        )


class SelfSubscriptionError(EventBusError):
    """An engine listening to its own events must say so explicitly."""

    def __init__(self, engine: str, event_type: str):
        self.engine = engine
        self.event_type = event_type
        super().__init__(
            f"Engine '{engine}' subscribed to its own event "
            f"'{event_type}' without allow_self=True."
        )


class PersistRejectionCode:
    EVENT_TYPE_UNKNOWN = "EVENT_TYPE_UNKNOWN"
    MISSING_FIELD = "MISSING_FIELD"
    NO_ACTIVE_CONTEXT = "NO_ACTIVE_CONTEXT"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    ORGANIZATION_NOT_IN_TENANT = "ORGANIZATION_NOT_IN_TENANT"
    ORGANIZATION_REQUIRED_MISSING = "ORGANIZATION_REQUIRED_MISSING"
    DUPLICATE_EVENT = "DUPLICATE_EVENT"
