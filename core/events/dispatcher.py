"""
SBO Events — Dispatch
=======================
Hands an already-appended event to its subscribers, one after
another. A subscriber that raises is logged and recorded in the
report; the rest still run and the event stays appended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List

from core.events.registry import SubscriberRegistry

logger = logging.getLogger("sbo.events")


@dataclass(frozen=True)
class SubscriberFailure:
    handler: str
    engine: str
    error: str
    error_type: str


@dataclass
class DispatchReport:
    event_type: str
    event_id: str
    notified: int = 0
    failures: List[SubscriberFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def _field(event: Any, key: str) -> Any:
    if isinstance(event, dict):
        return event.get(key)
    return getattr(event, key, None)


def dispatch(event: Any, registry: SubscriberRegistry) -> DispatchReport:
    report = DispatchReport(
        event_type=_field(event, "event_type"),
        event_id=str(_field(event, "event_id")),
    )

    for subscription in registry.subscriptions_for(report.event_type):
        try:
            subscription.handler(event)
        except Exception as exc:
            report.failures.append(SubscriberFailure(
                handler=subscription.handler_name,
                engine=subscription.engine,
                error=str(exc),
                error_type=type(exc).__name__,
            ))
            logger.error(
                f"Subscriber {subscription.handler_name} failed on "
                f"{report.event_type} ({report.event_id}): {exc}",
                exc_info=True,
            )
        else:
            report.notified += 1

    if report.notified or report.failures:
        logger.debug(
            f"Dispatched {report.event_type} ({report.event_id}): "
            f"{report.notified} notified, {report.failed} failed"
        )
    return report
