"""
SBO Command Layer — Command Bus
==================================
    handle(command)
      ├─ dispatcher says ACCEPTED → handler.execute(command)
      │                             (the engine persists its own event)
      └─ dispatcher says REJECTED → `<action>.rejected` event persisted

Handlers are registered when an engine service is built, never at
import time.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol

from core.commands.base import REQUEST_SUFFIX, Command, derive_rejection_event_type
from core.commands.dispatcher import CommandDispatcher
from core.commands.outcomes import CommandOutcome

logger = logging.getLogger("sbo.commands")


class EngineServiceProtocol(Protocol):
    def execute(self, command: Command) -> Any:
        ...


class PersistEventProtocol(Protocol):
    def __call__(
        self, event_data: dict, context: Any, registry: Any, **kwargs: Any
    ) -> Any:
        ...


class CommandBusError(Exception):
    pass


class NoHandlerRegistered(CommandBusError):
    def __init__(self, command_type: str):
        self.command_type = command_type
        super().__init__(f"No handler registered for '{command_type}'.")


@dataclass(frozen=True)
class CommandResult:
    outcome: CommandOutcome
    execution_result: Any = None
    rejection_event_persisted: bool = False

    @property
    def is_accepted(self) -> bool:
        return self.outcome.is_accepted

    @property
    def is_rejected(self) -> bool:
        return self.outcome.is_rejected


def is_persist_accepted(persist_result: Any) -> bool:
    """Journal results, plain dicts and booleans all count."""
    if hasattr(persist_result, "accepted"):
        return bool(persist_result.accepted)
    if isinstance(persist_result, dict):
        return bool(persist_result.get("accepted"))
    return bool(persist_result)


def build_rejection_event(command: Command, outcome: CommandOutcome) -> dict:
    return {
        "event_id": uuid.uuid4(),
        "event_type": derive_rejection_event_type(command.command_type),
        "event_version": 1,
        "tenant_id": command.tenant_id,
        "organization_id": command.organization_id,
        "source_engine": command.source_engine,
        "actor_type": command.actor_type,
        "actor_id": command.actor_id,
        "correlation_id": command.correlation_id,
        "causation_id": command.command_id,
        "payload": {
            "command_id": str(command.command_id),
            "command_type": command.command_type,
            "rejection": outcome.reason.to_dict(),
            "original_payload": command.payload,
        },
        "created_at": outcome.occurred_at,
    }


class CommandBus:
    """
    Usage:
        bus = CommandBus(
            dispatcher=dispatcher,
            persist_event=journal,
            context=tenant_context,
            event_type_registry=registry,
        )
        SalesService(command_bus=bus, ...)   # registers its handlers
        result = bus.handle(command)
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        persist_event: PersistEventProtocol,
        context: Any,
        event_type_registry: Any,
    ):
        self._dispatcher = dispatcher
        self._persist_event = persist_event
        self._context = context
        self._event_type_registry = event_type_registry
        self._handlers: Dict[str, EngineServiceProtocol] = {}

    def register_handler(
        self, command_type: str, handler: EngineServiceProtocol
    ) -> None:
        if not command_type.endswith(REQUEST_SUFFIX):
            raise ValueError(
                f"command_type '{command_type}' must end with '.request'."
            )
        if not callable(getattr(handler, "execute", None)):
            raise TypeError("Handler must have callable .execute() method.")

        self._handlers[command_type] = handler
        logger.debug(f"Handler registered: {command_type}")

    def has_handler(self, command_type: str) -> bool:
        return command_type in self._handlers

    def handle(self, command: Command) -> CommandResult:
        outcome = self._dispatcher.dispatch(command)

        if outcome.is_rejected:
            return CommandResult(
                outcome=outcome,
                rejection_event_persisted=self._persist_rejection(command, outcome),
            )

        handler = self._handlers.get(command.command_type)
        if handler is None:
            raise NoHandlerRegistered(command.command_type)

        logger.info(f"Executing {command.command_type} ({command.command_id})")
        return CommandResult(
            outcome=outcome,
            execution_result=handler.execute(command),
        )

    def _persist_rejection(self, command: Command, outcome: CommandOutcome) -> bool:
        event_data = build_rejection_event(command, outcome)
        registry = self._event_type_registry
        if registry is not None and not registry.is_registered(event_data["event_type"]):
            registry.register(event_data["event_type"])

        logger.info(
            f"Persisting {event_data['event_type']} for command "
            f"{command.command_id} (reason: {outcome.reason.code})"
        )
        persist_result = self._persist_event(
            event_data=event_data,
            context=self._context,
            registry=registry,
            scope_requirement=command.scope_requirement,
        )
        return is_persist_accepted(persist_result)
