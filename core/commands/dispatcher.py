"""
SBO Command Layer — Command Dispatcher
=========================================
validate_command → policies → CommandOutcome.

The dispatcher only judges. It does not persist, emit events or run
the totals calculation.

A policy is a callable (command, context) → Optional[RejectionReason].
Policies run in registration order and the first rejection wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from core.commands.base import ACTOR_REQUIRED, Command
from core.commands.outcomes import CommandOutcome
from core.commands.rejection import ReasonCode, RejectionReason
from core.commands.validator import (
    CommandContextProtocol,
    CommandValidationError,
    validate_command,
)

logger = logging.getLogger("sbo.commands")

PolicyEvaluator = Callable[
    [Command, CommandContextProtocol],
    Optional[RejectionReason],
]


def system_actor_guard(
    command: Command, context: CommandContextProtocol
) -> Optional[RejectionReason]:
    """SYSTEM actors only issue commands marked SYSTEM_ALLOWED."""
    if command.actor_type == "SYSTEM" and command.actor_requirement == ACTOR_REQUIRED:
        return RejectionReason(
            code=ReasonCode.SYSTEM_ACTOR_FORBIDDEN,
            message=(
                f"'{command.command_type}' must be issued by a person "
                f"or device, not a background job."
            ),
            policy_name="system_actor_guard",
        )
    return None


def _policy_name(policy: PolicyEvaluator) -> str:
    return getattr(policy, "__qualname__", None) or repr(policy)


class CommandDispatcher:
    """
    Usage:
        dispatcher = CommandDispatcher(context=tenant_context)
        dispatcher.register_policy(system_actor_guard)
        outcome = dispatcher.dispatch(command)

    SalesService registers its own policy guard here when given the
    dispatcher.
    """

    def __init__(self, context: CommandContextProtocol):
        self._context = context
        self._policies: List[PolicyEvaluator] = []

    def register_policy(self, policy: PolicyEvaluator) -> None:
        if not callable(policy):
            raise TypeError(
                f"Policy must be callable, got {type(policy).__name__}."
            )
        self._policies.append(policy)
        logger.debug(f"Policy registered: {_policy_name(policy)}")

    def register_policies(self, policies: Iterable[PolicyEvaluator]) -> None:
        for policy in policies:
            self.register_policy(policy)

    def dispatch(self, command: Command) -> CommandOutcome:
        now = datetime.now(timezone.utc)
        rejection = self._first_rejection(command)

        if rejection is None:
            logger.info(
                f"Command {command.command_id} ({command.command_type}) accepted"
            )
            return CommandOutcome.accept(command.command_id, now)

        logger.info(
            f"Command {command.command_id} ({command.command_type}) rejected "
            f"by {rejection.policy_name}: [{rejection.code}] {rejection.message}"
        )
        return CommandOutcome.reject(command.command_id, rejection, now)

    def _first_rejection(self, command: Command) -> Optional[RejectionReason]:
        try:
            validate_command(command, self._context)
        except CommandValidationError as exc:
            return RejectionReason(
                code=exc.code,
                message=exc.message,
                policy_name="command_validator",
            )

        for policy in self._policies:
            rejection = policy(command, self._context)
            if rejection is None:
                continue
            if not isinstance(rejection, RejectionReason):
                raise TypeError(
                    f"Policy {_policy_name(policy)} must return "
                    f"RejectionReason or None, got {type(rejection).__name__}."
                )
            return rejection
        return None
