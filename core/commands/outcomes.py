"""
SBO Command Layer — Outcomes
==============================
The dispatcher's verdict on one command: ACCEPTED (hand it to the
sales engine) or REJECTED (with the reason that goes into the
rejection event).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from core.commands.rejection import RejectionReason


class CommandStatus(Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class CommandOutcome:
    command_id: uuid.UUID
    status: CommandStatus
    reason: Optional[RejectionReason]
    occurred_at: datetime

    def __post_init__(self):
        if not isinstance(self.command_id, uuid.UUID):
            raise ValueError("command_id must be UUID.")
        if not isinstance(self.status, CommandStatus):
            raise ValueError(
                f"status must be CommandStatus, got {type(self.status).__name__}."
            )
        if not isinstance(self.occurred_at, datetime):
            raise ValueError("occurred_at must be a datetime.")

        # A rejection always says why; an acceptance never does.
        if (self.status == CommandStatus.REJECTED) != (self.reason is not None):
            raise ValueError(
                f"{self.status.value} outcome "
                f"{'needs' if self.reason is None else 'must not carry'} "
                f"a RejectionReason."
            )

    @classmethod
    def accept(cls, command_id: uuid.UUID, at: datetime) -> "CommandOutcome":
        return cls(command_id, CommandStatus.ACCEPTED, None, at)

    @classmethod
    def reject(
        cls, command_id: uuid.UUID, reason: RejectionReason, at: datetime
    ) -> "CommandOutcome":
        return cls(command_id, CommandStatus.REJECTED, reason, at)

    @property
    def is_accepted(self) -> bool:
        return self.status == CommandStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return self.status == CommandStatus.REJECTED
