"""
SBO Command Layer
===================
Command → CommandDispatcher → CommandOutcome → CommandBus.

Rejected commands become `...rejected` events. Accepted sales commands
leave an action log entry whose snapshots drive undo and redo.
"""

from core.commands.base import (
    ACTOR_REQUIRED,
    SYSTEM_ALLOWED,
    VALID_ACTOR_TYPES,
    Command,
    command_engine,
    derive_rejection_event_type,
    derive_source_engine,
)
from core.commands.outcomes import CommandOutcome, CommandStatus
from core.commands.rejection import ReasonCode, RejectionReason
from core.commands.validator import (
    CommandContextProtocol,
    CommandValidationError,
    validate_command,
)
from core.commands.dispatcher import (
    CommandDispatcher,
    PolicyEvaluator,
    system_actor_guard,
)
from core.commands.bus import (
    CommandBus,
    CommandBusError,
    CommandResult,
    NoHandlerRegistered,
    build_rejection_event,
    is_persist_accepted,
)
from core.commands.undo import (
    ActionLogEntry,
    ActionLogStore,
    InMemoryActionLog,
    Snapshot,
    UnknownUndoToken,
    build_changes,
    create_action_log_entry,
    extract_undo_payload,
)

__all__ = [
    "Command",
    "ACTOR_REQUIRED",
    "SYSTEM_ALLOWED",
    "VALID_ACTOR_TYPES",
    "command_engine",
    "derive_rejection_event_type",
    "derive_source_engine",
    "CommandOutcome",
    "CommandStatus",
    "RejectionReason",
    "ReasonCode",
    "CommandContextProtocol",
    "CommandValidationError",
    "validate_command",
    "CommandDispatcher",
    "PolicyEvaluator",
    "system_actor_guard",
    "CommandBus",
    "CommandBusError",
    "CommandResult",
    "NoHandlerRegistered",
    "build_rejection_event",
    "is_persist_accepted",
    # ── Undo / action log ─────────────────────────────────────
    "Snapshot",
    "ActionLogEntry",
    "ActionLogStore",
    "InMemoryActionLog",
    "UnknownUndoToken",
    "build_changes",
    "create_action_log_entry",
    "extract_undo_payload",
]
