"""
SBO Command Layer — Snapshots & Action Log
=============================================
Every mutating command captures a "before" and "after" snapshot of the
resource graph it touched. The pair is stored in an ActionLogEntry
keyed by an undo token.

Undo  → restore the before snapshot.
Redo  → restore the after snapshot.

Snapshots are frozen, deep-copied, JSON-compatible values. Restoring
is done by the owning engine; this module only stores and looks up.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger("sbo.commands")

SKIPPED_CHANGE_KEYS = frozenset({"updated_at", "updatedAt"})


# ══════════════════════════════════════════════════════════════
# SNAPSHOT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Snapshot:
    """
    Immutable capture of a resource graph.

    resource_kind: e.g. 'sales.document', 'sales.tax_rate'
    resource_id:   identifier inside the kind
    state:         JSON-compatible dict, or None when the resource
                   did not exist (creation before / deletion after)
    """

    resource_kind: str
    resource_id: str
    state: Optional[dict]

    @classmethod
    def capture(
        cls, resource_kind: str, resource_id: str, state: Optional[dict]
    ) -> "Snapshot":
        return cls(
            resource_kind=resource_kind,
            resource_id=resource_id,
            state=copy.deepcopy(state) if state is not None else None,
        )

    @property
    def exists(self) -> bool:
        return self.state is not None

    def restore(self) -> Optional[dict]:
        """Return a fresh copy of the captured state."""
        if self.state is None:
            return None
        return copy.deepcopy(self.state)

    def to_dict(self) -> dict:
        return {
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "state": copy.deepcopy(self.state),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Snapshot"]:
        if not data:
            return None
        return cls.capture(
            data["resource_kind"], data["resource_id"], data.get("state")
        )


def build_changes(
    before: Optional[dict],
    after: Optional[dict],
    keys: Iterable[str],
) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff between two flat dicts.

    Returns {} when there is no before state (creation).
    """
    if not before or after is None:
        return {}
    diff: Dict[str, Dict[str, Any]] = {}
    for key in keys:
        if key in SKIPPED_CHANGE_KEYS:
            continue
        prev = before.get(key)
        nxt = after.get(key)
        if prev != nxt:
            diff[key] = {"from": prev, "to": nxt}
    return diff


# ══════════════════════════════════════════════════════════════
# ACTION LOG ENTRY
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ActionLogEntry:
    """
    Audit record of one executed command with its undo payload.

    undone_at is set when the entry is undone and cleared on redo.
    """

    undo_token: str
    command_id: uuid.UUID
    command_type: str
    action_label: str
    resource_kind: str
    resource_id: str
    tenant_id: uuid.UUID
    organization_id: Optional[uuid.UUID]
    actor_id: str
    executed_at: datetime
    snapshot_before: Optional[Snapshot]
    snapshot_after: Optional[Snapshot]
    changes: dict = field(default_factory=dict)
    undone_at: Optional[datetime] = None

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    def payload(self) -> dict:
        """Undo envelope in the shape extract_undo_payload() expects."""
        return {
            "undo": {
                "before": self.snapshot_before.to_dict()
                if self.snapshot_before else None,
                "after": self.snapshot_after.to_dict()
                if self.snapshot_after else None,
            }
        }


def create_action_log_entry(
    *,
    command_id: uuid.UUID,
    command_type: str,
    action_label: str,
    tenant_id: uuid.UUID,
    organization_id: Optional[uuid.UUID],
    actor_id: str,
    executed_at: datetime,
    before: Snapshot,
    after: Snapshot,
    change_keys: Iterable[str] = (),
) -> ActionLogEntry:
    return ActionLogEntry(
        undo_token=str(uuid.uuid4()),
        command_id=command_id,
        command_type=command_type,
        action_label=action_label,
        resource_kind=after.resource_kind,
        resource_id=after.resource_id,
        tenant_id=tenant_id,
        organization_id=organization_id,
        actor_id=actor_id,
        executed_at=executed_at,
        snapshot_before=before,
        snapshot_after=after,
        changes=build_changes(before.state, after.state, change_keys),
    )


def extract_undo_payload(log_entry: Any) -> Optional[dict]:
    """
    Find the {before, after} undo payload in a log entry.

    Accepts an ActionLogEntry, a dict with 'payload' / 'command_payload'
    keys, or anything carrying snapshot_before / snapshot_after. Falls
    back to the raw snapshots when no undo envelope exists.
    """
    if log_entry is None:
        return None

    if isinstance(log_entry, ActionLogEntry):
        return log_entry.payload()["undo"]

    if isinstance(log_entry, dict):
        raw = log_entry.get("command_payload") or log_entry.get("payload")
        before = log_entry.get("snapshot_before")
        after = log_entry.get("snapshot_after")
    else:
        raw = getattr(log_entry, "command_payload", None) or getattr(
            log_entry, "payload", None
        )
        before = getattr(log_entry, "snapshot_before", None)
        after = getattr(log_entry, "snapshot_after", None)

    if isinstance(raw, dict):
        if isinstance(raw.get("undo"), dict):
            return raw["undo"]
        value = raw.get("value")
        if isinstance(value, dict) and isinstance(value.get("undo"), dict):
            return value["undo"]
        for key, nested in raw.items():
            if key == "__redoInput":
                continue
            if isinstance(nested, dict) and "undo" in nested:
                return nested["undo"]

    if before is None and after is None:
        return None
    return {"before": before, "after": after}


# ══════════════════════════════════════════════════════════════
# ACTION LOG STORE
# ══════════════════════════════════════════════════════════════

class ActionLogStore(Protocol):
    def append(self, entry: ActionLogEntry) -> None:
        ...

    def get(self, undo_token: str) -> Optional[ActionLogEntry]:
        ...

    def mark_undone(self, undo_token: str, undone_at: datetime) -> ActionLogEntry:
        ...

    def mark_redone(self, undo_token: str) -> ActionLogEntry:
        ...

    def list_for_resource(
        self, resource_kind: str, resource_id: str
    ) -> List[ActionLogEntry]:
        ...


class UnknownUndoToken(KeyError):
    def __init__(self, undo_token: str):
        self.undo_token = undo_token
        super().__init__(f"Unknown undo token '{undo_token}'.")


class InMemoryActionLog:
    """Append-only in-memory action log. Thread-safe."""

    def __init__(self) -> None:
        self._entries: Dict[str, ActionLogEntry] = {}
        self._order: List[str] = []
        self._lock = Lock()

    def append(self, entry: ActionLogEntry) -> None:
        with self._lock:
            if entry.undo_token in self._entries:
                raise ValueError(
                    f"Duplicate undo token '{entry.undo_token}'."
                )
            self._entries[entry.undo_token] = entry
            self._order.append(entry.undo_token)
        logger.debug(
            f"Action logged: {entry.command_type} on "
            f"{entry.resource_kind}:{entry.resource_id}"
        )

    def get(self, undo_token: str) -> Optional[ActionLogEntry]:
        with self._lock:
            return self._entries.get(undo_token)

    def _replace(self, undo_token: str, **changes) -> ActionLogEntry:
        with self._lock:
            entry = self._entries.get(undo_token)
            if entry is None:
                raise UnknownUndoToken(undo_token)
            updated = replace(entry, **changes)
            self._entries[undo_token] = updated
            return updated

    def mark_undone(self, undo_token: str, undone_at: datetime) -> ActionLogEntry:
        return self._replace(undo_token, undone_at=undone_at)

    def mark_redone(self, undo_token: str) -> ActionLogEntry:
        return self._replace(undo_token, undone_at=None)

    def list_for_resource(
        self, resource_kind: str, resource_id: str
    ) -> List[ActionLogEntry]:
        with self._lock:
            return [
                self._entries[token]
                for token in self._order
                if self._entries[token].resource_kind == resource_kind
                and self._entries[token].resource_id == resource_id
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)
