"""
SBO Action Log - DB-backed Action Log Store
===========================================
Implements the ActionLogStore protocol on top of ActionLogRecord.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from core.commands.undo import ActionLogEntry, Snapshot, UnknownUndoToken


def _to_entry(record) -> ActionLogEntry:
    return ActionLogEntry(
        undo_token=record.undo_token,
        command_id=record.command_id,
        command_type=record.command_type,
        action_label=record.action_label,
        resource_kind=record.resource_kind,
        resource_id=record.resource_id,
        tenant_id=record.tenant_id,
        organization_id=record.organization_id,
        actor_id=record.actor_id,
        executed_at=record.executed_at,
        snapshot_before=Snapshot.from_dict(record.snapshot_before),
        snapshot_after=Snapshot.from_dict(record.snapshot_after),
        changes=dict(record.changes or {}),
        undone_at=record.undone_at,
    )


class DjangoActionLogStore:
    def append(self, entry: ActionLogEntry) -> None:
        from core.action_log.models import ActionLogRecord

        ActionLogRecord.objects.create(
            undo_token=entry.undo_token,
            command_id=entry.command_id,
            command_type=entry.command_type,
            action_label=entry.action_label,
            resource_kind=entry.resource_kind,
            resource_id=entry.resource_id,
            tenant_id=entry.tenant_id,
            organization_id=entry.organization_id,
            actor_id=entry.actor_id,
            executed_at=entry.executed_at,
            snapshot_before=entry.snapshot_before.to_dict()
            if entry.snapshot_before else None,
            snapshot_after=entry.snapshot_after.to_dict()
            if entry.snapshot_after else None,
            changes=entry.changes,
            undone_at=entry.undone_at,
        )

    def get(self, undo_token: str) -> Optional[ActionLogEntry]:
        from core.action_log.models import ActionLogRecord

        record = ActionLogRecord.objects.filter(undo_token=undo_token).first()
        if record is None:
            return None
        return _to_entry(record)

    def _set_undone_at(
        self, undo_token: str, undone_at: Optional[datetime]
    ) -> ActionLogEntry:
        from core.action_log.models import ActionLogRecord

        updated = ActionLogRecord.objects.filter(
            undo_token=undo_token
        ).update(undone_at=undone_at)
        if not updated:
            raise UnknownUndoToken(undo_token)
        return self.get(undo_token)

    def mark_undone(self, undo_token: str, undone_at: datetime) -> ActionLogEntry:
        return self._set_undone_at(undo_token, undone_at)

    def mark_redone(self, undo_token: str) -> ActionLogEntry:
        return self._set_undone_at(undo_token, None)

    def list_for_resource(
        self, resource_kind: str, resource_id: str
    ) -> List[ActionLogEntry]:
        from core.action_log.models import ActionLogRecord

        records = ActionLogRecord.objects.filter(
            resource_kind=resource_kind,
            resource_id=str(resource_id),
        ).order_by("executed_at", "id")
        return [_to_entry(record) for record in records]
