"""
SBO Action Log - Persistent Action Log Records
==============================================
One row per executed command, holding the before/after snapshots
needed for undo and redo.
"""

from __future__ import annotations

import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class ActionLogRecord(models.Model):
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )
    undo_token = models.CharField(
        max_length=64,
        unique=True,
        db_index=True,
    )
    command_id = models.UUIDField()
    command_type = models.CharField(max_length=255)
    action_label = models.CharField(max_length=255, blank=True, default="")
    resource_kind = models.CharField(max_length=100)
    resource_id = models.CharField(max_length=255)
    tenant_id = models.UUIDField(db_index=True)
    organization_id = models.UUIDField(null=True, blank=True)
    actor_id = models.CharField(max_length=255)
    executed_at = models.DateTimeField()
    snapshot_before = models.JSONField(
        null=True, blank=True, encoder=DjangoJSONEncoder
    )
    snapshot_after = models.JSONField(
        null=True, blank=True, encoder=DjangoJSONEncoder
    )
    changes = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    undone_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "sbo_action_log"
        ordering = ["executed_at", "id"]
        indexes = [
            models.Index(
                fields=["resource_kind", "resource_id"],
                name="idx_action_log_resource",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.command_type} {self.resource_kind}:{self.resource_id}"
