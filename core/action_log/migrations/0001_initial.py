import uuid

import django.core.serializers.json
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ActionLogRecord",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "undo_token",
                    models.CharField(
                        db_index=True,
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("command_id", models.UUIDField()),
                ("command_type", models.CharField(max_length=255)),
                (
                    "action_label",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("resource_kind", models.CharField(max_length=100)),
                ("resource_id", models.CharField(max_length=255)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("organization_id", models.UUIDField(blank=True, null=True)),
                ("actor_id", models.CharField(max_length=255)),
                ("executed_at", models.DateTimeField()),
                (
                    "snapshot_before",
                    models.JSONField(
                        blank=True,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        null=True,
                    ),
                ),
                (
                    "snapshot_after",
                    models.JSONField(
                        blank=True,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        null=True,
                    ),
                ),
                (
                    "changes",
                    models.JSONField(
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                    ),
                ),
                ("undone_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "sbo_action_log",
                "ordering": ["executed_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["resource_kind", "resource_id"],
                        name="idx_action_log_resource",
                    )
                ],
            },
        ),
    ]
