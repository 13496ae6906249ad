"""
SBO Action Log - App Configuration
==================================
Persistent undo/audit log for executed sales commands.
"""

from django.apps import AppConfig


class CoreActionLogConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core.action_log"
    label = "core_action_log"
    verbose_name = "SBO Action Log"
