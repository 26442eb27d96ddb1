"""
POS Local State - App Configuration
=====================================
Durable key/value documents kept on the terminal itself
(the in-progress cart survives a crash or power loss here).
"""

from django.apps import AppConfig


class LocalStateConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core.local_state"
    label = "pos_local_state"
    verbose_name = "POS Local State"
