"""
POS Local State - Key/Value Document Record
=============================================
One row per storage key. The document is opaque JSON to this
layer; callers own its shape.
"""

from __future__ import annotations

from django.db import models


class LocalStateRecord(models.Model):
    key = models.CharField(max_length=255, primary_key=True)
    document = models.JSONField()
    saved_at = models.DateTimeField()

    class Meta:
        db_table = "pos_local_state"
        ordering = ["key"]

    def __str__(self) -> str:
        return f"{self.key} @ {self.saved_at.isoformat()}"
