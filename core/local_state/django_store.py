"""
POS Local State - Django-backed Store
=======================================
Requires the `core.local_state` app in INSTALLED_APPS.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from django.db import DatabaseError, transaction

from core.local_state.errors import PersistenceError
from core.local_state.models import LocalStateRecord
from core.local_state.store import _decode, _encode


class DjangoStateStore:
    """StateStore over LocalStateRecord rows, one row per key."""

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            record = LocalStateRecord.objects.filter(key=key).first()
        except DatabaseError as exc:
            raise PersistenceError(key, "read", exc) from exc
        if record is None:
            return None
        if not isinstance(record.document, dict):
            raise PersistenceError(
                key, "read", TypeError("stored document is not an object")
            )
        return record.document

    def write(self, key: str, document: Mapping[str, Any], saved_at: datetime) -> None:
        # Round-trip through the shared encoder so every backend rejects
        # the same unserializable documents.
        payload = _decode(key, _encode(key, document))
        try:
            with transaction.atomic():
                LocalStateRecord.objects.update_or_create(
                    key=key,
                    defaults={"document": payload, "saved_at": saved_at},
                )
        except DatabaseError as exc:
            raise PersistenceError(key, "write", exc) from exc

    def delete(self, key: str) -> bool:
        try:
            deleted, _ = LocalStateRecord.objects.filter(key=key).delete()
        except DatabaseError as exc:
            raise PersistenceError(key, "delete", exc) from exc
        return deleted > 0

    def exists(self, key: str) -> bool:
        try:
            return LocalStateRecord.objects.filter(key=key).exists()
        except DatabaseError as exc:
            raise PersistenceError(key, "read", exc) from exc
