"""
POS Local State - Key/Value Stores
====================================
A StateStore holds one JSON document per key.

Implementations:
    InMemoryStateStore  - tests and ephemeral terminals
    JsonFileStateStore  - one JSON file per key, atomic replace
    DjangoStateStore    - LocalStateRecord rows (core.local_state.django_store)

Every failure surfaces as PersistenceError. Callers decide
whether that is fatal; for cart history it never is.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from core.local_state.errors import PersistenceError

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


# ══════════════════════════════════════════════════════════════
# STORE PROTOCOL
# ══════════════════════════════════════════════════════════════

class StateStore(Protocol):
    def read(self, key: str) -> Optional[Dict[str, Any]]:
        ...  # pragma: no cover

    def write(self, key: str, document: Mapping[str, Any], saved_at: datetime) -> None:
        ...  # pragma: no cover

    def delete(self, key: str) -> bool:
        ...  # pragma: no cover

    def exists(self, key: str) -> bool:
        ...  # pragma: no cover


def _encode(key: str, document: Mapping[str, Any]) -> str:
    try:
        return json.dumps(document, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(key, "write", exc) from exc


def _decode(key: str, text: str) -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise PersistenceError(key, "read", exc) from exc
    if not isinstance(document, dict):
        raise PersistenceError(
            key, "read", TypeError(f"expected object, got {type(document).__name__}")
        )
    return document


# ══════════════════════════════════════════════════════════════
# IN-MEMORY STORE
# ══════════════════════════════════════════════════════════════

class InMemoryStateStore:
    """Documents kept as encoded JSON text, so shape errors show up here too."""

    def __init__(self) -> None:
        self._documents: Dict[str, str] = {}
        self._saved_at: Dict[str, datetime] = {}

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        text = self._documents.get(key)
        if text is None:
            return None
        return _decode(key, text)

    def write(self, key: str, document: Mapping[str, Any], saved_at: datetime) -> None:
        self._documents[key] = _encode(key, document)
        self._saved_at[key] = saved_at

    def delete(self, key: str) -> bool:
        self._saved_at.pop(key, None)
        return self._documents.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return key in self._documents

    def saved_at(self, key: str) -> Optional[datetime]:
        return self._saved_at.get(key)


# ══════════════════════════════════════════════════════════════
# JSON FILE STORE
# ══════════════════════════════════════════════════════════════

class JsonFileStateStore:
    """
    One `<key>.json` file per key under `directory`.

    Writes go to a temporary file first and are moved into place,
    so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, directory: os.PathLike | str) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Storage key '{key}' contains unsupported characters.")
        return self._directory / f"{key}.json"

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(key, "read", exc) from exc
        return _decode(key, text)

    def write(self, key: str, document: Mapping[str, Any], saved_at: datetime) -> None:
        path = self._path(key)
        text = _encode(key, document)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._directory, prefix=f".{key}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                os.replace(tmp_name, path)
                os.utime(path, (saved_at.timestamp(), saved_at.timestamp()))
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError as exc:
            raise PersistenceError(key, "write", exc) from exc

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise PersistenceError(key, "delete", exc) from exc
        return True

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()
