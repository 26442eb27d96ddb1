"""
POS Core Config: Engine Settings
==================================
Typed, validated view of the `POS_ENGINE` Django setting.

Engine components never read django.conf directly; they receive
a PosSettings (or one of its parts) at construction. Tests build
PosSettings by hand or through load_pos_settings(overrides=...).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger("pos.config")

PERSISTENCE_BACKENDS = frozenset({"memory", "file", "django"})


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}.")


# ══════════════════════════════════════════════════════════════
# SETTINGS GROUPS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CacheSettings:
    """Product query cache. The scan index TTL should stay longer."""

    ttl_ms: int = 3000
    max_entries: int = 200

    def __post_init__(self) -> None:
        _require_positive("cache.ttl_ms", self.ttl_ms)
        _require_positive("cache.max_entries", self.max_entries)


@dataclass(frozen=True)
class ScanIndexSettings:
    ttl_ms: int = 5000
    max_entries: int = 2000

    def __post_init__(self) -> None:
        _require_positive("scan_index.ttl_ms", self.ttl_ms)
        _require_positive("scan_index.max_entries", self.max_entries)


@dataclass(frozen=True)
class InputTimingSettings:
    search_debounce_ms: int = 200
    scan_repeat_window_ms: int = 100

    def __post_init__(self) -> None:
        _require_positive("input.search_debounce_ms", self.search_debounce_ms)
        _require_positive("input.scan_repeat_window_ms", self.scan_repeat_window_ms)


@dataclass(frozen=True)
class PersistenceSettings:
    """
    Where the cart history document lives.

    backend:
        memory  - lost when the process exits
        file    - JSON files under `directory`
        django  - LocalStateRecord rows (needs core.local_state installed)
    """

    storage_key: str = "pos_cart_history"
    backend: str = "memory"
    directory: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.storage_key or not isinstance(self.storage_key, str):
            raise ValueError("persistence.storage_key must be a non-empty string.")
        if self.backend not in PERSISTENCE_BACKENDS:
            raise ValueError(
                f"persistence.backend must be one of {sorted(PERSISTENCE_BACKENDS)}, "
                f"got '{self.backend}'."
            )
        if self.backend == "file" and not self.directory:
            raise ValueError("persistence.directory is required for the file backend.")


@dataclass(frozen=True)
class PrinterSettings:
    printer_name: Optional[str] = None
    copies: int = 1
    preview: bool = False
    silent: bool = True
    width: int = 300
    height: int = 600
    margin: str = "0 0 0 0"

    def __post_init__(self) -> None:
        _require_positive("printer.copies", self.copies)
        _require_positive("printer.width", self.width)
        _require_positive("printer.height", self.height)


@dataclass(frozen=True)
class StoreInfo:
    """Header printed on receipts."""

    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class PosSettings:
    cache: CacheSettings = field(default_factory=CacheSettings)
    scan_index: ScanIndexSettings = field(default_factory=ScanIndexSettings)
    input: InputTimingSettings = field(default_factory=InputTimingSettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    printer: PrinterSettings = field(default_factory=PrinterSettings)
    store: StoreInfo = field(default_factory=StoreInfo)

    def __post_init__(self) -> None:
        if self.scan_index.ttl_ms < self.cache.ttl_ms:
            logger.warning(
                f"scan index TTL ({self.scan_index.ttl_ms} ms) is shorter than "
                f"query cache TTL ({self.cache.ttl_ms} ms)"
            )


_SECTIONS: Tuple[Tuple[str, type], ...] = (
    ("cache", CacheSettings),
    ("scan_index", ScanIndexSettings),
    ("input", InputTimingSettings),
    ("persistence", PersistenceSettings),
    ("printer", PrinterSettings),
    ("store", StoreInfo),
)


# ══════════════════════════════════════════════════════════════
# LOADING
# ══════════════════════════════════════════════════════════════

def _django_pos_engine() -> Mapping[str, Any]:
    from django.conf import settings as django_settings

    if not django_settings.configured:
        return {}
    raw = getattr(django_settings, "POS_ENGINE", None) or {}
    if not isinstance(raw, Mapping):
        raise ValueError("POS_ENGINE must be a mapping.")
    return raw


def _merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {k: dict(v) if isinstance(v, Mapping) else v for k, v in base.items()}
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _build_section(name: str, cls: type, raw: Any) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, Mapping):
        raise ValueError(f"POS_ENGINE['{name}'] must be a mapping.")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown POS_ENGINE['{name}'] keys: {sorted(unknown)}.")
    return cls(**dict(raw))


def load_pos_settings(overrides: Optional[Mapping[str, Any]] = None) -> PosSettings:
    """
    Build PosSettings from Django's POS_ENGINE merged with `overrides`.

    Both are dicts of section name to dict of field values, e.g.
    {"cache": {"ttl_ms": 1000}}. Unknown sections or keys raise
    ValueError.
    """
    raw = _merge(_django_pos_engine(), overrides or {})
    unknown = set(raw) - {name for name, _ in _SECTIONS}
    if unknown:
        raise ValueError(f"Unknown POS_ENGINE sections: {sorted(unknown)}.")
    sections = {name: _build_section(name, cls, raw.get(name)) for name, cls in _SECTIONS}
    return PosSettings(**sections)


def with_persistence(settings: PosSettings, **changes: Any) -> PosSettings:
    return replace(settings, persistence=replace(settings.persistence, **changes))


def build_state_store(settings: PosSettings):
    """Key/value store for the configured persistence backend."""
    backend = settings.persistence.backend
    if backend == "memory":
        from core.local_state.store import InMemoryStateStore

        return InMemoryStateStore()
    if backend == "file":
        from core.local_state.store import JsonFileStateStore

        return JsonFileStateStore(Path(settings.persistence.directory))
    from core.local_state.django_store import DjangoStateStore

    return DjangoStateStore()
