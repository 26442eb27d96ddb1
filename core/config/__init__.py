"""
POS Core Config: Public API
=============================
Engine settings loaded from the POS_ENGINE Django setting.
"""

from core.config.settings import (
    CacheSettings,
    InputTimingSettings,
    PersistenceSettings,
    PosSettings,
    PrinterSettings,
    ScanIndexSettings,
    StoreInfo,
    build_state_store,
    load_pos_settings,
    with_persistence,
)

__all__ = [
    "CacheSettings",
    "InputTimingSettings",
    "PersistenceSettings",
    "PosSettings",
    "PrinterSettings",
    "ScanIndexSettings",
    "StoreInfo",
    "build_state_store",
    "load_pos_settings",
    "with_persistence",
]
