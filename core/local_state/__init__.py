"""
POS Local State
=================
Durable per-terminal documents. The Django-backed store lives in
core.local_state.django_store so this package imports without a
configured Django project.
"""

from core.local_state.errors import PersistenceError
from core.local_state.store import (
    InMemoryStateStore,
    JsonFileStateStore,
    StateStore,
)

__all__ = [
    "InMemoryStateStore",
    "JsonFileStateStore",
    "PersistenceError",
    "StateStore",
]
