"""
POS Terminal – Django Settings
================================
Django is the container for durable local state (core.local_state)
and for process configuration. The engine itself reads only the
POS_ENGINE dict, through core.config.load_pos_settings().
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("POS_SECRET_KEY", "pos-dev-key-replace-before-deployment")

DEBUG = os.environ.get("POS_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # ── POS Modules ───────────────────────────────────────
    "core.local_state",
]

MIDDLEWARE = []

# ── Database ──────────────────────────────────────────────────
# SQLite on the terminal itself. One file per till.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("POS_DB_PATH", str(BASE_DIR / "pos_terminal.sqlite3")),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "terminal": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "terminal",
        },
    },
    "loggers": {
        "pos": {
            "handlers": ["console"],
            "level": os.environ.get("POS_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}

# ── POS Engine ────────────────────────────────────────────────
# Read by core.config.load_pos_settings(). Sections and keys mirror
# the dataclasses in core/config/settings.py.
POS_ENGINE = {
    "cache": {"ttl_ms": 3000, "max_entries": 200},
    "scan_index": {"ttl_ms": 5000, "max_entries": 2000},
    "input": {"search_debounce_ms": 200, "scan_repeat_window_ms": 100},
    "persistence": {
        "storage_key": "pos_cart_history",
        "backend": os.environ.get("POS_PERSISTENCE_BACKEND", "django"),
    },
    "printer": {
        "printer_name": os.environ.get("POS_PRINTER_NAME") or None,
        "copies": 1,
        "preview": False,
        "silent": True,
        "width": 300,
        "height": 600,
        "margin": "0 0 0 0",
    },
    "store": {
        "name": "",
        "address": "",
        "phone": "",
        "email": "",
    },
}
