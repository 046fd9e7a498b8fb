# ==============================================================================
# Apptales Utilities
# ==============================================================================
"""
Shared utilities for the transition engine.

This module exports configuration and schema helpers.
"""

from apptales.utils.config import (
    PostgresSettings,
    Settings,
    TransitionSettings,
    get_settings,
)
from apptales.utils.db import (
    ensure_schema,
    reset_schema,
)

__all__ = [
    # Config
    "PostgresSettings",
    "Settings",
    "TransitionSettings",
    "get_settings",
    # Database
    "ensure_schema",
    "reset_schema",
]
