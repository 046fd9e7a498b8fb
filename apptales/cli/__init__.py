# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for apptales.

Commands are organized into separate modules for maintainability:
- shared.py: Colors, icons and output helpers
- transitions.py: Compute, top-K, graph and schedule commands
- db.py: Schema init and reset
- config.py: Configuration display
"""

from apptales.cli.shared import (
    # Classes
    Colors,
    Icons,
    # Aliases
    C,
    I,
    # Output helpers
    fail,
    ok,
)

__all__ = [
    "Colors",
    "Icons",
    "C",
    "I",
    "fail",
    "ok",
]
