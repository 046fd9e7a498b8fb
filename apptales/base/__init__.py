# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the contracts of the ports-and-adapters architecture.

The transition engine talks to storage only through these repositories, so
the choice of store (PostgreSQL, in-memory) is an adapter concern.
"""

from apptales.base.repositories import (
    EventIdentityRepository,
    SessionEventRepository,
    TransitionRepository,
)
from apptales.base.runner import BaseRunner

__all__ = [
    "BaseRunner",
    "EventIdentityRepository",
    "SessionEventRepository",
    "TransitionRepository",
]
