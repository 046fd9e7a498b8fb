# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the repository interfaces:
- repositories/ - PostgreSQL and in-memory adapters
"""

from apptales.infrastructure.repositories import (
    InMemoryEventIdentityRepository,
    InMemorySessionEventRepository,
    InMemoryStore,
    InMemoryTransitionRepository,
    PostgreSQLDatabase,
    PostgreSQLEventIdentityRepository,
    PostgreSQLSessionEventRepository,
    PostgreSQLTransitionRepository,
)

__all__ = [
    "InMemoryEventIdentityRepository",
    "InMemorySessionEventRepository",
    "InMemoryStore",
    "InMemoryTransitionRepository",
    "PostgreSQLDatabase",
    "PostgreSQLEventIdentityRepository",
    "PostgreSQLSessionEventRepository",
    "PostgreSQLTransitionRepository",
]
