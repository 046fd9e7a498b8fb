# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
- In-memory (memory.py), for tests and local experimentation
"""

from apptales.infrastructure.repositories.memory import (
    InMemoryEventIdentityRepository,
    InMemorySessionEventRepository,
    InMemoryStore,
    InMemoryTransitionRepository,
)
from apptales.infrastructure.repositories.postgresql import (
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
