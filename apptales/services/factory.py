# ==============================================================================
# Service Factory
# ==============================================================================
"""
Wires the transition engine to its PostgreSQL repositories.

Used by the CLI and the scheduled job runner. Library callers that already
own repositories construct TransitionService directly.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from apptales.infrastructure.repositories.postgresql import (
    PostgreSQLDatabase,
    PostgreSQLEventIdentityRepository,
    PostgreSQLSessionEventRepository,
    PostgreSQLTransitionRepository,
)
from apptales.services.transition_job import TransitionJob
from apptales.services.transition_service import TransitionService
from apptales.utils.config import Settings, get_settings


@contextmanager
def postgresql_transition_service(
    settings: Settings | None = None,
) -> Iterator[tuple[TransitionService, TransitionJob]]:
    """
    Open a connection pool and yield a ready service and job.

    The pool is closed on exit.
    """
    settings = settings or get_settings()
    db = PostgreSQLDatabase(settings)
    db.connect()
    try:
        session_repo = PostgreSQLSessionEventRepository(db)
        service = TransitionService(
            session_repo,
            PostgreSQLTransitionRepository(db),
            PostgreSQLEventIdentityRepository(db),
            settings=settings.transitions,
        )
        yield service, TransitionJob(service, session_repo)
    finally:
        db.close()
