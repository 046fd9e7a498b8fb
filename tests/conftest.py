# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- An in-memory store with one project and helpers to seed sessions
- In-memory repositories and a TransitionService / TransitionJob wired to them
"""

from datetime import UTC, datetime, timedelta

import pytest

from apptales.core.models import EventCategory, EventIdentity
from apptales.infrastructure.repositories.memory import (
    InMemoryEventIdentityRepository,
    InMemorySessionEventRepository,
    InMemoryStore,
    InMemoryTransitionRepository,
)
from apptales.services.transition_job import TransitionJob
from apptales.services.transition_service import TransitionService
from apptales.utils.config import TransitionSettings

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture()
def store():
    """A fresh in-memory store with project 'p1'."""
    store = InMemoryStore()
    store.add_project("p1", "Demo")
    return store


@pytest.fixture()
def identities(store):
    """Page-view identities A, B, C, D and X keyed by letter."""
    return {
        letter: store.add_identity(
            f"page_view:/{letter.lower()}", EventCategory.PAGE_VIEW, identity_id=letter
        )
        for letter in "ABCDX"
    }


@pytest.fixture()
def seed_session(store):
    """Factory that records a session from (identity, offset seconds) steps.

    Usage:
        seed_session("p1", [("A", 0), ("B", 2.5)])
    """

    def _seed(project_id: str, steps, session_id: str | None = None, start: datetime = T0) -> str:
        sid = store.add_session(project_id, session_id)
        for step in steps:
            identity, offset = step
            if isinstance(identity, EventIdentity):
                identity = identity.id
            store.add_event(sid, identity, start + timedelta(seconds=offset))
        return sid

    return _seed


@pytest.fixture()
def settings():
    """Transition settings with test-friendly defaults."""
    return TransitionSettings(
        default_top_n=5,
        max_top_n=20,
        max_depth=5,
        default_depth=3,
        compute_timeout_seconds=60.0,
        incremental_weighted_avg=False,
        graph_query_workers=4,
        job_max_workers=2,
    )


@pytest.fixture()
def session_repo(store):
    return InMemorySessionEventRepository(store)


@pytest.fixture()
def transition_repo(store):
    return InMemoryTransitionRepository(store)


@pytest.fixture()
def identity_repo(store):
    return InMemoryEventIdentityRepository(store)


@pytest.fixture()
def service(session_repo, transition_repo, identity_repo, settings):
    """A TransitionService backed by the in-memory repositories."""
    return TransitionService(session_repo, transition_repo, identity_repo, settings=settings)


@pytest.fixture()
def job(service, session_repo):
    return TransitionJob(service, session_repo)
