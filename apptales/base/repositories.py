# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for the transition engine's collaborators.

These define the "what" (read ordered events, upsert transitions) not the
"how" (SQL, in-memory dicts). Concrete implementations in infrastructure/
handle the specifics.

Includes:
- SessionEventRepository: Read-only access to sessions and their events
- TransitionRepository: Transition persistence, top-K reads, project transactions
- EventIdentityRepository: Lazily created event identities

Session and Event rows are owned by the ingestion path; the engine only reads
them. EventIdentity and Transition rows are owned by the engine.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager
from datetime import datetime

from apptales.core.models import (
    Direction,
    EventCategory,
    EventIdentity,
    SessionEvents,
    TopTransition,
    Transition,
    TransitionAggregate,
    TransitionTotals,
)


class SessionEventRepository(ABC):
    """Read interface over sessions and their chronologically ordered events."""

    @abstractmethod
    def project_exists(self, project_id: str) -> bool:
        """Check whether a project exists."""
        ...

    @abstractmethod
    def list_project_ids(self) -> list[str]:
        """Return ids of all projects."""
        ...

    @abstractmethod
    def list_active_project_ids(self, since: datetime) -> list[str]:
        """Return ids of projects with at least one event created at or after ``since``."""
        ...

    @abstractmethod
    def get_session_events(self, session_id: str) -> SessionEvents | None:
        """
        Read one session with its events.

        Events are ordered by creation time, ties broken by insertion order.

        Returns:
            SessionEvents, or None if the session does not exist
        """
        ...

    @abstractmethod
    def iter_project_sessions(self, project_id: str) -> Iterator[SessionEvents]:
        """
        Stream every session of a project with its ordered events.

        Ordering within each session matches get_session_events().
        """
        ...


class TransitionRepository(ABC):
    """Persistence for transitions keyed by (from, to, project)."""

    @abstractmethod
    def transaction(self, project_id: str) -> AbstractContextManager:
        """
        Open a project-scoped transaction.

        Writes for the same project made inside two different transactions
        never interleave. Re-entering from the same thread joins the
        outer transaction. On exception all writes made inside are
        discarded and the exception propagates.
        """
        ...

    @abstractmethod
    def limit_statement_time(self, seconds: float) -> None:
        """
        Bound every later statement of the current transaction to ``seconds``.

        A statement that runs past the limit raises StatementTimeoutError.
        Backends without server-side statements may ignore the limit.
        """
        ...

    @abstractmethod
    def upsert_overwrite(self, project_id: str, aggregates: list[TransitionAggregate]) -> int:
        """
        Set count and avg duration from ``aggregates``, creating missing rows.

        Returns:
            Number of transitions written
        """
        ...

    @abstractmethod
    def upsert_increment(
        self,
        project_id: str,
        aggregates: list[TransitionAggregate],
        weighted_average: bool = False,
    ) -> int:
        """
        Add ``aggregates`` counts to existing rows, creating missing rows.

        The stored avg duration is replaced by the aggregate's own average,
        or folded into a count-weighted running average when
        ``weighted_average`` is set.

        Returns:
            Number of transitions written
        """
        ...

    @abstractmethod
    def list_for_project(self, project_id: str) -> list[Transition]:
        """Return all transitions of a project."""
        ...

    @abstractmethod
    def update_percentages(self, project_id: str, percentages: dict[str, float]) -> int:
        """
        Write percentages by transition id as a single batch.

        Returns:
            Number of rows updated
        """
        ...

    @abstractmethod
    def top_transitions(
        self, project_id: str, event_identity_id: str, direction: Direction, limit: int
    ) -> list[TopTransition]:
        """
        Return up to ``limit`` transitions leaving (FORWARD) or entering
        (BACKWARD) an event identity.

        Ordered by count descending, then the other endpoint's key, then its id.
        """
        ...

    @abstractmethod
    def totals(
        self, project_id: str, event_identity_id: str, direction: Direction
    ) -> TransitionTotals:
        """Count transitions leaving/entering an identity and sum their counts."""
        ...

    @abstractmethod
    def has_any(self, project_id: str) -> bool:
        """Check whether a project has at least one transition, without a full scan."""
        ...


class EventIdentityRepository(ABC):
    """Event identities, created the first time a (key, category) is seen."""

    @abstractmethod
    def get_or_create(self, key: str, category: EventCategory) -> EventIdentity:
        """Return the identity for (key, category), creating it atomically if new."""
        ...

    @abstractmethod
    def get(self, event_identity_id: str) -> EventIdentity | None:
        """Look up an identity by id."""
        ...
