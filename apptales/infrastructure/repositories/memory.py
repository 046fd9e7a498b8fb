# ==============================================================================
# In-Memory Repository Implementations
# ==============================================================================
"""
Thread-safe in-memory implementations of the repository interfaces.

Provides:
- InMemoryStore: Shared state plus seeding helpers (projects, sessions, events)
- InMemorySessionEventRepository
- InMemoryTransitionRepository
- InMemoryEventIdentityRepository

Semantics match the PostgreSQL adapters: upserts are atomic on the
(from, to, project) key, project transactions are serialized per project and
roll back on error, and ordering ties are broken the same way.
"""

import copy
import logging
import threading
import uuid
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from apptales.base.repositories import (
    EventIdentityRepository,
    SessionEventRepository,
    TransitionRepository,
)
from apptales.core.models import (
    Direction,
    EventCategory,
    EventIdentity,
    EventRef,
    SequenceEvent,
    SessionEvents,
    TopTransition,
    Transition,
    TransitionAggregate,
    TransitionTotals,
    round_half_up,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class _StoredEvent:
    event_identity_id: str
    created_at: datetime
    seq: int


class InMemoryStore:
    """
    Backing state shared by the in-memory repositories.

    The seeding helpers stand in for the ingestion path, which owns sessions
    and events.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.projects: dict[str, str] = {}
        self.sessions: dict[str, str] = {}  # session_id -> project_id
        self.events: dict[str, list[_StoredEvent]] = defaultdict(list)
        self.identities: dict[str, EventIdentity] = {}
        self.transitions: dict[tuple[str, str, str], Transition] = {}
        self._project_locks: dict[str, threading.RLock] = {}
        self._seq = 0

    # --------------------------------------------------------------------------
    # Seeding helpers
    # --------------------------------------------------------------------------

    def add_project(self, project_id: str | None = None, name: str = "") -> str:
        project_id = project_id or _new_id()
        with self.lock:
            self.projects[project_id] = name or project_id
        return project_id

    def add_session(self, project_id: str, session_id: str | None = None) -> str:
        session_id = session_id or _new_id()
        with self.lock:
            if project_id not in self.projects:
                raise KeyError(f"Unknown project {project_id}")
            self.sessions[session_id] = project_id
        return session_id

    def add_identity(
        self, key: str, category: EventCategory = EventCategory.PAGE_VIEW, identity_id: str | None = None
    ) -> EventIdentity:
        with self.lock:
            for identity in self.identities.values():
                if identity.key == key and identity.category == category:
                    return identity
            identity = EventIdentity(
                id=identity_id or _new_id(),
                key=key,
                category=category,
                created_at=datetime.now(UTC),
            )
            self.identities[identity.id] = identity
            return identity

    def add_event(
        self,
        session_id: str,
        event_identity_id: str,
        created_at: datetime,
    ) -> None:
        with self.lock:
            if session_id not in self.sessions:
                raise KeyError(f"Unknown session {session_id}")
            self._seq += 1
            self.events[session_id].append(
                _StoredEvent(
                    event_identity_id=event_identity_id,
                    created_at=created_at,
                    seq=self._seq,
                )
            )

    def project_lock(self, project_id: str) -> threading.RLock:
        with self.lock:
            if project_id not in self._project_locks:
                self._project_locks[project_id] = threading.RLock()
            return self._project_locks[project_id]

    def ordered_events(self, session_id: str) -> list[SequenceEvent]:
        stored = sorted(self.events.get(session_id, []), key=lambda e: (e.created_at, e.seq))
        return [
            SequenceEvent(event_identity_id=e.event_identity_id, created_at=e.created_at)
            for e in stored
        ]


class InMemorySessionEventRepository(SessionEventRepository):
    """In-memory implementation of SessionEventRepository."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    def project_exists(self, project_id: str) -> bool:
        return project_id in self._store.projects

    def list_project_ids(self) -> list[str]:
        with self._store.lock:
            return sorted(self._store.projects)

    def list_active_project_ids(self, since: datetime) -> list[str]:
        with self._store.lock:
            active = {
                self._store.sessions[session_id]
                for session_id, events in self._store.events.items()
                if any(e.created_at >= since for e in events)
            }
        return sorted(active)

    def get_session_events(self, session_id: str) -> SessionEvents | None:
        with self._store.lock:
            project_id = self._store.sessions.get(session_id)
            if project_id is None:
                return None
            events = self._store.ordered_events(session_id)
        return SessionEvents(session_id=session_id, project_id=project_id, events=events)

    def iter_project_sessions(self, project_id: str) -> Iterator[SessionEvents]:
        with self._store.lock:
            session_ids = sorted(
                sid for sid, pid in self._store.sessions.items() if pid == project_id
            )
            snapshot = [(sid, self._store.ordered_events(sid)) for sid in session_ids]
        for session_id, events in snapshot:
            yield SessionEvents(session_id=session_id, project_id=project_id, events=events)


class InMemoryTransitionRepository(TransitionRepository):
    """
    In-memory implementation of TransitionRepository.

    A project transaction holds the project's lock and snapshots its
    transitions; any exception restores the snapshot.
    """

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._local = threading.local()

    @contextmanager
    def transaction(self, project_id: str):
        active = getattr(self._local, "projects", None)
        if active is None:
            active = self._local.projects = set()
        if project_id in active:
            yield
            return

        with self._store.project_lock(project_id):
            with self._store.lock:
                snapshot = {
                    key: copy.deepcopy(t)
                    for key, t in self._store.transitions.items()
                    if key[2] == project_id
                }
            active.add(project_id)
            try:
                yield
            except BaseException:
                with self._store.lock:
                    for key in [k for k in self._store.transitions if k[2] == project_id]:
                        del self._store.transitions[key]
                    self._store.transitions.update(snapshot)
                raise
            finally:
                active.discard(project_id)

    def limit_statement_time(self, seconds: float) -> None:
        # in-memory writes are not interruptible
        pass

    def upsert_overwrite(self, project_id: str, aggregates: list[TransitionAggregate]) -> int:
        now = datetime.now(UTC)
        with self._store.lock:
            for agg in aggregates:
                existing = self._store.transitions.get((*agg.key, project_id))
                if existing is None:
                    self._insert(project_id, agg, now)
                else:
                    existing.count = agg.count
                    existing.avg_duration_ms = agg.avg_duration_ms
                    existing.updated_at = now
        return len(aggregates)

    def upsert_increment(
        self,
        project_id: str,
        aggregates: list[TransitionAggregate],
        weighted_average: bool = False,
    ) -> int:
        now = datetime.now(UTC)
        with self._store.lock:
            for agg in aggregates:
                existing = self._store.transitions.get((*agg.key, project_id))
                if existing is None:
                    self._insert(project_id, agg, now)
                    continue
                if weighted_average and existing.avg_duration_ms is not None:
                    existing.avg_duration_ms = round_half_up(
                        (existing.avg_duration_ms * existing.count + agg.total_duration_ms)
                        / (existing.count + agg.count)
                    )
                else:
                    existing.avg_duration_ms = agg.avg_duration_ms
                existing.count += agg.count
                existing.updated_at = now
        return len(aggregates)

    def _insert(self, project_id: str, agg: TransitionAggregate, now: datetime) -> None:
        self._store.transitions[(*agg.key, project_id)] = Transition(
            id=_new_id(),
            from_event_identity_id=agg.from_event_identity_id,
            to_event_identity_id=agg.to_event_identity_id,
            project_id=project_id,
            count=agg.count,
            avg_duration_ms=agg.avg_duration_ms,
            updated_at=now,
        )

    def list_for_project(self, project_id: str) -> list[Transition]:
        with self._store.lock:
            return [
                t.model_copy() for key, t in self._store.transitions.items() if key[2] == project_id
            ]

    def update_percentages(self, project_id: str, percentages: dict[str, float]) -> int:
        with self._store.lock:
            by_id = {
                t.id: t for key, t in self._store.transitions.items() if key[2] == project_id
            }
            missing = set(percentages) - set(by_id)
            if missing:
                raise KeyError(f"Unknown transitions for project {project_id}: {sorted(missing)}")
            for transition_id, percentage in percentages.items():
                by_id[transition_id].percentage = percentage
        return len(percentages)

    def top_transitions(
        self, project_id: str, event_identity_id: str, direction: Direction, limit: int
    ) -> list[TopTransition]:
        rows = []
        with self._store.lock:
            for t in self._matching(project_id, event_identity_id, direction):
                other_id = (
                    t.to_event_identity_id
                    if direction == Direction.FORWARD
                    else t.from_event_identity_id
                )
                identity = self._store.identities.get(other_id)
                if identity is None:
                    continue  # inner join semantics
                rows.append((t, identity))

        rows.sort(key=lambda r: (-r[0].count, r[1].key, r[1].id))
        return [
            TopTransition(
                event=EventRef(id=identity.id, key=identity.key),
                count=t.count,
                percentage=t.percentage,
                avg_duration_ms=t.avg_duration_ms,
                direction=direction,
            )
            for t, identity in rows[:limit]
        ]

    def totals(
        self, project_id: str, event_identity_id: str, direction: Direction
    ) -> TransitionTotals:
        with self._store.lock:
            matching = list(self._matching(project_id, event_identity_id, direction))
        return TransitionTotals(
            transition_count=len(matching), total_count=sum(t.count for t in matching)
        )

    def has_any(self, project_id: str) -> bool:
        with self._store.lock:
            return any(key[2] == project_id for key in self._store.transitions)

    def _matching(self, project_id: str, event_identity_id: str, direction: Direction):
        for (from_id, to_id, pid), t in self._store.transitions.items():
            if pid != project_id:
                continue
            anchor = from_id if direction == Direction.FORWARD else to_id
            if anchor == event_identity_id:
                yield t


class InMemoryEventIdentityRepository(EventIdentityRepository):
    """In-memory implementation of EventIdentityRepository."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    def get_or_create(self, key: str, category: EventCategory) -> EventIdentity:
        return self._store.add_identity(key, category)

    def get(self, event_identity_id: str) -> EventIdentity | None:
        return self._store.identities.get(event_identity_id)
