# ==============================================================================
# Transition Service - Session Transition Aggregation Engine
# ==============================================================================
"""
The transition engine: turns ordered session events into weighted
"what users do next" edges and answers top-K and graph queries over them.

Operating modes:
    1. Full recompute   - re-derives every aggregate of a project and
                          overwrites counts and average durations
    2. Incremental      - derives pairs for one session and adds its counts
                          to the stored transitions

Both modes finish by recomputing the project's percentages inside the same
project transaction, so (aggregate, upsert, percentages) is one unit that
never interleaves with another compute of the same project.

Repositories are injected; the service holds no module-level connections.

Usage:
    service = TransitionService(session_repo, transition_repo, identity_repo)
    service.compute_transitions_for_project(project_id)
    service.get_top_transitions_from_event(project_id, anchor_id, top_n=5)
"""

import logging
import time
from dataclasses import dataclass
from functools import partial

from apptales.base.repositories import (
    EventIdentityRepository,
    SessionEventRepository,
    TransitionRepository,
)
from apptales.core.exceptions import (
    ComputeTimeoutError,
    EventIdentityNotFoundError,
    ProjectNotFoundError,
    StatementTimeoutError,
)
from apptales.core.graph_builder import TransitionGraphBuilder
from apptales.core.models import (
    Direction,
    EventIdentity,
    EventRef,
    TopTransition,
    TransitionAggregate,
    TransitionGraph,
    build_event_key,
    get_event_category,
)
from apptales.core.transition_processor import (
    aggregate_transitions,
    calculate_percentages,
    pairs_for_session,
)
from apptales.utils.config import TransitionSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ComputeStats:
    """Summary of one compute call.

    Attributes:
        project_id: Project the transitions belong to
        sessions: Sessions read
        pairs: Transition pairs extracted after collapsing
        transitions: Distinct (from, to) transitions written
        elapsed_ms: Wall time of the call
    """

    project_id: str
    sessions: int = 0
    pairs: int = 0
    transitions: int = 0
    elapsed_ms: float = 0.0


class TransitionService:
    """
    Canonical transition engine behind the repository interfaces.

    Args:
        session_events: Read access to sessions and ordered events
        transitions: Transition store
        identities: Event identity store
        settings: Engine settings. If None, uses get_settings().transitions.
    """

    def __init__(
        self,
        session_events: SessionEventRepository,
        transitions: TransitionRepository,
        identities: EventIdentityRepository,
        settings: TransitionSettings | None = None,
    ):
        self._sessions = session_events
        self._transitions = transitions
        self._identities = identities
        self._settings = settings or get_settings().transitions

    @property
    def settings(self) -> TransitionSettings:
        return self._settings

    # --------------------------------------------------------------------------
    # Compute
    # --------------------------------------------------------------------------

    def compute_transitions_for_project(self, project_id: str) -> ComputeStats:
        """
        Recompute every transition of a project from scratch.

        Counts and average durations are overwritten, so running this twice
        without new events gives identical results. Transitions no longer
        produced by any session are left as they are.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ComputeTimeoutError: If the deadline passes; all writes roll back
            StorageError: If a repository call fails
        """
        if not self._sessions.project_exists(project_id):
            raise ProjectNotFoundError(project_id)

        start = time.monotonic()
        timeout = self._settings.compute_timeout_seconds
        deadline = start + timeout
        stats = ComputeStats(project_id=project_id)

        with self._transitions.transaction(project_id):
            aggregated: dict[tuple[str, str], TransitionAggregate] = {}
            for session in self._sessions.iter_project_sessions(project_id):
                if time.monotonic() > deadline:
                    raise ComputeTimeoutError(project_id, timeout)
                stats.sessions += 1
                if len(session.events) < 2:
                    continue
                pairs = pairs_for_session(session.events)
                stats.pairs += len(pairs)
                aggregate_transitions(pairs, into=aggregated)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ComputeTimeoutError(project_id, timeout)

            # writes run under the leftover budget
            self._transitions.limit_statement_time(remaining)
            try:
                stats.transitions = self._transitions.upsert_overwrite(
                    project_id, list(aggregated.values())
                )
                if time.monotonic() > deadline:
                    raise ComputeTimeoutError(project_id, timeout)
                self.calculate_transition_percentages(project_id)
            except StatementTimeoutError as e:
                raise ComputeTimeoutError(project_id, timeout) from e

        stats.elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Computed transitions for project %s: sessions=%d pairs=%d transitions=%d (%.0fms)",
            project_id,
            stats.sessions,
            stats.pairs,
            stats.transitions,
            stats.elapsed_ms,
        )
        return stats

    def update_transitions_for_session(self, session_id: str) -> ComputeStats | None:
        """
        Add one session's transitions to the stored counts.

        A missing session, or one with fewer than 2 distinct collapsed
        events, is a no-op and returns None.

        The stored avg duration is replaced by this session's average unless
        ``incremental_weighted_avg`` is enabled.
        """
        start = time.monotonic()
        session = self._sessions.get_session_events(session_id)
        if session is None:
            logger.debug("Session %s not found, skipping transition update", session_id)
            return None

        pairs = pairs_for_session(session.events)
        if not pairs:
            return None

        project_id = session.project_id
        aggregated = aggregate_transitions(pairs)
        stats = ComputeStats(project_id=project_id, sessions=1, pairs=len(pairs))

        with self._transitions.transaction(project_id):
            stats.transitions = self._transitions.upsert_increment(
                project_id,
                list(aggregated.values()),
                weighted_average=self._settings.incremental_weighted_avg,
            )
            self.calculate_transition_percentages(project_id)

        stats.elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(
            "Updated transitions from session %s (project %s): pairs=%d transitions=%d",
            session_id,
            project_id,
            stats.pairs,
            stats.transitions,
        )
        return stats

    def calculate_transition_percentages(self, project_id: str) -> int:
        """
        Recompute every transition's share of its source's outgoing count.

        All writes go out as one batch in the project transaction; a failure
        rolls the batch back and propagates.

        Returns:
            Number of transitions updated
        """
        with self._transitions.transaction(project_id):
            transitions = self._transitions.list_for_project(project_id)
            percentages = calculate_percentages(transitions)
            return self._transitions.update_percentages(project_id, percentages)

    # --------------------------------------------------------------------------
    # Queries
    # --------------------------------------------------------------------------

    def get_top_transitions_from_event(
        self, project_id: str, anchor_event_identity_id: str, top_n: int | None = None
    ) -> list[TopTransition]:
        """Top ``top_n`` transitions leaving the anchor, by count descending."""
        return self._top(project_id, anchor_event_identity_id, Direction.FORWARD, top_n)

    def get_top_transitions_to_event(
        self, project_id: str, anchor_event_identity_id: str, top_n: int | None = None
    ) -> list[TopTransition]:
        """Top ``top_n`` transitions entering the anchor, by count descending."""
        return self._top(project_id, anchor_event_identity_id, Direction.BACKWARD, top_n)

    def _top(
        self, project_id: str, anchor_id: str, direction: Direction, top_n: int | None
    ) -> list[TopTransition]:
        if top_n is None:
            top_n = self._settings.default_top_n
        if top_n < 1:
            raise ValueError(f"top_n must be positive, got {top_n}")
        return self._transitions.top_transitions(project_id, anchor_id, direction, top_n)

    def has_transitions(self, project_id: str) -> bool:
        """Cheap existence check used to decide on lazy materialization."""
        return self._transitions.has_any(project_id)

    def build_transition_graph(
        self,
        project_id: str,
        anchor_event_id: str,
        direction: Direction = Direction.FORWARD,
        top_n: int | None = None,
        depth: int | None = None,
    ) -> TransitionGraph:
        """
        Build a bounded multi-level graph around an anchor event.

        If the project has no transitions yet, a full recompute runs first.

        Raises:
            GraphBoundsError: If top_n or depth is outside the configured bounds
            ProjectNotFoundError: If the project does not exist
            EventIdentityNotFoundError: If the anchor identity does not exist
        """
        top_n = top_n if top_n is not None else self._settings.default_top_n
        depth = depth if depth is not None else self._settings.default_depth

        builder = TransitionGraphBuilder(
            query_top=partial(self._query_top, project_id, direction),
            query_totals=partial(self._transitions.totals, project_id, direction=direction),
            direction=direction,
            max_top_n=self._settings.max_top_n,
            max_depth=self._settings.max_depth,
            max_workers=self._settings.graph_query_workers,
        )
        builder.validate(top_n, depth)

        if not self._sessions.project_exists(project_id):
            raise ProjectNotFoundError(project_id)

        anchor = self._identities.get(anchor_event_id)
        if anchor is None:
            raise EventIdentityNotFoundError(anchor_event_id)

        if not self.has_transitions(project_id):
            logger.info("Project %s has no transitions, computing before graph build", project_id)
            self.compute_transitions_for_project(project_id)

        return builder.build(EventRef(id=anchor.id, key=anchor.key), top_n, depth)

    def _query_top(
        self, project_id: str, direction: Direction, event_id: str, limit: int
    ) -> list[TopTransition]:
        return self._transitions.top_transitions(project_id, event_id, direction, limit)

    # --------------------------------------------------------------------------
    # Event identities
    # --------------------------------------------------------------------------

    def record_event_identity(self, event_type: str, name: str) -> EventIdentity:
        """Return the identity for a tracked event, creating it on first sight."""
        key = build_event_key(event_type, name)
        return self._identities.get_or_create(key, get_event_category(event_type))
