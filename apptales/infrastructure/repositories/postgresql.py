# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementations of the repository interfaces.

Provides:
- PostgreSQLDatabase: Connection pool plus thread-bound project transactions
- PostgreSQLSessionEventRepository: Ordered session/event reads
- PostgreSQLTransitionRepository: Atomic upserts, batched percentage writes, top-K reads
- PostgreSQLEventIdentityRepository: Get-or-create event identities

Project transactions take a transaction-scoped advisory lock on the project
id, so a full recompute and an incremental update of the same project run one
after the other while different projects proceed in parallel.
"""

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from itertools import groupby

import psycopg2
from psycopg2.errors import QueryCanceled
from psycopg2.extras import execute_batch
from psycopg2.pool import ThreadedConnectionPool

from apptales.base.repositories import (
    EventIdentityRepository,
    SessionEventRepository,
    TransitionRepository,
)
from apptales.core.exceptions import StatementTimeoutError, StorageError
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
)
from apptales.utils.config import Settings, get_settings
from apptales.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_standard

logger = logging.getLogger(__name__)

# Batch size for execute_batch
PAGE_SIZE = 1000

# Rows fetched per round-trip by the server-side cursor during full recomputes
STREAM_ITERSIZE = 5000

# Connection timeout
CONNECT_TIMEOUT = 10


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def _new_id() -> str:
    return uuid.uuid4().hex


class PostgreSQLDatabase:
    """
    Shared connection pool for the PostgreSQL repositories.

    Inside ``transaction()`` every repository call made from the same thread
    uses that transaction's connection. Outside a transaction each call
    borrows a pooled connection and commits on its own.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the database handle.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._schema = self._settings.postgres.schema_name
        self._pool: ThreadedConnectionPool | None = None
        self._local = threading.local()

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Create the connection pool."""
        pg = self._settings.postgres
        self._pool = ThreadedConnectionPool(
            pg.pool_min_connections,
            pg.pool_max_connections,
            _add_connect_timeout(pg.connection_string),
        )
        logger.info("PostgreSQLDatabase connected (schema=%s)", self._schema)

    def close(self) -> None:
        """Close all pooled connections."""
        if self._pool:
            try:
                self._pool.closeall()
                logger.info("PostgreSQLDatabase connection pool closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection pool: %s", e)
            finally:
                self._pool = None

    def _get_pool(self) -> ThreadedConnectionPool:
        if self._pool is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")
        return self._pool

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    @contextmanager
    def transaction(self, project_id: str | None = None):
        """
        Run the block in one transaction, optionally locked to a project.

        Re-entrant per thread: a nested call joins the outer transaction.
        """
        if self.in_transaction:
            yield self._local.conn
            return

        pool = self._get_pool()
        conn = pool.getconn()
        self._local.conn = conn
        try:
            if project_id is not None:
                with conn.cursor() as cur:
                    cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (project_id,))
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Transaction failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            pool.putconn(conn)

    @contextmanager
    def cursor(self, name: str | None = None):
        """
        Yield a cursor bound to the current transaction, or to a short
        auto-committed one when none is active.

        psycopg2 errors are raised as StorageError, and a statement cancelled
        by statement_timeout as StatementTimeoutError.
        """
        if self.in_transaction:
            conn = self._local.conn
            try:
                with conn.cursor(name=name) as cur:
                    yield cur
            except QueryCanceled as e:
                raise StatementTimeoutError(str(e)) from e
            except psycopg2.Error as e:
                raise StorageError(str(e)) from e
            return

        with self.transaction() as conn:
            with conn.cursor(name=name) as cur:
                yield cur


class PostgreSQLSessionEventRepository(SessionEventRepository):
    """
    PostgreSQL implementation of SessionEventRepository.

    Events are ordered by (created_at, seq), where seq is the insertion
    sequence, so identical timestamps keep their arrival order.
    """

    def __init__(self, db: PostgreSQLDatabase):
        self._db = db
        self._schema = db.schema

    def project_exists(self, project_id: str) -> bool:
        with self._db.cursor() as cur:
            cur.execute(
                f"SELECT EXISTS (SELECT 1 FROM {self._schema}.projects WHERE id = %s)",
                (project_id,),
            )
            return cur.fetchone()[0]

    def list_project_ids(self) -> list[str]:
        with self._db.cursor() as cur:
            cur.execute(f"SELECT id FROM {self._schema}.projects ORDER BY id")
            return [row[0] for row in cur.fetchall()]

    def list_active_project_ids(self, since: datetime) -> list[str]:
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                SELECT DISTINCT s.project_id
                FROM {self._schema}.sessions s
                JOIN {self._schema}.events e ON e.session_id = s.id
                WHERE e.created_at >= %s
                ORDER BY s.project_id
                """,
                (since,),
            )
            return [row[0] for row in cur.fetchall()]

    def get_session_events(self, session_id: str) -> SessionEvents | None:
        with self._db.cursor() as cur:
            cur.execute(
                f"SELECT project_id FROM {self._schema}.sessions WHERE id = %s",
                (session_id,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            project_id = row[0]

            cur.execute(
                f"""
                SELECT event_identity_id, created_at
                FROM {self._schema}.events
                WHERE session_id = %s
                ORDER BY created_at, seq
                """,
                (session_id,),
            )
            events = [
                SequenceEvent(event_identity_id=identity_id, created_at=created_at)
                for identity_id, created_at in cur.fetchall()
            ]
        return SessionEvents(session_id=session_id, project_id=project_id, events=events)

    def iter_project_sessions(self, project_id: str) -> Iterator[SessionEvents]:
        """
        Stream sessions using a server-side cursor.

        Sessions without events are included with an empty event list.
        """
        with self._db.cursor(name=f"sessions_{_new_id()}") as cur:
            cur.itersize = STREAM_ITERSIZE
            cur.execute(
                f"""
                SELECT s.id, e.event_identity_id, e.created_at
                FROM {self._schema}.sessions s
                LEFT JOIN {self._schema}.events e ON e.session_id = s.id
                WHERE s.project_id = %s
                ORDER BY s.id, e.created_at, e.seq
                """,
                (project_id,),
            )
            for session_id, rows in groupby(cur, key=lambda row: row[0]):
                events = [
                    SequenceEvent(event_identity_id=identity_id, created_at=created_at)
                    for _, identity_id, created_at in rows
                    if identity_id is not None
                ]
                yield SessionEvents(session_id=session_id, project_id=project_id, events=events)


class PostgreSQLTransitionRepository(TransitionRepository):
    """
    PostgreSQL implementation of TransitionRepository.

    Upserts use INSERT ... ON CONFLICT on the (from, to, project) unique key,
    which is atomic, so concurrent writers never create duplicate rows.
    """

    def __init__(self, db: PostgreSQLDatabase):
        self._db = db
        self._schema = db.schema

    def transaction(self, project_id: str):
        return self._db.transaction(project_id)

    def limit_statement_time(self, seconds: float) -> None:
        timeout_ms = max(1, int(seconds * 1000))
        with self._db.cursor() as cur:
            cur.execute("SET LOCAL statement_timeout = %s", (timeout_ms,))

    def upsert_overwrite(self, project_id: str, aggregates: list[TransitionAggregate]) -> int:
        if not aggregates:
            return 0

        with self._db.cursor() as cur:
            execute_batch(
                cur,
                f"""
                INSERT INTO {self._schema}.transitions (
                    id, from_event_identity_id, to_event_identity_id, project_id,
                    count, avg_duration_ms, updated_at
                ) VALUES (
                    %(id)s, %(from_id)s, %(to_id)s, %(project_id)s,
                    %(count)s, %(avg_duration_ms)s, %(updated_at)s
                )
                ON CONFLICT (from_event_identity_id, to_event_identity_id, project_id)
                DO UPDATE SET
                    count = EXCLUDED.count,
                    avg_duration_ms = EXCLUDED.avg_duration_ms,
                    updated_at = EXCLUDED.updated_at
                """,
                self._to_params(project_id, aggregates),
                page_size=PAGE_SIZE,
            )
        logger.debug("Upserted %d transitions (overwrite) for %s", len(aggregates), project_id)
        return len(aggregates)

    def upsert_increment(
        self,
        project_id: str,
        aggregates: list[TransitionAggregate],
        weighted_average: bool = False,
    ) -> int:
        if not aggregates:
            return 0

        if weighted_average:
            avg_expr = f"""
                CASE WHEN {self._schema}.transitions.avg_duration_ms IS NULL
                    THEN EXCLUDED.avg_duration_ms
                    ELSE ROUND(
                        ({self._schema}.transitions.avg_duration_ms::numeric
                            * {self._schema}.transitions.count + %(total_duration_ms)s)
                        / ({self._schema}.transitions.count + EXCLUDED.count)
                    )::integer
                END
            """
        else:
            avg_expr = "EXCLUDED.avg_duration_ms"

        with self._db.cursor() as cur:
            execute_batch(
                cur,
                f"""
                INSERT INTO {self._schema}.transitions (
                    id, from_event_identity_id, to_event_identity_id, project_id,
                    count, avg_duration_ms, updated_at
                ) VALUES (
                    %(id)s, %(from_id)s, %(to_id)s, %(project_id)s,
                    %(count)s, %(avg_duration_ms)s, %(updated_at)s
                )
                ON CONFLICT (from_event_identity_id, to_event_identity_id, project_id)
                DO UPDATE SET
                    count = {self._schema}.transitions.count + EXCLUDED.count,
                    avg_duration_ms = {avg_expr},
                    updated_at = EXCLUDED.updated_at
                """,
                self._to_params(project_id, aggregates),
                page_size=PAGE_SIZE,
            )
        logger.debug("Upserted %d transitions (increment) for %s", len(aggregates), project_id)
        return len(aggregates)

    @staticmethod
    def _to_params(project_id: str, aggregates: list[TransitionAggregate]) -> list[dict]:
        now = datetime.now(UTC)
        return [
            {
                "id": _new_id(),
                "from_id": agg.from_event_identity_id,
                "to_id": agg.to_event_identity_id,
                "project_id": project_id,
                "count": agg.count,
                "avg_duration_ms": agg.avg_duration_ms,
                "total_duration_ms": agg.total_duration_ms,
                "updated_at": now,
            }
            for agg in aggregates
        ]

    def list_for_project(self, project_id: str) -> list[Transition]:
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, from_event_identity_id, to_event_identity_id, project_id,
                       count, percentage, avg_duration_ms, updated_at
                FROM {self._schema}.transitions
                WHERE project_id = %s
                """,
                (project_id,),
            )
            return [
                Transition(
                    id=row[0],
                    from_event_identity_id=row[1],
                    to_event_identity_id=row[2],
                    project_id=row[3],
                    count=row[4],
                    percentage=row[5],
                    avg_duration_ms=row[6],
                    updated_at=row[7],
                )
                for row in cur.fetchall()
            ]

    def update_percentages(self, project_id: str, percentages: dict[str, float]) -> int:
        if not percentages:
            return 0

        with self._db.cursor() as cur:
            execute_batch(
                cur,
                f"""
                UPDATE {self._schema}.transitions
                SET percentage = %(percentage)s
                WHERE id = %(id)s AND project_id = %(project_id)s
                """,
                [
                    {"id": tid, "percentage": pct, "project_id": project_id}
                    for tid, pct in percentages.items()
                ],
                page_size=PAGE_SIZE,
            )
        return len(percentages)

    def top_transitions(
        self, project_id: str, event_identity_id: str, direction: Direction, limit: int
    ) -> list[TopTransition]:
        anchor_col, other_col = self._columns(direction)
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                SELECT t.count, t.percentage, t.avg_duration_ms, ei.id, ei.key
                FROM {self._schema}.transitions t
                JOIN {self._schema}.event_identities ei ON ei.id = t.{other_col}
                WHERE t.project_id = %s AND t.{anchor_col} = %s
                ORDER BY t.count DESC, ei.key ASC, ei.id ASC
                LIMIT %s
                """,
                (project_id, event_identity_id, limit),
            )
            return [
                TopTransition(
                    event=EventRef(id=ei_id, key=ei_key),
                    count=count,
                    percentage=percentage,
                    avg_duration_ms=avg_duration_ms,
                    direction=direction,
                )
                for count, percentage, avg_duration_ms, ei_id, ei_key in cur.fetchall()
            ]

    def totals(
        self, project_id: str, event_identity_id: str, direction: Direction
    ) -> TransitionTotals:
        anchor_col, _ = self._columns(direction)
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                SELECT COUNT(*), COALESCE(SUM(count), 0)
                FROM {self._schema}.transitions
                WHERE project_id = %s AND {anchor_col} = %s
                """,
                (project_id, event_identity_id),
            )
            transition_count, total_count = cur.fetchone()
        return TransitionTotals(transition_count=transition_count, total_count=total_count)

    def has_any(self, project_id: str) -> bool:
        with self._db.cursor() as cur:
            cur.execute(
                f"SELECT EXISTS (SELECT 1 FROM {self._schema}.transitions WHERE project_id = %s)",
                (project_id,),
            )
            return cur.fetchone()[0]

    @staticmethod
    def _columns(direction: Direction) -> tuple[str, str]:
        if direction == Direction.FORWARD:
            return "from_event_identity_id", "to_event_identity_id"
        return "to_event_identity_id", "from_event_identity_id"


class PostgreSQLEventIdentityRepository(EventIdentityRepository):
    """PostgreSQL implementation of EventIdentityRepository."""

    def __init__(self, db: PostgreSQLDatabase):
        self._db = db
        self._schema = db.schema

    def get_or_create(self, key: str, category: EventCategory) -> EventIdentity:
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.event_identities (id, key, category)
                VALUES (%s, %s, %s)
                ON CONFLICT (key, category) DO NOTHING
                """,
                (_new_id(), key, category.value),
            )
            cur.execute(
                f"""
                SELECT id, key, category, created_at
                FROM {self._schema}.event_identities
                WHERE key = %s AND category = %s
                """,
                (key, category.value),
            )
            row = cur.fetchone()
        return self._to_model(row)

    def get(self, event_identity_id: str) -> EventIdentity | None:
        with self._db.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, key, category, created_at
                FROM {self._schema}.event_identities
                WHERE id = %s
                """,
                (event_identity_id,),
            )
            row = cur.fetchone()
        return self._to_model(row) if row else None

    @staticmethod
    def _to_model(row: tuple) -> EventIdentity:
        return EventIdentity(id=row[0], key=row[1], category=row[2], created_at=row[3])

