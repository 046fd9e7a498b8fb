# ==============================================================================
# Transition Domain Models
# ==============================================================================
"""
Pydantic models for event identities, session sequences and transitions.

These models are used for:
- Passing ordered session events from repositories to the processor
- Carrying aggregated transition pairs to the transition store
- Returning top-K query results and traversal graphs to callers

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class EventCategory(str, Enum):
    """Event identity categories tracked by the tracker script."""

    PAGE_VIEW = "PAGE_VIEW"
    CLICK = "CLICK"


class Direction(str, Enum):
    """Traversal direction relative to the anchor event."""

    FORWARD = "forward"
    BACKWARD = "backward"


def get_event_category(event_type: str) -> EventCategory:
    """Map a tracker event type to its identity category."""
    return EventCategory.PAGE_VIEW if event_type == "page_view" else EventCategory.CLICK


def build_event_key(event_type: str, name: str) -> str:
    """Build the semantic identity key, e.g. ``page_view:/pricing``."""
    return f"{event_type}:{name}"


class EventIdentity(BaseModel):
    """
    A deduplicated kind of event shared by all of its occurrences.

    Attributes:
        id: Identity identifier
        key: Unique semantic label (e.g. ``page_view:/pricing``)
        category: PAGE_VIEW or CLICK
        created_at: When the identity was first observed
    """

    id: str
    key: str
    category: EventCategory
    created_at: datetime

    model_config = {"frozen": True}


class SequenceEvent(BaseModel):
    """One (event identity, timestamp) entry of a session timeline."""

    event_identity_id: str
    created_at: datetime

    model_config = {"frozen": True}


class SessionEvents(BaseModel):
    """A session together with its chronologically ordered events."""

    session_id: str
    project_id: str
    events: list[SequenceEvent] = Field(default_factory=list)


class TransitionPair(BaseModel):
    """Two adjacent events of a collapsed session sequence."""

    from_event_identity_id: str
    to_event_identity_id: str
    duration_ms: int

    model_config = {"frozen": True}


class TransitionAggregate(BaseModel):
    """
    Pairs grouped by (from, to).

    Attributes:
        from_event_identity_id: Source identity
        to_event_identity_id: Target identity
        count: Number of pairs in the group
        total_duration_ms: Sum of the pair durations in the group
    """

    from_event_identity_id: str
    to_event_identity_id: str
    count: int = 0
    total_duration_ms: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_event_identity_id, self.to_event_identity_id)

    @property
    def avg_duration_ms(self) -> int:
        """Mean duration, rounded half-up to whole milliseconds."""
        if self.count == 0:
            return 0
        return round_half_up(self.total_duration_ms / self.count)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


class Transition(BaseModel):
    """
    A persisted directed edge between two event identities of a project.

    (from_event_identity_id, to_event_identity_id, project_id) is unique.
    """

    id: str
    from_event_identity_id: str
    to_event_identity_id: str
    project_id: str
    count: int = Field(default=1, ge=0)
    percentage: float = Field(default=0.0, ge=0.0)
    avg_duration_ms: int | None = None
    updated_at: datetime


class TransitionTotals(BaseModel):
    """Outgoing (or incoming) volume of a single event identity."""

    transition_count: int = 0
    total_count: int = 0


class EventRef(BaseModel):
    """Minimal identity reference returned to callers."""

    id: str
    key: str


class TopTransition(BaseModel):
    """
    A top-K query row.

    ``event`` is the non-anchor endpoint: the target for forward queries and
    the source for backward queries.
    """

    event: EventRef
    count: int
    percentage: float
    avg_duration_ms: int | None = None
    direction: Direction = Direction.FORWARD

    def to_dict(self) -> dict:
        """Serialize with ``toEvent``/``fromEvent`` depending on direction."""
        event_field = "toEvent" if self.direction == Direction.FORWARD else "fromEvent"
        return {
            event_field: self.event.model_dump(),
            "count": self.count,
            "percentage": self.percentage,
            "avgDurationMs": self.avg_duration_ms,
        }


class GraphNode(BaseModel):
    """A node of the traversal graph, or a "+N more" aggregate node."""

    id: str
    key: str
    level: int
    count: int
    exits: int | None = None
    is_aggregate: bool = Field(default=False, alias="isAggregate")

    model_config = {"populate_by_name": True}


class GraphEdge(BaseModel):
    """An edge of the traversal graph, always in transition direction."""

    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")
    count: int
    percentage: float | None = None
    avg_duration_ms: int | None = Field(default=None, alias="avgDurationMs")
    is_aggregate: bool = Field(default=False, alias="isAggregate")

    model_config = {"populate_by_name": True}


class TransitionGraph(BaseModel):
    """Bounded breadth-first traversal result centered on an anchor event."""

    anchor: EventRef
    direction: Direction
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def nodes_at_level(self, level: int) -> list[GraphNode]:
        return [n for n in self.nodes if n.level == level]

    def to_dict(self) -> dict:
        """Serialize using the camelCase field names consumed by the dashboard."""
        return {
            "anchor": self.anchor.model_dump(),
            "direction": self.direction.value,
            "nodes": [
                n.model_dump(by_alias=True, exclude_none=True) for n in self.nodes
            ],
            "edges": [e.model_dump(by_alias=True) for e in self.edges],
        }
