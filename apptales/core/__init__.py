# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no external dependencies.

This module contains:
- Domain models (EventIdentity, Transition, TransitionGraph, ...)
- Transition processing (collapse, pair extraction, aggregation, percentages)
- Bounded graph traversal over top-K queries
- The engine's exception hierarchy

All code here is storage-agnostic and easily unit-testable.
"""

from apptales.core.exceptions import (
    ComputeTimeoutError,
    EventIdentityNotFoundError,
    GraphBoundsError,
    NotFoundError,
    ProjectNotFoundError,
    StorageError,
    TransitionError,
)
from apptales.core.graph_builder import TransitionGraphBuilder
from apptales.core.models import (
    Direction,
    EventCategory,
    EventIdentity,
    EventRef,
    GraphEdge,
    GraphNode,
    SequenceEvent,
    SessionEvents,
    TopTransition,
    Transition,
    TransitionAggregate,
    TransitionGraph,
    TransitionPair,
    TransitionTotals,
    build_event_key,
    get_event_category,
)
from apptales.core.transition_processor import (
    aggregate_transitions,
    calculate_percentages,
    collapse_consecutive_duplicates,
    extract_transition_pairs,
    pairs_for_session,
)

__all__ = [
    # Errors
    "ComputeTimeoutError",
    "EventIdentityNotFoundError",
    "GraphBoundsError",
    "NotFoundError",
    "ProjectNotFoundError",
    "StorageError",
    "TransitionError",
    # Models
    "Direction",
    "EventCategory",
    "EventIdentity",
    "EventRef",
    "GraphEdge",
    "GraphNode",
    "SequenceEvent",
    "SessionEvents",
    "TopTransition",
    "Transition",
    "TransitionAggregate",
    "TransitionGraph",
    "TransitionPair",
    "TransitionTotals",
    "build_event_key",
    "get_event_category",
    # Processing
    "TransitionGraphBuilder",
    "aggregate_transitions",
    "calculate_percentages",
    "collapse_consecutive_duplicates",
    "extract_transition_pairs",
    "pairs_for_session",
]
