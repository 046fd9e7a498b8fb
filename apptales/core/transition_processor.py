# ==============================================================================
# Transition Processor - Pure Domain Logic
# ==============================================================================
"""
Pure transition aggregation logic with no external dependencies.

This module turns session timelines into weighted transition edges:
- Collapsing consecutive duplicate events (debounce repeated clicks)
- Extracting adjacent (from, to, duration) pairs per session
- Aggregating pairs into per-(from, to) counts and duration sums
- Computing each transition's share of its source's outgoing volume

Everything here works on in-memory models - no database or framework
dependencies - so the same code serves full recomputes, incremental session
updates, and unit tests.
"""

from collections.abc import Iterable, Sequence
from datetime import timedelta

from apptales.core.models import (
    SequenceEvent,
    Transition,
    TransitionAggregate,
    TransitionPair,
)

_ONE_MS = timedelta(milliseconds=1)


def collapse_consecutive_duplicates(events: Sequence[SequenceEvent]) -> list[SequenceEvent]:
    """
    Collapse runs of the same event identity to their first occurrence.

    Example: [A, A, B, C, C, C, B] -> [A, B, C, B]

    Args:
        events: Chronologically ordered session events

    Returns:
        New list with consecutive duplicates removed
    """
    collapsed: list[SequenceEvent] = []
    for event in events:
        if collapsed and collapsed[-1].event_identity_id == event.event_identity_id:
            continue
        collapsed.append(event)
    return collapsed


def extract_transition_pairs(collapsed: Sequence[SequenceEvent]) -> list[TransitionPair]:
    """
    Turn a collapsed sequence of length N into N-1 adjacent pairs.

    Args:
        collapsed: Output of collapse_consecutive_duplicates()

    Returns:
        Ordered pairs; empty when fewer than 2 events
    """
    pairs = []
    for current, following in zip(collapsed, collapsed[1:]):
        delta = following.created_at - current.created_at
        pairs.append(
            TransitionPair(
                from_event_identity_id=current.event_identity_id,
                to_event_identity_id=following.event_identity_id,
                duration_ms=delta // _ONE_MS,
            )
        )
    return pairs


def pairs_for_session(events: Sequence[SequenceEvent]) -> list[TransitionPair]:
    """Collapse then extract pairs for one session's timeline."""
    return extract_transition_pairs(collapse_consecutive_duplicates(events))


def aggregate_transitions(
    pairs: Iterable[TransitionPair],
    into: dict[tuple[str, str], TransitionAggregate] | None = None,
) -> dict[tuple[str, str], TransitionAggregate]:
    """
    Group pairs by (from, to), summing counts and durations.

    The reduction is order-independent, so partial results from several
    sessions can be folded into the same dict via ``into``.

    Args:
        pairs: Transition pairs from one or many sessions
        into: Optional existing aggregation to extend (mutated in place)

    Returns:
        Mapping of (from_id, to_id) to its aggregate
    """
    aggregated = into if into is not None else {}
    for pair in pairs:
        key = (pair.from_event_identity_id, pair.to_event_identity_id)
        agg = aggregated.get(key)
        if agg is None:
            agg = TransitionAggregate(
                from_event_identity_id=pair.from_event_identity_id,
                to_event_identity_id=pair.to_event_identity_id,
            )
            aggregated[key] = agg
        agg.count += 1
        agg.total_duration_ms += pair.duration_ms
    return aggregated


def calculate_percentages(transitions: Iterable[Transition]) -> dict[str, float]:
    """
    Compute each transition's share of its source's outgoing volume.

    A source whose counts sum to zero uses a denominator of 1, which leaves
    every percentage at 0.

    Args:
        transitions: All transitions of a single project

    Returns:
        Mapping of transition id to percentage (0-100)
    """
    transitions = list(transitions)
    source_totals: dict[str, int] = {}
    for t in transitions:
        source_totals[t.from_event_identity_id] = (
            source_totals.get(t.from_event_identity_id, 0) + t.count
        )

    percentages = {}
    for t in transitions:
        total = source_totals[t.from_event_identity_id] or 1
        percentages[t.id] = (t.count / total) * 100
    return percentages
