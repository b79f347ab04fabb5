"""Classify other trains as running the same or opposite way as the primary train."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import (
    Direction,
    OtherTrainObservation,
    Route,
    StationEvent,
    StationTrains,
)
from .normalizer import normalize_events
from .position import resolve_position
from .route_builder import build_route
from .timeutils import comparable

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_MINUTES = 15

UNKNOWN_AS_SAME = "same"
UNKNOWN_HIDDEN = "hide"


def compare_direction_by_station_order(
    primary_seq: Sequence[str], other_seq: Sequence[str]
) -> Direction:
    """
    Compare two trains' station orderings.

    Consecutive pairs of shared stations are checked in both trains' orders:
    a pair that keeps its relative order votes SAME, an inverted pair votes
    OPPOSITE. Counting the pairs of both orderings makes the result
    independent of which train is called primary.

    Args:
        primary_seq: Ordered station signatures of the primary train.
        other_seq: Ordered station signatures of the other train.

    Returns:
        Direction by majority vote; UNKNOWN with fewer than two shared
        stations or on a tie.
    """
    primary_index = _first_indices(primary_seq)
    other_index = _first_indices(other_seq)
    shared = set(primary_index) & set(other_index)

    if len(shared) < 2:
        return Direction.UNKNOWN

    same, opposite = _vote(shared, primary_index, other_index)
    reverse_same, reverse_opposite = _vote(shared, other_index, primary_index)
    same += reverse_same
    opposite += reverse_opposite

    if same > opposite:
        return Direction.SAME
    if opposite > same:
        return Direction.OPPOSITE
    return Direction.UNKNOWN


def _first_indices(seq: Sequence[str]) -> Dict[str, int]:
    indices: Dict[str, int] = {}
    for index, signature in enumerate(seq):
        indices.setdefault(signature, index)
    return indices


def _vote(shared: Set[str], base: Dict[str, int], against: Dict[str, int]) -> Tuple[int, int]:
    ordered = sorted(shared, key=lambda s: base[s])
    same = opposite = 0
    for first, second in zip(ordered, ordered[1:]):
        if against[first] < against[second]:
            same += 1
        else:
            opposite += 1
    return same, opposite


def is_fresh(
    last_seen: Optional[datetime],
    now: datetime,
    freshness_minutes: float = DEFAULT_FRESHNESS_MINUTES,
) -> bool:
    """True if last_seen lies within the freshness window before now."""
    if last_seen is None:
        return False
    last_seen = comparable(now, last_seen)
    return now - last_seen <= timedelta(minutes=freshness_minutes)


def group_by_train(events: Iterable[StationEvent]) -> Dict[str, List[StationEvent]]:
    grouped: Dict[str, List[StationEvent]] = {}
    for event in events:
        grouped.setdefault(event.train_id, []).append(event)
    return grouped


def last_seen(events: Iterable[StationEvent]) -> Optional[datetime]:
    """Most recent actual time among events, or None."""
    latest = None
    for event in events:
        if event.actual_time is None:
            continue
        if latest is None or comparable(latest, event.actual_time) > latest:
            latest = event.actual_time
    return latest


def find_stale_trains(
    events: Iterable[StationEvent],
    now: datetime,
    freshness_minutes: float = DEFAULT_FRESHNESS_MINUTES,
    exclude: Optional[str] = None,
) -> Set[str]:
    """Train ids whose latest realized event falls outside the freshness window."""
    stale = set()
    for train_id, train_events in group_by_train(events).items():
        if train_id == exclude:
            continue
        if not is_fresh(last_seen(train_events), now, freshness_minutes):
            stale.add(train_id)
    return stale


def classify_other_trains(
    primary_route: Route,
    other_events: Iterable[StationEvent],
    now: datetime,
    primary_train_id: Optional[str] = None,
    freshness_minutes: float = DEFAULT_FRESHNESS_MINUTES,
    live_train_ids: Iterable[str] = (),
    unknown_policy: str = UNKNOWN_AS_SAME,
) -> Dict[str, StationTrains]:
    """
    Bucket other trains per route station by direction.

    Each other train's own route is rebuilt from its announcements and its
    current station located; it is listed at that station only. Trains whose
    last realized event is older than the freshness window are dropped unless
    they are in live_train_ids.

    Args:
        primary_route: The primary train's resolved route.
        other_events: Announcements of all trains at the route's stations.
        now: Reference time for the freshness window.
        primary_train_id: Excluded from the result.
        freshness_minutes: Freshness window size.
        live_train_ids: Trains with a confirmed live position.
        unknown_policy: "same" puts UNKNOWN trains in the same-direction
            bucket, "hide" drops them.

    Returns:
        Mapping of every route signature -> StationTrains.
    """
    if unknown_policy not in (UNKNOWN_AS_SAME, UNKNOWN_HIDDEN):
        raise ValueError(f"Unknown direction policy {unknown_policy!r}")

    primary_seq = primary_route.signatures
    on_route = set(primary_seq)
    live = set(live_train_ids)

    same: Dict[str, List[OtherTrainObservation]] = {s: [] for s in primary_seq}
    opposite: Dict[str, List[OtherTrainObservation]] = {s: [] for s in primary_seq}
    dropped_stale = 0

    for train_id, events in group_by_train(other_events).items():
        if train_id == primary_train_id:
            continue

        if not is_fresh(last_seen(events), now, freshness_minutes) and train_id not in live:
            dropped_stale += 1
            continue

        observation = _observe(train_id, events, primary_seq)
        if observation is None or observation.station_signature not in on_route:
            continue

        if observation.direction is Direction.OPPOSITE:
            opposite[observation.station_signature].append(observation)
        elif observation.direction is Direction.SAME or unknown_policy == UNKNOWN_AS_SAME:
            same[observation.station_signature].append(observation)

    if dropped_stale:
        logger.debug(f"Dropped {dropped_stale} stale trains")

    return {
        signature: StationTrains(
            same_direction=tuple(sorted(same[signature], key=_seen_key)),
            opposite_direction=tuple(sorted(opposite[signature], key=_seen_key)),
        )
        for signature in primary_seq
    }


def _observe(
    train_id: str, events: List[StationEvent], primary_seq: Sequence[str]
) -> Optional[OtherTrainObservation]:
    aggregates = normalize_events(events)
    route = resolve_position(build_route(aggregates))
    node = route.current_node
    if node is None:
        return None

    aggregate = aggregates[node.signature]
    destination = None
    for event in events:
        if event.to_locations:
            destination = event.to_locations[-1]

    return OtherTrainObservation(
        train_id=train_id,
        station_signature=node.signature,
        scheduled_time=aggregate.scheduled_time,
        actual_time=aggregate.actual_time,
        track=aggregate.track,
        destination_signature=destination,
        origin_station_order=tuple(route.signatures),
        direction=compare_direction_by_station_order(primary_seq, route.signatures),
    )


def _seen_key(observation: OtherTrainObservation) -> Tuple[float, str]:
    seen = observation.actual_time or observation.scheduled_time
    return (seen.timestamp() if seen is not None else float("inf"), observation.train_id)
