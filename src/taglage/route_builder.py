"""Build an ordered route from station aggregates and their via hints."""

import logging
from datetime import datetime
from typing import List, Mapping, Optional, Tuple

from .models import Route, RouteNode, StationAggregate, ViaLocation

logger = logging.getLogger(__name__)

# Synthetic offsets keeping via stations adjacent to their parent station
# when they share its timestamp: via-from just before, via-to just after.
VIA_FROM_OFFSET = -100000
ANNOUNCED_OFFSET = 0
VIA_TO_OFFSET = 100000

_SortKey = Tuple[int, int]


def build_route(aggregates: Mapping[str, StationAggregate]) -> Route:
    """
    Merge announced stations and via stations into one ordered route.

    Announced stations are sorted by scheduled time. Each one contributes its
    via-from stations (by their order field), itself, then its via-to
    stations. A via hint naming a station that is announced elsewhere on the
    route is skipped, and a signature is only ever placed once.

    Args:
        aggregates: Output of normalize_events().

    Returns:
        Route with current_index -1. Empty if aggregates is empty.
    """
    if not aggregates:
        return Route()

    announced = set(aggregates)
    ranked = _rank_announced(list(aggregates.values()))

    entries: List[Tuple[_SortKey, RouteNode]] = []
    for rank, aggregate in enumerate(ranked):
        for via in sorted(aggregate.via_from, key=lambda v: v.order):
            if via.signature not in announced:
                entries.append(((rank, VIA_FROM_OFFSET + via.order), _via_node(via)))

        entries.append(((rank, ANNOUNCED_OFFSET), _announced_node(aggregate)))

        for via in sorted(aggregate.via_to, key=lambda v: v.order):
            if via.signature not in announced:
                entries.append(((rank, VIA_TO_OFFSET + via.order), _via_node(via)))

    entries.sort(key=lambda entry: entry[0])

    nodes: List[RouteNode] = []
    placed = set()
    for _, node in entries:
        if node.signature in placed:
            logger.debug(f"Dropping duplicate route entry {node.signature}")
            continue
        placed.add(node.signature)
        nodes.append(node)

    logger.debug(f"Built route with {len(nodes)} nodes ({len(ranked)} announced)")
    return Route(nodes=tuple(nodes))


def _rank_announced(aggregates: List[StationAggregate]) -> List[StationAggregate]:
    """Sort by scheduled time; stations without one keep their place at the end."""
    timed = [a for a in aggregates if a.scheduled_time is not None]
    untimed = [a for a in aggregates if a.scheduled_time is None]
    if untimed:
        logger.warning(f"{len(untimed)} stations have no scheduled time")
    # sorted() is stable, so equal timestamps keep insertion order
    timed = sorted(timed, key=lambda a: _sort_time(a.scheduled_time))
    return timed + untimed


def _sort_time(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else float("inf")


def _announced_node(aggregate: StationAggregate) -> RouteNode:
    return RouteNode(
        signature=aggregate.signature,
        is_announced=True,
        scheduled_time=aggregate.scheduled_time,
        actual_time=aggregate.actual_time,
        track=aggregate.track,
        arrived=aggregate.arrived,
        departed=aggregate.departed,
        arrival_scheduled=aggregate.arrival_scheduled,
        arrival_actual=aggregate.arrival_actual,
        departure_scheduled=aggregate.departure_scheduled,
        departure_actual=aggregate.departure_actual,
        canceled=aggregate.canceled,
    )


def _via_node(via: ViaLocation) -> RouteNode:
    return RouteNode(signature=via.signature, is_announced=False)
