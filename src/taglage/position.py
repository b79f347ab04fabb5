"""Locate the train within its reconstructed route."""

import logging
from dataclasses import replace
from typing import List

from .models import Route, RouteNode

logger = logging.getLogger(__name__)


def find_current_index(route: Route) -> int:
    """Index of the last announced node the train has arrived at or departed from."""
    current = -1
    for index, node in enumerate(route.nodes):
        if node.is_announced and node.touched:
            current = index
    return current


def resolve_position(route: Route) -> Route:
    """
    Mark the train's current position on a route.

    If the latest touched station was departed and more nodes follow, the
    train is between that station and the next: the station gets
    train_between_here_and_next and every following via node up to the next
    announced station gets in_transit_zone. Otherwise the station itself gets
    is_current.

    Args:
        route: Route from build_route(); existing position flags are ignored.

    Returns:
        A new Route with flags set and current_index filled in (-1 if the
        train has not touched any announced station yet).
    """
    nodes: List[RouteNode] = [
        replace(node, is_current=False, in_transit_zone=False, train_between_here_and_next=False)
        for node in route.nodes
    ]
    current = find_current_index(route)

    if current < 0:
        logger.debug("No realized events on route, position undetermined")
        return Route(nodes=tuple(nodes), current_index=-1)

    node = nodes[current]
    is_last = current == len(nodes) - 1

    if node.departed and not is_last:
        nodes[current] = replace(node, train_between_here_and_next=True)
        zone = 0
        for index in range(current + 1, len(nodes)):
            if nodes[index].is_announced:
                break
            nodes[index] = replace(nodes[index], in_transit_zone=True)
            zone += 1
        logger.debug(f"Train between {node.signature} and next station ({zone} via stations in transit)")
    else:
        nodes[current] = replace(node, is_current=True)
        logger.debug(f"Train at {node.signature}")

    return Route(nodes=tuple(nodes), current_index=current)
