"""Scheduled vs. actual deviation per station."""

import math
from enum import Enum
from typing import Dict, Optional

from .models import Route, RouteNode
from .timeutils import TimeLike, comparable, parse_time

NO_INFO = None


class DelayStatus(Enum):
    NO_INFO = "no info"
    ON_TIME = "on time"
    DELAYED = "delayed"
    EARLY = "early"


def delay_minutes(scheduled: TimeLike, actual: TimeLike) -> Optional[int]:
    """
    Minutes between scheduled and actual time, rounded half up.

    Returns NO_INFO (None) when either timestamp is missing. Positive means
    late, negative early.
    """
    scheduled_dt = parse_time(scheduled)
    actual_dt = parse_time(actual)
    if scheduled_dt is None or actual_dt is None:
        return NO_INFO
    actual_dt = comparable(scheduled_dt, actual_dt)
    seconds = (actual_dt - scheduled_dt).total_seconds()
    return int(math.floor(seconds / 60 + 0.5))


def delay_status(minutes: Optional[int]) -> DelayStatus:
    if minutes is None:
        return DelayStatus.NO_INFO
    if minutes == 0:
        return DelayStatus.ON_TIME
    return DelayStatus.DELAYED if minutes > 0 else DelayStatus.EARLY


def node_delay(node: RouteNode) -> Optional[int]:
    """Delay at a node: departure if realized, else arrival."""
    if node.departure_actual is not None:
        return delay_minutes(node.departure_scheduled, node.departure_actual)
    return delay_minutes(node.arrival_scheduled, node.arrival_actual)


def route_delays(route: Route) -> Dict[str, int]:
    """Delay in minutes for every node that has both timestamps."""
    delays: Dict[str, int] = {}
    for node in route.nodes:
        minutes = node_delay(node)
        if minutes is not NO_INFO:
            delays[node.signature] = minutes
    return delays
