"""Merge raw per-station announcements into one aggregate per station."""

import logging
from typing import Dict, Iterable, List

from .models import Activity, StationAggregate, StationEvent, ViaLocation

logger = logging.getLogger(__name__)


def normalize_events(events: Iterable[StationEvent]) -> Dict[str, StationAggregate]:
    """
    Group announcements by station signature and merge them.

    Arrival events only touch the arrival facts, departure events only touch
    the departure facts and the track. Revisions of the same activity replace
    earlier ones, except that an event without an actual time never erases an
    actual time that is already known. Via hints of all events for a station
    are unioned, first occurrence of a signature wins.

    Args:
        events: Announcements for one train on one service day.

    Returns:
        Insertion-ordered mapping of signature -> StationAggregate.
    """
    aggregates: Dict[str, StationAggregate] = {}

    for event in events:
        aggregate = aggregates.get(event.station_signature)
        if aggregate is None:
            aggregate = StationAggregate(signature=event.station_signature)
            aggregates[event.station_signature] = aggregate

        if event.activity is Activity.ARRIVAL:
            _merge_arrival(aggregate, event)
        else:
            _merge_departure(aggregate, event)

        if event.canceled:
            aggregate.canceled = True
        if event.to_locations:
            aggregate.destination = event.to_locations[-1]

        _union_via(aggregate.via_from, event.via_from)
        _union_via(aggregate.via_to, event.via_to)

    logger.debug(f"Normalized {len(aggregates)} stations")
    return aggregates


def _merge_arrival(aggregate: StationAggregate, event: StationEvent) -> None:
    if event.actual_time is None and aggregate.arrival_actual is not None:
        return
    aggregate.arrival_scheduled = event.scheduled_time
    aggregate.arrival_actual = event.actual_time


def _merge_departure(aggregate: StationAggregate, event: StationEvent) -> None:
    if event.actual_time is None and aggregate.departure_actual is not None:
        return
    aggregate.departure_scheduled = event.scheduled_time
    aggregate.departure_actual = event.actual_time
    if event.track:
        aggregate.track = event.track


def _union_via(target: List[ViaLocation], hints: Iterable[ViaLocation]) -> None:
    known = {via.signature for via in target}
    for via in hints:
        if via.signature not in known:
            target.append(via)
            known.add(via.signature)
