"""Tabular view of a refresh result for display."""

from typing import Iterable, List

import pandas as pd

from .models import OtherTrainObservation, RefreshResult, RouteNode

COLUMNS = [
    "signature",
    "name",
    "announced",
    "position",
    "track",
    "scheduled",
    "actual",
    "delay_min",
    "same_direction",
    "opposite_direction",
]


def position_marker(node: RouteNode) -> str:
    """One of "current", "departed", "in_transit" or ""."""
    if node.is_current:
        return "current"
    if node.train_between_here_and_next:
        return "departed"
    if node.in_transit_zone:
        return "in_transit"
    return ""


def format_trains(observations: Iterable[OtherTrainObservation]) -> str:
    """
    Render observations as comma separated entries.

    An entry is "<train> <signature> <track>" when the track is known,
    otherwise just "<train>".
    """
    parts: List[str] = []
    for observation in observations:
        text = observation.train_id
        if observation.track:
            text = f"{text} {observation.station_signature} {observation.track}"
        parts.append(text)
    return ", ".join(parts)


def route_table(result: RefreshResult) -> pd.DataFrame:
    """
    One row per route node, in route order.

    Delay is a nullable integer column (pd.NA when there is no info).
    """
    rows = []
    for node in result.route:
        trains = result.trains_at(node.signature)
        rows.append({
            "signature": node.signature,
            "name": result.station_name(node.signature),
            "announced": node.is_announced,
            "position": position_marker(node),
            "track": node.track or "",
            "scheduled": node.scheduled_time,
            "actual": node.actual_time,
            "delay_min": result.delays.get(node.signature, pd.NA),
            "same_direction": format_trains(trains.same_direction),
            "opposite_direction": format_trains(trains.opposite_direction),
        })

    frame = pd.DataFrame(rows, columns=COLUMNS)
    frame["delay_min"] = frame["delay_min"].astype("Int64")
    return frame
