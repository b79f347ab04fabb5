"""Tågläge - Train route reconstruction and live position tracking for Swedish railways."""

__version__ = "0.1.0"

from .models import (
    Activity,
    Direction,
    StationEvent,
    ViaLocation,
    RouteNode,
    Route,
    OtherTrainObservation,
    StationTrains,
    LivePosition,
    Station,
    RefreshResult,
)
from .exceptions import TaglageError, TrainNotFoundError, MalformedResponseError, DataSourceError
from .config import TrackerConfig
from .normalizer import normalize_events
from .route_builder import build_route
from .position import resolve_position
from .direction import compare_direction_by_station_order, classify_other_trains
from .delay import delay_minutes, delay_status, DelayStatus
from .trafikverket_client import TrafikverketClient
from .train_tracker import TrainTracker

__all__ = [
    "TrainTracker",
    "TrafikverketClient",
    "TrackerConfig",
    "normalize_events",
    "build_route",
    "resolve_position",
    "compare_direction_by_station_order",
    "classify_other_trains",
    "delay_minutes",
    "delay_status",
    "DelayStatus",
    "Activity",
    "Direction",
    "StationEvent",
    "ViaLocation",
    "RouteNode",
    "Route",
    "OtherTrainObservation",
    "StationTrains",
    "LivePosition",
    "Station",
    "RefreshResult",
    "TaglageError",
    "TrainNotFoundError",
    "MalformedResponseError",
    "DataSourceError",
]
