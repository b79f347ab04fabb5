"""Data models for the Tågläge train tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class Activity(Enum):
    """Announcement activity type, valued as Trafikverket spells it."""
    ARRIVAL = "Ankomst"
    DEPARTURE = "Avgang"


class Direction(Enum):
    """Relationship between two trains' station orderings."""
    SAME = "same"
    OPPOSITE = "opposite"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ViaLocation:
    """A pass-through location hint attached to an announcement."""
    signature: str
    order: int = 0


@dataclass(frozen=True)
class StationEvent:
    """One raw arrival or departure announcement at a station."""
    train_id: str
    station_signature: str
    activity: Activity
    scheduled_time: datetime
    actual_time: Optional[datetime] = None
    track: Optional[str] = None
    via_from: Tuple[ViaLocation, ...] = ()
    via_to: Tuple[ViaLocation, ...] = ()
    from_locations: Tuple[str, ...] = ()
    to_locations: Tuple[str, ...] = ()
    canceled: bool = False


@dataclass
class StationAggregate:
    """Arrival and departure facts for one station, merged from its events."""
    signature: str
    arrival_scheduled: Optional[datetime] = None
    arrival_actual: Optional[datetime] = None
    departure_scheduled: Optional[datetime] = None
    departure_actual: Optional[datetime] = None
    track: Optional[str] = None
    canceled: bool = False
    via_from: List[ViaLocation] = field(default_factory=list)
    via_to: List[ViaLocation] = field(default_factory=list)
    destination: Optional[str] = None  # last ToLocation seen

    @property
    def arrived(self) -> bool:
        return self.arrival_actual is not None

    @property
    def departed(self) -> bool:
        return self.departure_actual is not None

    @property
    def scheduled_time(self) -> Optional[datetime]:
        """Sort key: the earliest advertised time at this station."""
        if self.arrival_scheduled is not None:
            return self.arrival_scheduled
        return self.departure_scheduled

    @property
    def actual_time(self) -> Optional[datetime]:
        """Most recent realized time at this station."""
        if self.departure_actual is not None:
            return self.departure_actual
        return self.arrival_actual


@dataclass(frozen=True)
class RouteNode:
    """One operational point in a reconstructed route."""
    signature: str
    is_announced: bool
    scheduled_time: Optional[datetime] = None
    actual_time: Optional[datetime] = None
    track: Optional[str] = None
    arrived: bool = False
    departed: bool = False
    arrival_scheduled: Optional[datetime] = None
    arrival_actual: Optional[datetime] = None
    departure_scheduled: Optional[datetime] = None
    departure_actual: Optional[datetime] = None
    canceled: bool = False
    # Position flags, set by the position resolver
    is_current: bool = False
    in_transit_zone: bool = False
    train_between_here_and_next: bool = False

    @property
    def touched(self) -> bool:
        return self.arrived or self.departed


@dataclass(frozen=True)
class Route:
    """Ordered, deduplicated sequence of route nodes for one train."""
    nodes: Tuple[RouteNode, ...] = ()
    current_index: int = -1

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[RouteNode]:
        return iter(self.nodes)

    def __getitem__(self, index: int) -> RouteNode:
        return self.nodes[index]

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def signatures(self) -> List[str]:
        return [node.signature for node in self.nodes]

    @property
    def current_node(self) -> Optional[RouteNode]:
        if self.current_index < 0:
            return None
        return self.nodes[self.current_index]

    def index_of(self, signature: str) -> int:
        """Index of a signature in the route, or -1."""
        for index, node in enumerate(self.nodes):
            if node.signature == signature:
                return index
        return -1


@dataclass(frozen=True)
class OtherTrainObservation:
    """Another train seen at one station of the primary train's route."""
    train_id: str
    station_signature: str
    scheduled_time: Optional[datetime]
    actual_time: Optional[datetime] = None
    track: Optional[str] = None
    destination_signature: Optional[str] = None
    origin_station_order: Tuple[str, ...] = ()
    direction: Direction = Direction.UNKNOWN


@dataclass(frozen=True)
class StationTrains:
    """Other trains at a station, split by direction."""
    same_direction: Tuple[OtherTrainObservation, ...] = ()
    opposite_direction: Tuple[OtherTrainObservation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.same_direction and not self.opposite_direction


@dataclass(frozen=True)
class LivePosition:
    """GPS position report for a train."""
    train_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    speed: Optional[float] = None  # km/h
    bearing: Optional[float] = None  # degrees


@dataclass(frozen=True)
class Station:
    """Display name and map location of a station signature."""
    signature: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class RefreshResult:
    """Everything one refresh cycle produced, handed to the presentation layer."""
    train_id: str
    service_date: str
    route: Route
    trains_by_station: Dict[str, StationTrains]
    delays: Dict[str, int]
    stations: Dict[str, Station]
    live_position: Optional[LivePosition]
    generation: int
    last_updated: datetime

    @property
    def current_index(self) -> int:
        return self.route.current_index

    @property
    def station_names(self) -> Dict[str, str]:
        return {signature: station.name for signature, station in self.stations.items()}

    def station_name(self, signature: str) -> str:
        """Display name for a signature, falling back to the signature itself."""
        station = self.stations.get(signature)
        return station.name if station else signature

    def trains_at(self, signature: str) -> StationTrains:
        return self.trains_by_station.get(signature, StationTrains())
