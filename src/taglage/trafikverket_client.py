"""Trafikverket open API client for train announcements, stations and positions."""

import logging
import re
import threading
import time
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple
from xml.sax.saxutils import quoteattr

import requests

from .config import TRAFIKVERKET_URL
from .exceptions import DataSourceError, MalformedResponseError
from .models import Activity, LivePosition, Station, StationEvent, ViaLocation
from .timeutils import parse_time

logger = logging.getLogger(__name__)

ANNOUNCEMENT_FIELDS = [
    "ActivityType",
    "AdvertisedTimeAtLocation",
    "AdvertisedTrainIdent",
    "LocationSignature",
    "ToLocation",
    "FromLocation",
    "ViaFromLocation",
    "ViaToLocation",
    "TimeAtLocation",
    "TimeAtLocationWithSeconds",
    "TrackAtLocation",
    "Canceled",
]

STATION_FIELDS = ["LocationSignature", "AdvertisedLocationName", "Geometry.WGS84"]

POSITION_FIELDS = [
    "Train.AdvertisedTrainNumber",
    "Position.WGS84",
    "Speed",
    "Bearing",
    "TimeStamp",
]

_WGS84_POINT = re.compile(r"POINT\s*\(\s*(-?[\d.]+)\s+(-?[\d.]+)\s*\)")


def _include(fields: List[str]) -> str:
    return "".join(f"<INCLUDE>{name}</INCLUDE>" for name in fields)


def _eq(name: str, value: str) -> str:
    return f"<EQ name={quoteattr(name)} value={quoteattr(str(value))} />"


def _or(name: str, values: Iterable[str]) -> str:
    return "<OR>" + "".join(_eq(name, v) for v in values) + "</OR>"


class TrafikverketClient:
    """Fetches and parses data from the Trafikverket open API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = TRAFIKVERKET_URL,
        timeout: float = 10.0,
        cache_ttl: float = 30.0,
        station_cache_ttl: float = 24 * 3600.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Trafikverket authentication key.
            api_url: JSON endpoint of the API.
            timeout: Request timeout in seconds.
            cache_ttl: Lifetime of cached live responses in seconds.
            station_cache_ttl: Lifetime of cached stations in seconds.
            session: Optional requests session to reuse.
        """
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: Dict[str, Tuple[dict, float]] = {}  # query -> (response, timestamp)
        self._cache_ttl = cache_ttl
        self._max_cache_size = 50
        self._station_cache_ttl = station_cache_ttl
        self._stations: Dict[str, Tuple[Station, float]] = {}  # signature -> (station, timestamp)
        self._lock = threading.Lock()  # cache is shared by concurrent lookups

    def fetch_announcements(self, train_id: str, service_date: Optional[str] = None) -> List[StationEvent]:
        """
        Get all announcements for one train on one service day.

        Args:
            train_id: Advertised train number (e.g., "529").
            service_date: ISO date, defaults to today.

        Returns:
            List of StationEvent in API order.
        """
        service_date = service_date or date.today().isoformat()
        query = (
            '<QUERY objecttype="TrainAnnouncement" schemaversion="1.6" orderby="AdvertisedTimeAtLocation">'
            "<FILTER><AND>"
            f"{_eq('AdvertisedTrainIdent', train_id)}"
            f"{_eq('ScheduledDepartureDateTime', service_date)}"
            "</AND></FILTER>"
            f"{_include(ANNOUNCEMENT_FIELDS)}"
            "</QUERY>"
        )
        records = self._query(query, "TrainAnnouncement")
        events = self._parse_announcements(records)
        logger.debug(f"Train {train_id}: {len(events)} announcements")
        return events

    def fetch_other_trains_at_stations(
        self, signatures: List[str], service_date: Optional[str] = None
    ) -> List[StationEvent]:
        """
        Get realized announcements of every train at the given stations.

        Args:
            signatures: Station signatures to query.
            service_date: ISO date, defaults to today.

        Returns:
            List of StationEvent for all trains, including the primary one.
        """
        if not signatures:
            return []
        service_date = service_date or date.today().isoformat()
        query = (
            '<QUERY objecttype="TrainAnnouncement" schemaversion="1.6" orderby="AdvertisedTimeAtLocation">'
            "<FILTER><AND>"
            f"{_or('LocationSignature', signatures)}"
            f"{_eq('ScheduledDepartureDateTime', service_date)}"
            '<EXISTS name="TimeAtLocation" value="true" />'
            "</AND></FILTER>"
            f"{_include(ANNOUNCEMENT_FIELDS)}"
            "</QUERY>"
        )
        records = self._query(query, "TrainAnnouncement")
        return self._parse_announcements(records)

    def fetch_stations(self, signatures: List[str]) -> Dict[str, Station]:
        """
        Get display names and locations for station signatures.

        Stations are cached per signature; only unknown or expired signatures
        are requested. Signatures the API does not know are left out.
        """
        now = time.time()
        missing = [
            s for s in dict.fromkeys(signatures)
            if s not in self._stations or now - self._stations[s][1] >= self._station_cache_ttl
        ]

        if missing:
            query = (
                '<QUERY objecttype="TrainStation" schemaversion="1.4" namespace="rail.infrastructure">'
                f"<FILTER>{_or('LocationSignature', missing)}</FILTER>"
                f"{_include(STATION_FIELDS)}"
                "</QUERY>"
            )
            for record in self._query(query, "TrainStation", use_cache=False):
                station = self._parse_station(record)
                if station is not None:
                    self._stations[station.signature] = (station, now)
            logger.debug(f"Looked up {len(missing)} stations")

        return {s: self._stations[s][0] for s in signatures if s in self._stations}

    def fetch_station_names(self, signatures: List[str]) -> Dict[str, str]:
        """Get display names for station signatures."""
        return {s: station.name for s, station in self.fetch_stations(signatures).items()}

    def fetch_live_position(self, train_id: str) -> Optional[LivePosition]:
        """Get the latest GPS position of a train, or None if it reports none."""
        return self.fetch_live_positions([train_id]).get(train_id)

    def fetch_live_positions(self, train_ids: List[str]) -> Dict[str, LivePosition]:
        """Get the latest GPS positions for several trains in one request."""
        if not train_ids:
            return {}
        query = (
            '<QUERY objecttype="TrainPosition" namespace="järnväg.trafikinfo" schemaversion="1.1">'
            f"<FILTER>{_or('Train.AdvertisedTrainNumber', train_ids)}</FILTER>"
            f"{_include(POSITION_FIELDS)}"
            "</QUERY>"
        )
        positions: Dict[str, LivePosition] = {}
        for record in self._query(query, "TrainPosition"):
            position = self._parse_position(record)
            if position is None:
                continue
            known = positions.get(position.train_id)
            if known is None or position.timestamp > known.timestamp:
                positions[position.train_id] = position
        return positions

    def _query(self, query: str, object_type: str, use_cache: bool = True) -> List[dict]:
        """
        Run one query and return the records of object_type.

        Raises:
            DataSourceError: On transport failure or an API error message.
            MalformedResponseError: If RESPONSE.RESULT is missing.
        """
        data = self._fetch(query, use_cache)

        response = data.get("RESPONSE") if isinstance(data, dict) else None
        results = response.get("RESULT") if isinstance(response, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise MalformedResponseError(f"Response for {object_type} has no RESPONSE.RESULT")

        result = results[0]
        if "ERROR" in result:
            error = result["ERROR"]
            message = error.get("MESSAGE", error) if isinstance(error, dict) else error
            raise DataSourceError(f"Trafikverket error: {message}")

        records = result.get(object_type, [])
        if not isinstance(records, list):
            raise MalformedResponseError(f"{object_type} is not a list")
        return records

    def _fetch(self, query: str, use_cache: bool = True) -> Any:
        """
        POST a query wrapped in a REQUEST envelope, with caching.

        Args:
            query: One <QUERY> element.
            use_cache: Serve and store the response in the TTL cache.

        Returns:
            Decoded JSON body.
        """
        now = time.time()
        with self._lock:
            if use_cache and query in self._cache:
                data, timestamp = self._cache[query]
                if now - timestamp < self._cache_ttl:
                    logger.debug("Using cached response")
                    return data

            self._evict_expired_cache(now)

            if len(self._cache) >= self._max_cache_size:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]

        body = f"<REQUEST><LOGIN authenticationkey={quoteattr(self.api_key)} />{query}</REQUEST>"
        try:
            response = self.session.post(
                self.api_url,
                data=body.encode("utf-8"),
                headers={"Content-Type": "text/xml; charset=utf-8"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Request to {self.api_url} failed: {e}")
            raise DataSourceError(str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Response is not valid JSON") from e

        if use_cache:
            with self._lock:
                self._cache[query] = (data, now)
        return data

    def _evict_expired_cache(self, current_time: float) -> None:
        """Remove expired cache entries."""
        expired_keys = [
            key for key, (_, timestamp) in self._cache.items()
            if current_time - timestamp >= self._cache_ttl
        ]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")

    def clear_cache(self) -> None:
        """Manually clear the response and station caches."""
        self._cache.clear()
        self._stations.clear()

    def _parse_announcements(self, records: List[dict]) -> List[StationEvent]:
        events: List[StationEvent] = []
        skipped = 0
        for record in records:
            event = self._parse_announcement(record)
            if event is None:
                skipped += 1
            else:
                events.append(event)
        if skipped:
            logger.warning(f"Skipped {skipped} incomplete announcements")
        return events

    @staticmethod
    def _parse_announcement(record: dict) -> Optional[StationEvent]:
        """
        Convert one TrainAnnouncement record to a StationEvent.

        Returns None for records without signature, train ident, scheduled
        time or a known activity type.
        """
        signature = record.get("LocationSignature")
        train_id = record.get("AdvertisedTrainIdent")
        try:
            activity = Activity(record.get("ActivityType"))
            scheduled = parse_time(record.get("AdvertisedTimeAtLocation"))
            actual = parse_time(record.get("TimeAtLocationWithSeconds") or record.get("TimeAtLocation"))
        except ValueError as e:
            logger.debug(f"Unparseable announcement at {signature}: {e}")
            return None

        if not signature or not train_id or scheduled is None:
            return None

        return StationEvent(
            train_id=str(train_id),
            station_signature=signature,
            activity=activity,
            scheduled_time=scheduled,
            actual_time=actual,
            track=record.get("TrackAtLocation") or None,
            via_from=_parse_via(record.get("ViaFromLocation")),
            via_to=_parse_via(record.get("ViaToLocation")),
            from_locations=_location_names(record.get("FromLocation")),
            to_locations=_location_names(record.get("ToLocation")),
            canceled=bool(record.get("Canceled", False)),
        )

    @staticmethod
    def _parse_station(record: dict) -> Optional[Station]:
        signature = record.get("LocationSignature")
        name = record.get("AdvertisedLocationName")
        if not signature or not name:
            return None
        point = _parse_point((record.get("Geometry") or {}).get("WGS84"))
        latitude, longitude = point if point else (None, None)
        return Station(signature=signature, name=name, latitude=latitude, longitude=longitude)

    @staticmethod
    def _parse_position(record: dict) -> Optional[LivePosition]:
        train_id = (record.get("Train") or {}).get("AdvertisedTrainNumber")
        point = _parse_point((record.get("Position") or {}).get("WGS84"))
        try:
            timestamp = parse_time(record.get("TimeStamp"))
        except ValueError:
            timestamp = None
        if not train_id or point is None or timestamp is None:
            return None

        latitude, longitude = point
        speed = record.get("Speed")
        bearing = record.get("Bearing")
        return LivePosition(
            train_id=str(train_id),
            latitude=latitude,
            longitude=longitude,
            timestamp=timestamp,
            speed=float(speed) if speed is not None else None,
            bearing=float(bearing) if bearing is not None else None,
        )


def _parse_point(value: Any) -> Optional[Tuple[float, float]]:
    """(latitude, longitude) from a WGS84 "POINT (lon lat)" string."""
    match = _WGS84_POINT.search(value) if isinstance(value, str) else None
    if not match:
        return None
    return float(match.group(2)), float(match.group(1))


def _ordered_locations(value: Any) -> List[dict]:
    if not isinstance(value, list):
        return []
    locations = [v for v in value if isinstance(v, dict) and v.get("LocationName")]
    return sorted(locations, key=lambda v: v.get("Order", 0))


def _parse_via(value: Any) -> Tuple[ViaLocation, ...]:
    return tuple(
        ViaLocation(signature=v["LocationName"], order=int(v.get("Order", 0)))
        for v in _ordered_locations(value)
    )


def _location_names(value: Any) -> Tuple[str, ...]:
    return tuple(v["LocationName"] for v in _ordered_locations(value))
