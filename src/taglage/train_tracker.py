"""Main train tracker: one refresh cycle from raw announcements to a display-ready result."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Set

from .config import TrackerConfig
from .delay import route_delays
from .direction import classify_other_trains, find_stale_trains, is_fresh
from .exceptions import TrainNotFoundError
from .models import LivePosition, RefreshResult, Route, Station, StationEvent, StationTrains
from .normalizer import normalize_events
from .position import resolve_position
from .route_builder import build_route
from .timeutils import now_like
from .trafikverket_client import TrafikverketClient

logger = logging.getLogger(__name__)


class TrainTracker:
    """
    Tracks one train's route, position and surrounding traffic.

    This class provides methods to:
    - Run a single refresh cycle and get an immutable RefreshResult
    - Keep refreshing on a fixed interval until stopped
    - Access the latest successfully published result
    """

    def __init__(
        self,
        client=None,
        config: Optional[TrackerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            client: Data source with fetch_announcements, fetch_other_trains_at_stations,
                    fetch_stations, fetch_live_position and fetch_live_positions.
                    Defaults to a TrafikverketClient built from config.
            config: Tracker settings. Defaults to TrackerConfig.from_env().
            clock: Returns the reference time for the freshness window. Defaults to
                   the current time, timezone-aware when the announcements are.
        """
        self.config = config or TrackerConfig.from_env()
        self.client = client or TrafikverketClient(
            api_key=self.config.api_key,
            api_url=self.config.api_url,
            timeout=self.config.request_timeout,
            cache_ttl=self.config.cache_ttl,
            station_cache_ttl=self.config.station_cache_ttl,
        )
        self._clock = clock
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._generation = 0
        self._latest: Optional[RefreshResult] = None

    @property
    def latest(self) -> Optional[RefreshResult]:
        """Last successfully published result, or None."""
        with self._state_lock:
            return self._latest

    @property
    def is_loading(self) -> bool:
        return self._cycle_lock.locked()

    def refresh(self, train_id: str, service_date: Optional[str] = None) -> RefreshResult:
        """
        Run one full refresh cycle.

        Cycles are serialized. The result is published as `latest` only if no
        newer cycle was started in the meantime.

        Args:
            train_id: Advertised train number.
            service_date: ISO date, defaults to today.

        Returns:
            RefreshResult for this cycle.

        Raises:
            TrainNotFoundError: If the train has no announcements.
            MalformedResponseError, DataSourceError: If announcements could not be fetched.
        """
        service_date = service_date or date.today().isoformat()
        generation = self._next_generation()

        with self._cycle_lock:
            result = self._run_cycle(train_id, service_date, generation)

        with self._state_lock:
            if generation == self._generation:
                self._latest = result
            else:
                logger.info(f"Discarding result of superseded cycle {generation}")
        return result

    def run(
        self,
        train_id: str,
        stop_event: threading.Event,
        interval: Optional[float] = None,
        service_date: Optional[str] = None,
        on_result: Optional[Callable[[RefreshResult], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Refresh repeatedly until stop_event is set.

        A failed cycle is logged and passed to on_error; the previous result
        stays published and the loop continues.
        """
        interval = interval if interval is not None else self.config.refresh_interval
        logger.info(f"Tracking train {train_id} every {interval:.0f}s")

        while not stop_event.is_set():
            try:
                result = self.refresh(train_id, service_date)
            except Exception as e:
                logger.error(f"Refresh of train {train_id} failed: {e}")
                if on_error:
                    on_error(e)
            else:
                if on_result:
                    on_result(result)
            stop_event.wait(interval)

    def _next_generation(self) -> int:
        with self._state_lock:
            self._generation += 1
            return self._generation

    def _run_cycle(self, train_id: str, service_date: str, generation: int) -> RefreshResult:
        events = self.client.fetch_announcements(train_id, service_date)
        route = resolve_position(build_route(normalize_events(events)))
        if route.is_empty:
            raise TrainNotFoundError(train_id, service_date)

        signatures = route.signatures
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            stations_future = executor.submit(self._stations, signatures)
            others_future = executor.submit(self._other_train_events, route, service_date)
            position_future = executor.submit(self._live_position, train_id)
            stations = stations_future.result()
            other_events = others_future.result()
            live_position = position_future.result()

        if self._clock is not None:
            now = self._clock()
        else:
            now = now_like(next((n.scheduled_time for n in route if n.scheduled_time), None))
        trains_by_station = self._classify(train_id, route, other_events, now)

        current = route.current_node
        logger.info(
            f"Train {train_id} cycle {generation}: {len(route)} stations, "
            f"position {current.signature if current else 'undetermined'}"
        )

        return RefreshResult(
            train_id=train_id,
            service_date=service_date,
            route=route,
            trains_by_station=trains_by_station,
            delays=route_delays(route),
            stations=stations,
            live_position=live_position,
            generation=generation,
            last_updated=datetime.now(),
        )

    def _classify(
        self, train_id: str, route: Route, other_events: List[StationEvent], now: datetime
    ) -> Dict[str, StationTrains]:
        freshness = self.config.freshness_minutes
        stale = find_stale_trains(other_events, now, freshness, exclude=train_id)
        live_ids = self._live_train_ids(stale, now) if stale else set()
        return classify_other_trains(
            route,
            other_events,
            now,
            primary_train_id=train_id,
            freshness_minutes=freshness,
            live_train_ids=live_ids,
            unknown_policy=self.config.unknown_direction_policy,
        )

    def _stations(self, signatures: List[str]) -> Dict[str, Station]:
        try:
            return self.client.fetch_stations(signatures)
        except Exception as e:
            logger.warning(f"Station lookup failed, showing signatures: {e}")
            return {}

    def _other_train_events(self, route: Route, service_date: str) -> List[StationEvent]:
        try:
            return self.client.fetch_other_trains_at_stations(route.signatures, service_date)
        except Exception as e:
            logger.warning(f"Other trains lookup failed: {e}")
            return []

    def _live_position(self, train_id: str) -> Optional[LivePosition]:
        try:
            return self.client.fetch_live_position(train_id)
        except Exception as e:
            logger.warning(f"Live position lookup failed for {train_id}: {e}")
            return None

    def _live_train_ids(self, train_ids: Set[str], now: datetime) -> Set[str]:
        """Trains among train_ids with a position report inside the freshness window."""
        try:
            positions = self.client.fetch_live_positions(sorted(train_ids))
        except Exception as e:
            logger.warning(f"Live position lookup failed for {len(train_ids)} trains: {e}")
            return set()
        return {
            tid for tid, position in positions.items()
            if is_fresh(position.timestamp, now, self.config.freshness_minutes)
        }
