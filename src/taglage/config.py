"""Runtime configuration for the tracker."""

import os
from dataclasses import dataclass

TRAFIKVERKET_URL = "https://api.trafikinfo.trafikverket.se/v2/data.json"


@dataclass
class TrackerConfig:
    """Settings for the data source and the refresh cycle."""
    api_key: str = ""
    api_url: str = TRAFIKVERKET_URL
    request_timeout: float = 10.0  # seconds
    cache_ttl: float = 30.0  # seconds, live announcement data
    station_cache_ttl: float = 24 * 3600.0  # seconds, station names
    refresh_interval: float = 30.0  # seconds between refresh cycles
    freshness_minutes: float = 15.0
    unknown_direction_policy: str = "same"  # "same" or "hide"
    max_workers: int = 3

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Build a config from TRAFIKVERKET_* and TAGLAGE_* environment variables."""
        defaults = cls()
        return cls(
            api_key=os.getenv("TRAFIKVERKET_API_KEY", "").strip(),
            api_url=os.getenv("TRAFIKVERKET_API_URL", defaults.api_url).strip(),
            request_timeout=float(os.getenv("TAGLAGE_REQUEST_TIMEOUT", defaults.request_timeout)),
            refresh_interval=float(os.getenv("TAGLAGE_REFRESH_INTERVAL", defaults.refresh_interval)),
            freshness_minutes=float(os.getenv("TAGLAGE_FRESHNESS_MINUTES", defaults.freshness_minutes)),
            unknown_direction_policy=os.getenv(
                "TAGLAGE_UNKNOWN_DIRECTION", defaults.unknown_direction_policy
            ).strip().lower(),
        )
