"""Timestamp helpers shared by the client and the pipeline."""

from datetime import datetime, timezone
from typing import Optional, Union

import pandas as pd

TimeLike = Union[str, datetime, None]


def parse_time(value: TimeLike) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into a datetime.

    Trafikverket sends values like "2024-01-01T10:00:00.000+01:00".
    Empty values and None map to None; datetimes pass through unchanged.

    Raises:
        ValueError: If the value is not a parseable timestamp.
    """
    if value is None or isinstance(value, datetime):
        return value
    if not str(value).strip():
        return None
    try:
        return pd.Timestamp(value).to_pydatetime()
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp {value!r}") from e


def comparable(reference: datetime, value: datetime) -> datetime:
    """Return value with the same tz-awareness as reference."""
    if (reference.tzinfo is None) == (value.tzinfo is None):
        return value
    if reference.tzinfo is None:
        # aware -> local naive
        return value.astimezone().replace(tzinfo=None)
    return value.astimezone(timezone.utc)


def now_like(reference: Optional[datetime] = None) -> datetime:
    """Current time, aware if reference is aware."""
    if reference is not None and reference.tzinfo is None:
        return datetime.now()
    return datetime.now(timezone.utc)
