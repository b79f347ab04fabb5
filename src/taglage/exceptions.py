"""Exceptions raised by the tracker pipeline."""


class TaglageError(Exception):
    """Base class for all tracker errors."""


class TrainNotFoundError(TaglageError, LookupError):
    """No announcements exist for the requested train and date."""

    def __init__(self, train_id: str, service_date: str):
        super().__init__(f"Train {train_id} not found for {service_date}")
        self.train_id = train_id
        self.service_date = service_date


class MalformedResponseError(TaglageError, ValueError):
    """Upstream response is missing its expected top-level structure."""


class DataSourceError(TaglageError):
    """Upstream request failed at the transport level."""
