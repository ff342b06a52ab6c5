"""Exceptions raised by the forecast core and mapped to HTTP by ``main``."""


class ForecastError(Exception):
    """Base class for forecast failures."""


class InvalidRequest(ForecastError):
    """Request parameters failed validation; nothing was fetched."""


class UpstreamUnavailable(ForecastError):
    """A required provider (weather or sun) could not be used."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source} provider unavailable: {reason}")
        self.source = source
        self.reason = reason

