"""
Exception taxonomy for FlightSync.

Upstream failures abort a single fetch, persistence failures abort a single
record, and NotYetAvailable is what readers see when no fetch has ever
succeeded. Only ConfigurationError is meant to stop the process.
"""

from typing import List, Optional


class FlightSyncError(Exception):
    """Base class for all FlightSync errors."""


class ConfigurationError(FlightSyncError):
    """Required configuration is missing or invalid."""


class UpstreamFailure(FlightSyncError):
    """Base class for failures talking to the flight-data provider."""


class UpstreamTimeout(UpstreamFailure):
    """The provider did not answer within the configured timeout."""


class UpstreamError(UpstreamFailure):
    """The provider answered with a non-2xx status."""

    def __init__(self, status: int, body: str = ''):
        self.status = status
        self.body = body
        super().__init__(f'Upstream returned HTTP {status}')


class UpstreamDecodeError(UpstreamFailure):
    """The provider's response could not be parsed."""


class PersistenceError(FlightSyncError):
    """Writing a flight record to the durable store failed."""

    def __init__(self, flight_key: Optional[str], message: str = ''):
        self.flight_key = flight_key
        super().__init__(message or f'Failed to persist flight {flight_key}')


class PartialBatchFailure(FlightSyncError):
    """Some records in a batch failed reconciliation."""

    def __init__(self, failed_keys: List[str], count: int = 0):
        self.failed_keys = list(failed_keys)
        self.count = count
        super().__init__(
            f'{len(self.failed_keys)} record(s) failed reconciliation '
            f'({count} succeeded): {", ".join(self.failed_keys)}'
        )


class NotYetAvailable(FlightSyncError):
    """No successful fetch has completed for the requested feed."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f'No {kind} data available yet')
