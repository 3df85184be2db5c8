"""Error taxonomy for fetching, rate limiting and persistence."""

from datetime import datetime


class DataFetchError(Exception):
    """Base class for failures while fetching market data for a symbol."""

    def __init__(self, message: str, symbol: str | None = None):
        super().__init__(message)
        self.symbol = symbol


class NetworkError(DataFetchError):
    """Transport failure, timeout or non-2xx HTTP status."""


class ProviderRateLimited(DataFetchError):
    """The provider answered with its own throttling notice."""


class ProviderError(DataFetchError):
    """The provider answered with an explicit error message (bad symbol, bad key)."""


class ParseError(DataFetchError):
    """The payload is missing expected fields or has malformed values."""


class LocalRateLimitExceeded(DataFetchError):
    """The local daily cap or minimum request spacing forbids a call right now."""

    def __init__(self, message: str, next_allowed_at: datetime | None = None,
                 remaining_today: int = 0, symbol: str | None = None):
        super().__init__(message, symbol=symbol)
        self.next_allowed_at = next_allowed_at
        self.remaining_today = remaining_today


class PersistenceError(Exception):
    """Reading or writing the snapshot file failed."""


class SchedulerBusy(RuntimeError):
    """A batch is already being processed."""
