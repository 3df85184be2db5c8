"""Abstract base class for market data sources."""

from abc import ABC, abstractmethod

from options_tutor.data.models import CompanyOverview, HistoricalSeries, Quote


class MarketDataSource(ABC):
    """Interface for fetching quotes, company overviews and daily history.

    Implementations raise ``DataFetchError`` subclasses and never touch the
    store or the rate limiter.
    """

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Quote:
        ...

    @abstractmethod
    async def fetch_overview(self, symbol: str) -> CompanyOverview:
        ...

    @abstractmethod
    async def fetch_historical(self, symbol: str) -> HistoricalSeries:
        """Return at most the 100 most recent daily bars, newest first."""
        ...

    async def ping(self) -> bool:
        """Cheap reachability check. Must not raise."""
        return True

    async def aclose(self) -> None:
        return None
