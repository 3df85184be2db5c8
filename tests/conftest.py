"""Shared test fixtures."""

import asyncio
import inspect
from datetime import date, datetime, timedelta

import httpx
import pytest

from options_tutor.config import DataConfig
from options_tutor.data.manager import MarketDataService
from options_tutor.data.models import CompanyOverview, DailyBar, HistoricalSeries, Quote
from options_tutor.data.sources.base import MarketDataSource
from options_tutor.data.store import QuoteStore
from options_tutor.errors import DataFetchError

# Tuesday, regular NYSE session
START = datetime(2024, 3, 12, 10, 0, 0)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``async def`` tests on a fresh event loop."""
    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            loop.run_until_complete(test_function(**kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeClock:
    """Manually advanced clock. ``sleep`` advances it instead of waiting."""

    def __init__(self, start: datetime = START):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


def make_quote_payload(price: str = "150.25", change: str = "2.15", change_pct: str = "1.45%",
                       volume: str = "45123456", day: str = "2024-03-11") -> dict:
    return {
        "Global Quote": {
            "01. symbol": "AAPL",
            "02. open": "148.50",
            "03. high": "151.00",
            "04. low": "148.00",
            "05. price": price,
            "06. volume": volume,
            "07. latest trading day": day,
            "08. previous close": "148.10",
            "09. change": change,
            "10. change percent": change_pct,
        }
    }


def make_daily_payload(days: int = 150, end: date = date(2024, 3, 11), start_price: float = 100.0) -> dict:
    """TIME_SERIES_DAILY payload with ``days`` consecutive weekday bars ending at ``end``."""
    dates = []
    d = end
    while len(dates) < days:
        if d.weekday() < 5:
            dates.append(d)
        d -= timedelta(days=1)

    series = {}
    for i, day in enumerate(reversed(dates)):
        close = start_price + i
        series[day.isoformat()] = {
            "1. open": f"{close - 0.5:.4f}",
            "2. high": f"{close + 1:.4f}",
            "3. low": f"{close - 1:.4f}",
            "4. close": f"{close:.4f}",
            "5. volume": str(1_000_000 + i),
        }
    return {"Meta Data": {"2. Symbol": "AAPL"}, "Time Series (Daily)": series}


def make_overview_payload(name: str = "Apple Inc") -> dict:
    return {
        "Symbol": "AAPL",
        "Name": name,
        "Description": "Designs consumer electronics.",
        "Sector": "TECHNOLOGY",
        "Industry": "ELECTRONIC COMPUTERS",
        "MarketCapitalization": "2800000000000",
        "PERatio": "29.5",
        "EPS": "6.13",
        "DividendYield": "0.0055",
        "Beta": "1.29",
        "52WeekHigh": "199.62",
        "52WeekLow": "143.90",
    }


def mock_transport(payloads: dict[str, dict | str], status_code: int = 200) -> httpx.MockTransport:
    """Answer each Alpha Vantage ``function`` with the matching payload."""

    def handler(request: httpx.Request) -> httpx.Response:
        function = request.url.params.get("function")
        body = payloads.get(function, {})
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


def make_quote(symbol: str = "AAPL", price: float = 150.25, refreshed_at: datetime = START) -> Quote:
    return Quote(
        symbol=symbol,
        price=price,
        change=2.15,
        change_percent=1.45,
        volume=45_123_456,
        latest_trading_day=refreshed_at.date(),
        refreshed_at=refreshed_at,
        last_fetch_at=refreshed_at,
    )


def make_series(symbol: str = "AAPL", bars: int = 5, refreshed_at: datetime = START) -> HistoricalSeries:
    days = [refreshed_at.date() - timedelta(days=i) for i in range(bars)]
    return HistoricalSeries(
        symbol=symbol,
        bars=[DailyBar(d, 100.0 + i, 101.0 + i, 99.0 + i, 100.5 + i, 1_000_000) for i, d in enumerate(days)],
        refreshed_at=refreshed_at,
    )


def make_overview(symbol: str = "AAPL", refreshed_at: datetime = START) -> CompanyOverview:
    return CompanyOverview(symbol=symbol, name=f"{symbol} Inc", sector="TECHNOLOGY",
                           market_cap=2.8e12, pe_ratio=29.5, refreshed_at=refreshed_at)


class MockDataSource(MarketDataSource):
    """Data source that returns canned records and counts calls.

    Put an exception instance in ``errors[(kind, symbol)]`` to make that
    call fail; ``kind`` is one of "quote", "historical", "company".
    """

    def __init__(self, clock=None, price: float = 150.25):
        self._clock = clock or (lambda: START)
        self.price = price
        self.calls: list[tuple[str, str]] = []
        self.errors: dict[tuple[str, str], Exception] = {}
        self.closed = False

    def _call(self, kind: str, symbol: str) -> None:
        self.calls.append((kind, symbol))
        error = self.errors.get((kind, symbol))
        if error is not None:
            raise error

    async def fetch_quote(self, symbol: str) -> Quote:
        self._call("quote", symbol)
        return make_quote(symbol, self.price, self._clock())

    async def fetch_historical(self, symbol: str) -> HistoricalSeries:
        self._call("historical", symbol)
        return make_series(symbol, refreshed_at=self._clock())

    async def fetch_overview(self, symbol: str) -> CompanyOverview:
        self._call("company", symbol)
        return make_overview(symbol, self._clock())

    async def aclose(self) -> None:
        self.closed = True


def fail(kind: str, symbol: str, source: MockDataSource,
         error: Exception | None = None) -> None:
    source.errors[(kind, symbol)] = error or DataFetchError(f"{kind} failed", symbol=symbol)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_source(clock):
    return MockDataSource(clock)


@pytest.fixture
def store(tmp_path):
    return QuoteStore(str(tmp_path / "alpha-vantage-data.json"))


@pytest.fixture
def service(tmp_path, clock, mock_source, store):
    """Opened service over a mock source, fake clock and temp snapshot."""
    svc = MarketDataService(
        DataConfig(data_dir=str(tmp_path), watched_symbols=("AAPL", "MSFT")),
        source=mock_source,
        store=store,
        clock=clock,
        sleep=clock.sleep,
    )
    svc.open()
    return svc


def use_up_quota(service: MarketDataService, left: int = 0) -> None:
    """Mark today's quota as used, leaving ``left`` requests."""
    meter = service.limiter.meter
    meter.requests_today = service.limiter.max_daily_requests - left
    meter.last_request_date = service.now().date().isoformat()
    meter.last_request_at = service.now() - timedelta(hours=1)
