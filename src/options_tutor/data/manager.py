"""MarketDataService: cache-first quote access over a rate-limited data source."""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable

from options_tutor.config import DataConfig
from options_tutor.data.models import CompanyOverview, HistoricalSeries, Quote
from options_tutor.data.placeholder import placeholder_quote
from options_tutor.data.ratelimit import RateLimiter, RateLimitStatus, RequestMeter
from options_tutor.data.sources.alpha_vantage import AlphaVantageClient
from options_tutor.data.sources.base import MarketDataSource
from options_tutor.data.store import QuoteStore
from options_tutor.errors import DataFetchError, LocalRateLimitExceeded, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    symbol: str
    quote: Quote
    historical: HistoricalSeries
    company: CompanyOverview | None  # None when the stored overview was still fresh


@dataclass(frozen=True)
class ApiKeyStatus:
    has_key: bool
    is_demo: bool


@dataclass(frozen=True)
class DataFreshness:
    last_update: datetime | None
    is_stale: bool
    next_update: datetime


class MarketDataService:
    """Reads quotes from the local store and refreshes them from the source.

    Every outbound call is approved by the RateLimiter first and counted
    exactly once. Fetch results replace stored records wholesale and are
    flushed to disk right away; a failed fetch leaves the store untouched.
    Snapshot write failures are logged and the in-memory state stays
    authoritative.

    Usage::

        async with MarketDataService(DataConfig(api_key=key)) as service:
            quote = await service.get_quote("AAPL")
    """

    def __init__(self, config: DataConfig | None = None,
                 source: MarketDataSource | None = None,
                 store: QuoteStore | None = None,
                 limiter: RateLimiter | None = None,
                 clock: Callable[[], datetime] = datetime.now,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config or DataConfig()
        self._clock = clock
        self._sleep = sleep
        self._store = store or QuoteStore(str(Path(self.config.data_dir).expanduser() / self.config.snapshot_name))
        self._source = source or AlphaVantageClient(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            timeout=self.config.request_timeout,
            clock=clock,
        )
        self._limiter = limiter or RateLimiter(self.config.max_daily_requests, self.config.min_request_interval)
        self._watched = list(self.config.watched_symbols)

    @property
    def store(self) -> QuoteStore:
        return self._store

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def now(self) -> datetime:
        return self._clock()

    # --- lifecycle ---

    def open(self) -> None:
        """Load the snapshot and restore the persisted request meter."""
        self._store.load()
        md = self._store.metadata
        self._limiter.meter = RequestMeter(
            requests_today=md.requests_today,
            last_request_date=md.last_request_date,
            last_request_at=md.last_request_at,
        )
        logger.info(f"Market data store opened: {len(self._store.symbols())} symbols, "
                    f"{md.requests_today} requests used on {md.last_request_date or 'n/a'}")

    async def close(self) -> None:
        if self._store.dirty:
            self._persist()
        await self._source.aclose()

    async def __aenter__(self) -> "MarketDataService":
        self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _persist(self) -> None:
        meter = self._limiter.meter
        md = self._store.metadata
        md.requests_today = meter.requests_today
        md.last_request_date = meter.last_request_date
        md.last_request_at = meter.last_request_at
        try:
            self._store.flush()
        except PersistenceError as e:
            logger.warning(f"{e}; keeping in-memory data for this session")

    # --- rate limiting ---

    def rate_limit_status(self) -> RateLimitStatus:
        return self._limiter.can_fetch(self._clock())

    async def _acquire(self, symbol: str, wait: bool) -> None:
        """Get the limiter's approval for one call and count it.

        With ``wait`` the inter-request spacing is waited out; an exhausted
        daily quota always fails immediately.
        """
        now = self._clock()
        status = self._limiter.can_fetch(now)
        if not status.allowed:
            if status.remaining_today == 0 or not wait:
                raise LocalRateLimitExceeded(
                    f"Request for {symbol} not allowed until {status.next_allowed_at:%Y-%m-%d %H:%M:%S} "
                    f"({status.remaining_today} left today)",
                    next_allowed_at=status.next_allowed_at,
                    remaining_today=status.remaining_today,
                    symbol=symbol,
                )
            delay = (status.next_allowed_at - now).total_seconds()
            logger.debug(f"Waiting {delay:.1f}s before requesting {symbol}")
            await self._sleep(delay)
            now = self._clock()
        self._limiter.record_request(now)

    # --- single fetches ---

    async def _fetch_one(self, symbol: str, wait: bool, fetch: Callable[[str], Awaitable], put: Callable) -> object:
        """Acquire quota, call ``fetch`` and hand the record to ``put``.

        The store is flushed even when the fetch fails.
        """
        await self._acquire(symbol, wait)
        try:
            record = await fetch(symbol)
            put(record)
        finally:
            self._persist()
        return record

    async def fetch_quote(self, symbol: str, wait: bool = False) -> Quote:
        sym = symbol.upper()
        quote = await self._fetch_one(sym, wait, self._source.fetch_quote, self._store.put_quote)
        logger.info(f"Fetched quote {sym}: {quote.price:.2f} ({quote.change_percent:+.2f}%)")
        return quote

    async def fetch_historical(self, symbol: str, wait: bool = False) -> HistoricalSeries:
        sym = symbol.upper()
        series = await self._fetch_one(sym, wait, self._source.fetch_historical, self._store.put_historical)
        logger.info(f"Fetched {len(series.bars)} daily bars for {sym}")
        return series

    async def fetch_overview(self, symbol: str, wait: bool = False) -> CompanyOverview:
        sym = symbol.upper()
        overview = await self._fetch_one(sym, wait, self._source.fetch_overview, self._store.put_company)
        logger.info(f"Fetched company overview for {sym}: {overview.name}")
        return overview

    def _company_due(self, symbol: str, now: datetime) -> bool:
        company = self._store.get_company(symbol)
        if company is None:
            return True
        return (now - company.refreshed_at).total_seconds() > self.config.company_max_age

    def requests_for_refresh(self, symbol: str) -> int:
        """Outbound calls a refresh of ``symbol`` would make right now."""
        return 3 if self._company_due(symbol.upper(), self._clock()) else 2

    async def refresh(self, symbol: str) -> RefreshResult:
        """Fetch quote, daily history and (when due) company overview as one unit.

        Quota for every call is checked before the first request. Results are
        committed together; if any call fails nothing is written.
        """
        sym = symbol.upper()
        calls = self.requests_for_refresh(sym)
        status = self.rate_limit_status()
        if status.remaining_today < calls:
            raise LocalRateLimitExceeded(
                f"Refreshing {sym} needs {calls} requests, {status.remaining_today} left today",
                next_allowed_at=status.next_allowed_at,
                remaining_today=status.remaining_today,
                symbol=sym,
            )

        try:
            await self._acquire(sym, wait=True)
            quote = await self._source.fetch_quote(sym)
            await self._acquire(sym, wait=True)
            historical = await self._source.fetch_historical(sym)
            company = None
            if calls == 3:
                await self._acquire(sym, wait=True)
                company = await self._source.fetch_overview(sym)

            self._store.put_quote(quote)
            self._store.put_historical(historical)
            if company is not None:
                self._store.put_company(company)
        finally:
            self._persist()

        logger.info(f"Refreshed {sym} with {calls} requests")
        return RefreshResult(sym, quote, historical, company)

    # --- reads ---

    async def get_quote(self, symbol: str) -> Quote:
        """Best available quote; never raises for fetch problems.

        Fresh cache, then an on-demand fetch if the limiter allows one right
        now, then the stale cached record, then a placeholder.
        """
        sym = symbol.upper()
        now = self._clock()
        cached = self._store.get_quote(sym)
        if cached is not None and cached.age(now) <= self.config.quote_ttl:
            return cached

        try:
            return await self.fetch_quote(sym, wait=False)
        except DataFetchError as e:
            fallback = "cached" if cached is not None else "placeholder"
            logger.warning(f"Quote for {sym} unavailable ({type(e).__name__}: {e}); serving {fallback} data")

        return cached if cached is not None else placeholder_quote(sym, now)

    async def get_price(self, symbol: str) -> float:
        return (await self.get_quote(symbol)).price

    def get_cached_quote(self, symbol: str) -> Quote | None:
        return self._store.get_quote(symbol)

    def get_historical(self, symbol: str) -> HistoricalSeries | None:
        return self._store.get_historical(symbol)

    def get_company(self, symbol: str) -> CompanyOverview | None:
        return self._store.get_company(symbol)

    # --- API key ---

    def api_key_status(self) -> ApiKeyStatus:
        key = self.config.api_key.strip()
        is_demo = not key or key.lower() == "demo"
        return ApiKeyStatus(has_key=not is_demo, is_demo=is_demo)

    def set_api_key(self, api_key: str) -> None:
        self.config = replace(self.config, api_key=api_key)
        if isinstance(self._source, AlphaVantageClient):
            self._source.api_key = api_key
        logger.info(f"API key updated ({'demo' if self.api_key_status().is_demo else 'production'} mode)")

    async def is_available(self) -> bool:
        return await self._source.ping()

    # --- watched symbols ---

    def watched_symbols(self) -> list[str]:
        return list(self._watched)

    def add_watched_symbol(self, symbol: str) -> None:
        sym = symbol.strip().upper()
        if sym and sym not in self._watched:
            self._watched.append(sym)

    def remove_watched_symbol(self, symbol: str) -> None:
        sym = symbol.strip().upper()
        if sym in self._watched:
            self._watched.remove(sym)

    def stored_symbols(self) -> list[str]:
        return self._store.symbols()

    # --- maintenance ---

    def storage_stats(self) -> dict:
        return self._store.stats()

    def data_freshness(self) -> DataFreshness:
        now = self._clock()
        last = self._store.metadata.last_update
        if last is None:
            return DataFreshness(last_update=None, is_stale=True, next_update=now)
        stale_after = timedelta(seconds=self.config.stale_after)
        return DataFreshness(
            last_update=last,
            is_stale=now - last > stale_after,
            next_update=last + stale_after,
        )

    def cleanup_old_data(self, max_age: float = 7 * 24 * 3600) -> int:
        removed = self._store.cleanup(max_age, self._clock())
        if removed:
            logger.info(f"Removed {removed} records older than {max_age / 86400:.1f} days")
            self._persist()
        return removed

    def clear_stored_data(self) -> None:
        self._store.clear()
        self._persist()
        logger.info("Cleared all stored market data")
