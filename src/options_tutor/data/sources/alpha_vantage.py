"""Alpha Vantage data source over httpx."""

import logging
import math
from datetime import date, datetime
from typing import Any, Callable

import httpx
import numpy as np
import pandas as pd

from options_tutor.data.models import (
    MAX_HISTORY_BARS, CompanyOverview, DailyBar, HistoricalSeries, Quote,
)
from options_tutor.data.sources.base import MarketDataSource
from options_tutor.errors import NetworkError, ParseError, ProviderError, ProviderRateLimited

logger = logging.getLogger(__name__)

BASE_URL = "https://www.alphavantage.co/query"

_DAILY_COLUMNS = {
    "1. open": "Open",
    "2. high": "High",
    "3. low": "Low",
    "4. close": "Close",
    "5. volume": "Volume",
}

# Keys Alpha Vantage uses for its own throttling notices
_THROTTLE_KEYS = ("Note", "Information")


def _require_float(data: dict, key: str, symbol: str) -> float:
    try:
        value = float(str(data[key]).strip().rstrip("%"))
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Bad or missing '{key}' for {symbol}: {e}", symbol=symbol) from e
    if not math.isfinite(value):
        raise ParseError(f"Non-finite '{key}' for {symbol}", symbol=symbol)
    return value


def _optional_float(data: dict, key: str, symbol: str) -> float | None:
    raw = data.get(key)
    if raw is None or str(raw).strip() in ("", "None", "-"):
        return None
    return _require_float(data, key, symbol)


def parse_quote(symbol: str, payload: dict[str, Any], fetched_at: datetime, now: datetime) -> Quote:
    """Build a Quote from a GLOBAL_QUOTE payload."""
    data = payload.get("Global Quote")
    if not isinstance(data, dict) or not data:
        raise ParseError(f"No 'Global Quote' in response for {symbol}", symbol=symbol)

    price = _require_float(data, "05. price", symbol)
    if price <= 0:
        raise ParseError(f"Non-positive price {price} for {symbol}", symbol=symbol)

    latest_day = None
    raw_day = data.get("07. latest trading day")
    if raw_day:
        try:
            latest_day = date.fromisoformat(raw_day)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Bad latest trading day '{raw_day}' for {symbol}", symbol=symbol) from e

    return Quote(
        symbol=symbol,
        price=price,
        change=_require_float(data, "09. change", symbol),
        change_percent=_require_float(data, "10. change percent", symbol),
        volume=int(_require_float(data, "06. volume", symbol)),
        latest_trading_day=latest_day,
        refreshed_at=now,
        last_fetch_at=fetched_at,
    )


def parse_overview(symbol: str, payload: dict[str, Any], now: datetime) -> CompanyOverview:
    """Build a CompanyOverview from an OVERVIEW payload."""
    name = payload.get("Name")
    if not payload or not isinstance(name, str) or not name:
        raise ParseError(f"No company overview in response for {symbol}", symbol=symbol)

    return CompanyOverview(
        symbol=symbol,
        name=name,
        description=payload.get("Description") or "",
        sector=payload.get("Sector") or "",
        industry=payload.get("Industry") or "",
        market_cap=_optional_float(payload, "MarketCapitalization", symbol),
        pe_ratio=_optional_float(payload, "PERatio", symbol),
        eps=_optional_float(payload, "EPS", symbol),
        dividend_yield=_optional_float(payload, "DividendYield", symbol),
        beta=_optional_float(payload, "Beta", symbol),
        week52_high=_optional_float(payload, "52WeekHigh", symbol),
        week52_low=_optional_float(payload, "52WeekLow", symbol),
        refreshed_at=now,
    )


def parse_daily_series(symbol: str, payload: dict[str, Any], now: datetime,
                       max_bars: int = MAX_HISTORY_BARS) -> HistoricalSeries:
    """Build a HistoricalSeries from a TIME_SERIES_DAILY payload.

    Keeps the ``max_bars`` most recent observations, newest first. Any
    malformed bar rejects the whole series.
    """
    series = payload.get("Time Series (Daily)")
    if not isinstance(series, dict) or not series:
        raise ParseError(f"No 'Time Series (Daily)' in response for {symbol}", symbol=symbol)
    if not all(isinstance(v, dict) for v in series.values()):
        raise ParseError(f"Malformed daily bars for {symbol}", symbol=symbol)

    try:
        df = pd.DataFrame.from_dict(series, orient="index")
        df = df.rename(columns=_DAILY_COLUMNS)[list(_DAILY_COLUMNS.values())]
        df.index = pd.to_datetime(df.index, format="%Y-%m-%d")
        df = df.astype(float)
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Malformed daily bars for {symbol}: {e}", symbol=symbol) from e

    if df.isna().any().any():
        raise ParseError(f"Missing values in daily bars for {symbol}", symbol=symbol)
    if not np.isfinite(df.to_numpy()).all():
        raise ParseError(f"Non-finite values in daily bars for {symbol}", symbol=symbol)

    df = df[~df.index.duplicated(keep="last")]
    df = df.sort_index(ascending=False).head(max_bars)

    bars = [
        DailyBar(
            date=ts.date(),
            open=float(row.Open),
            high=float(row.High),
            low=float(row.Low),
            close=float(row.Close),
            volume=int(row.Volume),
        )
        for ts, row in zip(df.index, df.itertuples(index=False))
    ]
    return HistoricalSeries(symbol=symbol, bars=bars, refreshed_at=now)


class AlphaVantageClient(MarketDataSource):
    """Alpha Vantage REST client.

    One HTTP call per fetch; responses are classified into NetworkError,
    ProviderError, ProviderRateLimited or ParseError. Quota accounting is the
    caller's job.
    """

    def __init__(self, api_key: str = "demo", base_url: str = BASE_URL, timeout: float = 30.0,
                 client: httpx.AsyncClient | None = None, clock: Callable[[], datetime] = datetime.now):
        self.api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

    async def _request(self, function: str, symbol: str, **extra: str) -> dict[str, Any]:
        params = {"function": function, "symbol": symbol, "apikey": self.api_key, **extra}
        logger.debug(f"GET {function} {symbol}")
        try:
            response = await self._client.get(self._base_url, params=params, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(f"{function} {symbol}: HTTP {e.response.status_code}", symbol=symbol) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{function} {symbol}: {type(e).__name__}: {e}", symbol=symbol) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"{function} {symbol}: response is not JSON", symbol=symbol) from e
        if not isinstance(payload, dict):
            raise ParseError(f"{function} {symbol}: unexpected response type {type(payload).__name__}",
                             symbol=symbol)

        if "Error Message" in payload:
            raise ProviderError(f"{function} {symbol}: {payload['Error Message']}", symbol=symbol)
        for key in _THROTTLE_KEYS:
            if key in payload:
                raise ProviderRateLimited(f"{function} {symbol}: {payload[key]}", symbol=symbol)
        return payload

    async def fetch_quote(self, symbol: str) -> Quote:
        fetched_at = self._clock()
        payload = await self._request("GLOBAL_QUOTE", symbol)
        return parse_quote(symbol, payload, fetched_at, self._clock())

    async def fetch_overview(self, symbol: str) -> CompanyOverview:
        payload = await self._request("OVERVIEW", symbol)
        return parse_overview(symbol, payload, self._clock())

    async def fetch_historical(self, symbol: str) -> HistoricalSeries:
        payload = await self._request("TIME_SERIES_DAILY", symbol, outputsize="compact")
        return parse_daily_series(symbol, payload, self._clock())

    async def ping(self) -> bool:
        """Reachability check; calls no data function so it is not metered."""
        try:
            response = await self._client.get(self._base_url, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Alpha Vantage unreachable: {e}")
            return False
        return response.status_code < 500

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
