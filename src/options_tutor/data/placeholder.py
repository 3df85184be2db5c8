"""Synthetic placeholder quotes and history for symbols with no cached data.

Placeholders are deterministic per symbol and always carry
``is_placeholder=True``; they are served to callers but never stored.
"""

import zlib
from datetime import datetime, timedelta

import numpy as np

from options_tutor.data.models import DailyBar, HistoricalSeries, Quote

# Rough price levels so placeholders look plausible for common tickers
_BASE_PRICES = {
    "AAPL": 175.0,
    "MSFT": 380.0,
    "GOOGL": 140.0,
    "AMZN": 150.0,
    "TSLA": 240.0,
    "MSTY": 25.0,
    "NVDA": 480.0,
    "META": 330.0,
    "SPY": 450.0,
    "QQQ": 390.0,
}


def _rng(symbol: str) -> np.random.Generator:
    return np.random.default_rng(zlib.crc32(symbol.upper().encode()))


def base_price(symbol: str) -> float:
    sym = symbol.upper()
    if sym in _BASE_PRICES:
        return _BASE_PRICES[sym]
    return float(20 + zlib.crc32(sym.encode()) % 280)


def placeholder_quote(symbol: str, now: datetime) -> Quote:
    rng = _rng(symbol)
    base = base_price(symbol)
    change_pct = float(rng.normal(0, 1.5))
    price = round(base * (1 + change_pct / 100), 2)
    change = round(price - base, 2)
    return Quote(
        symbol=symbol.upper(),
        price=price,
        change=change,
        change_percent=round(change_pct, 2),
        volume=int(rng.integers(1_000_000, 50_000_000)),
        latest_trading_day=now.date(),
        refreshed_at=now,
        last_fetch_at=now,
        is_placeholder=True,
    )


def placeholder_history(symbol: str, now: datetime, days: int = 100) -> HistoricalSeries:
    """Random-walk daily bars over the last ``days`` weekdays, newest first."""
    rng = _rng(symbol)
    dates = []
    d = now.date()
    while len(dates) < days:
        if d.weekday() < 5:
            dates.append(d)
        d -= timedelta(days=1)

    # Walk backwards from today's base so the newest close sits near base_price
    closes = [base_price(symbol)]
    for _ in range(days - 1):
        closes.append(closes[-1] / (1 + rng.normal(0.0005, 0.02)))

    bars = []
    for day, close in zip(dates, closes):
        open_ = close * (1 - rng.uniform(-0.01, 0.01))
        bars.append(DailyBar(
            date=day,
            open=round(open_, 2),
            high=round(max(open_, close) * (1 + rng.uniform(0, 0.02)), 2),
            low=round(min(open_, close) * (1 - rng.uniform(0, 0.02)), 2),
            close=round(close, 2),
            volume=int(rng.integers(1_000_000, 50_000_000)),
        ))
    return HistoricalSeries(symbol=symbol.upper(), bars=bars, refreshed_at=now)
