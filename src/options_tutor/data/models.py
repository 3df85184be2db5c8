"""Quote, historical series, company overview and store metadata records."""

from dataclasses import dataclass, field
from datetime import date, datetime

import pandas as pd

# Daily series kept per symbol, newest first
MAX_HISTORY_BARS = 100


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class Quote:
    symbol: str
    price: float
    change: float
    change_percent: float  # 1.45 means +1.45%
    volume: int
    latest_trading_day: date | None
    refreshed_at: datetime   # when the record was written
    last_fetch_at: datetime  # when the request that produced it went out
    is_placeholder: bool = False

    def age(self, now: datetime) -> float:
        """Seconds since this quote was refreshed."""
        return (now - self.refreshed_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "volume": self.volume,
            "latestTradingDay": _iso(self.latest_trading_day),
            "refreshedAt": _iso(self.refreshed_at),
            "lastFetchAt": _iso(self.last_fetch_at),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Quote":
        ltd = d.get("latestTradingDay")
        return cls(
            symbol=d["symbol"],
            price=float(d["price"]),
            change=float(d["change"]),
            change_percent=float(d["changePercent"]),
            volume=int(d["volume"]),
            latest_trading_day=date.fromisoformat(ltd) if ltd else None,
            refreshed_at=datetime.fromisoformat(d["refreshedAt"]),
            last_fetch_at=_dt(d.get("lastFetchAt")) or datetime.fromisoformat(d["refreshedAt"]),
        )


@dataclass(frozen=True)
class DailyBar:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DailyBar":
        return cls(
            date=date.fromisoformat(d["date"]),
            open=float(d["open"]),
            high=float(d["high"]),
            low=float(d["low"]),
            close=float(d["close"]),
            volume=int(d["volume"]),
        )


@dataclass
class HistoricalSeries:
    """Daily bars for one symbol, newest first."""

    symbol: str
    bars: list[DailyBar]
    refreshed_at: datetime

    @property
    def latest(self) -> DailyBar | None:
        return self.bars[0] if self.bars else None

    def to_frame(self) -> pd.DataFrame:
        """OHLCV DataFrame indexed by date, oldest first."""
        if not self.bars:
            return pd.DataFrame(columns=["Open", "High", "Low", "Close", "Volume"])
        df = pd.DataFrame(
            {
                "Open": [b.open for b in self.bars],
                "High": [b.high for b in self.bars],
                "Low": [b.low for b in self.bars],
                "Close": [b.close for b in self.bars],
                "Volume": [b.volume for b in self.bars],
            },
            index=pd.DatetimeIndex([b.date for b in self.bars], name="Date"),
        )
        return df.sort_index()

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "data": [b.to_dict() for b in self.bars],
            "refreshedAt": _iso(self.refreshed_at),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "HistoricalSeries":
        return cls(
            symbol=d["symbol"],
            bars=[DailyBar.from_dict(b) for b in d["data"]],
            refreshed_at=datetime.fromisoformat(d["refreshedAt"]),
        )


@dataclass
class CompanyOverview:
    symbol: str
    name: str
    description: str = ""
    sector: str = ""
    industry: str = ""
    market_cap: float | None = None
    pe_ratio: float | None = None
    eps: float | None = None
    dividend_yield: float | None = None
    beta: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None
    refreshed_at: datetime = field(default_factory=datetime.now)

    _FIELDS = (
        ("market_cap", "marketCap"), ("pe_ratio", "peRatio"), ("eps", "eps"),
        ("dividend_yield", "dividendYield"), ("beta", "beta"),
        ("week52_high", "week52High"), ("week52_low", "week52Low"),
    )

    def to_dict(self) -> dict:
        d = {
            "symbol": self.symbol,
            "name": self.name,
            "description": self.description,
            "sector": self.sector,
            "industry": self.industry,
            "refreshedAt": _iso(self.refreshed_at),
        }
        for attr, key in self._FIELDS:
            d[key] = getattr(self, attr)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CompanyOverview":
        numeric = {}
        for attr, key in cls._FIELDS:
            value = d.get(key)
            numeric[attr] = float(value) if value is not None else None
        return cls(
            symbol=d["symbol"],
            name=d["name"],
            description=d.get("description", ""),
            sector=d.get("sector", ""),
            industry=d.get("industry", ""),
            refreshed_at=datetime.fromisoformat(d["refreshedAt"]),
            **numeric,
        )


@dataclass
class StoreMetadata:
    """Snapshot-level bookkeeping, including the persisted request meter."""

    last_update: datetime | None = None
    requests_today: int = 0
    last_request_date: str | None = None  # ISO calendar day of the last outbound call
    last_request_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "lastUpdate": _iso(self.last_update),
            "requestsToday": self.requests_today,
            "lastRequestDate": self.last_request_date,
            "lastRequestAt": _iso(self.last_request_at),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "StoreMetadata":
        return cls(
            last_update=_dt(d.get("lastUpdate")),
            requests_today=int(d.get("requestsToday", 0)),
            last_request_date=d.get("lastRequestDate"),
            last_request_at=_dt(d.get("lastRequestAt")),
        )
