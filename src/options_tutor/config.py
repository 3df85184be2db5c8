"""Market data, scheduler and price feed configuration dataclasses."""

import re
from dataclasses import dataclass, field

DEFAULT_WATCHED_SYMBOLS = (
    "AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "MSTY", "NVDA", "META", "SPY", "QQQ",
)

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class DataConfig:
    """Alpha Vantage access, rate limits and on-disk cache location."""

    api_key: str = "demo"
    base_url: str = "https://www.alphavantage.co/query"
    data_dir: str = "~/.options-tutor/market-data"
    snapshot_name: str = "alpha-vantage-data.json"
    max_daily_requests: int = 25          # free tier is 25/day
    min_request_interval: float = 12.0    # seconds; 5 requests/minute
    request_timeout: float = 30.0         # seconds per HTTP call
    quote_ttl: float = 5 * 60             # cached quote considered fresh for 5 minutes
    company_max_age: float = 7 * 24 * 3600
    stale_after: float = 24 * 3600
    watched_symbols: tuple[str, ...] = DEFAULT_WATCHED_SYMBOLS

    def __post_init__(self):
        if self.max_daily_requests <= 0:
            raise ValueError("max_daily_requests must be positive")
        if self.min_request_interval < 0:
            raise ValueError("min_request_interval cannot be negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        object.__setattr__(
            self, "watched_symbols", tuple(dict.fromkeys(s.strip().upper() for s in self.watched_symbols if s.strip()))
        )


@dataclass(frozen=True)
class ScheduleConfig:
    """When and how the refresh scheduler runs."""

    enabled: bool = True
    fetch_times: tuple[str, ...] = ("09:30", "15:30")  # local wall clock, market open/close
    symbols: tuple[str, ...] = DEFAULT_WATCHED_SYMBOLS
    retry_attempts: int = 3
    retry_delay: float = 60.0
    tick_interval: float = 60.0
    defer_delay: float = 60.0
    job_max_age: float = 24 * 3600
    trading_days_only: bool = True

    def __post_init__(self):
        for t in self.fetch_times:
            if not _HHMM.match(t):
                raise ValueError(f"Invalid fetch time '{t}', expected HH:MM")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        object.__setattr__(self, "fetch_times", tuple(self.fetch_times))
        object.__setattr__(self, "symbols", tuple(s.strip().upper() for s in self.symbols if s.strip()))

    def parsed_fetch_times(self) -> list[tuple[int, int]]:
        """Return fetch times as sorted (hour, minute) pairs."""
        return sorted((int(t[:2]), int(t[3:])) for t in self.fetch_times)


@dataclass(frozen=True)
class FeedConfig:
    """Real-time price feed buffering and reconnect backoff."""

    queue_size: int = 1000
    reconnect_delay: float = 5.0
    max_reconnect_delay: float = 60.0
    subscriptions: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.queue_size <= 0:
            raise ValueError("queue_size must be positive")
        if self.reconnect_delay <= 0 or self.max_reconnect_delay < self.reconnect_delay:
            raise ValueError("reconnect delays must satisfy 0 < reconnect_delay <= max_reconnect_delay")
