"""Daily request cap and minimum request spacing for the market data provider."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from options_tutor.errors import LocalRateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class RequestMeter:
    requests_today: int = 0
    last_request_date: str | None = None
    last_request_at: datetime | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    next_allowed_at: datetime
    remaining_today: int
    requests_today: int


class RateLimiter:
    """Gates outbound calls on a per-day counter and a fixed inter-request delay.

    The daily counter resets lazily: every check compares the stored calendar
    day with ``now``'s, so a process asleep across midnight still resets on its
    next call. ``record_request`` must be called once per outbound request and
    never for cache hits.
    """

    def __init__(self, max_daily_requests: int, min_interval: float, meter: RequestMeter | None = None):
        self._max_daily = max_daily_requests
        self._min_interval = timedelta(seconds=min_interval)
        self.meter = meter or RequestMeter()

    @property
    def max_daily_requests(self) -> int:
        return self._max_daily

    @property
    def min_interval(self) -> float:
        return self._min_interval.total_seconds()

    def _roll_day(self, now: datetime) -> None:
        today = now.date().isoformat()
        if self.meter.last_request_date != today:
            if self.meter.requests_today:
                logger.info(f"New day {today}: resetting request counter ({self.meter.requests_today} used)")
            self.meter.requests_today = 0
            self.meter.last_request_date = today

    def can_fetch(self, now: datetime) -> RateLimitStatus:
        self._roll_day(now)
        remaining = max(0, self._max_daily - self.meter.requests_today)

        if remaining == 0:
            next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
            return RateLimitStatus(False, next_midnight, 0, self.meter.requests_today)

        last = self.meter.last_request_at
        spaced_at = last + self._min_interval if last is not None else now
        allowed = spaced_at <= now
        return RateLimitStatus(allowed, max(spaced_at, now), remaining, self.meter.requests_today)

    def record_request(self, now: datetime) -> None:
        """Count one outbound request. Refuses to push the counter past the cap."""
        self._roll_day(now)
        if self.meter.requests_today >= self._max_daily:
            raise LocalRateLimitExceeded(
                f"Daily request limit of {self._max_daily} reached",
                next_allowed_at=self.can_fetch(now).next_allowed_at,
                remaining_today=0,
            )
        self.meter.requests_today += 1
        self.meter.last_request_at = now
        logger.debug(f"Request {self.meter.requests_today}/{self._max_daily} today")
