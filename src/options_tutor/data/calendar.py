"""NYSE session calendar used to skip fetch slots on market holidays."""

import logging
from datetime import date, timedelta

import exchange_calendars as xcals
import pandas as pd

logger = logging.getLogger(__name__)


class TradingCalendar:
    """Answers "is the market open on this date" for the refresh scheduler.

    Outside the range exchange_calendars ships data for, any weekday counts
    as a session.
    """

    def __init__(self, exchange: str = "XNYS"):
        self._calendar = xcals.get_calendar(exchange)
        self._cal_start = self._calendar.first_session.date()
        self._cal_end = self._calendar.last_session.date()

    def _in_range(self, d: date) -> bool:
        return self._cal_start <= d <= self._cal_end

    def is_trading_day(self, d: date) -> bool:
        if not self._in_range(d):
            logger.debug(f"{d} outside calendar range; using weekday check")
            return d.weekday() < 5
        return bool(self._calendar.is_session(pd.Timestamp(d)))

    def next_trading_day(self, d: date, inclusive: bool = False) -> date:
        """First session on or after ``d`` (``inclusive``) or strictly after it."""
        candidate = d if inclusive else d + timedelta(days=1)
        if self._in_range(candidate):
            return self._calendar.date_to_session(pd.Timestamp(candidate), direction="next").date()

        # Fallback: next weekday
        while candidate.weekday() >= 5:
            candidate += timedelta(days=1)
        return candidate

    def trading_days(self, start: date, end: date) -> list[date]:
        """Sessions in [start, end], ascending."""
        clamped_start = max(start, self._cal_start)
        clamped_end = min(end, self._cal_end)

        parts = []
        if start < self._cal_start:
            logger.debug(f"Calendar starts at {self._cal_start}; using business days for {start} to {self._cal_start}")
            pre = pd.bdate_range(start=start, end=min(end, self._cal_start - timedelta(days=1)))
            parts.append(pd.DatetimeIndex(pre.date))

        if clamped_start <= clamped_end:
            sessions = self._calendar.sessions_in_range(pd.Timestamp(clamped_start), pd.Timestamp(clamped_end))
            parts.append(pd.DatetimeIndex(sessions.date))

        if end > self._cal_end:
            logger.debug(f"Calendar ends at {self._cal_end}; using business days for {self._cal_end} to {end}")
            post = pd.bdate_range(start=max(start, self._cal_end + timedelta(days=1)), end=end)
            parts.append(pd.DatetimeIndex(post.date))

        if not parts:
            return []
        combined = parts[0]
        for p in parts[1:]:
            combined = combined.append(p)
        return [ts.date() for ts in combined.unique().sort_values()]
