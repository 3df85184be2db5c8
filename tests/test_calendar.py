"""Tests for TradingCalendar."""

from datetime import date

from options_tutor.data.calendar import TradingCalendar


class TestTradingCalendar:
    def test_trading_days_excludes_weekends(self):
        cal = TradingCalendar()
        # 2024-01-08 (Mon) to 2024-01-19 (Fri), two full weeks with no holiday
        days = cal.trading_days(date(2024, 1, 8), date(2024, 1, 19))
        assert len(days) == 10
        assert all(d.weekday() < 5 for d in days)

    def test_is_trading_day_weekday_vs_weekend(self):
        cal = TradingCalendar()
        # 2024-01-09 is a Tuesday
        assert cal.is_trading_day(date(2024, 1, 9)) is True
        # 2024-01-13 is a Saturday
        assert cal.is_trading_day(date(2024, 1, 13)) is False

    def test_holiday_is_not_trading_day(self):
        cal = TradingCalendar()
        assert cal.is_trading_day(date(2024, 7, 4)) is False
        assert cal.is_trading_day(date(2024, 12, 25)) is False

    def test_next_trading_day_skips_weekend(self):
        cal = TradingCalendar()
        # 2024-01-05 is a Friday (no holiday on Jan 8), next is Monday 2024-01-08
        assert cal.next_trading_day(date(2024, 1, 5)) == date(2024, 1, 8)

    def test_next_trading_day_inclusive(self):
        cal = TradingCalendar()
        assert cal.next_trading_day(date(2024, 1, 9), inclusive=True) == date(2024, 1, 9)
        assert cal.next_trading_day(date(2024, 1, 13), inclusive=True) == date(2024, 1, 16)

    def test_out_of_range_falls_back_to_weekdays(self):
        cal = TradingCalendar()
        assert cal.is_trading_day(date(1950, 1, 3)) is True
        assert cal.is_trading_day(date(1950, 1, 7)) is False

    def test_trading_days_skips_holiday(self):
        cal = TradingCalendar()
        # 2024-01-15 is Martin Luther King Jr. Day
        days = cal.trading_days(date(2024, 1, 12), date(2024, 1, 17))
        assert days == [date(2024, 1, 12), date(2024, 1, 16), date(2024, 1, 17)]

    def test_trading_days_out_of_range_uses_business_days(self):
        cal = TradingCalendar()
        # 1950-01-02 is a Monday
        days = cal.trading_days(date(1950, 1, 2), date(1950, 1, 8))
        assert days == [date(1950, 1, d) for d in range(2, 7)]

    def test_trading_days_spanning_calendar_start(self):
        cal = TradingCalendar()
        days = cal.trading_days(date(1950, 1, 2), date(2024, 1, 19))
        assert days[0] == date(1950, 1, 2)
        assert days[-1] == date(2024, 1, 19)
        assert date(2024, 1, 15) not in days
        assert days == sorted(set(days))

    def test_next_trading_day_out_of_range(self):
        cal = TradingCalendar()
        # 1950-01-06 is a Friday
        assert cal.next_trading_day(date(1950, 1, 6)) == date(1950, 1, 9)
        assert cal.next_trading_day(date(1950, 1, 7), inclusive=True) == date(1950, 1, 9)

    def test_empty_range(self):
        assert TradingCalendar().trading_days(date(2024, 1, 19), date(2024, 1, 8)) == []
