"""Tests for placeholder quote and history generation."""

from options_tutor.data.placeholder import base_price, placeholder_history, placeholder_quote
from tests.conftest import START


class TestPlaceholderQuote:
    def test_flagged_and_positive(self):
        quote = placeholder_quote("AAPL", START)
        assert quote.is_placeholder
        assert quote.price > 0
        assert quote.volume > 0
        assert quote.refreshed_at == START

    def test_deterministic_per_symbol(self):
        assert placeholder_quote("msft", START).price == placeholder_quote("MSFT", START).price

    def test_near_base_price(self):
        quote = placeholder_quote("SPY", START)
        assert abs(quote.price - 450.0) / 450.0 < 0.1
        assert quote.change == round(quote.price - 450.0, 2)

    def test_unknown_symbol_base_in_range(self):
        assert 20 <= base_price("ZZZZ") < 300
        assert base_price("ZZZZ") == base_price("zzzz")


class TestPlaceholderHistory:
    def test_weekdays_newest_first(self):
        series = placeholder_history("AAPL", START, days=30)
        assert len(series.bars) == 30
        assert series.bars[0].date == START.date()
        assert all(b.date.weekday() < 5 for b in series.bars)
        assert all(a.date > b.date for a, b in zip(series.bars, series.bars[1:]))

    def test_bars_are_consistent(self):
        for bar in placeholder_history("NVDA", START).bars:
            assert bar.low <= min(bar.open, bar.close)
            assert bar.high >= max(bar.open, bar.close)
            assert bar.low > 0
