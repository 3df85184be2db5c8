"""Tests for QuoteStore persistence and maintenance."""

import json
from datetime import timedelta

import pytest

from options_tutor.data.store import QuoteStore
from options_tutor.errors import PersistenceError
from tests.conftest import START, make_overview, make_quote, make_series


class TestLoad:
    def test_missing_file_gives_empty_store(self, store):
        store.load()
        assert store.symbols() == []
        assert store.metadata.requests_today == 0
        assert not store.dirty

    def test_invalid_json_gives_empty_store(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        store.load()
        assert store.symbols() == []
        assert store.metadata.requests_today == 0

    def test_malformed_record_gives_empty_store(self, store):
        store.path.write_text(json.dumps({"quotes": {"AAPL": {"symbol": "AAPL"}}}), encoding="utf-8")
        store.load()
        assert store.get_quote("AAPL") is None

    def test_round_trip(self, store):
        store.put_quote(make_quote())
        store.put_historical(make_series(bars=3))
        store.put_company(make_overview())
        store.metadata.requests_today = 7
        store.metadata.last_request_date = "2024-03-12"
        store.flush()

        reloaded = QuoteStore(str(store.path))
        reloaded.load()
        quote = reloaded.get_quote("aapl")
        assert quote.price == 150.25
        assert quote.change_percent == 1.45
        assert quote.volume == 45_123_456
        assert quote.refreshed_at == START
        assert not quote.is_placeholder
        assert len(reloaded.get_historical("AAPL").bars) == 3
        assert reloaded.get_company("AAPL").name == "AAPL Inc"
        assert reloaded.metadata.requests_today == 7
        assert reloaded.metadata.last_update == START

    def test_snapshot_layout(self, store):
        store.put_quote(make_quote())
        store.flush()
        raw = json.loads(store.path.read_text(encoding="utf-8"))
        assert set(raw) == {"quotes", "historical", "company", "metadata"}
        assert raw["quotes"]["AAPL"]["changePercent"] == 1.45
        assert raw["metadata"]["requestsToday"] == 0


class TestFlush:
    def test_flush_clears_dirty(self, store):
        store.put_quote(make_quote())
        assert store.dirty
        store.flush()
        assert not store.dirty
        assert store.size_bytes() > 0

    def test_unwritable_path_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        store = QuoteStore(str(blocker / "data.json"))
        store.put_quote(make_quote())
        with pytest.raises(PersistenceError):
            store.flush()
        assert store.dirty


class TestMaintenance:
    def test_put_replaces_record(self, store):
        store.put_quote(make_quote(price=100.0))
        store.put_quote(make_quote(price=101.0))
        assert store.get_quote("AAPL").price == 101.0
        assert len(store.quotes) == 1

    def test_cleanup_removes_old_records(self, store):
        old = START - timedelta(days=10)
        store.put_quote(make_quote("OLD", refreshed_at=old))
        store.put_historical(make_series("OLD", refreshed_at=old))
        store.put_quote(make_quote("NEW"))
        removed = store.cleanup(7 * 86400, START)
        assert removed == 2
        assert store.symbols() == ["NEW"]

    def test_cleanup_nothing_old(self, store):
        store.put_quote(make_quote())
        store.flush()
        assert store.cleanup(7 * 86400, START) == 0
        assert not store.dirty

    def test_clear_keeps_request_meter(self, store):
        store.put_quote(make_quote())
        store.metadata.requests_today = 5
        store.clear()
        assert store.symbols() == []
        assert store.metadata.requests_today == 5
        assert store.metadata.last_update is None

    def test_stats(self, store):
        store.put_quote(make_quote("AAPL"))
        store.put_quote(make_quote("MSFT"))
        store.put_company(make_overview("AAPL"))
        stats = store.stats()
        assert stats["quotes_count"] == 2
        assert stats["historical_count"] == 0
        assert stats["company_count"] == 1
        assert stats["total_size"] == 0
        assert stats["last_update"] == START

    def test_remove(self, store):
        store.put_quote(make_quote())
        store.put_company(make_overview())
        store.remove("aapl")
        assert store.symbols() == []
