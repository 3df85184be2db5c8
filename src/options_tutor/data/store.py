"""JSON snapshot store for quotes, daily history and company overviews."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from options_tutor.data.models import CompanyOverview, HistoricalSeries, Quote, StoreMetadata
from options_tutor.errors import PersistenceError

logger = logging.getLogger(__name__)


class QuoteStore:
    """In-memory records keyed by symbol, persisted as one JSON document.

    Layout on disk: ``{"quotes": {...}, "historical": {...}, "company": {...},
    "metadata": {...}}``. Records are replaced wholesale on ``put_*``; nothing
    reaches disk until ``flush()`` is called.
    """

    def __init__(self, path: str):
        self._path = Path(path).expanduser()
        self.quotes: dict[str, Quote] = {}
        self.historical: dict[str, HistoricalSeries] = {}
        self.company: dict[str, CompanyOverview] = {}
        self.metadata = StoreMetadata()
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._dirty

    def get_quote(self, symbol: str) -> Quote | None:
        return self.quotes.get(symbol.upper())

    def get_historical(self, symbol: str) -> HistoricalSeries | None:
        return self.historical.get(symbol.upper())

    def get_company(self, symbol: str) -> CompanyOverview | None:
        return self.company.get(symbol.upper())

    def put_quote(self, quote: Quote) -> None:
        self.quotes[quote.symbol.upper()] = quote
        self._touch(quote.refreshed_at)

    def put_historical(self, series: HistoricalSeries) -> None:
        self.historical[series.symbol.upper()] = series
        self._touch(series.refreshed_at)

    def put_company(self, overview: CompanyOverview) -> None:
        self.company[overview.symbol.upper()] = overview
        self._touch(overview.refreshed_at)

    def _touch(self, when: datetime) -> None:
        if self.metadata.last_update is None or when > self.metadata.last_update:
            self.metadata.last_update = when
        self._dirty = True

    def symbols(self) -> list[str]:
        """Every symbol with at least one stored record."""
        return sorted(set(self.quotes) | set(self.historical) | set(self.company))

    def remove(self, symbol: str) -> None:
        sym = symbol.upper()
        self.quotes.pop(sym, None)
        self.historical.pop(sym, None)
        self.company.pop(sym, None)
        self._dirty = True

    def clear(self) -> None:
        """Drop all records. The request meter is kept so quota is not reset."""
        self.quotes.clear()
        self.historical.clear()
        self.company.clear()
        self.metadata.last_update = None
        self._dirty = True

    def cleanup(self, max_age: float, now: datetime) -> int:
        """Remove records refreshed more than ``max_age`` seconds ago. Returns count removed."""
        removed = 0
        for records in (self.quotes, self.historical, self.company):
            for sym in [s for s, r in records.items() if (now - r.refreshed_at).total_seconds() > max_age]:
                del records[sym]
                removed += 1
        if removed:
            self._dirty = True
        return removed

    # --- persistence ---

    def snapshot(self) -> dict:
        return {
            "quotes": {s: q.to_dict() for s, q in self.quotes.items()},
            "historical": {s: h.to_dict() for s, h in self.historical.items()},
            "company": {s: c.to_dict() for s, c in self.company.items()},
            "metadata": self.metadata.to_dict(),
        }

    def load(self) -> None:
        """Replace in-memory state with the snapshot on disk.

        A missing, unreadable or malformed file leaves an empty store; the
        problem is logged, never raised.
        """
        self.quotes, self.historical, self.company = {}, {}, {}
        self.metadata = StoreMetadata()
        self._dirty = False

        if not self._path.exists():
            logger.info(f"No market data snapshot at {self._path}; starting empty")
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            quotes = {s.upper(): Quote.from_dict(d) for s, d in raw.get("quotes", {}).items()}
            historical = {s.upper(): HistoricalSeries.from_dict(d) for s, d in raw.get("historical", {}).items()}
            company = {s.upper(): CompanyOverview.from_dict(d) for s, d in raw.get("company", {}).items()}
            metadata = StoreMetadata.from_dict(raw.get("metadata", {}))
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable market data snapshot {self._path}: {e}")
            return

        self.quotes, self.historical, self.company = quotes, historical, company
        self.metadata = metadata
        logger.debug(f"Loaded {len(quotes)} quotes, {len(historical)} histories, "
                     f"{len(company)} overviews from {self._path}")

    def flush(self) -> None:
        """Write the full snapshot. Raises PersistenceError on I/O failure."""
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self.snapshot(), indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise PersistenceError(f"Failed to write market data snapshot {self._path}: {e}") from e
        self._dirty = False
        logger.debug(f"Flushed market data snapshot to {self._path}")

    def size_bytes(self) -> int:
        try:
            return self._path.stat().st_size
        except OSError:
            return 0

    def stats(self) -> dict:
        return {
            "quotes_count": len(self.quotes),
            "historical_count": len(self.historical),
            "company_count": len(self.company),
            "total_size": self.size_bytes(),
            "last_update": self.metadata.last_update,
        }
