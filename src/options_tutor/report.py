"""Console status output for the market data store and scheduler."""

from datetime import datetime

from options_tutor.data.manager import MarketDataService
from options_tutor.scheduling.scheduler import DataScheduler

# Quotes older than this are flagged by the integrity check
MAX_QUOTE_AGE_DAYS = 7


def format_bytes(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "Bytes" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def format_duration(seconds: float | None) -> str:
    if not seconds or seconds < 0:
        return "N/A"
    s = int(seconds)
    m, h, d = s // 60, s // 3600, s // 86400
    if d:
        return f"{d}d {h % 24}h"
    if h:
        return f"{h}h {m % 60}m"
    if m:
        return f"{m}m {s % 60}s"
    return f"{s}s"


def format_time(when: datetime | None) -> str:
    return when.strftime("%Y-%m-%d %H:%M:%S") if when else "Never"


def print_status(service: MarketDataService) -> dict:
    """Print API, rate limit, storage and freshness status. Returns the numbers shown."""
    key = service.api_key_status()
    limit = service.rate_limit_status()
    stats = service.storage_stats()
    freshness = service.data_freshness()
    watched = service.watched_symbols()
    stored = service.stored_symbols()

    print("\n" + "=" * 60)
    print("MARKET DATA STATUS")
    print("=" * 60)

    print("\n--- API ---")
    print(f"API Key:        {'configured' if key.has_key else 'not configured'}")
    print(f"Mode:           {'demo' if key.is_demo else 'production'}")

    print("\n--- Rate Limit ---")
    print(f"Daily Limit:    {service.limiter.max_daily_requests}")
    print(f"Used Today:     {limit.requests_today}")
    print(f"Remaining:      {limit.remaining_today}")
    print(f"Can Request:    {'yes' if limit.allowed else 'no'}")
    if not limit.allowed:
        print(f"Next Request:   {format_time(limit.next_allowed_at)}")

    print("\n--- Storage ---")
    print(f"Quotes:         {stats['quotes_count']} symbols")
    print(f"Historical:     {stats['historical_count']} symbols")
    print(f"Company:        {stats['company_count']} symbols")
    print(f"Size:           {format_bytes(stats['total_size'])}")
    print(f"Last Update:    {format_time(stats['last_update'])}")
    print(f"Status:         {'stale' if freshness.is_stale else 'fresh'}")
    print(f"Next Update:    {format_time(freshness.next_update)}")

    missing = [s for s in watched if s not in stored]
    extra = [s for s in stored if s not in watched]
    print("\n--- Coverage ---")
    print(f"Watched:        {', '.join(watched) or '-'}")
    print(f"Stored:         {', '.join(stored) or '-'}")
    if missing:
        print(f"Missing:        {', '.join(missing)}")
    if extra:
        print(f"Extra:          {', '.join(extra)}")

    return {
        "requests_today": limit.requests_today,
        "remaining_today": limit.remaining_today,
        "missing": missing,
        "extra": extra,
        **stats,
    }


def print_symbol_details(service: MarketDataService) -> None:
    now = service.now()
    symbols = service.stored_symbols()
    if not symbols:
        print("No data stored yet")
        return

    for symbol in symbols:
        print(f"\n{symbol}:")
        quote = service.get_cached_quote(symbol)
        if quote:
            print(f"  Quote:      ${quote.price:,.2f} ({format_duration(quote.age(now))} ago)")
            print(f"  Change:     {quote.change:+.2f} ({quote.change_percent:+.2f}%)")
            print(f"  Volume:     {quote.volume:,}")
        else:
            print("  Quote:      not available")

        company = service.get_company(symbol)
        if company:
            age = (now - company.refreshed_at).total_seconds()
            print(f"  Company:    {company.name} ({format_duration(age)} ago)")
            print(f"  Sector:     {company.sector or '-'}")
            if company.market_cap:
                print(f"  Market Cap: ${company.market_cap / 1e9:,.1f}B")
        else:
            print("  Company:    not available")

        history = service.get_historical(symbol)
        if history:
            age = (now - history.refreshed_at).total_seconds()
            print(f"  Historical: {len(history.bars)} bars ({format_duration(age)} ago)")
            if history.latest:
                print(f"  Latest:     {history.latest.date} close ${history.latest.close:,.2f}")
        else:
            print("  Historical: not available")


def check_integrity(service: MarketDataService) -> list[str]:
    """Return one message per suspicious stored quote."""
    now = service.now()
    issues = []
    for symbol in service.stored_symbols():
        quote = service.get_cached_quote(symbol)
        if quote is None:
            continue
        if quote.price <= 0:
            issues.append(f"{symbol}: invalid price ({quote.price})")
        if quote.volume < 0:
            issues.append(f"{symbol}: invalid volume ({quote.volume})")
        age = quote.age(now)
        if age > MAX_QUOTE_AGE_DAYS * 86400:
            issues.append(f"{symbol}: data is very old ({format_duration(age)})")
    return issues


def print_scheduler_stats(scheduler: DataScheduler) -> None:
    stats = scheduler.get_stats()
    print("\n--- Scheduler ---")
    print(f"Total Jobs:     {stats.total_jobs}")
    print(f"Completed:      {stats.completed_jobs}")
    print(f"Failed:         {stats.failed_jobs}")
    print(f"Pending:        {stats.pending_jobs}")
    print(f"Requests Today: {stats.requests_today}")
    print(f"Next Fetch:     {format_time(stats.next_scheduled_fetch)}")
    print(f"Last Success:   {format_time(stats.last_successful_fetch)}")
