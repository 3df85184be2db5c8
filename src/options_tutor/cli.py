"""CLI entry point using Click."""

import asyncio
import logging

import click
from tqdm import tqdm

from options_tutor.config import DataConfig, FeedConfig, ScheduleConfig
from options_tutor.data.manager import MarketDataService
from options_tutor.errors import DataFetchError, LocalRateLimitExceeded, SchedulerBusy
from options_tutor.realtime.connection import PlaceholderConnection
from options_tutor.realtime.feed import PLUpdate, PriceFeed
from options_tutor.report import (
    check_integrity, format_bytes, print_scheduler_stats, print_status, print_symbol_details,
)
from options_tutor.scheduling.scheduler import DataScheduler


def _make_service(config: DataConfig) -> MarketDataService:
    return MarketDataService(config)


def _run_with_service(config: DataConfig, fn):
    """Open a service, await ``fn(service)`` and close it again."""
    async def main():
        async with _make_service(config) as service:
            return await fn(service)
    return asyncio.run(main())


def _split_symbols(raw: tuple[str, ...]) -> list[str]:
    symbols = []
    for item in raw:
        symbols.extend(s.strip().upper() for s in item.split(",") if s.strip())
    return list(dict.fromkeys(symbols))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.options-tutor/market-data", envvar="OPTIONS_TUTOR_DATA_DIR",
              show_default=True, help="Directory holding the market data snapshot")
@click.option("--api-key", default="demo", envvar="ALPHA_VANTAGE_API_KEY", help="Alpha Vantage API key")
@click.option("--daily-limit", default=25, type=int, show_default=True, help="Max API requests per day")
@click.option("--timeout", default=30.0, type=float, show_default=True, help="Per-request timeout in seconds")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: str, api_key: str, daily_limit: int, timeout: float) -> None:
    """options-tutor-data: Alpha Vantage cache, refresh scheduler and price feed."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    try:
        ctx.obj = DataConfig(api_key=api_key, data_dir=data_dir, max_daily_requests=daily_limit,
                             request_timeout=timeout)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@cli.command()
@click.option("--ping", is_flag=True, help="Also check that the API is reachable")
@click.pass_obj
def status(config: DataConfig, ping: bool) -> None:
    """Show API key, rate limit, storage and freshness status."""
    async def show(service: MarketDataService):
        print_status(service)
        if ping:
            available = await service.is_available()
            click.echo(f"\nService:        {'available' if available else 'unavailable'}")

    _run_with_service(config, show)


@cli.command()
@click.pass_obj
def details(config: DataConfig) -> None:
    """Show per-symbol quote, company and history details."""
    async def show(service: MarketDataService):
        print_symbol_details(service)

    _run_with_service(config, show)


@cli.command()
@click.pass_obj
def integrity(config: DataConfig) -> None:
    """Check stored quotes for invalid or very old values."""
    async def check(service: MarketDataService):
        return check_integrity(service)

    issues = _run_with_service(config, check)
    if not issues:
        click.echo("All data appears to be valid")
        return
    for issue in issues:
        click.echo(f"  {issue}")
    click.echo(f"\nFound {len(issues)} potential issues")


@cli.command()
@click.argument("symbols", nargs=-1)
@click.option("--all", "fetch_all", is_flag=True, help="Fetch every watched symbol")
@click.option("--quote-only", is_flag=True, help="Fetch only the quote, not history and company data")
@click.pass_obj
def fetch(config: DataConfig, symbols: tuple[str, ...], fetch_all: bool, quote_only: bool) -> None:
    """Fetch data for SYMBOLS (comma or space separated) or --all watched symbols."""
    targets = list(config.watched_symbols) if fetch_all else _split_symbols(symbols)
    if not targets:
        raise click.UsageError("Give at least one symbol or --all")

    async def run(service: MarketDataService):
        ok, failed = [], []
        for sym in tqdm(targets, desc="Fetching", unit="symbol", disable=len(targets) < 2):
            try:
                if quote_only:
                    await service.fetch_quote(sym, wait=True)
                else:
                    await service.refresh(sym)
                ok.append(sym)
            except LocalRateLimitExceeded as e:
                failed.append(sym)
                click.echo(f"{sym}: {e}", err=True)
                if e.remaining_today == 0:
                    click.echo("Daily request limit reached; stopping", err=True)
                    break
            except DataFetchError as e:
                failed.append(sym)
                click.echo(f"{sym}: {type(e).__name__}: {e}", err=True)
        return ok, failed, service.storage_stats()

    ok, failed, stats = _run_with_service(config, run)
    click.echo(f"Fetch completed: {len(ok)} successful, {len(failed)} failed")
    click.echo(f"Stored: {stats['quotes_count']} quotes, {stats['historical_count']} histories, "
               f"{stats['company_count']} overviews ({format_bytes(stats['total_size'])})")
    if not ok and failed:
        raise click.ClickException("No symbols could be fetched")


@cli.command()
@click.option("--max-age-days", default=7.0, type=float, show_default=True, help="Remove records older than this")
@click.pass_obj
def cleanup(config: DataConfig, max_age_days: float) -> None:
    """Remove stored records older than --max-age-days."""
    async def run(service: MarketDataService):
        return service.cleanup_old_data(max_age_days * 86400)

    removed = _run_with_service(config, run)
    click.echo(f"Removed {removed} old records")


@cli.command()
@click.confirmation_option(prompt="Delete all stored market data?")
@click.pass_obj
def clear(config: DataConfig) -> None:
    """Delete all stored quotes, history and company data."""
    async def run(service: MarketDataService):
        service.clear_stored_data()

    _run_with_service(config, run)
    click.echo("All data cleared")


@cli.command()
@click.option("--symbols", "symbols_opt", default=None, help="Comma-separated symbols (default: watched symbols)")
@click.option("--fetch-times", default="09:30,15:30", show_default=True, help="Comma-separated HH:MM fetch times")
@click.option("--retry-attempts", default=3, type=int, show_default=True)
@click.option("--retry-delay", default=60.0, type=float, show_default=True, help="Seconds between retries")
@click.option("--all-days", is_flag=True, help="Also fetch on weekends and market holidays")
@click.option("--once", is_flag=True, help="Refresh immediately and exit instead of running the scheduler")
@click.pass_obj
def schedule(config: DataConfig, symbols_opt: str | None, fetch_times: str, retry_attempts: int,
             retry_delay: float, all_days: bool, once: bool) -> None:
    """Run the refresh scheduler until interrupted."""
    symbols = _split_symbols((symbols_opt,)) if symbols_opt else list(config.watched_symbols)
    try:
        schedule_config = ScheduleConfig(
            fetch_times=tuple(t.strip() for t in fetch_times.split(",") if t.strip()),
            symbols=tuple(symbols),
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
            trading_days_only=not all_days,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    async def run(service: MarketDataService):
        scheduler = DataScheduler(service, schedule_config)
        if once:
            await scheduler.force_immediate_fetch(symbols)
            return scheduler
        await scheduler.start()
        click.echo(f"Scheduler running for {', '.join(symbols)}; next fetch "
                   f"{scheduler.next_scheduled_fetch():%Y-%m-%d %H:%M}. Ctrl-C to stop.")
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
        return scheduler

    try:
        scheduler = _run_with_service(config, run)
    except (LocalRateLimitExceeded, SchedulerBusy) as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        click.echo("Scheduler stopped")
        return
    print_scheduler_stats(scheduler)


@cli.command()
@click.argument("symbols", nargs=-1)
@click.option("--count", default=10, type=int, show_default=True, help="Number of price updates to print")
@click.option("--interval", default=1.0, type=float, show_default=True, help="Seconds between placeholder ticks")
@click.option("--seed", default=None, type=int, help="Random seed for the placeholder feed")
def watch(symbols: tuple[str, ...], count: int, interval: float, seed: int | None) -> None:
    """Stream placeholder price updates for SYMBOLS."""
    targets = _split_symbols(symbols) or ["SPY"]

    async def run():
        feed = PriceFeed(lambda: PlaceholderConnection(interval=interval, seed=seed),
                         FeedConfig(subscriptions=tuple(targets)))
        await feed.start()
        shown = 0
        try:
            async for event in feed.updates():
                if isinstance(event, PLUpdate):
                    continue
                click.echo(f"{event.received_at:%H:%M:%S}  {event.symbol:<6} {event.price:>10.2f}")
                shown += 1
                if shown >= count:
                    break
        finally:
            await feed.stop()

    asyncio.run(run())
