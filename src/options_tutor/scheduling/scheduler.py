"""DataScheduler: time-triggered, serial, rate-limit-aware refresh jobs."""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta
from typing import Awaitable, Callable

from options_tutor.config import ScheduleConfig
from options_tutor.data.calendar import TradingCalendar
from options_tutor.data.manager import MarketDataService
from options_tutor.errors import DataFetchError, LocalRateLimitExceeded, SchedulerBusy
from options_tutor.scheduling.jobs import FetchJob, job_id
from options_tutor.scheduling.ticker import Ticker
from options_tutor.types import JobKind, JobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulerStats:
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    pending_jobs: int
    requests_today: int
    next_scheduled_fetch: datetime | None
    last_successful_fetch: datetime | None


class DataScheduler:
    """Creates refresh jobs at the configured fetch times and runs them.

    A ticker wakes every ``tick_interval`` seconds and processes due jobs one
    at a time, pausing the limiter's request interval between jobs. Failed
    fetches are retried after a fixed delay until ``retry_attempts`` is used
    up, then marked failed. If the limiter denies when a batch becomes due
    the whole batch is pushed back by ``defer_delay``.
    """

    def __init__(self, service: MarketDataService, config: ScheduleConfig | None = None,
                 clock: Callable[[], datetime] | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 calendar: TradingCalendar | None = None):
        self._service = service
        self.config = config or ScheduleConfig()
        self._clock = clock or service.now
        self._sleep = sleep
        self._calendar = calendar
        self._ticker: Ticker | None = None
        self._is_running = False
        self.jobs: list[FetchJob] = []

        self._runners = {
            JobKind.REFRESH: lambda sym: service.refresh(sym),
            JobKind.QUOTE: lambda sym: service.fetch_quote(sym, wait=True),
            JobKind.HISTORICAL: lambda sym: service.fetch_historical(sym, wait=True),
            JobKind.COMPANY: lambda sym: service.fetch_overview(sym, wait=True),
        }

    @property
    def is_processing(self) -> bool:
        return self._is_running

    @property
    def started(self) -> bool:
        return self._ticker is not None and self._ticker.running

    # --- lifecycle ---

    async def start(self) -> None:
        if not self.config.enabled:
            logger.info("Scheduler disabled; not starting")
            return
        if self._ticker is None:
            self._ticker = Ticker(self.config.tick_interval, self.tick, name="data-scheduler")
        self._ticker.start()
        if not self._pending():
            self.schedule_next_fetch()
        logger.info("Scheduler started")

    async def stop(self) -> None:
        if self._ticker is not None:
            await self._ticker.stop()
            self._ticker = None
        logger.info("Scheduler stopped")

    async def set_enabled(self, enabled: bool) -> None:
        self.config = replace(self.config, enabled=enabled)
        if enabled:
            await self.start()
        else:
            await self.stop()
            cancelled = len(self._pending())
            self.jobs = [j for j in self.jobs if j.status != JobStatus.PENDING]
            logger.info(f"Scheduler disabled; cancelled {cancelled} pending jobs")

    def update_config(self, **changes) -> None:
        """Replace config fields. A new tick_interval applies on the next start()."""
        self.config = replace(self.config, **changes)
        if "symbols" in changes or "fetch_times" in changes:
            self.schedule_next_fetch()
        logger.info(f"Scheduler configuration updated: {sorted(changes)}")

    # --- scheduling ---

    def _trading_day(self, day) -> bool:
        if not self.config.trading_days_only:
            return True
        if self._calendar is None:
            self._calendar = TradingCalendar()
        return self._calendar.is_trading_day(day)

    def next_fetch_time(self, now: datetime) -> datetime | None:
        """Earliest configured fetch time strictly after ``now``."""
        times = self.config.parsed_fetch_times()
        if not times:
            return None
        day = now.date()
        for _ in range(15):
            if self._trading_day(day):
                for hour, minute in times:
                    candidate = datetime.combine(day, time(hour, minute), tzinfo=now.tzinfo)
                    if candidate > now:
                        return candidate
            day += timedelta(days=1)
        return None

    def schedule_next_fetch(self, now: datetime | None = None) -> datetime | None:
        if not self.config.enabled:
            return None
        when = self.next_fetch_time(now or self._clock())
        if when is None:
            return None
        self.schedule_data_fetch(when)
        logger.info(f"Next fetch scheduled for {when:%Y-%m-%d %H:%M}")
        return when

    def schedule_data_fetch(self, when: datetime, symbols: list[str] | None = None,
                            kind: JobKind = JobKind.REFRESH) -> list[FetchJob]:
        """Create one job per symbol at ``when``, replacing pending jobs at that instant."""
        self.jobs = [j for j in self.jobs if not (j.scheduled_time == when and j.status == JobStatus.PENDING)]
        new_jobs = [
            FetchJob(id=job_id(kind, sym, when), symbol=sym, kind=kind, scheduled_time=when)
            for sym in (symbols if symbols is not None else self.config.symbols)
        ]
        self.jobs.extend(new_jobs)
        logger.debug(f"Scheduled {len(new_jobs)} {kind.name.lower()} jobs for {when:%Y-%m-%d %H:%M}")
        return new_jobs

    def _pending(self) -> list[FetchJob]:
        return [j for j in self.jobs if j.status == JobStatus.PENDING]

    # --- processing ---

    async def tick(self, now: datetime | None = None) -> None:
        if self._is_running:
            logger.debug("Tick skipped: batch still running")
            return
        now = now or self._clock()
        ready = [j for j in self.jobs if j.is_due(now)]
        if ready:
            await self.process_jobs(ready)

        self.cleanup_old_jobs(self.config.job_max_age)
        if not self._pending():
            self.schedule_next_fetch()

    async def process_jobs(self, jobs: list[FetchJob], defer_when_limited: bool = True) -> None:
        """Run ``jobs`` serially. Never runs two batches at once.

        With ``defer_when_limited`` off, jobs the quota cannot cover are
        failed instead of pushed back.
        """
        if self._is_running:
            logger.debug("process_jobs called while a batch is running; ignoring")
            return

        self._is_running = True
        logger.info(f"Processing {len(jobs)} jobs")
        try:
            if defer_when_limited and not self._service.rate_limit_status().allowed:
                logger.info("Rate limit reached, deferring jobs")
                self.defer_jobs(jobs, self.config.defer_delay)
                return

            for i, job in enumerate(jobs):
                if i > 0:
                    await self._sleep(self._service.limiter.min_interval)
                if self._service.rate_limit_status().remaining_today == 0:
                    if defer_when_limited:
                        logger.info(f"Daily quota used up; deferring {len(jobs) - i} remaining jobs")
                        self.defer_jobs(jobs[i:], self.config.defer_delay)
                    else:
                        self.fail_jobs(jobs[i:], "No API requests remaining today")
                    break
                await self.process_job(job, defer_on_denial=defer_when_limited)
        finally:
            self._is_running = False

    async def process_job(self, job: FetchJob, defer_on_denial: bool = True) -> None:
        job.status = JobStatus.RUNNING
        job.attempts += 1
        logger.info(f"Processing job {job.id} (attempt {job.attempts})")
        try:
            await self._runners[job.kind](job.symbol)
        except LocalRateLimitExceeded as e:
            # Denied before any request went out, so it does not count as an attempt
            job.attempts -= 1
            if defer_on_denial:
                job.error = str(e)
                self.defer_jobs([job], self.config.defer_delay)
            else:
                self.fail_jobs([job], str(e))
            return
        except DataFetchError as e:
            self.handle_job_error(job, e)
            return
        except Exception as e:
            logger.exception(f"Job {job.id} raised unexpectedly")
            self.handle_job_error(job, e)
            return
        job.status = JobStatus.COMPLETED
        job.error = None
        logger.info(f"Completed job {job.id}")

    def handle_job_error(self, job: FetchJob, error: Exception, now: datetime | None = None) -> None:
        job.error = str(error)
        if job.attempts < self.config.retry_attempts:
            job.status = JobStatus.PENDING
            job.scheduled_time = (now or self._clock()) + timedelta(seconds=self.config.retry_delay)
            logger.warning(f"Job {job.id} failed ({error}); retrying in {self.config.retry_delay:.0f}s")
        else:
            job.status = JobStatus.FAILED
            logger.error(f"Job {job.id} failed after {job.attempts} attempts: {error}")

    def defer_jobs(self, jobs: list[FetchJob], delay: float, now: datetime | None = None) -> None:
        new_time = (now or self._clock()) + timedelta(seconds=delay)
        for job in jobs:
            job.status = JobStatus.PENDING
            job.scheduled_time = new_time
        logger.info(f"Deferred {len(jobs)} jobs by {delay:.0f}s")

    def fail_jobs(self, jobs: list[FetchJob], reason: str) -> None:
        for job in jobs:
            job.status = JobStatus.FAILED
            job.error = reason
        logger.warning(f"Failed {len(jobs)} jobs without retry: {reason}")

    async def force_immediate_fetch(self, symbols: list[str]) -> list[FetchJob]:
        """Refresh ``symbols`` now, as many as today's quota allows.

        Symbols are taken in order while their refreshes fit in the requests
        left today; the rest are dropped. Raises SchedulerBusy while a batch
        runs and LocalRateLimitExceeded when not even the first symbol fits.
        Forced jobs are never queued for later.
        """
        if self._is_running:
            raise SchedulerBusy("Scheduler is currently running, cannot force immediate fetch")

        status = self._service.rate_limit_status()
        remaining = status.remaining_today
        selected = []
        for sym in (s.upper() for s in symbols):
            cost = self._service.requests_for_refresh(sym)
            if cost > remaining:
                break
            selected.append(sym)
            remaining -= cost

        if not selected:
            needed = self._service.requests_for_refresh(symbols[0]) if symbols else 0
            raise LocalRateLimitExceeded(
                f"Not enough API requests remaining today ({status.remaining_today} left, {needed} needed)",
                next_allowed_at=status.next_allowed_at,
                remaining_today=status.remaining_today,
            )
        if len(selected) < len(symbols):
            logger.warning(f"Quota covers {len(selected)} of {len(symbols)} symbols; "
                           f"skipping {', '.join(s.upper() for s in symbols[len(selected):])}")

        now = self._clock()
        jobs = [
            FetchJob(id=job_id(JobKind.REFRESH, sym, now, prefix="force"),
                     symbol=sym, kind=JobKind.REFRESH, scheduled_time=now)
            for sym in selected
        ]
        logger.info(f"Force fetching data for {len(jobs)} symbols")
        self.jobs.extend(jobs)
        await self.process_jobs(jobs, defer_when_limited=False)
        return jobs

    # --- observability ---

    def cleanup_old_jobs(self, max_age: float | None = None, now: datetime | None = None) -> int:
        """Drop finished jobs scheduled before ``now - max_age``. Pending and running jobs are kept."""
        max_age = self.config.job_max_age if max_age is None else max_age
        cutoff = (now or self._clock()) - timedelta(seconds=max_age)
        before = len(self.jobs)
        self.jobs = [j for j in self.jobs if j.is_active or j.scheduled_time > cutoff]
        cleaned = before - len(self.jobs)
        if cleaned:
            logger.info(f"Cleaned up {cleaned} old jobs")
        return cleaned

    def get_jobs(self, status: JobStatus | None = None, symbol: str | None = None,
                 kind: JobKind | None = None) -> list[FetchJob]:
        jobs = [
            j for j in self.jobs
            if (status is None or j.status == status)
            and (symbol is None or j.symbol == symbol.upper())
            and (kind is None or j.kind == kind)
        ]
        return sorted(jobs, key=lambda j: j.scheduled_time, reverse=True)

    def next_scheduled_fetch(self) -> datetime | None:
        pending = self._pending()
        return min(j.scheduled_time for j in pending) if pending else None

    def get_stats(self) -> SchedulerStats:
        completed = [j for j in self.jobs if j.status == JobStatus.COMPLETED]
        return SchedulerStats(
            total_jobs=len(self.jobs),
            completed_jobs=len(completed),
            failed_jobs=sum(1 for j in self.jobs if j.status == JobStatus.FAILED),
            pending_jobs=len(self._pending()),
            requests_today=self._service.rate_limit_status().requests_today,
            next_scheduled_fetch=self.next_scheduled_fetch(),
            last_successful_fetch=max((j.scheduled_time for j in completed), default=None),
        )
