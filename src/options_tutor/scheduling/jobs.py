"""Fetch job records tracked by the scheduler."""

from dataclasses import dataclass
from datetime import datetime

from options_tutor.types import JobKind, JobStatus


def job_id(kind: JobKind, symbol: str, scheduled_time: datetime, prefix: str | None = None) -> str:
    return f"{prefix or kind.name.lower()}-{symbol}-{int(scheduled_time.timestamp())}"


@dataclass
class FetchJob:
    id: str
    symbol: str
    kind: JobKind
    scheduled_time: datetime
    attempts: int = 0
    status: JobStatus = JobStatus.PENDING
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING)

    def is_due(self, now: datetime) -> bool:
        return self.status == JobStatus.PENDING and self.scheduled_time <= now
