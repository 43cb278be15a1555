"""
Retry policy for notification delivery
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from models.kpi import NotificationJob, STATUS_FAILED, STATUS_PENDING
from config import settings


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff: the n-th retry waits base * multiplier ** n.

    With the defaults (1 minute, x2) the first retry is due after 2 minutes, the
    second after 4. max_retries is the default cap stamped on new jobs; a job's
    own max_retries always decides when it becomes terminal.
    """
    base: timedelta = timedelta(minutes=settings.BACKOFF_BASE_MINUTES)
    multiplier: float = settings.BACKOFF_MULTIPLIER
    max_retries: int = settings.NOTIFICATION_MAX_RETRIES

    def delay(self, retry_count: int) -> timedelta:
        return self.base * (self.multiplier ** retry_count)

    def record_failure(self, job: NotificationJob, now: datetime, error: str) -> NotificationJob:
        """Count a failed attempt; reschedule the job or mark it terminally failed"""
        job.retry_count += 1
        job.error_message = error
        if job.retry_count >= job.max_retries:
            job.status = STATUS_FAILED
        else:
            job.status = STATUS_PENDING
            job.scheduled_for = now + self.delay(job.retry_count)
        return job
