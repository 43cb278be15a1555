"""
Notification queue processor - delivers due jobs with retry and backoff
"""
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from models.kpi import (
    BatchLog,
    NotificationJob,
    UserNotificationPreferences,
    PROCESSING_NOTIFICATION_DISPATCH,
    BATCH_COMPLETED,
    BATCH_FAILED,
    STATUS_FAILED,
    STATUS_SENT,
)
from notifications.backoff import BackoffPolicy
from notifications.channels import DeliveryError, NotificationChannel, default_channels
from storage.database import Database, StoreError
from config import settings
from utils.helpers import generate_id, utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)


class NotificationQueueProcessor:
    """
    Pulls pending jobs that are due, most urgent first, and hands each one to the
    channel registered for its notification type.
    """

    def __init__(
        self,
        db: Database,
        channels: Optional[Dict[str, NotificationChannel]] = None,
        policy: Optional[BackoffPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.channels = channels if channels is not None else default_channels()
        self.policy = policy or BackoffPolicy()
        self.clock = clock or utc_now

    def process_queue(self, max_batch: int = settings.NOTIFICATION_BATCH_SIZE) -> Dict[str, int]:
        """
        Deliver up to `max_batch` due jobs.

        Returns {'sent': n, 'failed': m} where failed counts jobs that became terminal
        in this run. Jobs rescheduled for retry are in neither count.
        """
        started = time.monotonic()
        log = BatchLog(
            batch_id=generate_id("batch"),
            processing_type=PROCESSING_NOTIFICATION_DISPATCH,
            started_at=self.clock(),
        )
        self.db.insert_batch_log(log)

        job_errors = []
        try:
            jobs = self.db.get_due_notifications(self.clock(), max_batch)
            logger.info("notification_batch_started", batch_id=log.batch_id, due=len(jobs))

            for job in jobs:
                try:
                    self._process_job(job)
                except Exception as e:
                    logger.error("notification_job_error", job_id=job.id, exc_info=True)
                    job_errors.append(f"{job.id}: {e}")
                    continue

                if job.status == STATUS_SENT:
                    log.sent += 1
                elif job.status == STATUS_FAILED:
                    log.failed += 1

            log.status = BATCH_COMPLETED
            if job_errors:
                log.error_message = f"{len(job_errors)} job(s) not processed; " + "; ".join(job_errors)
        except Exception as e:
            log.status = BATCH_FAILED
            log.error_message = str(e)
            logger.error("notification_batch_failed", batch_id=log.batch_id, exc_info=True)
            raise
        finally:
            log.processing_time_ms = int((time.monotonic() - started) * 1000)
            log.completed_at = self.clock()
            self.db.update_batch_log(log)

        logger.info("notification_batch_completed", batch_id=log.batch_id,
                    sent=log.sent, failed=log.failed)
        return {'sent': log.sent, 'failed': log.failed}

    def _process_job(self, job: NotificationJob):
        channel = self.channels.get(job.notification_type)
        try:
            if channel is None:
                raise DeliveryError(f"No channel registered for {job.notification_type}")
            self._check_rate_limit(job)
            receipt = channel.send(job)
        except Exception as e:
            self.policy.record_failure(job, self.clock(), str(e))
            try:
                self.db.update_notification(job)
            except StoreError:
                # The stored row keeps its previous retry_count and schedule
                logger.error("notification_retry_state_lost", job_id=job.id,
                             retry_count=job.retry_count, exc_info=True)
                raise
            self._log_delivery(job, channel, delivered=False, error=str(e))
            logger.warning(
                "notification_delivery_failed",
                job_id=job.id,
                notification_type=job.notification_type,
                retry_count=job.retry_count,
                status=job.status,
                error=str(e),
            )
            return

        job.status = STATUS_SENT
        job.sent_at = self.clock()
        job.error_message = None
        self.db.update_notification(job)
        self._log_delivery(job, channel, delivered=True, message_id=receipt.message_id)
        logger.info("notification_sent", job_id=job.id, notification_type=job.notification_type)

    def _check_rate_limit(self, job: NotificationJob):
        """Email and SMS deliveries per user are capped per rolling hour"""
        if job.notification_type == settings.CHANNEL_DASHBOARD:
            return
        prefs = self.db.get_notification_preferences(job.user_id) or UserNotificationPreferences(user_id=job.user_id)
        recent = self.db.count_recent_deliveries(job.user_id, self.clock() - timedelta(hours=1))
        if recent >= prefs.rate_limit_per_hour:
            raise DeliveryError("Rate limit exceeded")

    def _log_delivery(
        self,
        job: NotificationJob,
        channel: Optional[NotificationChannel],
        delivered: bool,
        message_id: Optional[str] = None,
        error: Optional[str] = None
    ):
        if job.notification_type == settings.CHANNEL_DASHBOARD:
            return
        self.db.insert_delivery_log(
            job,
            delivered=delivered,
            provider=channel.provider if channel else None,
            provider_message_id=message_id,
            error_message=error,
            created_at=self.clock(),
        )
