"""
Notification fan-out - expands one alert instance into channel-specific queue jobs
"""
from datetime import datetime
from typing import Callable, List, Optional

from models.kpi import AlertRule, AlertInstance, NotificationJob, UserNotificationPreferences
from notifications.backoff import BackoffPolicy
from storage.database import Database
from config import settings
from utils.helpers import generate_id, truncate, utc_now
from utils.validations import known_channels
from utils.logging_config import get_logger

logger = get_logger(__name__)


class NotificationFanOut:
    """
    Builds and enqueues one job per deliverable channel of a rule.

    dashboard is always enqueued; email and sms are gated on the user's
    notification preferences.
    """

    def __init__(
        self,
        db: Database,
        clock: Optional[Callable[[], datetime]] = None,
        policy: Optional[BackoffPolicy] = None
    ):
        self.db = db
        self.clock = clock or utc_now
        self.policy = policy or BackoffPolicy()

    def fan_out(self, rule: AlertRule, instance: AlertInstance, message: str) -> List[NotificationJob]:
        prefs = self.db.get_notification_preferences(rule.user_id)
        jobs = self.build_jobs(rule, instance, message, prefs)

        if jobs:
            self.db.insert_notification_jobs(jobs)
            logger.info(
                "notifications_queued",
                alert_instance_id=instance.id,
                channels=[j.notification_type for j in jobs],
            )
        return jobs

    def build_jobs(
        self,
        rule: AlertRule,
        instance: AlertInstance,
        message: str,
        prefs: Optional[UserNotificationPreferences]
    ) -> List[NotificationJob]:
        prefs = prefs or UserNotificationPreferences(user_id=rule.user_id)
        now = self.clock()
        jobs = []

        for channel in known_channels(rule.notification_channels):
            if channel == settings.CHANNEL_DASHBOARD:
                recipient, subject, body = rule.user_id, None, message
            elif channel == settings.CHANNEL_EMAIL and prefs.can_email:
                recipient = prefs.email_address
                subject = f"{settings.EMAIL_SUBJECT_PREFIX}: {rule.rule_name}"
                body = message
            elif channel == settings.CHANNEL_SMS and prefs.can_sms:
                recipient, subject = prefs.phone_number, None
                body = truncate(message, settings.SMS_MAX_LENGTH)
            else:
                continue

            jobs.append(NotificationJob(
                id=generate_id("notif"),
                alert_instance_id=instance.id,
                user_id=rule.user_id,
                notification_type=channel,
                recipient=recipient,
                subject=subject,
                message=body,
                priority=instance.priority,
                max_retries=self.policy.max_retries,
                scheduled_for=now,
                created_at=now,
            ))

        return jobs
