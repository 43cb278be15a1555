"""
Notification channels - one delivery capability per notification type
"""
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Dict, Optional

import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from models.kpi import NotificationJob
from config import settings
from utils.logging_config import get_logger

logger = get_logger(__name__)


class DeliveryError(Exception):
    """A provider could not deliver a notification; the job is retried"""


@dataclass
class DeliveryReceipt:
    provider: str
    message_id: Optional[str] = None


class NotificationChannel(ABC):
    """Delivers one kind of notification job"""

    notification_type: str = ""
    provider: str = ""

    @abstractmethod
    def send(self, job: NotificationJob) -> DeliveryReceipt:
        """Deliver the job or raise DeliveryError"""


class DashboardChannel(NotificationChannel):
    """
    Dashboard notifications are picked up by the UI's realtime subscription on the
    queue table, so delivery is a no-op that always succeeds.
    """

    notification_type = settings.CHANNEL_DASHBOARD
    provider = "realtime"

    def send(self, job: NotificationJob) -> DeliveryReceipt:
        return DeliveryReceipt(provider=self.provider)


class EmailChannel(NotificationChannel):
    """Plain SMTP delivery"""

    notification_type = settings.CHANNEL_EMAIL
    provider = "smtp"

    def __init__(
        self,
        host: str = None,
        port: int = None,
        user: str = None,
        password: str = None,
        use_tls: bool = None,
        from_addr: str = None,
        timeout: float = None
    ):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.from_addr = from_addr or settings.EMAIL_FROM
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    def send(self, job: NotificationJob) -> DeliveryReceipt:
        if not self.host:
            raise DeliveryError("SMTP host not configured")

        msg = MIMEText(job.message, "plain", "utf-8")
        msg["Subject"] = job.subject or settings.EMAIL_SUBJECT_PREFIX
        msg["From"] = self.from_addr
        msg["To"] = job.recipient

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.from_addr, [job.recipient], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Email delivery failed: {e}") from e

        logger.debug("email_delivered", job_id=job.id, host=self.host)
        return DeliveryReceipt(provider=self.provider)


class SmsChannel(NotificationChannel):
    """SMS via Twilio"""

    notification_type = settings.CHANNEL_SMS
    provider = "twilio"

    def __init__(
        self,
        account_sid: str = None,
        auth_token: str = None,
        from_number: str = None,
        timeout: float = None,
        client: Optional[Client] = None
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_FROM_NUMBER
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            if not (self.account_sid and self.auth_token and self.from_number):
                raise DeliveryError("Twilio credentials not configured")
            self._client = Client(
                self.account_sid,
                self.auth_token,
                http_client=TwilioHttpClient(timeout=self.timeout),
            )
        return self._client

    def send(self, job: NotificationJob) -> DeliveryReceipt:
        client = self._get_client()
        try:
            message = client.messages.create(
                body=job.message[:settings.SMS_MAX_LENGTH],
                from_=self.from_number,
                to=job.recipient,
            )
        except (TwilioException, requests.RequestException) as e:
            raise DeliveryError(f"SMS delivery failed: {e}") from e

        sid = getattr(message, "sid", None)
        logger.debug("sms_delivered", job_id=job.id, sid=sid)
        return DeliveryReceipt(provider=self.provider, message_id=sid)


def default_channels() -> Dict[str, NotificationChannel]:
    """Channel registry keyed by notification type; add a channel by adding an entry"""
    channels = [DashboardChannel(), EmailChannel(), SmsChannel()]
    return {channel.notification_type: channel for channel in channels}
