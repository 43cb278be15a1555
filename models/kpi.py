"""
Data models for the KPI alert engine
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict

from config import settings
from utils.validations import validate_frequency


# Notification job statuses
STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"

# Batch log
PROCESSING_KPI_CHECK = "kpi_check"
PROCESSING_NOTIFICATION_DISPATCH = "notification_dispatch"
BATCH_RUNNING = "running"
BATCH_COMPLETED = "completed"
BATCH_FAILED = "failed"


@dataclass
class KPIRecord:
    """A single measured property metric produced by an ingestion adapter"""
    id: str
    user_id: str
    kpi_type: str  # leasing, financial, collections, operations, staffing
    kpi_name: str
    value: Optional[float] = None
    unit: Optional[str] = None
    property_name: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    extraction_confidence: float = 0.0
    document_id: Optional[str] = None
    raw_text: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_evaluable(self) -> bool:
        """Records without a value are never evaluated"""
        return self.value is not None


@dataclass
class ThresholdBands:
    """Green/yellow/red bands; every bound is independently optional"""
    green_min: Optional[float] = None
    green_max: Optional[float] = None
    yellow_min: Optional[float] = None
    yellow_max: Optional[float] = None
    red_min: Optional[float] = None
    red_max: Optional[float] = None

    def snapshot(self) -> Dict[str, Optional[float]]:
        """Thresholds that drive evaluation, as recorded on a triggered alert"""
        return {
            'red_min': self.red_min,
            'red_max': self.red_max,
            'yellow_min': self.yellow_min,
            'yellow_max': self.yellow_max,
        }


@dataclass
class AlertRule:
    """User-defined rule mapping a KPI type and threshold bands to notification behaviour"""
    id: str
    user_id: str
    rule_name: str
    kpi_type: str
    thresholds: ThresholdBands = field(default_factory=ThresholdBands)
    property_ids: List[str] = field(default_factory=list)
    alert_frequency: str = settings.FREQUENCY_IMMEDIATE
    notification_channels: List[str] = field(default_factory=lambda: [settings.CHANNEL_DASHBOARD])
    is_active: bool = True

    def __post_init__(self):
        if not validate_frequency(self.alert_frequency):
            raise ValueError(f"Unknown alert frequency: {self.alert_frequency}")

    def applies_to(self, property_name: Optional[str]) -> bool:
        """An empty scope means every property"""
        if not self.property_ids:
            return True
        return property_name in self.property_ids


@dataclass
class AlertInstance:
    """A triggered alert; append-only"""
    id: str
    alert_rule_id: str
    user_id: str
    property_name: Optional[str]
    kpi_type: str
    kpi_value: Optional[float]
    alert_level: str  # yellow, red
    alert_message: str
    trigger_data: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.alert_level not in (settings.LEVEL_YELLOW, settings.LEVEL_RED):
            raise ValueError(f"Alert instances are only created for yellow or red, got {self.alert_level}")

    @property
    def priority(self) -> int:
        return settings.PRIORITY_RED if self.alert_level == settings.LEVEL_RED else settings.PRIORITY_YELLOW


@dataclass
class NotificationJob:
    """One channel-specific delivery task derived from an alert instance"""
    id: str
    alert_instance_id: Optional[str]
    user_id: str
    notification_type: str  # dashboard, email, sms
    recipient: str
    message: str
    subject: Optional[str] = None
    priority: int = settings.PRIORITY_YELLOW
    status: str = STATUS_PENDING
    retry_count: int = 0
    max_retries: int = settings.NOTIFICATION_MAX_RETRIES
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (STATUS_SENT, STATUS_FAILED)


@dataclass
class BatchLog:
    """One row per orchestrator or queue run"""
    batch_id: str
    processing_type: str  # kpi_check, notification_dispatch
    status: str = BATCH_RUNNING
    properties_processed: int = 0
    alerts_triggered: int = 0
    sent: int = 0
    failed: int = 0
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class UserNotificationPreferences:
    """Per-user delivery preferences; read-only to the engine"""
    user_id: str
    email_enabled: bool = False
    email_address: Optional[str] = None
    sms_enabled: bool = False
    phone_number: Optional[str] = None
    rate_limit_per_hour: int = settings.NOTIFICATION_RATE_LIMIT_PER_HOUR

    @property
    def can_email(self) -> bool:
        return bool(self.email_enabled and self.email_address)

    @property
    def can_sms(self) -> bool:
        return bool(self.sms_enabled and self.phone_number)
