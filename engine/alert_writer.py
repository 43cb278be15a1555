"""
Alert instance writer - persists triggered alerts with provenance and queues notifications
"""
from datetime import datetime
from typing import Callable, Optional

from models.kpi import AlertRule, AlertInstance, KPIRecord
from engine.fanout import NotificationFanOut
from storage.database import Database
from config import settings
from utils.helpers import format_number, generate_id, utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)


def generate_alert_message(rule: AlertRule, kpi: KPIRecord, alert_level: str) -> str:
    """
    e.g. "Critical: Occupancy Floor triggered for Oak Ridge. Occupancy Rate: 80"
    """
    severity = "Critical" if alert_level == settings.LEVEL_RED else "Warning"
    prop = kpi.property_name or "Unknown Property"
    return f"{severity}: {rule.rule_name} triggered for {prop}. {kpi.kpi_name}: {format_number(kpi.value)}"


class AlertWriter:
    """
    Writes an alert instance and immediately fans it out to the notification queue.

    The alert and its jobs are written in separate statements. A fan-out failure is
    logged and leaves the alert in place.
    """

    def __init__(
        self,
        db: Database,
        fanout: Optional[NotificationFanOut] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.clock = clock or utc_now
        self.fanout = fanout or NotificationFanOut(db, clock=self.clock)

    def write(self, rule: AlertRule, kpi: KPIRecord, alert_level: str, batch_id: str) -> AlertInstance:
        message = generate_alert_message(rule, kpi, alert_level)
        instance = AlertInstance(
            id=generate_id("alert"),
            alert_rule_id=rule.id,
            user_id=rule.user_id,
            property_name=kpi.property_name,
            kpi_type=rule.kpi_type,
            kpi_value=kpi.value,
            alert_level=alert_level,
            alert_message=message,
            trigger_data={
                'kpi_id': kpi.id,
                'kpi_name': kpi.kpi_name,
                'extraction_confidence': kpi.extraction_confidence,
                'batch_id': batch_id,
                'thresholds': rule.thresholds.snapshot(),
            },
            created_at=self.clock(),
        )
        self.db.insert_alert_instance(instance)
        logger.info(
            "alert_created",
            alert_instance_id=instance.id,
            rule_id=rule.id,
            property_name=kpi.property_name,
            alert_level=alert_level,
            batch_id=batch_id,
        )

        try:
            self.fanout.fan_out(rule, instance, message)
        except Exception:
            logger.error("notification_fanout_failed", alert_instance_id=instance.id, exc_info=True)

        return instance
