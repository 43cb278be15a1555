"""
Dedup / rate-limit gate for repeat alerts
"""
from datetime import datetime
from typing import Callable, Optional

from models.kpi import AlertRule
from storage.database import Database
from config import settings
from utils.helpers import utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)


class AlertGate:
    """
    Decides whether a computed severity becomes a new alert instance.

    Suppression is keyed by rule + property + level and bounded by the window of the
    rule's alert frequency. The check reads the store and does not lock it, so two
    concurrent batch runs can both pass the gate for the same condition.
    """

    def __init__(self, db: Database, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or utc_now

    def should_alert(self, rule: AlertRule, property_name: Optional[str], alert_level: str) -> bool:
        if rule.alert_frequency == settings.FREQUENCY_IMMEDIATE:
            return True

        window = settings.FREQUENCY_WINDOWS.get(rule.alert_frequency)
        if window is None:
            return True

        cutoff = self.clock() - window
        recent = self.db.count_recent_alerts(rule.id, property_name, alert_level, cutoff)
        if recent:
            logger.info(
                "alert_suppressed",
                rule_id=rule.id,
                property_name=property_name,
                alert_level=alert_level,
                frequency=rule.alert_frequency,
            )
            return False
        return True
