"""
Batch orchestrator - one full KPI evaluation sweep over every active alert rule
"""
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from models.kpi import (
    AlertRule,
    BatchLog,
    KPIRecord,
    PROCESSING_KPI_CHECK,
    BATCH_COMPLETED,
    BATCH_FAILED,
)
from engine.thresholds import evaluate, is_actionable
from engine.dedup import AlertGate
from engine.alert_writer import AlertWriter
from storage.database import Database
from config import settings
from utils.helpers import generate_id, utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)

GroupKey = Tuple[Optional[str], str]


def latest_by_group(records: List[KPIRecord]) -> Dict[GroupKey, KPIRecord]:
    """
    Most recent record per (property_name, kpi_type).
    """
    latest: Dict[GroupKey, KPIRecord] = {}
    for record in records:
        key = (record.property_name, record.kpi_type)
        current = latest.get(key)
        if current is None or (record.created_at or datetime.min) > (current.created_at or datetime.min):
            latest[key] = record
    return latest


class _BatchCounters:
    def __init__(self):
        self.groups_processed = set()
        self.alerts_triggered = 0


class BatchOrchestrator:
    """
    Loads active rules, evaluates each user's latest KPIs and writes the alerts
    that pass the dedup gate.

    Users are processed one at a time; an exception for one user is logged and the
    sweep moves on to the next.
    """

    def __init__(
        self,
        db: Database,
        clock: Optional[Callable[[], datetime]] = None,
        lookback_hours: int = settings.KPI_LOOKBACK_HOURS,
        gate: Optional[AlertGate] = None,
        writer: Optional[AlertWriter] = None
    ):
        self.db = db
        self.clock = clock or utc_now
        self.lookback = timedelta(hours=lookback_hours)
        self.gate = gate or AlertGate(db, clock=self.clock)
        self.writer = writer or AlertWriter(db, clock=self.clock)

    def run_batch(self) -> BatchLog:
        started = time.monotonic()
        log = BatchLog(
            batch_id=generate_id("batch"),
            processing_type=PROCESSING_KPI_CHECK,
            started_at=self.clock(),
        )
        self.db.insert_batch_log(log)
        logger.info("kpi_batch_started", batch_id=log.batch_id)

        counters = _BatchCounters()
        try:
            rows = self.db.get_active_alert_rule_rows()
            if not rows:
                logger.info("no_active_alert_rules", batch_id=log.batch_id)

            for user_id, user_rows in self._group_by_user(rows).items():
                try:
                    rules = self._build_rules(user_id, user_rows, log.batch_id)
                    self._process_user(user_id, rules, log.batch_id, counters)
                except Exception:
                    logger.error("user_alert_processing_failed", user_id=user_id,
                                 batch_id=log.batch_id, exc_info=True)

            log.status = BATCH_COMPLETED
        except Exception as e:
            log.status = BATCH_FAILED
            log.error_message = str(e)
            logger.error("kpi_batch_failed", batch_id=log.batch_id, exc_info=True)
            raise
        finally:
            log.properties_processed = len(counters.groups_processed)
            log.alerts_triggered = counters.alerts_triggered
            log.processing_time_ms = int((time.monotonic() - started) * 1000)
            log.completed_at = self.clock()
            self.db.update_batch_log(log)

        logger.info(
            "kpi_batch_completed",
            batch_id=log.batch_id,
            properties_processed=log.properties_processed,
            alerts_triggered=log.alerts_triggered,
            processing_time_ms=log.processing_time_ms,
        )
        return log

    @staticmethod
    def _group_by_user(rows: List[dict]) -> Dict[str, List[dict]]:
        grouped = defaultdict(list)
        for row in rows:
            grouped[row['user_id']].append(row)
        return grouped

    def _build_rules(self, user_id: str, rows: List[dict], batch_id: str) -> List[AlertRule]:
        """Malformed rules are logged and skipped; the user's other rules still run"""
        rules = []
        for row in rows:
            try:
                rules.append(self.db.row_to_rule(row))
            except ValueError as e:
                logger.warning("alert_rule_invalid", rule_id=row.get('id'), user_id=user_id,
                               batch_id=batch_id, error=str(e))
        return rules

    def _process_user(
        self,
        user_id: str,
        rules: List[AlertRule],
        batch_id: str,
        counters: _BatchCounters
    ):
        since = self.clock() - self.lookback
        records = self.db.get_recent_kpis(user_id, since)
        if not records:
            return

        latest = latest_by_group(records)

        for rule in rules:
            for (property_name, kpi_type), kpi in latest.items():
                if kpi_type != rule.kpi_type or not rule.applies_to(property_name):
                    continue
                if not kpi.is_evaluable:
                    continue

                counters.groups_processed.add((user_id, property_name, kpi_type))
                level = evaluate(kpi.value, rule.thresholds)
                if not is_actionable(level):
                    continue

                if self.gate.should_alert(rule, property_name, level):
                    self.writer.write(rule, kpi, level, batch_id)
                    counters.alerts_triggered += 1
