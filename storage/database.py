"""
Database persistence layer (DuckDB)
"""
import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import duckdb

from models.kpi import (
    KPIRecord,
    ThresholdBands,
    AlertRule,
    AlertInstance,
    NotificationJob,
    BatchLog,
    UserNotificationPreferences,
    STATUS_PENDING,
)
from models.documents import Document, PMIntegration
from config import settings
from utils.helpers import utc_now, generate_id


class StoreError(Exception):
    """Raised when the underlying store cannot be read or written"""


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS alert_rules (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR NOT NULL,
        rule_name VARCHAR,
        kpi_type VARCHAR,
        property_ids VARCHAR,
        threshold_green_min DOUBLE,
        threshold_green_max DOUBLE,
        threshold_yellow_min DOUBLE,
        threshold_yellow_max DOUBLE,
        threshold_red_min DOUBLE,
        threshold_red_max DOUBLE,
        alert_frequency VARCHAR,
        notification_channels VARCHAR,
        is_active BOOLEAN,
        created_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS extracted_kpis (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR NOT NULL,
        document_id VARCHAR,
        kpi_type VARCHAR,
        kpi_name VARCHAR,
        kpi_value DOUBLE,
        kpi_unit VARCHAR,
        period_start DATE,
        period_end DATE,
        property_name VARCHAR,
        extraction_confidence DOUBLE,
        raw_text VARCHAR,
        created_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alert_instances (
        id VARCHAR PRIMARY KEY,
        alert_rule_id VARCHAR,
        user_id VARCHAR,
        property_name VARCHAR,
        kpi_type VARCHAR,
        kpi_value DOUBLE,
        alert_level VARCHAR,
        alert_message VARCHAR,
        trigger_data VARCHAR,
        created_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_queue (
        id VARCHAR PRIMARY KEY,
        alert_instance_id VARCHAR,
        user_id VARCHAR,
        notification_type VARCHAR,
        recipient VARCHAR,
        subject VARCHAR,
        message VARCHAR,
        priority INTEGER,
        status VARCHAR,
        retry_count INTEGER,
        max_retries INTEGER,
        scheduled_for TIMESTAMP,
        sent_at TIMESTAMP,
        error_message VARCHAR,
        created_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alert_processing_log (
        batch_id VARCHAR PRIMARY KEY,
        processing_type VARCHAR,
        status VARCHAR,
        properties_processed INTEGER,
        alerts_triggered INTEGER,
        sent INTEGER,
        failed INTEGER,
        processing_time_ms BIGINT,
        error_message VARCHAR,
        started_at TIMESTAMP,
        completed_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_notification_preferences (
        user_id VARCHAR PRIMARY KEY,
        email_enabled BOOLEAN,
        email_address VARCHAR,
        sms_enabled BOOLEAN,
        phone_number VARCHAR,
        rate_limit_per_hour INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR,
        filename VARCHAR,
        file_type VARCHAR,
        storage_path VARCHAR,
        processing_status VARCHAR,
        extracted_data VARCHAR,
        confidence_score DOUBLE,
        category VARCHAR,
        error_message VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pm_integrations (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR,
        pm_software VARCHAR,
        credentials_encrypted VARCHAR,
        sync_status VARCHAR,
        last_sync TIMESTAMP,
        error_log VARCHAR,
        settings VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS delivery_logs (
        id VARCHAR PRIMARY KEY,
        notification_id VARCHAR,
        alert_instance_id VARCHAR,
        user_id VARCHAR,
        recipient_type VARCHAR,
        recipient_address VARCHAR,
        delivery_status VARCHAR,
        delivery_provider VARCHAR,
        provider_message_id VARCHAR,
        error_message VARCHAR,
        created_at TIMESTAMP
    )
    """,
]


def _dumps(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _loads(value, default):
    if not value:
        return default
    return json.loads(value)


class Database:
    """
    DuckDB-backed store for rules, KPI records, alerts, the notification queue and batch logs
    """

    def __init__(self, db_path: str = None):
        self.db_path = db_path or settings.DATABASE_PATH
        self.conn = None
        self._init_database()

    def _init_database(self):
        """Initialize database and create tables"""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = duckdb.connect(self.db_path)
        except duckdb.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        for ddl in _SCHEMA:
            self._execute(ddl)

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: Optional[list] = None):
        try:
            if params is None:
                return self.conn.execute(sql)
            return self.conn.execute(sql, params)
        except duckdb.Error as e:
            raise StoreError(str(e)) from e

    def _fetch_dicts(self, sql: str, params: Optional[list] = None) -> List[dict]:
        cursor = self._execute(sql, params)
        columns = [col[0] for col in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Alert rules (written by the settings UI, read by the engine)
    # ------------------------------------------------------------------

    def save_alert_rule(self, rule: AlertRule):
        """Save an alert rule"""
        t = rule.thresholds
        self._execute("""
            INSERT OR REPLACE INTO alert_rules
            (id, user_id, rule_name, kpi_type, property_ids,
             threshold_green_min, threshold_green_max, threshold_yellow_min,
             threshold_yellow_max, threshold_red_min, threshold_red_max,
             alert_frequency, notification_channels, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            rule.id,
            rule.user_id,
            rule.rule_name,
            rule.kpi_type,
            _dumps(rule.property_ids),
            t.green_min,
            t.green_max,
            t.yellow_min,
            t.yellow_max,
            t.red_min,
            t.red_max,
            rule.alert_frequency,
            _dumps(rule.notification_channels),
            rule.is_active,
            utc_now(),
        ])

    def get_active_alert_rule_rows(self) -> List[dict]:
        """
        Raw rows for all rules with is_active = true.

        Rows are returned undecoded so a malformed rule only fails for its own
        user when it is built with row_to_rule.
        """
        return self._fetch_dicts(
            "SELECT * FROM alert_rules WHERE is_active = true ORDER BY user_id, created_at"
        )

    @staticmethod
    def row_to_rule(row: dict) -> AlertRule:
        """
        Raises:
            ValueError: unknown frequency or undecodable JSON columns
        """
        return AlertRule(
            id=row['id'],
            user_id=row['user_id'],
            rule_name=row['rule_name'],
            kpi_type=row['kpi_type'],
            thresholds=ThresholdBands(
                green_min=row['threshold_green_min'],
                green_max=row['threshold_green_max'],
                yellow_min=row['threshold_yellow_min'],
                yellow_max=row['threshold_yellow_max'],
                red_min=row['threshold_red_min'],
                red_max=row['threshold_red_max'],
            ),
            property_ids=_loads(row['property_ids'], []),
            alert_frequency=row['alert_frequency'],
            notification_channels=_loads(row['notification_channels'], []),
            is_active=bool(row['is_active']),
        )

    # ------------------------------------------------------------------
    # KPI records
    # ------------------------------------------------------------------

    def save_kpi_records(self, records: List[KPIRecord]):
        """Save extracted KPI records"""
        for record in records:
            self._execute("""
                INSERT INTO extracted_kpis
                (id, user_id, document_id, kpi_type, kpi_name, kpi_value, kpi_unit,
                 period_start, period_end, property_name, extraction_confidence, raw_text, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                record.id,
                record.user_id,
                record.document_id,
                record.kpi_type,
                record.kpi_name,
                record.value,
                record.unit,
                record.period_start,
                record.period_end,
                record.property_name,
                record.extraction_confidence,
                record.raw_text,
                record.created_at or utc_now(),
            ])

    def get_recent_kpis(self, user_id: str, since: datetime) -> List[KPIRecord]:
        """A user's KPI records created at or after `since`, newest first"""
        rows = self._fetch_dicts("""
            SELECT * FROM extracted_kpis
            WHERE user_id = ? AND created_at >= ?
            ORDER BY created_at DESC
        """, [user_id, since])
        return [
            KPIRecord(
                id=row['id'],
                user_id=row['user_id'],
                kpi_type=row['kpi_type'],
                kpi_name=row['kpi_name'],
                value=row['kpi_value'],
                unit=row['kpi_unit'],
                property_name=row['property_name'],
                period_start=row['period_start'],
                period_end=row['period_end'],
                extraction_confidence=row['extraction_confidence'] or 0.0,
                document_id=row['document_id'],
                raw_text=row['raw_text'],
                created_at=row['created_at'],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Alert instances (append-only)
    # ------------------------------------------------------------------

    def insert_alert_instance(self, instance: AlertInstance):
        """Append an alert instance"""
        if instance.created_at is None:
            instance.created_at = utc_now()
        self._execute("""
            INSERT INTO alert_instances
            (id, alert_rule_id, user_id, property_name, kpi_type, kpi_value,
             alert_level, alert_message, trigger_data, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            instance.id,
            instance.alert_rule_id,
            instance.user_id,
            instance.property_name,
            instance.kpi_type,
            instance.kpi_value,
            instance.alert_level,
            instance.alert_message,
            _dumps(instance.trigger_data),
            instance.created_at,
        ])

    def count_recent_alerts(
        self,
        alert_rule_id: str,
        property_name: Optional[str],
        alert_level: str,
        since: datetime
    ) -> int:
        """Alerts for the same rule, property and level created at or after `since`"""
        row = self._execute("""
            SELECT COUNT(*) FROM alert_instances
            WHERE alert_rule_id = ?
              AND property_name IS NOT DISTINCT FROM ?
              AND alert_level = ?
              AND created_at >= ?
        """, [alert_rule_id, property_name, alert_level, since]).fetchone()
        return int(row[0])

    def get_alert_instances(self, user_id: Optional[str] = None) -> List[AlertInstance]:
        """Alert instances, oldest first, optionally for one user"""
        sql = "SELECT * FROM alert_instances"
        params = []
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at"
        return [
            AlertInstance(
                id=row['id'],
                alert_rule_id=row['alert_rule_id'],
                user_id=row['user_id'],
                property_name=row['property_name'],
                kpi_type=row['kpi_type'],
                kpi_value=row['kpi_value'],
                alert_level=row['alert_level'],
                alert_message=row['alert_message'],
                trigger_data=_loads(row['trigger_data'], {}),
                created_at=row['created_at'],
            )
            for row in self._fetch_dicts(sql, params)
        ]

    # ------------------------------------------------------------------
    # Notification queue
    # ------------------------------------------------------------------

    def insert_notification_jobs(self, jobs: List[NotificationJob]):
        """Enqueue notification jobs"""
        for job in jobs:
            now = utc_now()
            if job.created_at is None:
                job.created_at = now
            if job.scheduled_for is None:
                job.scheduled_for = job.created_at
            self._execute("""
                INSERT INTO notification_queue
                (id, alert_instance_id, user_id, notification_type, recipient, subject, message,
                 priority, status, retry_count, max_retries, scheduled_for, sent_at, error_message, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                job.id,
                job.alert_instance_id,
                job.user_id,
                job.notification_type,
                job.recipient,
                job.subject,
                job.message,
                job.priority,
                job.status,
                job.retry_count,
                job.max_retries,
                job.scheduled_for,
                job.sent_at,
                job.error_message,
                job.created_at,
            ])

    def get_due_notifications(self, now: datetime, limit: int) -> List[NotificationJob]:
        """Pending jobs scheduled at or before `now`, most urgent then oldest first"""
        rows = self._fetch_dicts(f"""
            SELECT * FROM notification_queue
            WHERE status = ? AND scheduled_for <= ?
            ORDER BY priority ASC, created_at ASC
            LIMIT {int(limit)}
        """, [STATUS_PENDING, now])
        return [self._row_to_job(row) for row in rows]

    def get_notifications(self, alert_instance_id: Optional[str] = None) -> List[NotificationJob]:
        """Queued jobs, optionally for one alert instance"""
        sql = "SELECT * FROM notification_queue"
        params = []
        if alert_instance_id is not None:
            sql += " WHERE alert_instance_id = ?"
            params.append(alert_instance_id)
        sql += " ORDER BY priority ASC, created_at ASC"
        return [self._row_to_job(row) for row in self._fetch_dicts(sql, params)]

    def get_notification(self, job_id: str) -> Optional[NotificationJob]:
        rows = self._fetch_dicts("SELECT * FROM notification_queue WHERE id = ?", [job_id])
        return self._row_to_job(rows[0]) if rows else None

    def update_notification(self, job: NotificationJob):
        """Persist the delivery state of a job"""
        self._execute("""
            UPDATE notification_queue
            SET status = ?, retry_count = ?, scheduled_for = ?, sent_at = ?, error_message = ?
            WHERE id = ?
        """, [
            job.status,
            job.retry_count,
            job.scheduled_for,
            job.sent_at,
            job.error_message,
            job.id,
        ])

    @staticmethod
    def _row_to_job(row: dict) -> NotificationJob:
        return NotificationJob(
            id=row['id'],
            alert_instance_id=row['alert_instance_id'],
            user_id=row['user_id'],
            notification_type=row['notification_type'],
            recipient=row['recipient'],
            subject=row['subject'],
            message=row['message'],
            priority=row['priority'],
            status=row['status'],
            retry_count=row['retry_count'],
            max_retries=row['max_retries'],
            scheduled_for=row['scheduled_for'],
            sent_at=row['sent_at'],
            error_message=row['error_message'],
            created_at=row['created_at'],
        )

    def insert_delivery_log(
        self,
        job: NotificationJob,
        delivered: bool,
        provider: Optional[str],
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
        created_at: Optional[datetime] = None
    ):
        """Record one delivery attempt for audit"""
        self._execute("""
            INSERT INTO delivery_logs
            (id, notification_id, alert_instance_id, user_id, recipient_type, recipient_address,
             delivery_status, delivery_provider, provider_message_id, error_message, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            generate_id("delivery"),
            job.id,
            job.alert_instance_id,
            job.user_id,
            job.notification_type,
            job.recipient,
            'sent' if delivered else 'failed',
            provider,
            provider_message_id,
            error_message,
            created_at or utc_now(),
        ])

    def get_delivery_logs(self, notification_id: str) -> List[dict]:
        return self._fetch_dicts(
            "SELECT * FROM delivery_logs WHERE notification_id = ? ORDER BY created_at",
            [notification_id],
        )

    def count_recent_deliveries(self, user_id: str, since: datetime) -> int:
        """Delivery attempts (sent or failed) logged for a user since a cutoff"""
        row = self._execute(
            "SELECT COUNT(*) FROM delivery_logs WHERE user_id = ? AND created_at >= ?",
            [user_id, since],
        ).fetchone()
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Batch processing log
    # ------------------------------------------------------------------

    def insert_batch_log(self, log: BatchLog):
        self._execute("""
            INSERT INTO alert_processing_log
            (batch_id, processing_type, status, properties_processed, alerts_triggered,
             sent, failed, processing_time_ms, error_message, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            log.batch_id,
            log.processing_type,
            log.status,
            log.properties_processed,
            log.alerts_triggered,
            log.sent,
            log.failed,
            log.processing_time_ms,
            log.error_message,
            log.started_at,
            log.completed_at,
        ])

    def update_batch_log(self, log: BatchLog):
        self._execute("""
            UPDATE alert_processing_log
            SET status = ?, properties_processed = ?, alerts_triggered = ?, sent = ?, failed = ?,
                processing_time_ms = ?, error_message = ?, completed_at = ?
            WHERE batch_id = ?
        """, [
            log.status,
            log.properties_processed,
            log.alerts_triggered,
            log.sent,
            log.failed,
            log.processing_time_ms,
            log.error_message,
            log.completed_at,
            log.batch_id,
        ])

    def get_batch_log(self, batch_id: str) -> Optional[BatchLog]:
        rows = self._fetch_dicts(
            "SELECT * FROM alert_processing_log WHERE batch_id = ?", [batch_id]
        )
        if not rows:
            return None
        return BatchLog(**rows[0])

    # ------------------------------------------------------------------
    # Notification preferences (read-only to the engine)
    # ------------------------------------------------------------------

    def save_notification_preferences(self, prefs: UserNotificationPreferences):
        self._execute("""
            INSERT OR REPLACE INTO user_notification_preferences
            (user_id, email_enabled, email_address, sms_enabled, phone_number, rate_limit_per_hour)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            prefs.user_id,
            prefs.email_enabled,
            prefs.email_address,
            prefs.sms_enabled,
            prefs.phone_number,
            prefs.rate_limit_per_hour,
        ])

    def get_notification_preferences(self, user_id: str) -> Optional[UserNotificationPreferences]:
        rows = self._fetch_dicts(
            "SELECT * FROM user_notification_preferences WHERE user_id = ?", [user_id]
        )
        if not rows:
            return None
        row = rows[0]
        return UserNotificationPreferences(
            user_id=row['user_id'],
            email_enabled=bool(row['email_enabled']),
            email_address=row['email_address'],
            sms_enabled=bool(row['sms_enabled']),
            phone_number=row['phone_number'],
            rate_limit_per_hour=(
                row['rate_limit_per_hour']
                if row['rate_limit_per_hour'] is not None
                else settings.NOTIFICATION_RATE_LIMIT_PER_HOUR
            ),
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def save_document(self, document: Document):
        now = utc_now()
        document.created_at = document.created_at or now
        document.updated_at = now
        self._execute("""
            INSERT OR REPLACE INTO documents
            (id, user_id, filename, file_type, storage_path, processing_status, extracted_data,
             confidence_score, category, error_message, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            document.id,
            document.user_id,
            document.filename,
            document.file_type,
            document.storage_path,
            document.processing_status,
            _dumps(document.extracted_data),
            document.confidence_score,
            document.category,
            document.error_message,
            document.created_at,
            document.updated_at,
        ])

    def get_document(self, document_id: str, user_id: Optional[str] = None) -> Optional[Document]:
        sql = "SELECT * FROM documents WHERE id = ?"
        params = [document_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        rows = self._fetch_dicts(sql, params)
        if not rows:
            return None
        row = rows[0]
        row['extracted_data'] = _loads(row['extracted_data'], {})
        return Document(**row)

    # ------------------------------------------------------------------
    # PM integrations
    # ------------------------------------------------------------------

    def save_pm_integration(self, integration: PMIntegration):
        self._execute("""
            INSERT OR REPLACE INTO pm_integrations
            (id, user_id, pm_software, credentials_encrypted, sync_status, last_sync, error_log, settings)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            integration.id,
            integration.user_id,
            integration.pm_software,
            integration.credentials_encrypted,
            integration.sync_status,
            integration.last_sync,
            integration.error_log,
            _dumps(integration.settings),
        ])

    def get_pm_integration(self, integration_id: str, user_id: Optional[str] = None) -> Optional[PMIntegration]:
        sql = "SELECT * FROM pm_integrations WHERE id = ?"
        params = [integration_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        rows = self._fetch_dicts(sql, params)
        if not rows:
            return None
        row = rows[0]
        row['settings'] = _loads(row['settings'], {})
        return PMIntegration(**row)

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
