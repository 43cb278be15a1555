"""
Pytest fixtures for the alert engine test suite.
"""
from datetime import datetime, timedelta

import pytest

from models.kpi import AlertRule, KPIRecord, ThresholdBands, UserNotificationPreferences
from storage.database import Database
from utils.helpers import generate_id

FIXED_NOW = datetime(2026, 3, 15, 12, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    """Fresh in-memory DuckDB store per test."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def make_rule():
    """Factory for alert rules; thresholds passed as keyword bounds."""
    def _make(user_id="user-1", kpi_type="leasing", rule_name="Occupancy Floor",
              frequency="daily", channels=None, property_ids=None, **bounds):
        return AlertRule(
            id=generate_id("rule"),
            user_id=user_id,
            rule_name=rule_name,
            kpi_type=kpi_type,
            thresholds=ThresholdBands(**bounds),
            property_ids=property_ids or [],
            alert_frequency=frequency,
            notification_channels=channels or ["dashboard"],
        )
    return _make


@pytest.fixture
def make_kpi(clock):
    """Factory for KPI records created 'now' unless told otherwise."""
    def _make(value, user_id="user-1", kpi_type="leasing", property_name="Oak Ridge",
              kpi_name="Occupancy Rate", created_at=None):
        return KPIRecord(
            id=generate_id("kpi"),
            user_id=user_id,
            kpi_type=kpi_type,
            kpi_name=kpi_name,
            value=value,
            unit="%",
            property_name=property_name,
            extraction_confidence=0.85,
            created_at=created_at or clock(),
        )
    return _make


@pytest.fixture
def email_prefs():
    return UserNotificationPreferences(
        user_id="user-1",
        email_enabled=True,
        email_address="manager@example.com",
        sms_enabled=True,
        phone_number="+15550100",
    )
