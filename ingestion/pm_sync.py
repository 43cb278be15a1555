"""
PM software sync - pulls property metrics from an upstream PM system into KPI records
"""
import base64
import binascii
import json
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from models.kpi import KPIRecord
from models.documents import PMIntegration, SYNC_ACTIVE, SYNC_ERROR, SYNC_SYNCING
from ingestion.pm_client import PMClient
from storage.database import Database
from config import settings
from utils.helpers import current_period, generate_id, utc_now
from utils.logging_config import get_logger
from utils.validations import is_email_address

logger = get_logger(__name__)

# (resource, field, kpi_type, kpi_name, unit, confidence)
SYNCED_KPIS = [
    ("occupancy", "occupancy_rate", "leasing", "Occupancy Rate", "%", 0.98),
    ("financial", "monthly_rent_roll", "financial", "Monthly Rent Roll", "$", 0.95),
    ("financial", "collection_rate", "collections", "Collection Rate", "%", 0.92),
    ("maintenance", "active_requests", "operations", "Active Maintenance Requests", "requests", 0.90),
]

TEST_PROPERTY = {
    'name': 'Test Property',
    'occupancy': {'occupancy_rate': 95.2},
    'financial': {'monthly_rent_roll': 125000},
    'maintenance': {},
}


def decode_credentials(encoded: str) -> Dict[str, str]:
    """Credentials are stored as base64-encoded JSON {username, password}"""
    try:
        credentials = json.loads(base64.b64decode(encoded or "").decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError("Invalid credentials: could not decode stored credentials") from e
    if not isinstance(credentials, dict):
        raise ValueError("Invalid credentials: expected an object")
    return credentials


def validate_credentials(credentials: Dict[str, str]):
    if not credentials.get('username') or not credentials.get('password'):
        raise ValueError("Invalid credentials: missing username or password")
    if not is_email_address(credentials['username']):
        raise ValueError("Invalid credentials: username must be an email address")


def extract_property_kpis(
    property_name: str,
    resources: Dict[str, Dict],
    user_id: str,
    pm_software: str,
    now: datetime,
    today: Optional[date] = None
) -> List[KPIRecord]:
    """
    Map one property's API resources to KPI records. Fields absent from the
    payload produce no record.
    """
    period_start, period_end = current_period(today or now.date())
    records = []
    for resource, field_name, kpi_type, kpi_name, unit, confidence in SYNCED_KPIS:
        payload = resources.get(resource) or {}
        if field_name not in payload:
            continue
        value = payload[field_name]
        records.append(KPIRecord(
            id=generate_id("kpi"),
            user_id=user_id,
            kpi_type=kpi_type,
            kpi_name=kpi_name,
            value=float(value) if value is not None else None,
            unit=unit,
            property_name=property_name,
            period_start=period_start,
            period_end=period_end,
            extraction_confidence=confidence,
            raw_text=f"Synced from {pm_software} via API",
            created_at=now,
        ))
    return records


def _pull_properties(client: PMClient, credentials: Dict[str, str]) -> List[Dict]:
    """Every property with its resources; a property that fails is logged and skipped"""
    client.authenticate(credentials.get('username'), credentials.get('password'))
    pulled = []
    for prop in client.fetch_properties():
        prop_id = prop.get('id')
        try:
            pulled.append({
                'id': prop_id,
                'name': prop.get('name'),
                'occupancy': client.fetch_occupancy(prop_id),
                'financial': client.fetch_financial(prop_id),
                'maintenance': client.fetch_maintenance(prop_id),
            })
        except Exception:
            logger.error("pm_property_fetch_failed", pm_software=client.pm_software,
                         property_id=prop_id, exc_info=True)
    return pulled


def sync_pm_data(
    db: Database,
    integration_id: str,
    user_id: str,
    test_mode: bool = False,
    client_factory: Optional[Callable[[str], PMClient]] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> dict:
    """
    Sync one PM integration.

    Status moves to syncing, then to active on success or to error with error_log
    set. Errors are re-raised after the integration is updated.

    In test mode the stored credentials are only validated and a single sample
    property is written.
    """
    clock = clock or utc_now
    client_factory = client_factory or PMClient

    integration: Optional[PMIntegration] = db.get_pm_integration(integration_id, user_id)
    if integration is None:
        raise ValueError(f"Integration not found: {integration_id}")

    pm_software = integration.pm_software.lower()
    integration.sync_status = SYNC_SYNCING
    integration.last_sync = clock()
    db.save_pm_integration(integration)
    logger.info("pm_sync_started", integration_id=integration_id, pm_software=pm_software,
                test_mode=test_mode)

    try:
        if pm_software not in settings.PM_API_URLS:
            raise ValueError(f"Unsupported PM software: {integration.pm_software}")

        credentials = decode_credentials(integration.credentials_encrypted)
        if test_mode:
            validate_credentials(credentials)
            properties = [TEST_PROPERTY]
        else:
            properties = _pull_properties(client_factory(pm_software), credentials)

        now = clock()
        kpis: List[KPIRecord] = []
        for prop in properties:
            kpis.extend(extract_property_kpis(prop['name'], prop, user_id, pm_software, now))
        db.save_kpi_records(kpis)

        integration.sync_status = SYNC_ACTIVE
        integration.last_sync = clock()
        integration.error_log = None
        integration.settings = {
            **integration.settings,
            'last_sync_data': {
                'properties': [p['name'] for p in properties],
                'sync_timestamp': now.isoformat(),
                'total_properties': len(properties),
                'test_mode': test_mode,
            },
            'last_sync_kpis': len(kpis),
            'last_sync_success': True,
        }
        db.save_pm_integration(integration)
    except Exception as e:
        integration.sync_status = SYNC_ERROR
        integration.error_log = str(e)
        integration.settings = {
            **integration.settings,
            'last_sync_success': False,
            'last_sync_error': str(e),
        }
        db.save_pm_integration(integration)
        logger.error("pm_sync_failed", integration_id=integration_id, pm_software=pm_software,
                     exc_info=True)
        raise

    logger.info("pm_sync_completed", integration_id=integration_id, pm_software=pm_software,
                synced_kpis=len(kpis))
    return {
        'synced_kpis': len(kpis),
        'pm_software': integration.pm_software,
        'test_mode': test_mode,
    }
