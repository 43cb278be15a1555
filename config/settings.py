"""
Configuration settings for the Red Flag KPI alert engine
"""
import os
from datetime import timedelta
from pathlib import Path
from typing import Dict


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# Application Settings
APP_TITLE = "Red Flag KPI Alert Engine"
SERVICE_NAME = os.getenv("SERVICE_NAME", "red-flag-monitor")

# Database Settings
DATABASE_PATH = os.getenv("ALERT_DB_PATH", "data/alerts.duckdb")
DOCUMENT_STORAGE_DIR = os.getenv("DOCUMENT_STORAGE_DIR", "data/documents")

# KPI Evaluation
KPI_LOOKBACK_HOURS = int(os.getenv("KPI_LOOKBACK_HOURS", "24"))

# Alert Levels
LEVEL_GREEN = "green"
LEVEL_YELLOW = "yellow"
LEVEL_RED = "red"

# Alert Frequencies (immediate has no suppression window)
FREQUENCY_IMMEDIATE = "immediate"
FREQUENCY_WINDOWS: Dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
}
ALERT_FREQUENCIES = [FREQUENCY_IMMEDIATE] + list(FREQUENCY_WINDOWS.keys())

# Notification Channels
CHANNEL_DASHBOARD = "dashboard"
CHANNEL_EMAIL = "email"
CHANNEL_SMS = "sms"
NOTIFICATION_CHANNELS = [CHANNEL_DASHBOARD, CHANNEL_EMAIL, CHANNEL_SMS]

# Notification Priorities (1 = most urgent)
PRIORITY_RED = 1
PRIORITY_YELLOW = 3

# Notification Queue
NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", "100"))
NOTIFICATION_MAX_RETRIES = int(os.getenv("NOTIFICATION_MAX_RETRIES", "3"))
NOTIFICATION_RATE_LIMIT_PER_HOUR = int(os.getenv("NOTIFICATION_RATE_LIMIT_PER_HOUR", "100"))
BACKOFF_BASE_MINUTES = float(os.getenv("BACKOFF_BASE_MINUTES", "1"))
BACKOFF_MULTIPLIER = float(os.getenv("BACKOFF_MULTIPLIER", "2"))
SMS_MAX_LENGTH = 160
EMAIL_SUBJECT_PREFIX = "Red Flag Alert"

# Email (SMTP)
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
EMAIL_FROM = os.getenv("EMAIL_FROM", "alerts@redflag.local")

# SMS (Twilio)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER", "")

# Timeout applied to every external provider call (email, SMS, PM API)
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"))

# PM Software API Configuration
PM_API_URLS: Dict[str, str] = {
    "onesite": os.getenv("ONESITE_API_URL", "https://demo-api.onesite.com"),
    "yardi": os.getenv("YARDI_API_URL", "https://api.yardi.com"),
    "appfolio": os.getenv("APPFOLIO_API_URL", "https://api.appfolio.com"),
    "resman": os.getenv("RESMAN_API_URL", "https://api.resman.com"),
    "entrata": os.getenv("ENTRATA_API_URL", "https://api.entrata.com"),
}
PM_OAUTH_CLIENT_ID = os.getenv("PM_OAUTH_CLIENT_ID", "opsight-integration")
PM_OAUTH_SCOPE = "read"

# KPI Extraction
KPI_EXTRACTOR = os.getenv("KPI_EXTRACTOR", "pattern")  # pattern | llm
KPI_AGENT_MODEL = os.getenv("KPI_AGENT_MODEL", "gpt-4o")
KPI_AGENT_MAX_TOKENS = int(os.getenv("KPI_AGENT_MAX_TOKENS", "4096"))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
KPI_PATTERNS_PATH = os.getenv("KPI_PATTERNS_PATH", str(Path(__file__).parent / "kpi_patterns.yaml"))

# Document category labels keyed by dominant KPI type
DOCUMENT_CATEGORIES: Dict[str, str] = {
    "financial": "Financial Report",
    "leasing": "Leasing Report",
    "collections": "Collections Report",
    "staffing": "Staffing Report",
    "operations": "Operations Report",
}
DEFAULT_DOCUMENT_CATEGORY = "General Report"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
STRUCTURED_LOGGING = _env_bool("STRUCTURED_LOGGING", "false")
