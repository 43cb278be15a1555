"""
Ingestion-side records: uploaded documents and PM software integrations
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

# Document processing statuses
DOC_PENDING = "pending"
DOC_PROCESSING = "processing"
DOC_COMPLETED = "completed"
DOC_FAILED = "failed"

# PM integration sync statuses
SYNC_PENDING = "pending"
SYNC_SYNCING = "syncing"
SYNC_ACTIVE = "active"
SYNC_ERROR = "error"


@dataclass
class Document:
    """An uploaded source document awaiting KPI extraction"""
    id: str
    user_id: str
    filename: str
    file_type: str  # MIME type or extension as reported at upload
    storage_path: str
    processing_status: str = DOC_PENDING
    extracted_data: dict = field(default_factory=dict)
    confidence_score: Optional[float] = None
    category: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class PMIntegration:
    """A connection to an upstream property-management system"""
    id: str
    user_id: str
    pm_software: str  # onesite, yardi, appfolio, resman, entrata
    credentials_encrypted: str  # base64-encoded JSON {username, password}
    sync_status: str = SYNC_PENDING
    last_sync: Optional[datetime] = None
    error_log: Optional[str] = None
    settings: dict = field(default_factory=dict)
