"""
Document processing - turns an uploaded document into KPI records
"""
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from models.documents import Document, DOC_COMPLETED, DOC_FAILED, DOC_PROCESSING
from ingestion.kpi_extractor import (
    TextKPIExtractor,
    calculate_overall_confidence,
    categorize_document,
)
from ingestion.loader import FileLoader
from agents.kpi_agent import LLMKPIExtractor
from storage.database import Database
from config import settings
from utils.helpers import utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)


def get_extractor(name: Optional[str] = None):
    """Extractor strategy selected by KPI_EXTRACTOR ("pattern" or "llm")"""
    name = (name or settings.KPI_EXTRACTOR).lower()
    if name == "llm":
        return LLMKPIExtractor()
    if name == "pattern":
        return TextKPIExtractor()
    raise ValueError(f"Unknown KPI extractor: {name}")


def resolve_storage_path(storage_path: str, storage_dir: Optional[str] = None) -> Path:
    path = Path(storage_path)
    if path.is_absolute():
        return path
    return Path(storage_dir or settings.DOCUMENT_STORAGE_DIR) / path


def process_document(
    db: Database,
    document_id: str,
    user_id: str,
    extractor=None,
    loader: Optional[FileLoader] = None,
    storage_dir: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> dict:
    """
    Extract KPIs from one stored document.

    The document moves pending -> processing -> completed, or to failed with the
    error message recorded. Errors are re-raised after the document is updated.

    Returns:
        {'extracted_kpis': n, 'category': label, 'confidence_score': mean}
    """
    clock = clock or utc_now
    loader = loader or FileLoader()

    document: Optional[Document] = db.get_document(document_id, user_id)
    if document is None:
        raise ValueError(f"Document not found: {document_id}")

    document.processing_status = DOC_PROCESSING
    document.error_message = None
    db.save_document(document)
    logger.info("document_processing_started", document_id=document_id, user_id=user_id,
                file_type=document.file_type)

    try:
        extractor = extractor or get_extractor()
        path = resolve_storage_path(document.storage_path, storage_dir)
        parsed = loader.load_file(str(path), document.file_type)

        result = extractor.extract(parsed.raw_text, document.filename,
                                   user_id=user_id, document_id=document_id)
        now = clock()
        for kpi in result.kpis:
            kpi.user_id = user_id
            kpi.document_id = document_id
            kpi.created_at = kpi.created_at or now
        db.save_kpi_records(result.kpis)

        document.processing_status = DOC_COMPLETED
        document.extracted_data = result.extracted_data
        document.confidence_score = calculate_overall_confidence(result.kpis)
        document.category = categorize_document(result.kpis)
        db.save_document(document)
    except Exception as e:
        document.processing_status = DOC_FAILED
        document.error_message = str(e)
        db.save_document(document)
        logger.error("document_processing_failed", document_id=document_id, exc_info=True)
        raise

    logger.info(
        "document_processed",
        document_id=document_id,
        extracted_kpis=len(result.kpis),
        category=document.category,
        confidence_score=document.confidence_score,
    )
    return {
        'extracted_kpis': len(result.kpis),
        'category': document.category,
        'confidence_score': document.confidence_score,
    }
