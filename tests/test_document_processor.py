"""
Tests for ingestion.document_processor.
"""
from datetime import timedelta

import pytest

from ingestion.document_processor import get_extractor, process_document, resolve_storage_path
from ingestion.kpi_extractor import TextKPIExtractor
from models.documents import Document


@pytest.fixture
def stored_document(db, tmp_path):
    def _store(content, filename="march_report.txt", file_type="text/plain"):
        (tmp_path / filename).write_text(content, encoding="utf-8")
        document = Document(
            id="doc-1",
            user_id="user-1",
            filename=filename,
            file_type=file_type,
            storage_path=filename,
        )
        db.save_document(document)
        return document
    return _store


def test_process_document_writes_kpis(db, clock, tmp_path, stored_document):
    stored_document("Occupancy 84%\nRenewal rate 55%\nTotal revenue $300,000")

    result = process_document(db, "doc-1", "user-1",
                              extractor=TextKPIExtractor(clock=clock),
                              storage_dir=str(tmp_path), clock=clock)

    assert result == {"extracted_kpis": 3, "category": "Leasing Report", "confidence_score": 0.85}

    document = db.get_document("doc-1")
    assert document.processing_status == "completed"
    assert document.category == "Leasing Report"
    assert document.confidence_score == 0.85
    assert document.extracted_data["filename"] == "march_report.txt"

    kpis = db.get_recent_kpis("user-1", clock() - timedelta(hours=1))
    assert len(kpis) == 3
    assert all(k.document_id == "doc-1" for k in kpis)
    assert {k.raw_text for k in kpis} >= {"Occupancy 84%"}


def test_csv_document(db, clock, tmp_path, stored_document):
    stored_document("metric,value\nCollection rate,96%\n", filename="kpis.csv", file_type="text/csv")

    result = process_document(db, "doc-1", "user-1",
                              extractor=TextKPIExtractor(clock=clock), storage_dir=str(tmp_path))

    assert result["category"] == "Collections Report"


def test_no_kpis_is_general_report(db, clock, tmp_path, stored_document):
    stored_document("Nothing measurable here.")

    result = process_document(db, "doc-1", "user-1",
                              extractor=TextKPIExtractor(clock=clock), storage_dir=str(tmp_path))

    assert result == {"extracted_kpis": 0, "category": "General Report", "confidence_score": 0.0}


def test_missing_file_marks_document_failed(db, tmp_path):
    db.save_document(Document(id="doc-1", user_id="user-1", filename="gone.pdf",
                              file_type="application/pdf", storage_path="gone.pdf"))

    with pytest.raises(FileNotFoundError):
        process_document(db, "doc-1", "user-1", extractor=TextKPIExtractor(), storage_dir=str(tmp_path))

    document = db.get_document("doc-1")
    assert document.processing_status == "failed"
    assert "File not found" in document.error_message


def test_unknown_document(db):
    with pytest.raises(ValueError):
        process_document(db, "missing", "user-1")


def test_document_of_other_user_not_found(db, tmp_path, stored_document):
    stored_document("Occupancy 84%")
    with pytest.raises(ValueError):
        process_document(db, "doc-1", "someone-else", extractor=TextKPIExtractor(),
                         storage_dir=str(tmp_path))


def test_resolve_storage_path(tmp_path):
    assert resolve_storage_path("a/b.pdf", str(tmp_path)) == tmp_path / "a" / "b.pdf"
    absolute = str(tmp_path / "c.pdf")
    assert str(resolve_storage_path(absolute, "/elsewhere")) == absolute


def test_get_extractor():
    assert isinstance(get_extractor("pattern"), TextKPIExtractor)
    with pytest.raises(ValueError):
        get_extractor("magic")


def test_missing_pattern_table_marks_document_failed(db, tmp_path, stored_document, monkeypatch):
    from config import settings

    monkeypatch.setattr(settings, "KPI_EXTRACTOR", "pattern")
    monkeypatch.setattr(settings, "KPI_PATTERNS_PATH", str(tmp_path / "no_patterns.yaml"))
    stored_document("Occupancy 84%")

    with pytest.raises(FileNotFoundError):
        process_document(db, "doc-1", "user-1", storage_dir=str(tmp_path))

    document = db.get_document("doc-1")
    assert document.processing_status == "failed"
    assert "no_patterns.yaml" in document.error_message
