"""
Tests for ingestion.parsers sub-package and the file loader.
"""
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from ingestion.loader import FileLoader
from ingestion.parsers import ParsedDocument
from ingestion.parsers.csv_parser import parse_csv
from ingestion.parsers.docx_parser import parse_docx
from ingestion.parsers.excel_parser import parse_excel
from ingestion.parsers.pdf_parser import parse_pdf
from ingestion.parsers.text_parser import parse_text


# ---------------------------------------------------------------------------
# CSV parser tests
# ---------------------------------------------------------------------------

def test_csv_rows_become_label_value_lines(tmp_path):
    path = tmp_path / "kpis.csv"
    path.write_text("metric,value\nOccupancy Rate,93.5%\nCollection Rate,97%\n", encoding="utf-8")

    doc = parse_csv(str(path))

    assert doc.file_type == "csv"
    assert len(doc.dataframe) == 2
    assert "Occupancy Rate: 93.5%" in doc.raw_text
    assert "Collection Rate: 97%" in doc.raw_text


def test_csv_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")

    doc = parse_csv(str(path))
    assert isinstance(doc, ParsedDocument)
    assert doc.raw_text == ""


def test_csv_latin1_fallback(tmp_path):
    path = tmp_path / "legacy.csv"
    path.write_bytes("metric,value\nOccupancy caf\xe9,91%\n".encode("latin-1"))

    doc = parse_csv(str(path))
    assert "91%" in doc.raw_text


# ---------------------------------------------------------------------------
# Excel / DOCX / text parser tests
# ---------------------------------------------------------------------------

def test_excel_all_sheets(tmp_path):
    path = tmp_path / "report.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame({"Metric": ["Occupancy"], "Value": ["94%"]}).to_excel(writer, sheet_name="Leasing", index=False)
        pd.DataFrame({"Metric": ["Revenue"], "Value": ["$410,000"]}).to_excel(writer, sheet_name="Finance", index=False)

    doc = parse_excel(str(path))

    assert doc.file_type == "xlsx"
    assert "[Leasing]" in doc.raw_text
    assert "Occupancy: 94%" in doc.raw_text
    assert "Revenue: $410,000" in doc.raw_text


def test_docx_paragraphs_and_tables(tmp_path):
    from docx import Document

    path = tmp_path / "memo.docx"
    document = Document()
    document.add_paragraph("Occupancy held at 95% this month.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Delinquency"
    table.rows[0].cells[1].text = "3.1%"
    document.save(str(path))

    doc = parse_docx(str(path))

    assert doc.file_type == "docx"
    assert "Occupancy held at 95% this month." in doc.raw_text
    assert "Delinquency: 3.1%" in doc.raw_text


def test_text_parser(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("Occupancy 90%", encoding="utf-8")

    doc = parse_text(str(path))
    assert doc.raw_text == "Occupancy 90%"
    assert doc.file_type == "txt"


def test_pdf_parser_text_and_tables():
    page = MagicMock()
    page.extract_text.return_value = "Portfolio summary"
    page.extract_tables.return_value = [[["Metric", "Value"], ["Occupancy", "92%"]]]
    pdf = MagicMock()
    pdf.pages = [page]

    with patch("ingestion.parsers.pdf_parser.pdfplumber.open") as open_pdf:
        open_pdf.return_value.__enter__.return_value = pdf
        doc = parse_pdf("/tmp/summary.pdf")

    assert doc.file_type == "pdf"
    assert doc.page_count == 1
    assert "Portfolio summary" in doc.raw_text
    assert "Occupancy: 92%" in doc.raw_text
    assert list(doc.dataframe.columns) == ["Metric", "Value"]


# ---------------------------------------------------------------------------
# FileLoader routing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("file_type,expected", [
    ("application/pdf", parse_pdf),
    ("application/vnd.ms-excel", parse_excel),
    ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", parse_excel),
    ("text/csv", parse_csv),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", parse_docx),
    ("text/plain", parse_text),
    ("", parse_text),
])
def test_loader_routes_by_file_type(file_type, expected):
    assert FileLoader().parser_for(file_type) is expected


def test_loader_missing_file():
    with pytest.raises(FileNotFoundError):
        FileLoader().load_file("/nonexistent/report.pdf", "application/pdf")


def test_loader_defaults_to_extension(tmp_path):
    path = tmp_path / "kpis.csv"
    path.write_text("metric,value\nOccupancy,90%\n")

    doc = FileLoader().load_file(str(path))
    assert doc.file_type == "csv"
