"""
DOCX parser - returns a ParsedDocument.
"""
from pathlib import Path

from docx import Document  # python-docx

from ingestion.parsers import ParsedDocument


def parse_docx(file_path: str) -> ParsedDocument:
    """
    Parse a Word (.docx) file and return a ParsedDocument.
    Paragraph text first, then one "cell: cell" line per table row.
    """
    path = Path(file_path)
    doc = Document(str(path))

    text_parts = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                text_parts.append(": ".join(cells))

    return ParsedDocument(
        file_name=path.name,
        file_type="docx",
        raw_text="\n".join(text_parts),
    )
