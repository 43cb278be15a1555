"""
Plain-text parser - anything without a dedicated parser is read as text.
"""
from pathlib import Path

from ingestion.parsers import ParsedDocument


def parse_text(file_path: str) -> ParsedDocument:
    """Read the file as UTF-8, falling back to latin-1 for legacy exports."""
    path = Path(file_path)
    try:
        raw_text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raw_text = path.read_text(encoding="latin-1")

    return ParsedDocument(
        file_name=path.name,
        file_type=path.suffix.lower().lstrip(".") or "txt",
        raw_text=raw_text,
    )
