"""
Unified file loader - routes a stored document to the parser for its file type.
"""
from pathlib import Path
from typing import Callable, List, Tuple

from ingestion.parsers import ParsedDocument
from ingestion.parsers.csv_parser import parse_csv
from ingestion.parsers.excel_parser import parse_excel
from ingestion.parsers.pdf_parser import parse_pdf
from ingestion.parsers.docx_parser import parse_docx
from ingestion.parsers.text_parser import parse_text


class FileLoader:
    """
    Picks a parser from the file type reported at upload (a MIME type such as
    "application/pdf" or a bare extension such as "xlsx"). Checked in order; the
    first keyword found in the lower-cased type wins and anything unmatched is
    read as plain text.
    """

    PARSERS: List[Tuple[Tuple[str, ...], Callable[[str], ParsedDocument]]] = [
        (("pdf",), parse_pdf),
        (("excel", "spreadsheet", "xlsx", "xls"), parse_excel),
        (("csv",), parse_csv),
        (("docx", "wordprocessing"), parse_docx),
    ]

    def parser_for(self, file_type: str) -> Callable[[str], ParsedDocument]:
        lowered = (file_type or "").lower()
        for keywords, parser in self.PARSERS:
            if any(k in lowered for k in keywords):
                return parser
        return parse_text

    def load_file(self, file_path: str, file_type: str = None) -> ParsedDocument:
        """
        Parse a file into a ParsedDocument.

        Args:
            file_path: Path to the stored file.
            file_type: Reported type; defaults to the file extension.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        parser = self.parser_for(file_type or path.suffix.lstrip("."))
        return parser(str(path))
