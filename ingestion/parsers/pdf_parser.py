"""
PDF parser - returns a ParsedDocument.
"""
from pathlib import Path
from typing import Optional

import pdfplumber
import pandas as pd

from ingestion.parsers import ParsedDocument


def parse_pdf(file_path: str) -> ParsedDocument:
    """
    Parse a PDF file using pdfplumber and return a ParsedDocument.

    Page text comes first; table rows are appended as "cell: cell" lines so label
    and value cells end up adjacent for the KPI matchers.
    """
    path = Path(file_path)
    text_parts: list[str] = []
    tables: list[pd.DataFrame] = []

    with pdfplumber.open(str(path)) as pdf:
        page_count = len(pdf.pages)
        for page in pdf.pages:
            text = page.extract_text()
            if text:
                text_parts.append(text)

            for tbl in page.extract_tables():
                if not tbl or len(tbl) < 2:
                    continue
                for row in tbl:
                    cells = [c.strip() for c in row if c and c.strip()]
                    if cells:
                        text_parts.append(": ".join(cells))
                try:
                    tables.append(pd.DataFrame(tbl[1:], columns=tbl[0]))
                except ValueError:
                    # ragged rows
                    continue

    combined_df: Optional[pd.DataFrame] = None
    if tables:
        combined_df = pd.concat(tables, ignore_index=True)

    return ParsedDocument(
        file_name=path.name,
        file_type="pdf",
        raw_text="\n".join(text_parts),
        dataframe=combined_df,
        page_count=page_count,
    )
