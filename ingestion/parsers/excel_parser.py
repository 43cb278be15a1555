"""
Excel parser (.xlsx / .xls) - returns a ParsedDocument.
"""
from pathlib import Path

import pandas as pd

from ingestion.parsers import ParsedDocument


def _sheet_text(name: str, df: pd.DataFrame) -> str:
    """Render one sheet as "label: value" lines, skipping empty rows."""
    lines = [f"[{name}]"]
    for _, row in df.iterrows():
        cells = [str(v).strip() for v in row.dropna() if str(v).strip()]
        if cells:
            lines.append(": ".join(cells))
    return "\n".join(lines)


def parse_excel(file_path: str) -> ParsedDocument:
    """
    Parse every sheet of an Excel workbook and return a ParsedDocument.

    The dataframe is the first sheet; raw_text covers all of them.
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    engine = "openpyxl" if ext in (".xlsx", ".xlsm") else "xlrd"
    sheets = pd.read_excel(str(path), sheet_name=None, header=None, engine=engine)

    raw_text = "\n\n".join(_sheet_text(name, df) for name, df in sheets.items())
    first = next(iter(sheets.values()), None)

    return ParsedDocument(
        file_name=path.name,
        file_type=ext.lstrip(".") or "xlsx",
        raw_text=raw_text,
        dataframe=first,
    )
