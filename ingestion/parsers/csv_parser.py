"""
CSV parser - returns a ParsedDocument.
"""
from pathlib import Path

import pandas as pd

from ingestion.parsers import ParsedDocument


def _read_csv_resilient(file_path: str) -> pd.DataFrame:
    """Try utf-8 then latin-1 encoding."""
    for enc in ("utf-8", "latin-1"):
        try:
            return pd.read_csv(file_path, encoding=enc, dtype=str, keep_default_na=False)
        except UnicodeDecodeError:
            continue
        except pd.errors.EmptyDataError:
            break
    return pd.DataFrame()


def _rows_as_text(df: pd.DataFrame) -> str:
    """
    One line per row, cells joined with ": " so that a label column followed by a
    value column reads like "Occupancy: 93.5%".
    """
    lines = [" ".join(str(c) for c in df.columns)]
    for _, row in df.iterrows():
        cells = [str(v).strip() for v in row if str(v).strip()]
        if cells:
            lines.append(": ".join(cells))
    return "\n".join(lines)


def parse_csv(file_path: str) -> ParsedDocument:
    """
    Parse a CSV file and return a ParsedDocument.

    Args:
        file_path: Path to the CSV file.

    Returns:
        ParsedDocument with the dataframe and a line-per-row raw_text.
    """
    path = Path(file_path)
    df = _read_csv_resilient(str(path))
    raw_text = _rows_as_text(df) if not df.empty else ""

    return ParsedDocument(
        file_name=path.name,
        file_type="csv",
        raw_text=raw_text,
        dataframe=df,
    )
