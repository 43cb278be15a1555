"""
ingestion.parsers - format-specific text extraction returning ParsedDocument.
"""
from dataclasses import dataclass
from typing import Optional
import pandas as pd


@dataclass
class ParsedDocument:
    """Normalised result returned by every parser."""
    file_name: str
    file_type: str
    raw_text: str
    dataframe: Optional[pd.DataFrame] = None
    page_count: Optional[int] = None
