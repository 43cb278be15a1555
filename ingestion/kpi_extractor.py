"""
Text KPI extractor - pattern matching over the text of an uploaded document
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import yaml

from models.kpi import KPIRecord
from config import settings
from utils.helpers import generate_id, utc_now
from utils.logging_config import get_logger

logger = get_logger(__name__)

KPI_CATEGORIES = ["leasing", "collections", "staffing", "financial", "operations"]


@dataclass
class ExtractionResult:
    """What an extractor hands back to the document processor"""
    extracted_data: dict = field(default_factory=dict)
    kpis: List[KPIRecord] = field(default_factory=list)


@dataclass
class PatternMatcher:
    """One KPI kind: a regex whose first group is the value and a fixed confidence"""
    kpi_type: str
    name: str
    pattern: re.Pattern
    confidence: float
    unit: Optional[str] = None
    unit_group: Optional[int] = None

    def find(self, text: str) -> List[dict]:
        found = []
        for match in self.pattern.finditer(text):
            try:
                value = float(match.group(1).replace(",", ""))
            except (TypeError, ValueError):
                continue
            unit = match.group(self.unit_group).lower() if self.unit_group else self.unit
            found.append({
                'type': self.kpi_type,
                'name': self.name,
                'value': value,
                'unit': unit,
                'confidence': self.confidence,
                'raw_text': match.group(0),
            })
        return found


def calculate_overall_confidence(kpis: List[KPIRecord]) -> float:
    """Mean extraction confidence rounded to 2 decimals; 0 when nothing was found"""
    if not kpis:
        return 0.0
    total = sum(kpi.extraction_confidence or 0.0 for kpi in kpis)
    return round(total / len(kpis), 2)


def categorize_document(kpis: List[KPIRecord]) -> str:
    """
    Majority vote over KPI types. Ties go to the type that was extracted first.
    """
    counts = Counter(kpi.kpi_type for kpi in kpis)
    if not counts:
        return settings.DEFAULT_DOCUMENT_CATEGORY
    dominant, _ = counts.most_common(1)[0]
    return settings.DOCUMENT_CATEGORIES.get(dominant, settings.DEFAULT_DOCUMENT_CATEGORY)


class TextKPIExtractor:
    """
    Runs every category's matchers over the raw text and turns each hit into a
    KPIRecord. The pattern table lives in config/kpi_patterns.yaml.
    """

    def __init__(
        self,
        patterns_path: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.patterns_path = Path(patterns_path or settings.KPI_PATTERNS_PATH)
        self.clock = clock or utc_now
        self.matchers: Dict[str, List[PatternMatcher]] = self._load_patterns()

    def _load_patterns(self) -> Dict[str, List[PatternMatcher]]:
        """
        Load the pattern table from YAML

        Raises:
            FileNotFoundError: If KPI_PATTERNS_PATH does not point at a file
        """
        with open(self.patterns_path, 'r') as f:
            table = yaml.safe_load(f) or {}

        matchers: Dict[str, List[PatternMatcher]] = {}
        for category in KPI_CATEGORIES:
            matchers[category] = [
                PatternMatcher(
                    kpi_type=category,
                    name=entry['name'],
                    pattern=re.compile(entry['pattern'], re.IGNORECASE),
                    confidence=float(entry['confidence']),
                    unit=entry.get('unit'),
                    unit_group=entry.get('unit_group'),
                )
                for entry in table.get(category) or []
            ]
        return matchers

    def match_category(self, category: str, text: str) -> List[dict]:
        """All hits for one category as plain dicts"""
        hits = []
        for matcher in self.matchers.get(category, []):
            hits.extend(matcher.find(text))
        return hits

    def extract(
        self,
        raw_text: str,
        filename: str,
        user_id: str = "",
        document_id: Optional[str] = None
    ) -> ExtractionResult:
        now = self.clock()
        extracted_data = {
            'filename': filename,
            'processed_at': now.isoformat(),
            'text_length': len(raw_text or ""),
        }

        kpis: List[KPIRecord] = []
        for category in KPI_CATEGORIES:
            for hit in self.match_category(category, raw_text or ""):
                kpis.append(KPIRecord(
                    id=generate_id("kpi"),
                    user_id=user_id,
                    kpi_type=hit['type'],
                    kpi_name=hit['name'],
                    value=hit['value'],
                    unit=hit['unit'],
                    extraction_confidence=hit['confidence'],
                    document_id=document_id,
                    raw_text=hit['raw_text'],
                    created_at=now,
                ))

        logger.info("kpis_extracted", filename=filename, count=len(kpis))
        return ExtractionResult(extracted_data=extracted_data, kpis=kpis)
