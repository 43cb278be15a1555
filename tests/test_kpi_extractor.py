"""
Tests for ingestion.kpi_extractor.
"""
import pytest

from ingestion.kpi_extractor import (
    TextKPIExtractor,
    calculate_overall_confidence,
    categorize_document,
)
from models.kpi import KPIRecord

SAMPLE_REPORT = """
Monthly Property Report - Oak Ridge
Current occupancy stands at 93.5% for the month.
Lease renewal rate: 61%
Average monthly rent is $1,425.50
Collection rate was 97.2% with delinquency at 2.8%
Total revenue: $412,300
Net operating income of $188,000
Operating expenses: $224,300
Open maintenance backlog: 14 requests
Average response time 6 hours
"""


@pytest.fixture
def extractor(clock):
    return TextKPIExtractor(clock=clock)


def _by_name(result):
    return {k.kpi_name: k for k in result.kpis}


def test_extracts_across_categories(extractor):
    result = extractor.extract(SAMPLE_REPORT, "oak_ridge_march.pdf", user_id="user-1")
    kpis = _by_name(result)

    assert kpis["Occupancy Rate"].value == 93.5
    assert kpis["Occupancy Rate"].unit == "%"
    assert kpis["Renewal Rate"].value == 61
    assert kpis["Average Rent"].value == 1425.50
    assert kpis["Collection Rate"].value == 97.2
    assert kpis["Delinquency Rate"].value == 2.8
    assert kpis["Net Operating Income"].value == 188000
    assert kpis["Operating Expenses"].value == 224300
    assert kpis["Maintenance Requests"].value == 14
    assert kpis["Average Response Time"].unit == "hours"
    assert all(k.user_id == "user-1" for k in result.kpis)


def test_confidence_is_fixed_per_kind(extractor):
    kpis = _by_name(extractor.extract(SAMPLE_REPORT, "report.txt"))
    assert kpis["Occupancy Rate"].extraction_confidence == 0.85
    assert kpis["Average Rent"].extraction_confidence == 0.90
    assert kpis["Net Operating Income"].extraction_confidence == 0.95
    assert kpis["Average Response Time"].extraction_confidence == 0.75


def test_raw_text_is_matched_phrase(extractor):
    kpis = _by_name(extractor.extract("Occupancy 88%", "a.txt"))
    assert kpis["Occupancy Rate"].raw_text == "Occupancy 88%"


def test_every_match_is_kept(extractor):
    text = "Occupancy last month 90%\nOccupancy this month 92%"
    result = extractor.extract(text, "a.txt")
    assert [k.value for k in result.kpis if k.kpi_name == "Occupancy Rate"] == [90, 92]


def test_extracted_data_summary(extractor, clock):
    result = extractor.extract("nothing useful", "empty.txt")
    assert result.kpis == []
    assert result.extracted_data == {
        "filename": "empty.txt",
        "processed_at": clock().isoformat(),
        "text_length": len("nothing useful"),
    }


def test_missing_pattern_file_raises(tmp_path, clock):
    with pytest.raises(FileNotFoundError):
        TextKPIExtractor(patterns_path=str(tmp_path / "missing.yaml"), clock=clock)


def _kpi(kpi_type, confidence):
    return KPIRecord(id="k", user_id="u", kpi_type=kpi_type, kpi_name="x", extraction_confidence=confidence)


def test_overall_confidence_mean_rounded():
    kpis = [_kpi("leasing", 0.85), _kpi("leasing", 0.80), _kpi("financial", 0.95)]
    assert calculate_overall_confidence(kpis) == 0.87


def test_overall_confidence_empty():
    assert calculate_overall_confidence([]) == 0


def test_category_majority_vote():
    kpis = [_kpi("financial", 0.9), _kpi("leasing", 0.9), _kpi("financial", 0.9)]
    assert categorize_document(kpis) == "Financial Report"


def test_category_tie_goes_to_first_type():
    kpis = [_kpi("collections", 0.9), _kpi("leasing", 0.9)]
    assert categorize_document(kpis) == "Collections Report"


def test_category_default():
    assert categorize_document([]) == "General Report"
