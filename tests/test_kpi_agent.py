"""
Tests for agents.kpi_agent - all LLM calls are mocked.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from agents.kpi_agent import LLMKPIExtractor, build_tools, parse_kpi_json
from config import settings
from ingestion.kpi_extractor import TextKPIExtractor


# ---------------------------------------------------------------------------
# Tool function tests (no LLM needed)
# ---------------------------------------------------------------------------

def test_tools_cover_every_category():
    tools = build_tools(TextKPIExtractor())
    assert [t.name for t in tools] == [
        "find_leasing_kpis",
        "find_collections_kpis",
        "find_staffing_kpis",
        "find_financial_kpis",
        "find_operations_kpis",
    ]


def test_leasing_tool_returns_json_hits():
    tools = {t.name: t for t in build_tools(TextKPIExtractor())}
    result = json.loads(tools["find_leasing_kpis"].invoke({"text": "Occupancy 93%"}))
    assert result[0]["name"] == "Occupancy Rate"
    assert result[0]["value"] == 93
    assert result[0]["confidence"] == 0.85


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def test_parse_kpi_json_from_fenced_answer():
    raw = (
        "Here are the KPIs:\n```json\n"
        '[{"type": "leasing", "name": "Occupancy Rate", "value": "93.5%", "unit": "%", '
        '"confidence": 0.9, "raw_text": "occupancy 93.5%", "property_name": "Oak Ridge"}]\n```'
    )
    items = parse_kpi_json(raw)
    assert items == [{
        "type": "leasing",
        "name": "Occupancy Rate",
        "value": 93.5,
        "unit": "%",
        "confidence": 0.9,
        "raw_text": "occupancy 93.5%",
        "property_name": "Oak Ridge",
    }]


def test_parse_kpi_json_drops_bad_entries():
    raw = json.dumps([
        {"type": "marketing", "name": "Leads", "value": 4},
        {"type": "financial", "name": "Revenue", "value": "n/a"},
        {"type": "financial", "value": 100},
        {"type": "Financial", "name": "Revenue", "value": "$1,200", "confidence": 7},
    ])
    items = parse_kpi_json(raw)
    assert len(items) == 1
    assert items[0]["type"] == "financial"
    assert items[0]["value"] == 1200
    assert items[0]["confidence"] == 0.6


def test_parse_kpi_json_no_list():
    assert parse_kpi_json("I could not find any KPIs.") == []
    assert parse_kpi_json("[not json]") == []


# ---------------------------------------------------------------------------
# LLMKPIExtractor
# ---------------------------------------------------------------------------

def test_extract_with_mocked_agent(clock):
    final = MagicMock()
    final.content = '[{"type": "collections", "name": "Collection Rate", "value": 97, "unit": "%", "confidence": 0.8}]'
    agent = MagicMock()
    agent.invoke.return_value = {"messages": [final]}

    extractor = LLMKPIExtractor(api_key="sk-test", agent=agent, clock=clock)
    result = extractor.extract("Collections came in at 97%", "report.pdf", user_id="user-1", document_id="doc-1")

    assert len(result.kpis) == 1
    kpi = result.kpis[0]
    assert kpi.kpi_type == "collections"
    assert kpi.value == 97
    assert kpi.user_id == "user-1"
    assert kpi.document_id == "doc-1"
    assert kpi.created_at == clock()
    assert result.extracted_data["extractor"] == "llm"

    prompt = agent.invoke.call_args[0][0]["messages"][0][1]
    assert "report.pdf" in prompt
    assert "Collections came in at 97%" in prompt


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    extractor = LLMKPIExtractor(api_key="")
    with pytest.raises(ValueError, match="OpenAI API key"):
        extractor.extract("text", "file.txt")


def test_agent_built_with_configured_model():
    with patch("agents.kpi_agent.ChatOpenAI") as chat_cls, \
            patch("agents.kpi_agent.create_react_agent") as create_agent:
        create_agent.return_value.invoke.return_value = {"messages": []}
        LLMKPIExtractor(api_key="sk-test", model="gpt-4o-mini").extract("text", "file.txt")

    assert chat_cls.call_args.kwargs["model"] == "gpt-4o-mini"
    assert chat_cls.call_args.kwargs["temperature"] == 0
    assert len(create_agent.call_args[0][1]) == 5
