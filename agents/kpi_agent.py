"""
LangGraph ReAct KPI extraction agent.

Drop-in alternative to the pattern extractor: the model reads the document and may
call the category pattern matchers as tools, then answers with a JSON list of KPIs.
"""
import json
import re
from datetime import datetime
from typing import Callable, List, Optional

from langchain_core.tools import tool
from langchain_openai import ChatOpenAI
from langgraph.prebuilt import create_react_agent

from models.kpi import KPIRecord
from ingestion.kpi_extractor import ExtractionResult, KPI_CATEGORIES, TextKPIExtractor
from config import settings
from utils.helpers import generate_id, parse_currency, utc_now
from utils.logging_config import get_logger
from utils.validations import validate_confidence

logger = get_logger(__name__)

# Documents are truncated to this many characters before prompting
_MAX_PROMPT_CHARS = 24000
_DEFAULT_CONFIDENCE = 0.6


def build_tools(matcher: TextKPIExtractor) -> list:
    """One tool per KPI category, each backed by the pattern table"""

    @tool
    def find_leasing_kpis(text: str) -> str:
        """Find occupancy rate, renewal rate and average rent figures. Returns a JSON list."""
        return json.dumps(matcher.match_category("leasing", text))

    @tool
    def find_collections_kpis(text: str) -> str:
        """Find collection rate and delinquency rate figures. Returns a JSON list."""
        return json.dumps(matcher.match_category("collections", text))

    @tool
    def find_staffing_kpis(text: str) -> str:
        """Find staff turnover rate and staff count figures. Returns a JSON list."""
        return json.dumps(matcher.match_category("staffing", text))

    @tool
    def find_financial_kpis(text: str) -> str:
        """Find revenue, net operating income and operating expense figures. Returns a JSON list."""
        return json.dumps(matcher.match_category("financial", text))

    @tool
    def find_operations_kpis(text: str) -> str:
        """Find maintenance request counts and average response times. Returns a JSON list."""
        return json.dumps(matcher.match_category("operations", text))

    return [
        find_leasing_kpis,
        find_collections_kpis,
        find_staffing_kpis,
        find_financial_kpis,
        find_operations_kpis,
    ]


def parse_kpi_json(raw_output: str) -> List[dict]:
    """
    Pull the JSON list out of the model's answer and keep only well-formed entries.

    Entries need a known type, a name and a numeric value. Confidence outside
    [0, 1] or missing falls back to a default.
    """
    match = re.search(r"\[.*\]", raw_output or "", re.DOTALL)
    if not match:
        return []
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("kpi_agent_unparseable_output", output=raw_output[:200])
        return []

    cleaned = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        kpi_type = str(item.get("type", "")).lower()
        name = item.get("name")
        if kpi_type not in KPI_CATEGORIES or not name:
            continue
        value = parse_currency(str(item.get("value")).replace("%", ""))
        if value is None:
            continue
        confidence = item.get("confidence", _DEFAULT_CONFIDENCE)
        if not validate_confidence(confidence):
            confidence = _DEFAULT_CONFIDENCE
        cleaned.append({
            'type': kpi_type,
            'name': str(name),
            'value': value,
            'unit': item.get("unit"),
            'confidence': float(confidence),
            'raw_text': item.get("raw_text"),
            'property_name': item.get("property_name"),
        })
    return cleaned


class LLMKPIExtractor:
    """
    Same contract as TextKPIExtractor.extract, backed by an OpenAI model.

    Raises:
        ValueError: If no API key is available when the agent is first needed.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        agent=None,
        matcher: Optional[TextKPIExtractor] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.KPI_AGENT_MODEL
        self.clock = clock or utc_now
        self.matcher = matcher or TextKPIExtractor(clock=self.clock)
        self._agent = agent

    def _get_agent(self):
        if self._agent is None:
            if not self.api_key:
                raise ValueError(
                    "No OpenAI API key provided. "
                    "Set the OPENAI_API_KEY environment variable or use KPI_EXTRACTOR=pattern."
                )
            llm = ChatOpenAI(
                model=self.model,
                temperature=0,
                max_tokens=settings.KPI_AGENT_MAX_TOKENS,
                api_key=self.api_key,
            )
            self._agent = create_react_agent(llm, build_tools(self.matcher))
        return self._agent

    def extract(
        self,
        raw_text: str,
        filename: str,
        user_id: str = "",
        document_id: Optional[str] = None
    ) -> ExtractionResult:
        agent = self._get_agent()

        prompt = (
            "You are a property management analyst. Extract the key performance indicators "
            "from the document below. Use the tools to locate candidate figures, then answer "
            "with ONLY a JSON list. Each entry must have: type (one of "
            f"{', '.join(KPI_CATEGORIES)}), name, value (number), unit, confidence (0-1), "
            "raw_text (the phrase the value came from) and property_name if stated.\n\n"
            f"FILENAME: {filename}\n\nDOCUMENT:\n{(raw_text or '')[:_MAX_PROMPT_CHARS]}"
        )
        result = agent.invoke({"messages": [("user", prompt)]})

        raw_output = ""
        for msg in reversed(result.get("messages", [])):
            if hasattr(msg, "content") and msg.content:
                raw_output = msg.content if isinstance(msg.content, str) else str(msg.content)
                break

        now = self.clock()
        kpis = [
            KPIRecord(
                id=generate_id("kpi"),
                user_id=user_id,
                kpi_type=item['type'],
                kpi_name=item['name'],
                value=item['value'],
                unit=item['unit'],
                property_name=item['property_name'],
                extraction_confidence=item['confidence'],
                document_id=document_id,
                raw_text=item['raw_text'],
                created_at=now,
            )
            for item in parse_kpi_json(raw_output)
        ]

        logger.info("kpis_extracted", filename=filename, count=len(kpis), extractor="llm")
        return ExtractionResult(
            extracted_data={
                'filename': filename,
                'processed_at': now.isoformat(),
                'text_length': len(raw_text or ""),
                'extractor': 'llm',
                'model': self.model,
            },
            kpis=kpis,
        )
