"""
Live extraction against the configured OpenAI model.

Run with: pytest --run-integration -m integration (needs OPENAI_API_KEY)
"""
import os

import pytest

from scrapers.extraction_agent import parse_model_output
from scrapers.llm_client import ShowExtractionModel
from services.normalization import normalize_show

PAGE = """Upcoming Shows
Dallas Sports Card Show - Saturday Aug 2 2026, 9am-3pm
Civic Center, 123 Main St, Dallas, TX 75201
Admission $5. Contact Bob Jones (214) 555-0100
"""

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not os.environ.get("OPENAI_API_KEY"), reason="OPENAI_API_KEY not set"),
]


def test_model_returns_schema_array(today):
    answer = ShowExtractionModel().complete(PAGE, "https://shows.example.com/calendar")

    candidates = parse_model_output(answer)

    assert len(candidates) == 1
    result = normalize_show(candidates[0], today=today)
    assert result.is_valid
    assert result.payload["start_date"] == "2026-08-02"
    assert result.payload["city"] == "Dallas"
    assert result.payload["state"] == "TX"
