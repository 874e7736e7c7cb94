"""
Tests for the Extraction Agent (scrapers/extraction_agent.py)

Test cases:
1. Model output parsing: code fences, non-JSON, non-array
2. HTML cleanup and chunking
3. Fetch retry: bounded attempts with backoff, 4xx fails fast
4. Per-chunk failures are isolated; model outages stop the source
5. Staging: raw payload verbatim, re-scrape dedup, non-object candidates
"""
from unittest.mock import MagicMock

import pytest
import requests

from config import Config
from constants import STATUS_EXTRACT_ERROR, STATUS_PENDING
from scrapers.extraction_agent import (
    MAX_FETCH_ATTEMPTS,
    ExtractionAgent,
    ExtractionError,
    ExtractionOutcome,
    clean_html,
    parse_model_output,
    split_chunks,
    stage_candidates,
    strip_code_fences,
)
from scrapers.llm_client import ModelCallError, ShowExtractionModel
from scrapers.models import PendingShow

SOURCE = "https://shows.example.com/calendar"


def _response(status=200, text="<html><body><p>Card show Aug 2</p></body></html>"):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if status >= 400:
        error = requests.exceptions.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


def _agent(session=None, model=None, chunk_size=50000):
    sleeps = []
    agent = ExtractionAgent(
        model=model or MagicMock(),
        session=session or MagicMock(),
        rate_limiter=MagicMock(),
        fetch_timeout=5,
        chunk_size=chunk_size,
        sleep=sleeps.append,
    )
    return agent, sleeps


class TestModelOutput:

    def test_code_fence_stripped(self):
        assert strip_code_fences('```json\n[{"name": "A"}]\n```') == '[{"name": "A"}]'
        assert parse_model_output('```\n[]\n```') == []

    def test_plain_array(self):
        assert parse_model_output('[{"name": "A"}, {"name": "B"}]') == [{"name": "A"}, {"name": "B"}]

    @pytest.mark.parametrize("text", ["", "   ", "Here are the shows: none", '{"name": "A"}'])
    def test_invalid_output(self, text):
        with pytest.raises(ExtractionError):
            parse_model_output(text)


class TestHtml:

    def test_scripts_removed_and_links_kept(self):
        html = """
        <html><head><title>x</title><script>var a = 1;</script></head>
        <body><!-- hidden --><h1>Shows</h1>
        <a href="https://shows.example.com/aug">Aug 2 Show</a>
        <a href="/relative">Other</a></body></html>
        """
        text = clean_html(html)
        assert "var a" not in text
        assert "hidden" not in text
        assert "Aug 2 Show (https://shows.example.com/aug)" in text
        assert "/relative" not in text

    def test_split_chunks(self):
        text = "\n".join(["a" * 40] * 10)
        chunks = split_chunks(text, 100)
        assert all(len(c) <= 100 for c in chunks)
        assert "\n".join(chunks) == text

    def test_long_line_hard_split(self):
        chunks = split_chunks("x" * 250, 100)
        assert [len(c) for c in chunks] == [100, 100, 50]

    def test_small_text_single_chunk(self):
        assert split_chunks("short", 100) == ["short"]
        assert split_chunks("", 100) == []


class TestFetch:

    def test_retries_then_fails(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.Timeout("read timed out")
        agent, sleeps = _agent(session=session)

        outcome = agent.extract(SOURCE)

        assert session.get.call_count == MAX_FETCH_ATTEMPTS
        assert sleeps == [1.0, 2.0]
        assert outcome.fetch_error is not None
        assert outcome.counts_against_source
        assert outcome.error_summary.startswith("FETCH_ERROR")

    def test_retryable_status_then_success(self):
        session = MagicMock()
        session.get.side_effect = [_response(503), _response(200)]
        model = MagicMock()
        model.complete.return_value = '[{"name": "A", "startDate": "Aug 2"}]'
        agent, sleeps = _agent(session=session, model=model)

        outcome = agent.extract(SOURCE)

        assert outcome.succeeded
        assert outcome.candidates == [{"name": "A", "startDate": "Aug 2"}]
        assert sleeps == [1.0]

    def test_client_error_not_retried(self):
        session = MagicMock()
        session.get.return_value = _response(404)
        agent, sleeps = _agent(session=session)

        outcome = agent.extract(SOURCE)

        assert session.get.call_count == 1
        assert sleeps == []
        assert "404" in outcome.fetch_error


class TestExtract:

    def test_bad_chunk_does_not_stop_others(self):
        session = MagicMock()
        session.get.return_value = _response(text="<p>" + "\n".join(["line of text"] * 30) + "</p>")
        model = MagicMock()
        model.complete.side_effect = ["not json", '[{"name": "B"}]', "[]"]
        agent, _ = _agent(session=session, model=model, chunk_size=150)

        outcome = agent.extract(SOURCE)

        assert outcome.chunk_count == 3
        assert len(outcome.chunk_errors) == 1
        assert outcome.candidates == [{"name": "B"}]
        assert outcome.counts_against_source
        assert outcome.error_summary.startswith("EXTRACT_ERROR")

    def test_model_outage_stops_source_without_blame(self):
        session = MagicMock()
        session.get.return_value = _response()
        model = MagicMock()
        model.complete.side_effect = ModelCallError("OpenAI API returned status 503")
        agent, _ = _agent(session=session, model=model)

        outcome = agent.extract(SOURCE)

        assert outcome.model_error
        assert not outcome.counts_against_source
        assert outcome.candidates == []

    def test_missing_api_key_is_a_model_error(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
        session = MagicMock()
        session.get.return_value = _response()
        agent, _ = _agent(session=session, model=ShowExtractionModel(model="test-model"))

        outcome = agent.extract(SOURCE)

        assert "OPENAI_API_KEY" in outcome.model_error
        assert not outcome.counts_against_source

    def test_empty_page(self):
        session = MagicMock()
        session.get.return_value = _response(text="<html><script>x</script></html>")
        agent, _ = _agent(session=session)
        outcome = agent.extract(SOURCE)
        assert outcome.chunk_errors == ["page has no text content"]


class TestStaging:

    def test_candidates_staged_verbatim(self, db_session, make_source):
        make_source(SOURCE)
        raw = {"name": "A", "startDate": "Aug 2 AL", "bogus": 1}
        outcome = ExtractionOutcome(source_url=SOURCE, candidates=[raw, {"startDate": "Aug 3"}])

        stats = stage_candidates(db_session, outcome, run_id="run-1")

        assert stats["staged"] == 2
        rows = db_session.query(PendingShow).order_by(PendingShow.id).all()
        assert rows[0].raw_payload == raw
        assert rows[0].status == STATUS_PENDING
        assert rows[0].run_id == "run-1"
        assert "missing key: name" in rows[1].validation_warnings
        assert stats["pending_ids"] == [rows[0].id, rows[1].id]

    def test_rescrape_skips_identical_pending(self, db_session, make_source):
        make_source(SOURCE)
        outcome = ExtractionOutcome(source_url=SOURCE, candidates=[{"name": "A", "startDate": "Aug 2"}])
        stage_candidates(db_session, outcome)
        stats = stage_candidates(db_session, outcome)
        assert stats["staged"] == 0
        assert stats["skipped"] == 1
        assert db_session.query(PendingShow).count() == 1

    def test_non_object_candidates_recorded_as_extract_errors(self, db_session, make_source):
        make_source(SOURCE)
        outcome = ExtractionOutcome(source_url=SOURCE, candidates=["Card show Aug 2", {"name": "A"}])

        stats = stage_candidates(db_session, outcome)

        assert stats == {"staged": 1, "extract_errors": 1, "skipped": 0, "pending_ids": stats["pending_ids"]}
        error_row = db_session.query(PendingShow).filter_by(status=STATUS_EXTRACT_ERROR).one()
        assert error_row.is_valid is False
        assert len(stats["pending_ids"]) == 1
