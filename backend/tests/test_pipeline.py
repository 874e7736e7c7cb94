"""
Tests for the pipeline orchestrator (scrapers/orchestrator.py)

Test cases:
1. End to end: claim -> extract -> stage -> normalize -> dedup -> review -> learn
2. A failing source never aborts its siblings
3. Model outages and a missing API key never blame the source
4. Stage processors work off a backlog on their own
5. A run that breaks is recorded as failed
6. A database error while staging one source fails only that source
"""
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

import scrapers.orchestrator as orchestrator_module
from config import Config
from constants import STATUS_DUPLICATE, STATUS_PENDING
from models.production_show import ProductionShow
from scrapers.extraction_agent import ExtractionOutcome
from scrapers.llm_client import ModelNotConfiguredError, ShowExtractionModel
from scrapers.models import AdminFeedback, PendingShow, PipelineRun, ScrapingSource
from scrapers.orchestrator import PipelineOrchestrator, geocode_pending, normalize_pending
from scrapers.source_registry import SourceRegistry
from services.learning_service import LearningService
from services.review_service import ReviewService

from helpers import show_raw

SOURCE_A = "https://a.example.com/shows"
SOURCE_B = "https://b.example.com/calendar"
ADMIN = "admin@example.com"


def _agent(outcomes):
    """Agent double: extract(url) returns (or raises) outcomes[url]."""
    agent = MagicMock()
    agent.model.model = "test-model"
    agent.chunk_size = 50000

    def extract(url):
        result = outcomes[url]
        if isinstance(result, Exception):
            raise result
        return result

    agent.extract.side_effect = extract
    return agent


@pytest.fixture
def orchestrator_for(db_session, today):
    def _build(outcomes):
        registry = SourceRegistry(db_session, error_streak_limit=5, claim_ttl_minutes=30)
        return PipelineOrchestrator(db_session, agent=_agent(outcomes), registry=registry, today=today)
    return _build


class TestEndToEnd:

    def test_batch_then_review_then_learn(self, orchestrator_for, make_source, db_session, today):
        make_source(SOURCE_A)
        make_source(SOURCE_B)
        db_session.add(ProductionShow(title="Austin Card Show", start_date=date(2026, 8, 2), city="Austin"))
        db_session.commit()

        orchestrator = orchestrator_for({
            SOURCE_A: ExtractionOutcome(source_url=SOURCE_A, chunk_count=1, candidates=[
                show_raw(name="Dallas Card Show", start="2026-08-01"),
                show_raw(name="Houston Sports Expo", start="Aug 8", city="Houston"),
            ]),
            SOURCE_B: ExtractionOutcome(source_url=SOURCE_B, chunk_count=1, candidates=[
                {"name": "Austin Card Show", "startDate": "Aug 2 TX", "city": "Austin"},
            ]),
        })

        run = orchestrator.run_batch(size=10, workers=2, skip_geocode=True)

        assert run.status == "completed"
        assert run.sources_claimed == 2
        assert run.sources_failed == 0
        assert run.candidates_staged == 3
        assert run.normalized == 3
        assert run.duplicates_flagged == 1
        assert run.config_snapshot["extraction_model"] == "test-model"

        rows = db_session.query(PendingShow).order_by(PendingShow.id).all()
        by_name = {row.normalized_payload["name"]: row for row in rows}
        austin = by_name["Austin Card Show"]
        assert austin.status == STATUS_DUPLICATE
        assert austin.normalized_payload["start_date"] == "2026-08-02"
        assert austin.normalized_payload["state"] == "TX"
        assert by_name["Houston Sports Expo"].normalized_payload["start_date"] == "2026-08-08"

        for url in (SOURCE_A, SOURCE_B):
            source = db_session.get(ScrapingSource, url)
            assert source.last_success_at is not None
            assert source.claimed_until is None

        review = ReviewService(db_session, today=today)
        review.approve(by_name["Dallas Card Show"].id, ADMIN)
        review.approve(by_name["Houston Sports Expo"].id, ADMIN)
        review.reject(austin.id, ADMIN, tags=["DUPLICATE"])

        assert db_session.query(ProductionShow).count() == 3
        assert db_session.query(AdminFeedback).count() == 3

        report = LearningService(db_session, window_days=30, disable_floor=10).recompute()
        changes = {c["url"]: c for c in report["changes"]}
        assert (changes[SOURCE_A]["approved"], changes[SOURCE_A]["rejected"]) == (2, 0)
        assert (changes[SOURCE_B]["approved"], changes[SOURCE_B]["rejected"]) == (0, 1)
        assert db_session.get(ScrapingSource, SOURCE_A).priority_score == 54
        assert db_session.get(ScrapingSource, SOURCE_B).priority_score == 47


class TestFailureIsolation:

    def test_failing_source_does_not_stop_siblings(self, orchestrator_for, make_source, db_session):
        make_source(SOURCE_A)
        make_source(SOURCE_B)
        orchestrator = orchestrator_for({
            SOURCE_A: RuntimeError("parser exploded"),
            SOURCE_B: ExtractionOutcome(source_url=SOURCE_B, chunk_count=1, candidates=[show_raw()]),
        })

        run = orchestrator.run_batch(size=10, workers=2, skip_geocode=True)

        assert run.status == "completed"
        assert run.sources_failed == 1
        assert run.candidates_staged == 1
        failing = db_session.get(ScrapingSource, SOURCE_A)
        assert failing.error_streak == 1
        assert "parser exploded" in failing.last_error_message
        assert db_session.get(ScrapingSource, SOURCE_B).error_streak == 0

    def test_fetch_error_counts_against_source(self, orchestrator_for, make_source, db_session):
        make_source(SOURCE_A, error_streak=5)
        orchestrator = orchestrator_for({
            SOURCE_A: ExtractionOutcome(source_url=SOURCE_A, fetch_error="404 Client Error"),
        })

        orchestrator.run_batch(size=1, workers=1, skip_geocode=True)

        source = db_session.get(ScrapingSource, SOURCE_A)
        assert source.error_streak == 6
        assert source.enabled is False

    def test_model_outage_releases_claim(self, orchestrator_for, make_source, db_session):
        make_source(SOURCE_A, error_streak=2)
        orchestrator = orchestrator_for({
            SOURCE_A: ExtractionOutcome(source_url=SOURCE_A, model_error="OpenAI API returned status 503"),
        })

        run = orchestrator.run_batch(size=1, workers=1, skip_geocode=True)

        assert run.sources_failed == 1
        source = db_session.get(ScrapingSource, SOURCE_A)
        assert source.error_streak == 2
        assert source.claimed_until is None
        assert source.last_success_at is None

    def test_broken_run_recorded_as_failed(self, db_session):
        registry = MagicMock()
        registry.next_batch.side_effect = RuntimeError("database went away")
        orchestrator = PipelineOrchestrator(db_session, agent=_agent({}), registry=registry)

        with pytest.raises(RuntimeError):
            orchestrator.run_batch(size=1, workers=1)

        run = db_session.query(PipelineRun).one()
        assert run.status == "failed"
        assert "database went away" in run.error_message

    def test_missing_api_key_claims_nothing(self, make_source, db_session, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
        make_source(SOURCE_A)
        agent = _agent({})
        agent.model = ShowExtractionModel(model="test-model")
        orchestrator = PipelineOrchestrator(db_session, agent=agent)

        with pytest.raises(ModelNotConfiguredError):
            orchestrator.run_batch(size=1, workers=1, skip_geocode=True)

        agent.extract.assert_not_called()
        source = db_session.get(ScrapingSource, SOURCE_A)
        assert source.error_streak == 0
        assert source.claimed_until is None
        assert db_session.query(PipelineRun).one().status == "failed"

    def test_staging_failure_isolated_to_source(self, orchestrator_for, make_source, db_session, monkeypatch):
        make_source(SOURCE_A)
        make_source(SOURCE_B)
        real_stage = orchestrator_module.stage_candidates

        def stage(session, outcome, run_id=None):
            if outcome.source_url == SOURCE_A:
                raise OperationalError("INSERT INTO pending_shows", {}, Exception("disk full"))
            return real_stage(session, outcome, run_id=run_id)

        monkeypatch.setattr(orchestrator_module, "stage_candidates", stage)
        orchestrator = orchestrator_for({
            SOURCE_A: ExtractionOutcome(source_url=SOURCE_A, chunk_count=1, candidates=[show_raw()]),
            SOURCE_B: ExtractionOutcome(source_url=SOURCE_B, chunk_count=1, candidates=[
                show_raw(name="Houston Sports Expo", city="Houston"),
            ]),
        })

        run = orchestrator.run_batch(size=10, workers=2, skip_geocode=True)

        assert run.status == "completed"
        assert run.sources_failed == 1
        assert run.candidates_staged == 1
        failed = db_session.get(ScrapingSource, SOURCE_A)
        assert failed.claimed_until is None
        assert failed.error_streak == 0
        assert db_session.get(ScrapingSource, SOURCE_B).last_success_at is not None


class TestStageProcessors:

    def test_normalize_backlog(self, make_pending, db_session, today):
        make_pending(show_raw(), normalize=False)
        make_pending({"description": "no name or date"}, normalize=False)

        stats = normalize_pending(db_session, today=today)

        assert stats == {"normalized": 2, "invalid": 1}
        assert normalize_pending(db_session, today=today) == {"normalized": 0, "invalid": 0}
        rows = db_session.query(PendingShow).order_by(PendingShow.id).all()
        assert rows[0].quality_score == 70
        assert rows[0].start_date == date(2026, 8, 1)
        assert rows[0].status == STATUS_PENDING
        assert rows[1].is_valid is False

    def test_geocode_backlog(self, make_pending, db_session):
        with_address = make_pending(show_raw(address="123 Main St"))
        make_pending(show_raw(name="No Street"))

        result = MagicMock()
        result.to_payload.return_value = {"coordinates": {"latitude": 32.78, "longitude": -96.8}}
        geocoder = MagicMock()
        geocoder.enabled = True
        geocoder.geocode_payload.return_value = result

        stats = geocode_pending(db_session, geocoder=geocoder)

        assert stats == {"attempted": 1, "geocoded": 1, "skipped": 1}
        db_session.refresh(with_address)
        assert with_address.geocoded_payload["coordinates"]["latitude"] == 32.78
        assert with_address.effective_payload()["latitude"] == 32.78
        assert geocode_pending(db_session, geocoder=geocoder)["attempted"] == 0

    def test_geocode_disabled(self, make_pending, db_session):
        make_pending(show_raw(address="123 Main St"))
        geocoder = MagicMock()
        geocoder.enabled = False
        assert geocode_pending(db_session, geocoder=geocoder) == {"attempted": 0, "geocoded": 0, "skipped": 0}
