"""
Root pytest configuration for backend tests.

Provides:
- In-memory SQLite database per test (APP_ENV=test)
- Shared fixtures (app, client, db_session, admin tokens)
- Factories for scraping sources and pending shows
"""

import os
import sys
from datetime import date, datetime
from pathlib import Path

# Add backend directory to Python path so imports like
# `from models.database import db` and `from utils.normalize import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Config reads the environment at import time
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ.pop("GOOGLE_MAPS_API_KEY", None)

import pytest

# Reference date used by every normalization in the suite
TODAY = date(2026, 3, 1)


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (live OpenAI / Google APIs).",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="integration test (use --run-integration to run)")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def app():
    """Create test Flask application with a fresh database."""
    from app import create_app
    from models.database import db

    app = create_app({"TESTING": True})
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    from models.database import db
    return db.session


@pytest.fixture
def admin_headers(app):
    from utils.auth import generate_admin_token
    token = generate_admin_token("admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(app):
    from utils.auth import generate_admin_token
    token = generate_admin_token("someone@example.com", role="user")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_source(db_session):
    """Factory: make_source(url, **columns) -> ScrapingSource"""
    from scrapers.models import ScrapingSource

    def _make(url="https://shows.example.com/calendar", **columns):
        source = ScrapingSource(url=url, **columns)
        db_session.add(source)
        db_session.commit()
        return source

    return _make


@pytest.fixture
def make_pending(db_session, make_source):
    """
    Factory: make_pending(raw, source_url=..., normalize=True, deduped=True, **columns) -> PendingShow

    With normalize=True the row gets the normalized payload and quality
    score the pipeline would have stored (relative to TODAY). Valid rows are
    also marked dedup-checked unless deduped=False, so they are ready for
    review.
    """
    from scrapers.models import PendingShow, ScrapingSource
    from scrapers.models.pending_show import payload_start_date
    from scrapers.utils.hashing import compute_json_hash
    from services.normalization import normalize_show
    from services.quality import compute_quality_score

    def _make(raw, source_url="https://shows.example.com/calendar", normalize=True, deduped=True, **columns):
        if db_session.get(ScrapingSource, source_url) is None:
            make_source(source_url)
        pending = PendingShow(
            source_url=source_url,
            raw_payload=raw,
            raw_hash=compute_json_hash(raw),
            **columns,
        )
        if normalize:
            result = normalize_show(raw, today=TODAY)
            pending.normalized_payload = result.payload
            pending.start_date = payload_start_date(result.payload)
            pending.validation_warnings = result.warnings
            pending.is_valid = result.is_valid
            pending.quality_score = compute_quality_score(result.payload)
            pending.normalized_at = pending.normalized_at or datetime.utcnow()
            if deduped and result.is_valid and "dedup_checked_at" not in columns:
                pending.dedup_checked_at = datetime.utcnow()
        db_session.add(pending)
        db_session.commit()
        return pending

    return _make
