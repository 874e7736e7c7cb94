"""
Tests for the Learning Service (services/learning_service.py)

Test cases:
1. Priority formula with clamping
2. More rejections never raise a source's priority
3. Feedback outside the window is ignored
4. dry_run reports without writing
5. Sources below the floor are disabled, never re-enabled
6. Feedback statistics by tag and source
"""
from datetime import datetime, timedelta

import pytest

from constants import DISABLED_REASON_LOW_PRIORITY, DISABLED_REASON_MANUAL
from scrapers.models import AdminFeedback, ScrapingSource
from services.learning_service import LearningService, compute_priority_score

from helpers import show_raw

SOURCE = "https://shows.example.com/calendar"


@pytest.fixture
def learning(db_session):
    return LearningService(db_session, window_days=30, disable_floor=10)


@pytest.fixture
def add_feedback(db_session, make_pending):
    """Factory: add_feedback(action, count, source_url, tags, age_days)"""
    pendings = {}

    def _add(action, count=1, source_url=SOURCE, tags=None, age_days=0):
        if source_url not in pendings:
            pendings[source_url] = make_pending(show_raw(), source_url=source_url)
        created = datetime.utcnow() - timedelta(days=age_days)
        for _ in range(count):
            db_session.add(AdminFeedback(
                pending_id=pendings[source_url].id,
                source_url=source_url,
                admin_id="admin@example.com",
                action=action,
                feedback_tags=tags or [],
                created_at=created,
            ))
        db_session.commit()

    return _add


class TestPriorityFormula:

    @pytest.mark.parametrize("approved,rejected,streak,expected", [
        (0, 0, 0, 50),
        (5, 0, 0, 60),
        (0, 4, 2, 36),
        (40, 0, 0, 100),
        (0, 30, 0, 0),
    ])
    def test_formula(self, approved, rejected, streak, expected):
        assert compute_priority_score(approved, rejected, streak) == expected

    def test_rejections_never_raise_priority(self):
        scores = [compute_priority_score(3, rejected, 1) for rejected in range(25)]
        assert all(later <= earlier for earlier, later in zip(scores, scores[1:]))


class TestRecompute:

    def test_recompute_writes_scores(self, learning, add_feedback, db_session):
        add_feedback("approve", count=2)
        add_feedback("reject", count=1, tags=["DUPLICATE"])
        add_feedback("edit", count=3)

        report = learning.recompute()

        source = db_session.get(ScrapingSource, SOURCE)
        assert source.priority_score == 51
        assert source.last_recomputed_at is not None
        assert report["changed"] == 1
        assert report["changes"][0]["approved"] == 2
        assert report["changes"][0]["rejected"] == 1

    def test_old_feedback_ignored(self, learning, add_feedback, db_session):
        add_feedback("reject", count=5, tags=["SPAM"], age_days=45)
        learning.recompute()
        assert db_session.get(ScrapingSource, SOURCE).priority_score == 50

    def test_dry_run_writes_nothing(self, learning, add_feedback, db_session):
        add_feedback("approve", count=4)

        report = learning.recompute(dry_run=True)

        assert report["dry_run"] is True
        assert report["changes"][0]["new_score"] == 58
        db_session.expire_all()
        source = db_session.get(ScrapingSource, SOURCE)
        assert source.priority_score == 50
        assert source.last_recomputed_at is None

    def test_low_priority_source_disabled(self, learning, add_feedback, db_session):
        add_feedback("reject", count=14, tags=["SPAM"])

        report = learning.recompute()

        source = db_session.get(ScrapingSource, SOURCE)
        assert source.priority_score == 8
        assert source.enabled is False
        assert source.disabled_reason == DISABLED_REASON_LOW_PRIORITY
        assert report["disabled"] == [SOURCE]

    def test_disabled_source_not_reenabled(self, learning, add_feedback, make_source, db_session):
        make_source("https://quiet.example.com", enabled=False, disabled_reason=DISABLED_REASON_MANUAL)
        add_feedback("approve", count=10, source_url="https://quiet.example.com")

        learning.recompute()

        source = db_session.get(ScrapingSource, "https://quiet.example.com")
        assert source.priority_score == 70
        assert source.enabled is False
        assert source.disabled_reason == DISABLED_REASON_MANUAL

    def test_error_streak_lowers_score(self, learning, make_source, db_session):
        make_source("https://flaky.example.com", error_streak=4)
        learning.recompute()
        assert db_session.get(ScrapingSource, "https://flaky.example.com").priority_score == 46


class TestFeedbackStats:

    def test_tag_counts_relative_to_rejections(self, learning, add_feedback):
        add_feedback("reject", count=3, tags=["DATE_FORMAT", "VENUE_MISSING"])
        add_feedback("reject", count=1, tags=["DATE_FORMAT"])
        add_feedback("approve", count=2)

        stats = learning.feedback_stats()

        assert stats["total_feedback"] == 6
        assert (stats["approved"], stats["rejected"]) == (2, 4)
        assert stats["tags"][0] == {"tag": "DATE_FORMAT", "count": 4, "percentage": 100.0}
        assert stats["tags"][1] == {"tag": "VENUE_MISSING", "count": 3, "percentage": 75.0}

    def test_per_source_breakdown(self, learning, add_feedback):
        add_feedback("reject", tags=["SPAM"], source_url="https://a.example.com")
        add_feedback("approve", source_url="https://b.example.com")

        stats = learning.feedback_stats(source_url="https://a.example.com")

        assert [s["source_url"] for s in stats["by_source"]] == ["https://a.example.com"]
        assert stats["by_source"][0]["tags"] == {"SPAM": 1}

    def test_window(self, learning, add_feedback):
        add_feedback("reject", tags=["SPAM"], age_days=10)
        assert learning.feedback_stats(days=7)["total_feedback"] == 0
        assert learning.feedback_stats(days=14)["total_feedback"] == 1
