"""
Tests for the Dedup Service (services/dedup_service.py)

Test cases:
1. Same title and city two days apart -> DUPLICATE pair
2. Same title, different cities -> never compared
3. Outside the date window -> not compared
4. Match against published shows
5. Compare-and-set: a checked or reviewed row is left alone
"""
from datetime import date

import pytest

from constants import STATUS_APPROVED, STATUS_DUPLICATE, STATUS_PENDING
from models.production_show import ProductionShow
from services.dedup_service import (
    DedupService,
    date_proximity,
    location_similarity,
    normalize_title,
    score_pair,
)

from helpers import show_raw


@pytest.fixture
def dedup(db_session):
    return DedupService(db_session, window_days=7, threshold=0.6)


@pytest.fixture
def make_unchecked(make_pending):
    """Staged rows that have not been through dedup yet."""
    def _make(raw, **columns):
        return make_pending(raw, deduped=False, **columns)
    return _make


class TestScoring:

    def test_normalize_title(self):
        assert normalize_title("The 5th Annual Dallas Card Show 2026!") == "dallas card show"

    def test_same_title_city_two_days_apart(self):
        a = {"name": "Dallas Card Show", "city": "Dallas", "start_date": "2026-08-01"}
        b = {"name": "Dallas Card Show", "city": "Dallas", "start_date": "2026-08-03"}
        assert score_pair(a, b, 7) >= 0.6

    def test_different_cities_not_comparable(self):
        a = {"name": "Card Show", "city": "Dallas", "start_date": "2026-08-01"}
        b = {"name": "Card Show", "city": "Houston", "start_date": "2026-08-01"}
        assert score_pair(a, b, 7) is None

    def test_outside_window(self):
        assert date_proximity(date(2026, 8, 1), date(2026, 8, 10), 7) is None
        assert date_proximity(date(2026, 8, 1), date(2026, 8, 1), 7) == 1.0

    def test_coordinates_win(self):
        a = {"city": "Dallas", "latitude": 32.7800, "longitude": -96.8000}
        b = {"city": "Dallas", "latitude": 32.7801, "longitude": -96.8001}
        assert location_similarity(a, b) == 1.0

    def test_venue_text_counts_in_same_city(self):
        a = {"city": "Dallas", "venue_name": "Civic Center"}
        b = {"city": "Dallas", "venue_name": "Civic Center"}
        c = {"city": "Dallas", "venue_name": "Elks Lodge"}
        assert location_similarity(a, b) == 1.0
        assert 0.5 <= location_similarity(a, c) < 1.0


class TestDedupService:

    def test_pending_pair_flagged(self, dedup, make_unchecked, db_session):
        first = make_unchecked(show_raw(start="2026-08-01"))
        second = make_unchecked(show_raw(start="2026-08-03"), source_url="https://other.example.com")

        stats = dedup.run()

        assert stats == {"checked": 2, "duplicates_flagged": 1}
        db_session.refresh(first)
        assert first.status == STATUS_PENDING
        assert second.status == STATUS_DUPLICATE
        assert second.duplicate_of_pending_id == first.id
        assert second.duplicate_score >= 0.6

    def test_different_cities_not_flagged(self, dedup, make_unchecked):
        make_unchecked(show_raw(name="Card Show", city="Dallas"))
        make_unchecked(show_raw(name="Card Show", city="Austin"))
        assert dedup.run()["duplicates_flagged"] == 0

    def test_dates_outside_window_not_flagged(self, dedup, make_unchecked):
        make_unchecked(show_raw(start="2026-08-01"))
        make_unchecked(show_raw(start="2026-09-01"))
        assert dedup.run()["duplicates_flagged"] == 0

    def test_match_against_published_show(self, dedup, make_unchecked, db_session):
        show = ProductionShow(title="Dallas Card Show", start_date=date(2026, 8, 1), city="Dallas", state="TX")
        db_session.add(show)
        db_session.commit()
        pending = make_unchecked(show_raw(start="2026-08-01"))

        match = dedup.check(pending)

        assert match.show_id == show.id
        assert pending.status == STATUS_DUPLICATE
        assert pending.duplicate_of_show_id == show.id

    def test_checked_rows_not_rechecked(self, dedup, make_unchecked):
        make_unchecked(show_raw(start="2026-08-01"))
        make_unchecked(show_raw(start="2026-08-02"))
        dedup.run()
        assert dedup.run() == {"checked": 0, "duplicates_flagged": 0}

    def test_reviewed_row_left_alone(self, dedup, make_unchecked):
        make_unchecked(show_raw(start="2026-08-01"))
        approved = make_unchecked(show_raw(start="2026-08-02"), status=STATUS_APPROVED)
        assert dedup.check(approved) is None
        assert approved.status == STATUS_APPROVED

    def test_restricted_to_ids(self, dedup, make_unchecked):
        make_unchecked(show_raw(start="2026-08-01"))
        second = make_unchecked(show_raw(start="2026-08-02"))
        assert dedup.run(pending_ids=[]) == {"checked": 0, "duplicates_flagged": 0}
        assert dedup.run(pending_ids=[second.id]) == {"checked": 1, "duplicates_flagged": 1}
