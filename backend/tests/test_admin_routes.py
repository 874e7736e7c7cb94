"""
Tests for the admin API (routes/admin.py)

Test cases:
1. Authentication: 401 without token, 403 for non-admin role
2. Error envelope carries code, message and requestId
3. Review endpoints: list, detail, approve, reject, edit, batch, duplicates
4. Source management and learning endpoints
5. Health check
"""
from datetime import date

from constants import STATUS_APPROVED, STATUS_DUPLICATE, STATUS_REJECTED
from models.production_show import ProductionShow
from scrapers.models import PendingShow, ScrapingSource

from helpers import show_raw


class TestAuth:

    def test_missing_token(self, client):
        response = client.get("/api/admin/pending")
        assert response.status_code == 401
        body = response.get_json()
        assert body["error"]["code"] == "AUTH_REQUIRED"
        assert body["error"]["requestId"]

    def test_invalid_token(self, client):
        response = client.get("/api/admin/pending", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_non_admin_forbidden(self, client, user_headers):
        response = client.get("/api/admin/pending", headers=user_headers)
        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "FORBIDDEN"


class TestEnvelope:

    def test_request_id_echoed(self, client, admin_headers):
        headers = dict(admin_headers, **{"X-Request-ID": "req-123"})
        response = client.get("/api/admin/pending/999", headers=headers)

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "req-123"
        error = response.get_json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["requestId"] == "req-123"

    def test_validation_error(self, client, admin_headers):
        response = client.get("/api/admin/pending?limit=abc", headers=admin_headers)
        assert response.status_code == 400
        error = response.get_json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["field"] == "limit"

    def test_unknown_route(self, client, admin_headers):
        response = client.get("/api/admin/nope", headers=admin_headers)
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "NOT_FOUND"


class TestReviewEndpoints:

    def test_list_and_detail(self, client, admin_headers, make_pending):
        pending = make_pending(show_raw())
        make_pending({"description": "nothing useful"})

        listing = client.get("/api/admin/pending", headers=admin_headers).get_json()
        assert listing["total"] == 1
        assert listing["items"][0]["quality_band"] == "Medium"

        everything = client.get("/api/admin/pending?include_invalid=true&status=all", headers=admin_headers)
        assert everything.get_json()["total"] == 2

        detail = client.get(f"/api/admin/pending/{pending.id}", headers=admin_headers).get_json()
        assert detail["raw_payload"]["startDate"] == "2026-08-01"
        assert detail["feedback"] == []

    def test_approve(self, client, admin_headers, make_pending, db_session):
        pending = make_pending(show_raw())

        response = client.post(
            f"/api/admin/approve/{pending.id}",
            json={"feedback": {"tags": [], "text": "ok"}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["pending"]["status"] == STATUS_APPROVED
        assert body["pending"]["reviewed_by"] == "admin@example.com"
        assert body["show"]["title"] == "Dallas Card Show"

        again = client.post(f"/api/admin/approve/{pending.id}", headers=admin_headers)
        assert again.status_code == 409
        assert again.get_json()["error"]["code"] == "INVALID_TRANSITION"

    def test_approve_conflict(self, client, admin_headers, make_pending, db_session):
        existing = ProductionShow(title="Dallas Card Show", start_date=date(2026, 8, 1), city="Dallas")
        db_session.add(existing)
        db_session.commit()
        pending = make_pending(show_raw())

        response = client.post(f"/api/admin/approve/{pending.id}", headers=admin_headers)

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "DUPLICATE_CONFLICT"
        assert error["details"]["existingShowId"] == existing.id

    def test_reject_requires_tags(self, client, admin_headers, make_pending):
        pending = make_pending(show_raw())

        missing = client.post(f"/api/admin/reject/{pending.id}", json={"reason": "bad"}, headers=admin_headers)
        assert missing.status_code == 400
        assert missing.get_json()["error"]["code"] == "FEEDBACK_REQUIRED"

        response = client.post(
            f"/api/admin/reject/{pending.id}",
            json={"reason": "year missing", "tags": ["date_format"]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["pending"]["status"] == STATUS_REJECTED

    def test_unknown_tag(self, client, admin_headers, make_pending):
        pending = make_pending(show_raw())
        response = client.post(
            f"/api/admin/reject/{pending.id}", json={"tags": ["UGLY"]}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_edit_and_approve(self, client, admin_headers, make_pending):
        pending = make_pending(show_raw(venueName=None))

        response = client.patch(
            f"/api/admin/edit/{pending.id}",
            json={"patch": {"venue_name": "Expo Hall"}, "approve": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["pending"]["normalized_payload"]["venue_name"] == "Expo Hall"
        assert body["show"]["venue_name"] == "Expo Hall"

    def test_batch(self, client, admin_headers, make_pending):
        a = make_pending(show_raw(name="Show A"))
        b = make_pending(show_raw(name="Show B"))

        response = client.post(
            "/api/admin/batch",
            json={"action": "reject", "ids": [a.id, b.id], "feedback": {"tags": ["SPAM"]}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["count"] == 2

    def test_batch_too_large(self, client, admin_headers, make_pending, db_session):
        pending = make_pending(show_raw())
        ids = [pending.id] + list(range(10000, 10150))

        response = client.post(
            "/api/admin/batch", json={"action": "approve", "ids": ids}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "BATCH_TOO_LARGE"
        db_session.expire_all()
        assert db_session.query(ProductionShow).count() == 0

    def test_resolve_duplicate(self, client, admin_headers, make_pending, db_session):
        original = make_pending(show_raw())
        duplicate = make_pending(
            show_raw(start="2026-08-02"), status=STATUS_DUPLICATE, duplicate_of_pending_id=original.id
        )

        response = client.post(
            f"/api/admin/duplicates/{duplicate.id}/resolve",
            json={"resolution": "reject_both"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(PendingShow, original.id).status == STATUS_REJECTED

        bad = client.post(
            f"/api/admin/duplicates/{duplicate.id}/resolve",
            json={"resolution": "shrug"},
            headers=admin_headers,
        )
        assert bad.status_code == 400


class TestSourceEndpoints:

    def test_add_and_list(self, client, admin_headers):
        created = client.post(
            "/api/admin/sources",
            json={"url": "https://shows.example.com/tx", "priority_score": 60},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.get_json()["source"]["priority_score"] == 60

        again = client.post("/api/admin/sources", json={"url": "https://shows.example.com/tx"},
                            headers=admin_headers)
        assert again.status_code == 200
        assert again.get_json()["created"] is False

        listing = client.get("/api/admin/sources", headers=admin_headers).get_json()
        assert listing["count"] == 1

    def test_invalid_url(self, client, admin_headers):
        response = client.post("/api/admin/sources", json={"url": "nope"}, headers=admin_headers)
        assert response.status_code == 400

    def test_update_source(self, client, admin_headers, make_source, db_session):
        make_source("https://shows.example.com/tx", enabled=False, error_streak=7)

        response = client.patch(
            "/api/admin/sources/https://shows.example.com/tx",
            json={"enabled": True, "priority_score": 75},
            headers=admin_headers,
        )

        assert response.status_code == 200
        source = response.get_json()["source"]
        assert source["enabled"] is True
        assert source["error_streak"] == 0
        assert source["priority_score"] == 75

    def test_update_missing_source(self, client, admin_headers):
        response = client.patch(
            "/api/admin/sources/https://missing.example.com", json={"enabled": True}, headers=admin_headers
        )
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "NOT_FOUND"


class TestLearningEndpoints:

    def test_stats_and_recompute(self, client, admin_headers, make_pending, db_session):
        pending = make_pending(show_raw())
        client.post(f"/api/admin/reject/{pending.id}", json={"tags": ["SPAM"]}, headers=admin_headers)

        stats = client.get("/api/admin/feedback/stats?days=7", headers=admin_headers).get_json()
        assert stats["rejected"] == 1
        assert stats["tags"][0]["tag"] == "SPAM"

        dry = client.post("/api/admin/learning/recompute", json={"dry_run": True}, headers=admin_headers)
        assert dry.get_json()["changes"][0]["new_score"] == 47
        db_session.expire_all()
        assert db_session.query(ScrapingSource).one().priority_score == 50

        real = client.post("/api/admin/learning/recompute", headers=admin_headers)
        assert real.status_code == 200
        db_session.expire_all()
        assert db_session.query(ScrapingSource).one().priority_score == 47


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "database": "ok"}
