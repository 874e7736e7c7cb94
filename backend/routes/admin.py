"""
Admin API Routes - review queue, sources and learning.

Every endpoint requires an admin bearer token. Errors use the standard
envelope (see api.middleware.error_envelope); services raise, the app-level
handlers translate.

Endpoints:
- GET    /api/admin/pending
- GET    /api/admin/pending/<id>
- POST   /api/admin/approve/<id>
- POST   /api/admin/reject/<id>
- PATCH  /api/admin/edit/<id>
- POST   /api/admin/batch
- POST   /api/admin/duplicates/<id>/resolve
- GET    /api/admin/sources
- POST   /api/admin/sources
- PATCH  /api/admin/sources/<path:url>
- GET    /api/admin/feedback/stats
- POST   /api/admin/learning/recompute
"""
import logging
import re

from flask import Blueprint, g, jsonify, request

from api.middleware.error_envelope import error_response
from constants import PENDING_STATUSES, STATUS_PENDING
from models.database import db
from scrapers.source_registry import SourceNotFoundError, SourceRegistry
from services.learning_service import LearningService
from services.review_service import ReviewService
from utils.auth import require_admin
from utils.normalize import ValidationError, to_bool, to_choice, to_int, to_int_list, to_str_list

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

# Werkzeug merges '//' in paths, so 'https://x' arrives as 'https:/x'
MERGED_SCHEME_RE = re.compile(r'^(https?):/(?!/)')


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    return body


def _feedback(body: dict, key: str = "feedback"):
    """(tags, text) from a {"feedback": {"tags": [...], "text": "..."}} body."""
    feedback = body.get(key) or {}
    if not isinstance(feedback, dict):
        raise ValidationError(f"{key} must be an object", field=key, received_value=feedback)
    text = feedback.get("text")
    if text is not None and not isinstance(text, str):
        raise ValidationError(f"{key}.text must be a string", field=f"{key}.text", received_value=text)
    return to_str_list(feedback.get("tags"), field=f"{key}.tags", upper=True), text


def _review_service() -> ReviewService:
    return ReviewService(db.session)


# =============================================================================
# Review queue
# =============================================================================

@admin_bp.route("/pending", methods=["GET"])
@require_admin
def list_pending():
    """
    Page through the review queue.

    Query params:
        - status: PENDING (default), DUPLICATE, APPROVED, REJECTED, EXTRACT_ERROR, or ALL
        - source_url: only rows from this source
        - include_invalid: include rows with neither name nor start date (default false)
        - min_quality: minimum quality score 0-100
        - limit: max rows (default 50, max 200)
        - offset: rows to skip
    """
    status = request.args.get("status", STATUS_PENDING)
    status = None if status.upper() == "ALL" else to_choice(
        status, PENDING_STATUSES, default=STATUS_PENDING, field="status", upper=True
    )
    result = _review_service().list_pending(
        status=status,
        source_url=request.args.get("source_url") or None,
        include_invalid=to_bool(request.args.get("include_invalid"), field="include_invalid"),
        min_quality=to_int(request.args.get("min_quality"), minimum=0, maximum=100, field="min_quality"),
        limit=to_int(request.args.get("limit"), default=50, minimum=1, maximum=200, field="limit"),
        offset=to_int(request.args.get("offset"), default=0, minimum=0, field="offset"),
    )
    return jsonify(result)


@admin_bp.route("/pending/<int:pending_id>", methods=["GET"])
@require_admin
def get_pending(pending_id):
    return jsonify(_review_service().get_detail(pending_id))


@admin_bp.route("/approve/<int:pending_id>", methods=["POST"])
@require_admin
def approve(pending_id):
    tags, text = _feedback(_json_body())
    pending, show = _review_service().approve(pending_id, g.admin_id, tags=tags, free_text=text)
    return jsonify({"pending": pending.to_dict(), "show": show.to_dict()})


@admin_bp.route("/reject/<int:pending_id>", methods=["POST"])
@require_admin
def reject(pending_id):
    body = _json_body()
    reason = body.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string", field="reason", received_value=reason)
    tags = to_str_list(body.get("tags"), field="tags", upper=True)
    pending = _review_service().reject(pending_id, g.admin_id, tags=tags, free_text=reason)
    return jsonify({"pending": pending.to_dict()})


@admin_bp.route("/edit/<int:pending_id>", methods=["PATCH"])
@require_admin
def edit(pending_id):
    body = _json_body()
    tags, text = _feedback(body)
    pending, show = _review_service().edit(
        pending_id,
        g.admin_id,
        body.get("patch"),
        then_approve=to_bool(body.get("approve"), field="approve"),
        tags=tags,
        free_text=text,
    )
    return jsonify({"pending": pending.to_dict(), "show": show.to_dict() if show else None})


@admin_bp.route("/batch", methods=["POST"])
@require_admin
def batch():
    body = _json_body()
    tags, text = _feedback(body)
    result = _review_service().batch(
        to_choice(body.get("action"), ("approve", "reject"), field="action"),
        to_int_list(body.get("ids"), field="ids"),
        g.admin_id,
        tags=tags,
        free_text=text,
    )
    return jsonify(result)


@admin_bp.route("/duplicates/<int:pending_id>/resolve", methods=["POST"])
@require_admin
def resolve_duplicate(pending_id):
    body = _json_body()
    _, text = _feedback(body)
    result = _review_service().resolve_duplicate(
        pending_id, body.get("resolution"), g.admin_id, free_text=text
    )
    return jsonify(result)


# =============================================================================
# Sources
# =============================================================================

@admin_bp.route("/sources", methods=["GET"])
@require_admin
def list_sources():
    enabled = request.args.get("enabled")
    sources = SourceRegistry(db.session).list_sources(
        enabled=None if enabled in (None, "") else to_bool(enabled, field="enabled")
    )
    return jsonify({"count": len(sources), "data": [s.to_dict() for s in sources]})


@admin_bp.route("/sources", methods=["POST"])
@require_admin
def add_source():
    body = _json_body()
    source, created = SourceRegistry(db.session).add_source(
        body.get("url") or "",
        priority_score=to_int(body.get("priority_score"), default=50, field="priority_score"),
        notes=body.get("notes"),
    )
    return jsonify({"source": source.to_dict(), "created": created}), 201 if created else 200


@admin_bp.route("/sources/<path:url>", methods=["PATCH"])
@require_admin
def update_source(url):
    url = MERGED_SCHEME_RE.sub(r'\1://', url)
    body = _json_body()
    enabled = body.get("enabled")
    try:
        source = SourceRegistry(db.session).update_source(
            url,
            priority_score=to_int(body.get("priority_score"), field="priority_score"),
            enabled=None if enabled is None else to_bool(enabled, field="enabled"),
            notes=body.get("notes"),
        )
    except SourceNotFoundError:
        return error_response("NOT_FOUND", f"Source {url} not found", 404)
    logger.info(f"Source {url} updated by {g.admin_id}")
    return jsonify({"source": source.to_dict()})


# =============================================================================
# Learning
# =============================================================================

@admin_bp.route("/feedback/stats", methods=["GET"])
@require_admin
def feedback_stats():
    stats = LearningService(db.session).feedback_stats(
        days=to_int(request.args.get("days"), minimum=1, maximum=365, field="days"),
        source_url=request.args.get("source_url") or None,
    )
    return jsonify(stats)


@admin_bp.route("/learning/recompute", methods=["POST"])
@require_admin
def recompute_priorities():
    body = _json_body()
    report = LearningService(db.session).recompute(
        dry_run=to_bool(body.get("dry_run"), field="dry_run")
    )
    return jsonify(report)
