"""
Pending Show Model - Staging store for extracted show candidates.

Lifecycle:
    raw_payload (extraction) -> normalized_payload -> geocoded_payload
    -> dedup check -> admin review (APPROVED / REJECTED)

Rows are never physically deleted. APPROVED and REJECTED are terminal unless
an administrator edits and re-opens the record, which bumps review_cycle and
keeps the same id.
"""
from datetime import date, datetime
from typing import Optional

from models.database import db

from constants import STATUS_PENDING, QUALITY_WEIGHTS
from services.quality import quality_band


def payload_start_date(payload: Optional[dict]) -> Optional[date]:
    """ISO start_date of a normalized payload as a date, or None."""
    value = (payload or {}).get("start_date")
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class PendingShow(db.Model):
    """A show candidate awaiting normalization, dedup and admin review."""

    __tablename__ = "pending_shows"

    id = db.Column(db.Integer, primary_key=True)

    source_url = db.Column(
        db.String(2048),
        db.ForeignKey("scraping_sources.url"),
        nullable=False,
        index=True,
    )
    run_id = db.Column(db.String(36), index=True)

    # ==========================================================================
    # Payloads
    # ==========================================================================

    raw_payload = db.Column(db.JSON, nullable=False)
    raw_hash = db.Column(db.String(64), nullable=False, index=True)

    normalized_payload = db.Column(db.JSON)
    normalized_at = db.Column(db.DateTime)
    # Copy of normalized_payload["start_date"] for date-window queries
    start_date = db.Column(db.Date, index=True)
    is_valid = db.Column(db.Boolean, nullable=False, default=True)
    validation_warnings = db.Column(db.JSON, nullable=False, default=list)
    quality_score = db.Column(db.Integer)

    geocoded_payload = db.Column(db.JSON)
    geocode_attempted_at = db.Column(db.DateTime)

    # ==========================================================================
    # Dedup
    # ==========================================================================

    duplicate_of_pending_id = db.Column(
        db.Integer, db.ForeignKey("pending_shows.id", ondelete="SET NULL")
    )
    duplicate_of_show_id = db.Column(
        db.Integer,
        db.ForeignKey(
            "production_shows.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_pending_shows_duplicate_of_show",
        ),
    )
    duplicate_score = db.Column(db.Float)
    dedup_checked_at = db.Column(db.DateTime)
    dedup_resolved = db.Column(db.Boolean, nullable=False, default=False)

    # ==========================================================================
    # Review
    # ==========================================================================

    status = db.Column(
        db.String(20), nullable=False, default=STATUS_PENDING, index=True
    )
    admin_notes = db.Column(db.Text)
    review_cycle = db.Column(db.Integer, nullable=False, default=1)
    reviewed_by = db.Column(db.String(100))
    reviewed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    feedback = db.relationship(
        "AdminFeedback",
        backref="pending_show",
        lazy="dynamic",
        order_by="AdminFeedback.id",
    )

    __table_args__ = (
        db.Index("ix_pending_shows_status_created", "status", "created_at"),
        db.Index("ix_pending_shows_source_hash", "source_url", "raw_hash"),
        db.CheckConstraint(
            "status IN ('PENDING', 'EXTRACT_ERROR', 'DUPLICATE', 'APPROVED', 'REJECTED')",
            name="pending_shows_status_check",
        ),
    )

    def effective_payload(self) -> dict:
        """
        Normalized payload with geocoder backfill applied.

        Geocoder values only fill fields the normalizer left null; coordinates
        are added as latitude/longitude.
        """
        payload = dict(self.normalized_payload or {})
        geo = self.geocoded_payload or {}
        for field in ("city", "state", "zip_code"):
            if not payload.get(field) and geo.get(field):
                payload[field] = geo[field]
        coordinates = geo.get("coordinates") or {}
        payload["latitude"] = coordinates.get("latitude")
        payload["longitude"] = coordinates.get("longitude")
        return payload

    @property
    def quality_band(self):
        return quality_band(self.quality_score)

    def to_dict(self, include_raw: bool = False) -> dict:
        """Convert to dictionary for the admin API."""
        data = {
            "id": self.id,
            "source_url": self.source_url,
            "run_id": self.run_id,
            "status": self.status,
            "normalized_payload": self.normalized_payload,
            "geocoded_payload": self.geocoded_payload,
            "is_valid": self.is_valid,
            "warnings": self.validation_warnings or [],
            "quality_score": self.quality_score,
            "quality_band": self.quality_band,
            "quality_max": sum(QUALITY_WEIGHTS.values()),
            "duplicate_of_pending_id": self.duplicate_of_pending_id,
            "duplicate_of_show_id": self.duplicate_of_show_id,
            "duplicate_score": self.duplicate_score,
            "admin_notes": self.admin_notes,
            "review_cycle": self.review_cycle,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_raw:
            data["raw_payload"] = self.raw_payload
        return data

    def __repr__(self):
        name = (self.normalized_payload or {}).get("name") or "?"
        return f"<PendingShow {self.id} {name[:30]} {self.status}>"
