"""
Scraping Source Model - Registry of scrape targets.

Each row is one URL the pipeline fetches. Rows are never deleted; a noisy or
broken source is disabled and can be re-enabled by an administrator.

priority_score is written by the learning engine, error_streak and the
success/error timestamps by fetch outcomes. All writes go through
compare-and-set UPDATEs in scrapers.source_registry, never read-modify-write.
"""
from datetime import datetime
from models.database import db


class ScrapingSource(db.Model):
    """A scrape target with adaptive priority."""

    __tablename__ = "scraping_sources"

    url = db.Column(db.String(2048), primary_key=True)

    priority_score = db.Column(db.Integer, nullable=False, default=50)
    last_success_at = db.Column(db.DateTime)
    last_error_at = db.Column(db.DateTime)
    last_error_message = db.Column(db.Text)
    error_streak = db.Column(db.Integer, nullable=False, default=0)

    enabled = db.Column(db.Boolean, nullable=False, default=True, index=True)
    disabled_reason = db.Column(db.String(50))  # error_streak, low_priority, manual
    notes = db.Column(db.Text)

    # Scheduling lease - set when a batch claims the source
    claimed_until = db.Column(db.DateTime)
    claimed_by = db.Column(db.String(36))

    last_recomputed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    pending_shows = db.relationship(
        "PendingShow", backref="source", lazy="dynamic"
    )

    __table_args__ = (
        db.Index("ix_scraping_sources_schedule", "enabled", "priority_score"),
        db.CheckConstraint(
            "priority_score >= 0 AND priority_score <= 100",
            name="scraping_sources_priority_check",
        ),
        db.CheckConstraint(
            "error_streak >= 0",
            name="scraping_sources_error_streak_check",
        ),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary for the admin API."""
        return {
            "url": self.url,
            "priority_score": self.priority_score,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_error_message": self.last_error_message,
            "error_streak": self.error_streak,
            "enabled": self.enabled,
            "disabled_reason": self.disabled_reason,
            "notes": self.notes,
            "last_recomputed_at": self.last_recomputed_at.isoformat() if self.last_recomputed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        state = "enabled" if self.enabled else "disabled"
        return f"<ScrapingSource {self.url} p={self.priority_score} {state}>"
