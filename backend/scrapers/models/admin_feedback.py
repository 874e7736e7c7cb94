"""
Admin Feedback Model - Append-only log of admin review actions.

One row per admin action on a pending show. The learning engine aggregates
these rows (approve/reject counts per source) to recompute source priority.
Rows are never updated or deleted.
"""
from datetime import datetime
from models.database import db


class AdminFeedback(db.Model):
    """Structured feedback recorded with every review action."""

    __tablename__ = "admin_feedback"

    id = db.Column(db.Integer, primary_key=True)
    pending_id = db.Column(
        db.Integer,
        db.ForeignKey("pending_shows.id"),
        nullable=False,
        index=True,
    )
    # Denormalized from the pending show so aggregation needs no join
    source_url = db.Column(db.String(2048), nullable=False, index=True)

    admin_id = db.Column(db.String(100), nullable=False)
    action = db.Column(db.String(20), nullable=False)  # approve, reject, edit
    feedback_tags = db.Column(db.JSON, nullable=False, default=list)
    free_text = db.Column(db.Text)
    patch = db.Column(db.JSON)  # fields changed by an edit
    review_cycle = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    __table_args__ = (
        db.Index("ix_admin_feedback_source_created", "source_url", "created_at"),
        db.CheckConstraint(
            "action IN ('approve', 'reject', 'edit')",
            name="admin_feedback_action_check",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pending_id": self.pending_id,
            "source_url": self.source_url,
            "admin_id": self.admin_id,
            "action": self.action,
            "feedback_tags": self.feedback_tags or [],
            "free_text": self.free_text,
            "patch": self.patch,
            "review_cycle": self.review_cycle,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AdminFeedback {self.id} {self.action} pending={self.pending_id}>"
