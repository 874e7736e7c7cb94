"""
Pipeline Run Model - Job tracking for batch invocations.

Tracks:
- Run lifecycle (running -> completed/failed)
- Per-stage counters (sources claimed, candidates staged, duplicates flagged...)
- Configuration snapshot for reproducibility
"""
from datetime import datetime
from uuid import uuid4
from models.database import db


RUN_COUNTERS = (
    "sources_claimed",
    "sources_failed",
    "candidates_staged",
    "extract_errors",
    "normalized",
    "geocoded",
    "duplicates_flagged",
)


class PipelineRun(db.Model):
    """One batch invocation of the ingestion pipeline."""

    __tablename__ = "pipeline_runs"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(
        db.String(36),
        unique=True,
        nullable=False,
        default=lambda: str(uuid4()),
        index=True,
    )

    status = db.Column(
        db.String(20), nullable=False, default="running", index=True
    )  # running, completed, failed
    triggered_by = db.Column(db.String(50), default="manual")  # manual, cron
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    sources_claimed = db.Column(db.Integer, default=0)
    sources_failed = db.Column(db.Integer, default=0)
    candidates_staged = db.Column(db.Integer, default=0)
    extract_errors = db.Column(db.Integer, default=0)
    normalized = db.Column(db.Integer, default=0)
    geocoded = db.Column(db.Integer, default=0)
    duplicates_flagged = db.Column(db.Integer, default=0)

    config_snapshot = db.Column(db.JSON, nullable=False, default=dict)
    error_message = db.Column(db.Text)
    error_traceback = db.Column(db.Text)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="pipeline_runs_status_check",
        ),
    )

    def start(self):
        """Mark run as started."""
        self.status = "running"
        self.started_at = datetime.utcnow()

    def complete(self, stats: dict = None):
        """Mark run as completed with stats."""
        self.status = "completed"
        self.completed_at = datetime.utcnow()
        for counter in RUN_COUNTERS:
            if stats and counter in stats:
                setattr(self, counter, stats[counter])

    def fail(self, error: Exception):
        """Mark run as failed with error."""
        import traceback

        self.status = "failed"
        self.completed_at = datetime.utcnow()
        self.error_message = str(error)
        self.error_traceback = traceback.format_exc()

    @property
    def duration_seconds(self) -> float:
        if not self.started_at:
            return 0
        end = self.completed_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        data = {
            "run_id": self.run_id,
            "status": self.status,
            "triggered_by": self.triggered_by,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }
        for counter in RUN_COUNTERS:
            data[counter] = getattr(self, counter) or 0
        return data

    def __repr__(self):
        return f"<PipelineRun {self.run_id[:8]} {self.status}>"
