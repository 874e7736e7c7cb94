"""
Learning Service - recomputes source priority from admin feedback.

    score = 50 + 2 * approved - 3 * rejected - error_streak   (clamped to 0..100)

approved/rejected count AdminFeedback rows for the source inside the
window (LEARNING_WINDOW_DAYS). A source whose new score falls below
LEARNING_DISABLE_FLOOR is disabled with reason 'low_priority'. Disabled
sources are never re-enabled here; that stays an admin decision.

Usage:
    service = LearningService(db.session)
    report = service.recompute(dry_run=True)
"""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import (
    ACTION_APPROVE,
    ACTION_EDIT,
    ACTION_REJECT,
    DISABLED_REASON_LOW_PRIORITY,
    FEEDBACK_TAGS,
    PRIORITY_APPROVAL_WEIGHT,
    PRIORITY_BASE,
    PRIORITY_MAX,
    PRIORITY_MIN,
    PRIORITY_REJECTION_WEIGHT,
)
from scrapers.models import AdminFeedback, ScrapingSource

logger = logging.getLogger(__name__)


def compute_priority_score(approved: int, rejected: int, error_streak: int) -> int:
    score = (
        PRIORITY_BASE
        + PRIORITY_APPROVAL_WEIGHT * approved
        - PRIORITY_REJECTION_WEIGHT * rejected
        - error_streak
    )
    return max(PRIORITY_MIN, min(PRIORITY_MAX, score))


class LearningService:
    """Feedback-driven source priority and feedback statistics."""

    def __init__(self, db_session, window_days: int = None, disable_floor: int = None):
        self.db_session = db_session
        self.window_days = window_days if window_days is not None else Config.LEARNING_WINDOW_DAYS
        self.disable_floor = disable_floor if disable_floor is not None else Config.LEARNING_DISABLE_FLOOR

    def _action_counts(self, since: datetime) -> Dict[str, Counter]:
        rows = (
            self.db_session.query(
                AdminFeedback.source_url, AdminFeedback.action, func.count(AdminFeedback.id)
            )
            .filter(
                AdminFeedback.created_at >= since,
                AdminFeedback.action.in_([ACTION_APPROVE, ACTION_REJECT]),
            )
            .group_by(AdminFeedback.source_url, AdminFeedback.action)
            .all()
        )
        counts: Dict[str, Counter] = defaultdict(Counter)
        for source_url, action, count in rows:
            counts[source_url][action] = count
        return counts

    def recompute(self, dry_run: bool = False, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Recompute every source's priority.

        Args:
            dry_run: report planned changes without writing
            now: reference time for the window (injectable for tests)

        Returns:
            {"dry_run", "window_days", "sources", "changed", "disabled", "changes": [...]}
        """
        now = now or datetime.utcnow()
        since = now - timedelta(days=self.window_days)
        counts = self._action_counts(since)

        changes = []
        try:
            sources = self.db_session.query(ScrapingSource).order_by(ScrapingSource.url.asc()).all()
            for source in sources:
                approved = counts[source.url][ACTION_APPROVE]
                rejected = counts[source.url][ACTION_REJECT]
                new_score = compute_priority_score(approved, rejected, source.error_streak)
                disable = source.enabled and new_score < self.disable_floor

                if new_score != source.priority_score or disable:
                    changes.append({
                        "url": source.url,
                        "old_score": source.priority_score,
                        "new_score": new_score,
                        "approved": approved,
                        "rejected": rejected,
                        "error_streak": source.error_streak,
                        "disable": disable,
                    })
                if dry_run:
                    continue

                values = {
                    ScrapingSource.priority_score: new_score,
                    ScrapingSource.last_recomputed_at: now,
                }
                if disable:
                    values[ScrapingSource.enabled] = False
                    values[ScrapingSource.disabled_reason] = DISABLED_REASON_LOW_PRIORITY
                self.db_session.query(ScrapingSource).filter(
                    ScrapingSource.url == source.url
                ).update(values, synchronize_session=False)

            if not dry_run:
                self.db_session.commit()
                self.db_session.expire_all()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

        disabled = [c["url"] for c in changes if c["disable"]]
        for url in disabled:
            logger.warning(f"Source {url} {'would be' if dry_run else 'was'} disabled for low priority")
        logger.info(
            f"Priority recompute{' (dry run)' if dry_run else ''}: "
            f"{len(sources)} source(s), {len(changes)} changed, {len(disabled)} disabled"
        )
        return {
            "dry_run": dry_run,
            "window_days": self.window_days,
            "sources": len(sources),
            "changed": len(changes),
            "disabled": disabled,
            "changes": changes,
        }

    def feedback_stats(self, days: Optional[int] = None, source_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Feedback tag counts and action totals, overall and per source.

        Tag percentages are relative to the number of rejections.
        """
        days = days if days is not None else self.window_days
        since = datetime.utcnow() - timedelta(days=days)
        query = self.db_session.query(AdminFeedback).filter(AdminFeedback.created_at >= since)
        if source_url:
            query = query.filter(AdminFeedback.source_url == source_url)

        tag_totals: Counter = Counter()
        per_source: Dict[str, Dict[str, Any]] = {}
        totals = Counter()
        for row in query.all():
            totals[row.action] += 1
            entry = per_source.setdefault(row.source_url, {
                "source_url": row.source_url,
                "approved": 0,
                "rejected": 0,
                "edited": 0,
                "tags": Counter(),
            })
            if row.action == ACTION_APPROVE:
                entry["approved"] += 1
            elif row.action == ACTION_REJECT:
                entry["rejected"] += 1
            elif row.action == ACTION_EDIT:
                entry["edited"] += 1
            for tag in row.feedback_tags or []:
                if tag in FEEDBACK_TAGS:
                    tag_totals[tag] += 1
                    entry["tags"][tag] += 1

        rejections = totals[ACTION_REJECT]
        tags = [
            {
                "tag": tag,
                "count": count,
                "percentage": round(100.0 * count / rejections, 1) if rejections else 0.0,
            }
            for tag, count in tag_totals.most_common()
        ]
        sources = []
        for entry in sorted(per_source.values(), key=lambda e: e["source_url"]):
            entry["tags"] = dict(entry["tags"].most_common())
            sources.append(entry)

        return {
            "window_days": days,
            "total_feedback": sum(totals.values()),
            "approved": totals[ACTION_APPROVE],
            "rejected": rejections,
            "edited": totals[ACTION_EDIT],
            "tags": tags,
            "by_source": sources,
        }
