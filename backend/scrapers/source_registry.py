"""
Source Registry - scheduling and outcome tracking for scrape targets.

Scheduling contract:
- next_batch(n) returns up to n enabled sources, highest priority first,
  never-successful sources first among ties (last_success_at NULLS FIRST)
- selection and the lease claim happen in one transaction, so two
  overlapping invocations never receive the same source
- record_outcome() updates error_streak with a single UPDATE expression;
  nothing is counted in process memory

Usage:
    registry = SourceRegistry(db.session)
    for source in registry.next_batch(10, claimed_by=run.run_id):
        ...
        registry.record_outcome(source.url, success=True)
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import (
    PRIORITY_BASE,
    PRIORITY_MAX,
    PRIORITY_MIN,
    DISABLED_REASON_ERROR_STREAK,
    DISABLED_REASON_MANUAL,
)
from scrapers.models import ScrapingSource
from utils.normalize import ValidationError

logger = logging.getLogger(__name__)


class SourceNotFoundError(LookupError):
    """No scraping source with the given URL."""


def validate_source_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Source URL must be http(s): {url!r}", field="url", received_value=url)
    return url


def validate_priority(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("priority_score must be an integer", field="priority_score", received_value=value)
    if not PRIORITY_MIN <= value <= PRIORITY_MAX:
        raise ValidationError(
            f"priority_score must be between {PRIORITY_MIN} and {PRIORITY_MAX}",
            field="priority_score",
            received_value=value,
        )
    return value


class SourceRegistry:
    """Durable registry of scrape targets with adaptive priority."""

    def __init__(self, db_session, error_streak_limit: int = None, claim_ttl_minutes: int = None):
        self.db_session = db_session
        self.error_streak_limit = (
            error_streak_limit if error_streak_limit is not None else Config.SOURCE_ERROR_STREAK_LIMIT
        )
        self.claim_ttl_minutes = (
            claim_ttl_minutes if claim_ttl_minutes is not None else Config.SOURCE_CLAIM_TTL_MINUTES
        )

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _unclaimed(self, now: datetime):
        return or_(
            ScrapingSource.claimed_until.is_(None),
            ScrapingSource.claimed_until < now,
        )

    def next_batch(self, n: int, claimed_by: str) -> List[ScrapingSource]:
        """
        Select and claim up to n sources in one transaction.

        Rows are locked with FOR UPDATE SKIP LOCKED where the database
        supports it; the claim UPDATE re-checks the lease so a row taken by
        a concurrent invocation in between is skipped, not double-claimed.

        Args:
            n: maximum batch size
            claimed_by: run id stamped on the lease

        Returns:
            Claimed sources in scheduling order
        """
        if n <= 0:
            return []

        now = datetime.utcnow()
        lease_until = now + timedelta(minutes=self.claim_ttl_minutes)

        try:
            candidates = (
                self.db_session.query(ScrapingSource)
                .filter(ScrapingSource.enabled.is_(True), self._unclaimed(now))
                .order_by(
                    ScrapingSource.priority_score.desc(),
                    ScrapingSource.last_success_at.asc().nulls_first(),
                    ScrapingSource.url.asc(),
                )
                .limit(n)
                .with_for_update(skip_locked=True)
                .all()
            )

            claimed_urls = []
            for source in candidates:
                updated = (
                    self.db_session.query(ScrapingSource)
                    .filter(
                        ScrapingSource.url == source.url,
                        ScrapingSource.enabled.is_(True),
                        self._unclaimed(now),
                    )
                    .update(
                        {
                            ScrapingSource.claimed_until: lease_until,
                            ScrapingSource.claimed_by: claimed_by,
                        },
                        synchronize_session=False,
                    )
                )
                if updated:
                    claimed_urls.append(source.url)

            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

        logger.info(f"Claimed {len(claimed_urls)} source(s) for run {claimed_by}")
        if not claimed_urls:
            return []
        by_url = {
            source.url: source
            for source in self.db_session.query(ScrapingSource)
            .filter(ScrapingSource.url.in_(claimed_urls))
            .populate_existing()
            .all()
        }
        return [by_url[url] for url in claimed_urls]

    def record_outcome(self, url: str, success: bool, error_message: Optional[str] = None) -> ScrapingSource:
        """
        Record a fetch/extraction outcome and release the claim.

        Success resets error_streak; failure increments it in SQL and
        disables the source once the streak exceeds the limit.
        """
        now = datetime.utcnow()
        query = self.db_session.query(ScrapingSource).filter(ScrapingSource.url == url)

        try:
            if success:
                values = {
                    ScrapingSource.last_success_at: now,
                    ScrapingSource.error_streak: 0,
                    ScrapingSource.claimed_until: None,
                    ScrapingSource.claimed_by: None,
                }
            else:
                values = {
                    ScrapingSource.last_error_at: now,
                    ScrapingSource.last_error_message: (error_message or "")[:2000] or None,
                    ScrapingSource.error_streak: ScrapingSource.error_streak + 1,
                    ScrapingSource.claimed_until: None,
                    ScrapingSource.claimed_by: None,
                }
            if not query.update(values, synchronize_session=False):
                raise SourceNotFoundError(url)

            if not success:
                disabled = (
                    self.db_session.query(ScrapingSource)
                    .filter(
                        ScrapingSource.url == url,
                        ScrapingSource.enabled.is_(True),
                        ScrapingSource.error_streak > self.error_streak_limit,
                    )
                    .update(
                        {
                            ScrapingSource.enabled: False,
                            ScrapingSource.disabled_reason: DISABLED_REASON_ERROR_STREAK,
                        },
                        synchronize_session=False,
                    )
                )
                if disabled:
                    logger.warning(
                        f"Source {url} disabled after exceeding {self.error_streak_limit} consecutive errors"
                    )
            self.db_session.commit()
        except (SQLAlchemyError, SourceNotFoundError):
            self.db_session.rollback()
            raise

        return self.get_source(url, refresh=True)

    def release_claim(self, url: str) -> None:
        """Drop the lease without recording an outcome (model API outage)."""
        try:
            self.db_session.query(ScrapingSource).filter(ScrapingSource.url == url).update(
                {ScrapingSource.claimed_until: None, ScrapingSource.claimed_by: None},
                synchronize_session=False,
            )
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

    # =========================================================================
    # Administration
    # =========================================================================

    def get_source(self, url: str, refresh: bool = False) -> ScrapingSource:
        query = self.db_session.query(ScrapingSource).filter(ScrapingSource.url == url)
        if refresh:
            query = query.populate_existing()
        source = query.first()
        if not source:
            raise SourceNotFoundError(url)
        return source

    def list_sources(self, enabled: Optional[bool] = None) -> List[ScrapingSource]:
        query = self.db_session.query(ScrapingSource)
        if enabled is not None:
            query = query.filter(ScrapingSource.enabled.is_(enabled))
        return query.order_by(
            ScrapingSource.priority_score.desc(), ScrapingSource.url.asc()
        ).all()

    def add_source(self, url: str, priority_score: int = PRIORITY_BASE,
                   notes: Optional[str] = None) -> Tuple[ScrapingSource, bool]:
        """
        Onboard a source. Idempotent: an existing URL is returned unchanged.

        Returns:
            (source, created)
        """
        url = validate_source_url(url)
        priority_score = validate_priority(priority_score)

        existing = self.db_session.query(ScrapingSource).filter_by(url=url).first()
        if existing:
            return existing, False

        source = ScrapingSource(url=url, priority_score=priority_score, notes=notes)
        self.db_session.add(source)
        try:
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        logger.info(f"Added scraping source {url} (priority {priority_score})")
        return source, True

    def import_sources(self, lines: Iterable[str], priority_score: int = PRIORITY_BASE) -> dict:
        """Onboard one URL per line; blank lines and '#' comments skipped."""
        stats = {"added": 0, "existing": 0, "invalid": 0}
        for line in lines:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            try:
                _, created = self.add_source(url, priority_score=priority_score)
            except ValidationError as e:
                logger.warning(f"Skipping source line {url!r}: {e}")
                stats["invalid"] += 1
                continue
            stats["added" if created else "existing"] += 1
        return stats

    def update_source(self, url: str, priority_score: Optional[int] = None,
                      enabled: Optional[bool] = None, notes: Optional[str] = None) -> ScrapingSource:
        """
        Administrative adjustment of priority, enabled state or notes.

        Re-enabling clears the error streak so the next failure does not
        immediately disable the source again.
        """
        source = self.get_source(url)
        if priority_score is not None:
            source.priority_score = validate_priority(priority_score)
        if notes is not None:
            source.notes = notes
        if enabled is not None and enabled != source.enabled:
            source.enabled = enabled
            if enabled:
                source.error_streak = 0
                source.disabled_reason = None
            else:
                source.disabled_reason = DISABLED_REASON_MANUAL
            logger.info(f"Source {url} {'enabled' if enabled else 'disabled'} by admin")
        try:
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        return source

    def set_enabled(self, url: str, enabled: bool) -> ScrapingSource:
        return self.update_source(url, enabled=enabled)
