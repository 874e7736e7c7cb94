"""
Review Service - admin review gateway for pending shows.

The only path from staging to production_shows. Every operation:
- runs in a single transaction (rollback on any failure, no partial state)
- changes status with a compare-and-set UPDATE, so a concurrent reviewer
  who got there first makes the second action fail with InvalidTransitionError
- appends exactly one AdminFeedback row per affected pending show

Usage:
    service = ReviewService(db.session)
    pending, show = service.approve(42, admin_id="admin@example.com")
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import Config
from constants import (
    ACTION_APPROVE,
    ACTION_EDIT,
    ACTION_REJECT,
    DUPLICATE_RESOLUTIONS,
    FEEDBACK_TAGS,
    NORMALIZED_FIELDS,
    PENDING_STATUSES,
    REVIEWABLE_STATUSES,
    STATUS_APPROVED,
    STATUS_DUPLICATE,
    STATUS_EXTRACT_ERROR,
    STATUS_PENDING,
    STATUS_REJECTED,
    TERMINAL_STATUSES,
)
from models.production_show import ProductionShow
from scrapers.models import AdminFeedback, PendingShow
from scrapers.models.pending_show import payload_start_date
from scrapers.promoters import ShowPromoter
from services.normalization import normalize_show
from services.quality import compute_quality_score, find_potential_issues
from services.review_errors import (
    BatchSizeExceededError,
    FeedbackRequiredError,
    InvalidTransitionError,
    PublishConflictError,
    ReviewError,
    ShowNotFoundError,
)
from utils.normalize import ValidationError

logger = logging.getLogger(__name__)

# Fields whose change invalidates the stored geocode
LOCATION_FIELDS = ("venue_name", "address", "city", "state", "zip_code")

DUPLICATE_TAG = "DUPLICATE"


def validate_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Tags must come from the fixed feedback taxonomy."""
    result = []
    for tag in tags or []:
        if not isinstance(tag, str) or tag.strip().upper() not in FEEDBACK_TAGS:
            raise ValidationError(
                f"Unknown feedback tag {tag!r}. Expected one of {FEEDBACK_TAGS}",
                field="tags",
                received_value=tag,
            )
        normalized = tag.strip().upper()
        if normalized not in result:
            result.append(normalized)
    return result


def validate_patch(patch: Any) -> Dict[str, Any]:
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("patch must be a non-empty object", field="patch", received_value=patch)
    unknown = sorted(set(patch) - set(NORMALIZED_FIELDS))
    if unknown:
        raise ValidationError(
            f"patch contains fields that cannot be edited: {unknown}",
            field="patch",
            received_value=unknown,
        )
    return dict(patch)


class ReviewService:
    """Admin review operations over the staging store."""

    def __init__(self, db_session, batch_max: int = None, promoter: ShowPromoter = None,
                 today: Optional[date] = None):
        self.db_session = db_session
        self.batch_max = batch_max if batch_max is not None else Config.REVIEW_BATCH_MAX
        self.promoter = promoter or ShowPromoter(db_session)
        self.today = today

    # =========================================================================
    # Queries
    # =========================================================================

    def list_pending(self, status: Optional[str] = STATUS_PENDING, source_url: Optional[str] = None,
                     include_invalid: bool = False, min_quality: Optional[int] = None,
                     limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """
        Page through staged shows, oldest first.

        Rows that failed validation (no name and no start date) are hidden
        unless include_invalid is set. Valid PENDING rows appear only once
        the dedup check has run.
        """
        query = self.db_session.query(PendingShow).filter(
            or_(
                PendingShow.status != STATUS_PENDING,
                PendingShow.is_valid.is_(False),
                PendingShow.dedup_checked_at.isnot(None),
            )
        )
        if status:
            if status not in PENDING_STATUSES:
                raise ValidationError(f"Unknown status {status!r}", field="status", received_value=status)
            query = query.filter(PendingShow.status == status)
        if source_url:
            query = query.filter(PendingShow.source_url == source_url)
        if not include_invalid:
            query = query.filter(PendingShow.is_valid.is_(True))
        if min_quality is not None:
            query = query.filter(PendingShow.quality_score >= min_quality)

        total = query.count()
        rows = query.order_by(PendingShow.created_at.asc(), PendingShow.id.asc()).offset(offset).limit(limit).all()

        items = []
        for row in rows:
            item = row.to_dict()
            item["potential_issues"] = find_potential_issues(
                row.raw_payload if isinstance(row.raw_payload, dict) else None
            )
            items.append(item)
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def get(self, pending_id: int) -> PendingShow:
        pending = self.db_session.get(PendingShow, pending_id)
        if pending is None:
            raise ShowNotFoundError(f"Pending show {pending_id} not found", pending_id=pending_id)
        return pending

    def get_detail(self, pending_id: int) -> Dict[str, Any]:
        """Pending show with raw payload, feedback history, duplicate target and published row."""
        pending = self.get(pending_id)
        data = pending.to_dict(include_raw=True)
        data["potential_issues"] = find_potential_issues(
            pending.raw_payload if isinstance(pending.raw_payload, dict) else None
        )
        data["feedback"] = [fb.to_dict() for fb in pending.feedback]

        if pending.duplicate_of_pending_id:
            other = self.db_session.get(PendingShow, pending.duplicate_of_pending_id)
            data["duplicate_of"] = other.to_dict() if other else None
        elif pending.duplicate_of_show_id:
            show = self.db_session.get(ProductionShow, pending.duplicate_of_show_id)
            data["duplicate_of"] = show.to_dict() if show else None

        show = self.db_session.query(ProductionShow).filter_by(pending_id=pending.id).first()
        data["production_show"] = show.to_dict() if show else None
        return data

    # =========================================================================
    # Single-record actions
    # =========================================================================

    def approve(self, pending_id: int, admin_id: str, tags: Optional[List[str]] = None,
                free_text: Optional[str] = None) -> Tuple[PendingShow, ProductionShow]:
        """
        Approve and publish one pending show.

        Raises:
            ShowNotFoundError, InvalidTransitionError, PublishConflictError
        """
        tags = validate_tags(tags)
        with self._transaction(pending_id):
            pending = self._load(pending_id)
            show = self._approve_row(pending, admin_id, tags, free_text)
        logger.info(f"Pending {pending_id} approved by {admin_id} as show {show.id}")
        return pending, show

    def reject(self, pending_id: int, admin_id: str, tags: Optional[List[str]],
               free_text: Optional[str] = None) -> PendingShow:
        """
        Reject one pending show. At least one taxonomy tag is required.

        Raises:
            FeedbackRequiredError, ShowNotFoundError, InvalidTransitionError
        """
        tags = self._require_tags(tags)
        with self._transaction(pending_id):
            pending = self._load(pending_id)
            self._reject_row(pending, admin_id, tags, free_text)
        logger.info(f"Pending {pending_id} rejected by {admin_id} ({', '.join(tags)})")
        return pending

    def edit(self, pending_id: int, admin_id: str, patch: Dict[str, Any], then_approve: bool = False,
             tags: Optional[List[str]] = None, free_text: Optional[str] = None
             ) -> Tuple[PendingShow, Optional[ProductionShow]]:
        """
        Apply an admin patch to the normalized payload and re-normalize.

        A terminal (APPROVED/REJECTED) record is re-opened: status returns to
        PENDING and review_cycle is incremented, keeping the same id. With
        then_approve the record is published in the same transaction; an
        existing production show for it is updated in place.

        Returns:
            (pending, show) where show is None unless then_approve
        """
        patch = validate_patch(patch)
        tags = validate_tags(tags)
        show = None
        with self._transaction(pending_id):
            pending = self._load(pending_id)
            self._apply_patch(pending, patch)
            if then_approve:
                show = self._approve_row(pending, admin_id, tags, free_text, patch=patch)
            else:
                self._add_feedback(pending, admin_id, ACTION_EDIT, tags, free_text, patch=patch)
        logger.info(
            f"Pending {pending_id} edited by {admin_id} ({', '.join(sorted(patch))})"
            + (f", published as show {show.id}" if show else "")
        )
        return pending, show

    # =========================================================================
    # Batch
    # =========================================================================

    def batch(self, action: str, pending_ids: List[int], admin_id: str,
              tags: Optional[List[str]] = None, free_text: Optional[str] = None) -> Dict[str, Any]:
        """
        Approve or reject many records in one transaction, all or nothing.

        The size cap is checked before any record is touched.

        Raises:
            BatchSizeExceededError: more than batch_max ids
            ReviewError: any record fails; nothing is applied
        """
        if action not in (ACTION_APPROVE, ACTION_REJECT):
            raise ValidationError(
                f"Batch action must be '{ACTION_APPROVE}' or '{ACTION_REJECT}'",
                field="action",
                received_value=action,
            )
        ids = list(dict.fromkeys(pending_ids or []))
        if len(ids) > self.batch_max:
            raise BatchSizeExceededError(
                f"Batch of {len(ids)} exceeds the maximum of {self.batch_max} records"
            )
        if not ids:
            raise ValidationError("ids must not be empty", field="ids", received_value=pending_ids)
        tags = self._require_tags(tags) if action == ACTION_REJECT else validate_tags(tags)

        show_ids = []
        with self._transaction():
            for pending_id in ids:
                pending = self._load(pending_id)
                if action == ACTION_APPROVE:
                    show_ids.append(self._approve_row(pending, admin_id, tags, free_text).id)
                else:
                    self._reject_row(pending, admin_id, tags, free_text)

        logger.info(f"Batch {action} of {len(ids)} record(s) by {admin_id}")
        result = {"action": action, "count": len(ids), "ids": ids}
        if action == ACTION_APPROVE:
            result["show_ids"] = show_ids
        return result

    # =========================================================================
    # Duplicate resolution
    # =========================================================================

    def resolve_duplicate(self, pending_id: int, resolution: str, admin_id: str,
                          free_text: Optional[str] = None) -> Dict[str, Any]:
        """
        Settle a DUPLICATE flag.

        - keep_both:   the flagged row returns to PENDING
        - keep_newer:  the flagged row returns to PENDING, the earlier pending row is rejected
        - reject_both: the flagged row and the earlier pending row are rejected
        - merge:       empty fields of the earlier pending row are filled from the
                       flagged row, which is then rejected

        keep_newer and merge need a pending counterpart; a published show is
        never changed here.
        """
        if resolution not in DUPLICATE_RESOLUTIONS:
            raise ValidationError(
                f"Unknown resolution {resolution!r}. Expected one of {DUPLICATE_RESOLUTIONS}",
                field="resolution",
                received_value=resolution,
            )

        with self._transaction(pending_id):
            pending = self._load(pending_id)
            if pending.status != STATUS_DUPLICATE:
                raise InvalidTransitionError(
                    f"Pending show {pending_id} is {pending.status}, not {STATUS_DUPLICATE}",
                    pending_id=pending_id,
                )

            counterpart = None
            if pending.duplicate_of_pending_id:
                counterpart = self._load(pending.duplicate_of_pending_id)
                if counterpart.status not in REVIEWABLE_STATUSES:
                    counterpart = None
            if resolution in ("keep_newer", "merge") and counterpart is None:
                raise InvalidTransitionError(
                    f"'{resolution}' needs an unreviewed pending counterpart",
                    pending_id=pending_id,
                )

            note = {"dedup_resolution": resolution}
            affected = [pending.id]
            if resolution in ("keep_both", "keep_newer"):
                self._cas_status(pending, STATUS_PENDING, admin_id, [STATUS_DUPLICATE], reviewed=False)
                pending.dedup_resolved = True
                self._add_feedback(pending, admin_id, ACTION_EDIT, [], free_text, patch=note)
                if resolution == "keep_newer":
                    self._reject_row(counterpart, admin_id, [DUPLICATE_TAG], free_text)
                    affected.append(counterpart.id)
            elif resolution == "reject_both":
                self._reject_row(pending, admin_id, [DUPLICATE_TAG], free_text)
                pending.dedup_resolved = True
                if counterpart is not None:
                    self._reject_row(counterpart, admin_id, [DUPLICATE_TAG], free_text)
                    affected.append(counterpart.id)
            else:
                filled = self._merge_into(counterpart, pending)
                self._add_feedback(counterpart, admin_id, ACTION_EDIT, [], free_text,
                                   patch=dict(filled, **note) if filled else note)
                self._reject_row(pending, admin_id, [DUPLICATE_TAG], free_text)
                pending.dedup_resolved = True
                affected.append(counterpart.id)

        logger.info(f"Duplicate {pending_id} resolved as {resolution} by {admin_id}")
        return {"id": pending_id, "resolution": resolution, "affected_ids": affected}

    # =========================================================================
    # Internals
    # =========================================================================

    @contextmanager
    def _transaction(self, pending_id: Optional[int] = None):
        """Commit on success; roll back and re-raise on any error."""
        try:
            yield
            self.db_session.commit()
        except IntegrityError as e:
            self.db_session.rollback()
            raise PublishConflictError(
                "A published show with the same title, date and city already exists",
                pending_id=pending_id,
            ) from e
        except (ReviewError, ValidationError, SQLAlchemyError):
            self.db_session.rollback()
            raise

    def _load(self, pending_id: int) -> PendingShow:
        """Load and row-lock a pending show inside the current transaction."""
        pending = (
            self.db_session.query(PendingShow)
            .filter(PendingShow.id == pending_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if pending is None:
            raise ShowNotFoundError(f"Pending show {pending_id} not found", pending_id=pending_id)
        return pending

    def _require_tags(self, tags) -> List[str]:
        tags = validate_tags(tags)
        if not tags:
            raise FeedbackRequiredError(
                f"Rejection requires at least one tag from {FEEDBACK_TAGS}"
            )
        return tags

    def _cas_status(self, pending: PendingShow, to_status: str, admin_id: str,
                    allowed: List[str], reviewed: bool = True):
        """
        Move a row to `to_status` only if it is still in one of `allowed`
        and nobody bumped its review cycle in between.
        """
        if pending.status not in allowed:
            raise InvalidTransitionError(
                f"Pending show {pending.id} is {pending.status}; expected one of {allowed}",
                pending_id=pending.id,
            )
        self.db_session.flush()
        now = datetime.utcnow()
        values = {PendingShow.status: to_status}
        if reviewed:
            values[PendingShow.reviewed_by] = admin_id
            values[PendingShow.reviewed_at] = now
        updated = (
            self.db_session.query(PendingShow)
            .filter(
                PendingShow.id == pending.id,
                PendingShow.status.in_(allowed),
                PendingShow.review_cycle == pending.review_cycle,
            )
            .update(values, synchronize_session=False)
        )
        if not updated:
            raise InvalidTransitionError(
                f"Pending show {pending.id} was changed by another reviewer",
                pending_id=pending.id,
            )
        pending.status = to_status
        if reviewed:
            pending.reviewed_by = admin_id
            pending.reviewed_at = now

    def _approve_row(self, pending: PendingShow, admin_id: str, tags: List[str],
                     free_text: Optional[str], patch: Optional[Dict[str, Any]] = None) -> ProductionShow:
        if pending.status == STATUS_EXTRACT_ERROR or pending.normalized_payload is None:
            raise InvalidTransitionError(
                f"Pending show {pending.id} has no normalized payload to publish",
                pending_id=pending.id,
            )
        if pending.status == STATUS_PENDING and pending.is_valid and pending.dedup_checked_at is None:
            raise InvalidTransitionError(
                f"Pending show {pending.id} has not been checked for duplicates yet",
                pending_id=pending.id,
            )
        self._cas_status(pending, STATUS_APPROVED, admin_id, REVIEWABLE_STATUSES)
        if pending.duplicate_of_pending_id or pending.duplicate_of_show_id:
            pending.dedup_resolved = True
        show = self.promoter.project_to_domain(pending)
        self._add_feedback(pending, admin_id, ACTION_APPROVE, tags, free_text, patch=patch)
        return show

    def _reject_row(self, pending: PendingShow, admin_id: str, tags: List[str], free_text: Optional[str]):
        self._cas_status(pending, STATUS_REJECTED, admin_id, REVIEWABLE_STATUSES)
        if free_text:
            pending.admin_notes = free_text
        self._add_feedback(pending, admin_id, ACTION_REJECT, tags, free_text)

    def _apply_patch(self, pending: PendingShow, patch: Dict[str, Any]):
        if pending.status == STATUS_EXTRACT_ERROR:
            raise InvalidTransitionError(
                f"Pending show {pending.id} is an extraction error and cannot be edited",
                pending_id=pending.id,
            )

        before = dict(pending.normalized_payload or {})
        merged = dict(before)
        merged.update(patch)
        # Times edited on their own replace the old hours string
        if ('start_time' in patch or 'end_time' in patch) and 'show_hours' not in patch:
            merged['show_hours'] = None
        result = normalize_show(merged, today=self.today)

        pending.normalized_payload = result.payload
        pending.start_date = payload_start_date(result.payload)
        pending.validation_warnings = result.warnings
        pending.is_valid = result.is_valid
        pending.quality_score = compute_quality_score(result.payload)
        pending.normalized_at = datetime.utcnow()

        if any(before.get(f) != result.payload.get(f) for f in LOCATION_FIELDS):
            pending.geocoded_payload = None
            pending.geocode_attempted_at = None

        if pending.status in TERMINAL_STATUSES:
            self._reopen(pending)

    def _reopen(self, pending: PendingShow):
        previous = pending.status
        self.db_session.flush()
        updated = (
            self.db_session.query(PendingShow)
            .filter(
                PendingShow.id == pending.id,
                PendingShow.status == previous,
                PendingShow.review_cycle == pending.review_cycle,
            )
            .update(
                {
                    PendingShow.status: STATUS_PENDING,
                    PendingShow.review_cycle: PendingShow.review_cycle + 1,
                    PendingShow.reviewed_at: None,
                    PendingShow.reviewed_by: None,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise InvalidTransitionError(
                f"Pending show {pending.id} was changed by another reviewer",
                pending_id=pending.id,
            )
        self.db_session.refresh(pending)
        logger.info(f"Pending {pending.id} re-opened from {previous} (cycle {pending.review_cycle})")

    def _merge_into(self, target: PendingShow, source: PendingShow) -> Dict[str, Any]:
        """Fill empty normalized fields of target from source."""
        target_payload = dict(target.normalized_payload or {})
        source_payload = source.normalized_payload or {}
        filled = {
            key: source_payload[key]
            for key in NORMALIZED_FIELDS
            if target_payload.get(key) in (None, "") and source_payload.get(key) not in (None, "")
        }
        if filled:
            target_payload.update(filled)
            target.normalized_payload = target_payload
            target.start_date = payload_start_date(target_payload)
            target.quality_score = compute_quality_score(target_payload)
        return filled

    def _add_feedback(self, pending: PendingShow, admin_id: str, action: str, tags: List[str],
                      free_text: Optional[str], patch: Optional[Dict[str, Any]] = None) -> AdminFeedback:
        feedback = AdminFeedback(
            pending_id=pending.id,
            source_url=pending.source_url,
            admin_id=admin_id,
            action=action,
            feedback_tags=list(tags or []),
            free_text=free_text,
            patch=patch,
            review_cycle=pending.review_cycle,
        )
        self.db_session.add(feedback)
        return feedback

    # =========================================================================
    # Counts
    # =========================================================================

    def status_counts(self) -> Dict[str, int]:
        rows = (
            self.db_session.query(PendingShow.status, func.count(PendingShow.id))
            .group_by(PendingShow.status)
            .all()
        )
        counts = {status: 0 for status in PENDING_STATUSES}
        counts.update({status: count for status, count in rows})
        return counts
