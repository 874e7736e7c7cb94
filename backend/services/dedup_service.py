"""
Dedup Service - flags likely duplicate show candidates.

Score = 0.6 * title similarity + 0.25 * location similarity + 0.15 * date proximity

- only pairs whose start dates fall within DEDUP_WINDOW_DAYS are compared
- two known, different cities never match
- a candidate is compared with earlier PENDING/DUPLICATE rows and with
  published shows; the best match at or above DEDUP_THRESHOLD flags the
  candidate DUPLICATE (compare-and-set on status)

Exact natural-key collisions with published shows are rejected again at
publish time, so a missed flag cannot create a second production row.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from difflib import SequenceMatcher
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import REVIEWABLE_STATUSES, STATUS_DUPLICATE, STATUS_PENDING
from models.production_show import ProductionShow
from scrapers.models import PendingShow
from services.geocoder import haversine_distance

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 0.6
LOCATION_WEIGHT = 0.25
DATE_WEIGHT = 0.15

SAME_PLACE_METERS = 500
NEARBY_METERS = 5000

TITLE_NOISE_RE = re.compile(r"\b(?:the|annual|\d+(?:st|nd|rd|th)|(?:19|20)\d{2})\b")
NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")


@dataclass
class DuplicateMatch:
    """Best earlier record a candidate resembles."""
    score: float
    pending_id: Optional[int] = None
    show_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"score": round(self.score, 3), "pending_id": self.pending_id, "show_id": self.show_id}


# =============================================================================
# Similarity
# =============================================================================

def normalize_title(title: Optional[str]) -> str:
    text = NON_ALNUM_RE.sub(" ", (title or "").lower())
    text = TITLE_NOISE_RE.sub(" ", text)
    return " ".join(text.split())


def _ratio(a: Optional[str], b: Optional[str]) -> Optional[float]:
    if not a or not b:
        return None
    return SequenceMatcher(None, normalize_title(a), normalize_title(b)).ratio()


def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    return _ratio(a, b) or 0.0


def cities_conflict(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    city_a = (a.get("city") or "").strip().lower()
    city_b = (b.get("city") or "").strip().lower()
    return bool(city_a and city_b and city_a != city_b)


def location_similarity(a: Dict[str, Any], b: Dict[str, Any]) -> float:
    """
    0..1 agreement of two payloads' locations.

    Coordinates win when both sides have them; otherwise same city counts
    half and the best venue/address text ratio the other half.
    """
    if cities_conflict(a, b):
        return 0.0

    if None not in (a.get("latitude"), a.get("longitude"), b.get("latitude"), b.get("longitude")):
        meters = haversine_distance(a["latitude"], a["longitude"], b["latitude"], b["longitude"])
        if meters <= SAME_PLACE_METERS:
            return 1.0
        if meters <= NEARBY_METERS:
            return 0.5

    same_city = bool(a.get("city") and b.get("city"))
    ratios = [
        r for r in (
            _ratio(a.get("venue_name"), b.get("venue_name")),
            _ratio(a.get("address"), b.get("address")),
        )
        if r is not None
    ]
    best = max(ratios) if ratios else 0.0
    if same_city:
        return 0.5 + 0.5 * best
    return 0.5 * best


def date_proximity(a: Optional[date], b: Optional[date], window_days: int) -> Optional[float]:
    """1.0 for the same day falling linearly to 0 past the window; None outside it."""
    if a is None or b is None:
        return None
    days = abs((a - b).days)
    if days > window_days:
        return None
    return 1.0 - days / (window_days + 1)


def score_pair(a: Dict[str, Any], b: Dict[str, Any], window_days: int) -> Optional[float]:
    """Weighted duplicate score, or None when the pair is not comparable."""
    if cities_conflict(a, b):
        return None
    proximity = date_proximity(_as_date(a.get("start_date")), _as_date(b.get("start_date")), window_days)
    if proximity is None:
        return None
    return (
        TITLE_WEIGHT * title_similarity(a.get("name"), b.get("name"))
        + LOCATION_WEIGHT * location_similarity(a, b)
        + DATE_WEIGHT * proximity
    )


def _as_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def show_payload(show: ProductionShow) -> Dict[str, Any]:
    """Comparable payload for a published show."""
    return {
        "name": show.title,
        "start_date": show.start_date,
        "city": show.city,
        "state": show.state,
        "venue_name": show.venue_name,
        "address": show.address,
        "latitude": show.latitude,
        "longitude": show.longitude,
    }


# =============================================================================
# Service
# =============================================================================

class DedupService:
    """Flags PENDING candidates that resemble earlier records."""

    def __init__(self, db_session, window_days: int = None, threshold: float = None):
        self.db_session = db_session
        self.window_days = window_days if window_days is not None else Config.DEDUP_WINDOW_DAYS
        self.threshold = threshold if threshold is not None else Config.DEDUP_THRESHOLD

    def find_best_match(self, pending: PendingShow) -> Optional[DuplicateMatch]:
        """Highest-scoring earlier pending row or published show, any score."""
        payload = pending.effective_payload()
        start = _as_date(payload.get("start_date"))
        if not payload.get("name") or start is None:
            return None

        best: Optional[DuplicateMatch] = None
        window = timedelta(days=self.window_days)

        earlier = (
            self.db_session.query(PendingShow)
            .filter(
                PendingShow.id < pending.id,
                PendingShow.start_date >= start - window,
                PendingShow.start_date <= start + window,
                PendingShow.status.in_(REVIEWABLE_STATUSES),
                PendingShow.is_valid.is_(True),
                PendingShow.normalized_payload.isnot(None),
            )
            .order_by(PendingShow.id.asc())
            .all()
        )
        for other in earlier:
            score = score_pair(payload, other.effective_payload(), self.window_days)
            if score is not None and (best is None or score > best.score):
                best = DuplicateMatch(score=score, pending_id=other.id)

        published = (
            self.db_session.query(ProductionShow)
            .filter(
                ProductionShow.start_date >= start - window,
                ProductionShow.start_date <= start + window,
                or_(ProductionShow.pending_id.is_(None), ProductionShow.pending_id != pending.id),
            )
            .all()
        )
        for show in published:
            score = score_pair(payload, show_payload(show), self.window_days)
            if score is not None and (best is None or score > best.score):
                best = DuplicateMatch(score=score, show_id=show.id)

        return best

    def check(self, pending: PendingShow) -> Optional[DuplicateMatch]:
        """
        Dedup one PENDING row and commit.

        Returns:
            The match when the row was flagged DUPLICATE, else None
        """
        match = self.find_best_match(pending)
        now = datetime.utcnow()
        flagged = match is not None and match.score >= self.threshold

        query = self.db_session.query(PendingShow).filter(
            PendingShow.id == pending.id,
            PendingShow.status == STATUS_PENDING,
            PendingShow.dedup_checked_at.is_(None),
        )
        if flagged:
            values = {
                PendingShow.status: STATUS_DUPLICATE,
                PendingShow.duplicate_of_pending_id: match.pending_id,
                PendingShow.duplicate_of_show_id: match.show_id,
                PendingShow.duplicate_score: round(match.score, 4),
                PendingShow.dedup_checked_at: now,
            }
        else:
            values = {PendingShow.dedup_checked_at: now}

        try:
            updated = query.update(values, synchronize_session=False)
            self.db_session.commit()
        except SQLAlchemyError:
            self.db_session.rollback()
            raise
        self.db_session.refresh(pending)

        if not updated:
            logger.debug(f"Pending {pending.id} changed before dedup check, skipped")
            return None
        if flagged:
            target = f"pending {match.pending_id}" if match.pending_id else f"show {match.show_id}"
            logger.info(f"Pending {pending.id} flagged DUPLICATE of {target} (score {match.score:.2f})")
            return match
        return None

    def run(self, pending_ids: Optional[Iterable[int]] = None, limit: Optional[int] = None) -> Dict[str, int]:
        """
        Dedup normalized PENDING rows not yet checked, oldest first.

        Args:
            pending_ids: restrict to these rows (a batch's new rows)
            limit: maximum rows to check
        """
        query = (
            self.db_session.query(PendingShow)
            .filter(
                PendingShow.status == STATUS_PENDING,
                PendingShow.normalized_at.isnot(None),
                PendingShow.dedup_checked_at.is_(None),
                PendingShow.is_valid.is_(True),
            )
            .order_by(PendingShow.id.asc())
        )
        if pending_ids is not None:
            ids: List[int] = list(pending_ids)
            if not ids:
                return {"checked": 0, "duplicates_flagged": 0}
            query = query.filter(PendingShow.id.in_(ids))
        if limit:
            query = query.limit(limit)

        stats = {"checked": 0, "duplicates_flagged": 0}
        for pending in query.all():
            stats["checked"] += 1
            if self.check(pending):
                stats["duplicates_flagged"] += 1
        logger.info(f"Dedup: {stats['checked']} checked, {stats['duplicates_flagged']} flagged")
        return stats
