"""
Show Promoter - Publishes approved pending shows to production_shows.

Only the review gateway calls this, inside its approval transaction.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func

from models.production_show import ProductionShow, ShowSeries
from services.review_errors import InvalidTransitionError, PublishConflictError

from .base import BasePromoter

logger = logging.getLogger(__name__)

COPIED_FIELDS = (
    "venue_name", "address", "city", "state", "zip_code",
    "latitude", "longitude",
    "contact_name", "contact_phone", "contact_email",
    "entry_fee_text", "start_time", "end_time", "show_hours",
    "description", "url",
)


class ShowPromoter(BasePromoter):
    """Projects pending_shows(APPROVED) -> production_shows"""

    TARGET_TABLE = "production_shows"

    def find_conflict(self, title: str, start_date, city: Optional[str],
                      exclude_id: Optional[int] = None) -> Optional[ProductionShow]:
        """Published show with the same natural key (title and city compared case-insensitively)."""
        query = self.db_session.query(ProductionShow).filter(
            func.lower(ProductionShow.title) == title.lower(),
            ProductionShow.start_date == start_date,
        )
        if city:
            query = query.filter(func.lower(ProductionShow.city) == city.lower())
        else:
            query = query.filter(ProductionShow.city.is_(None))
        if exclude_id is not None:
            query = query.filter(ProductionShow.id != exclude_id)
        return query.first()

    def project_to_domain(self, pending) -> ProductionShow:
        """
        Create or update the production show for a pending show.

        Raises:
            InvalidTransitionError: payload lacks a name or start date
            PublishConflictError: another published show holds the natural key
        """
        mapped = self.map_fields(pending.effective_payload())
        mapped["source_url"] = pending.source_url

        if not mapped["title"] or not mapped["start_date"]:
            raise InvalidTransitionError(
                "A show needs a name and a start date to be published", pending_id=pending.id
            )

        existing = self.db_session.query(ProductionShow).filter_by(pending_id=pending.id).first()
        conflict = self.find_conflict(
            mapped["title"], mapped["start_date"], mapped["city"],
            exclude_id=existing.id if existing else None,
        )
        if conflict:
            raise PublishConflictError(
                f"Show '{mapped['title']}' on {mapped['start_date']} in {mapped['city'] or '?'} "
                f"is already published (show {conflict.id})",
                pending_id=pending.id,
                existing_show_id=conflict.id,
            )

        if existing:
            for field, value in mapped.items():
                setattr(existing, field, value)
            show = existing
            logger.debug(f"Updated production show {show.id} from pending {pending.id}")
        else:
            show = ProductionShow(pending_id=pending.id, **mapped)
            self.db_session.add(show)
        self.db_session.flush()

        self._assign_series(show)
        logger.info(f"Published pending {pending.id} as production show {show.id}")
        return show

    def map_fields(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Map an effective pending payload to ProductionShow fields."""
        mapped = {field: payload.get(field) for field in COPIED_FIELDS}
        mapped["title"] = payload.get("name")
        mapped["start_date"] = self._parse_date(payload.get("start_date"))
        mapped["end_date"] = self._parse_date(payload.get("end_date")) or mapped["start_date"]
        mapped["entry_fee"] = self._to_decimal(payload.get("entry_fee"))
        return mapped

    def _assign_series(self, show: ProductionShow) -> Optional[ShowSeries]:
        """
        Group recurring occurrences: a show sharing title and city with an
        already published show joins (or founds) that show's series.
        """
        if not show.city:
            return None
        sibling = (
            self.db_session.query(ProductionShow)
            .filter(
                func.lower(ProductionShow.title) == show.title.lower(),
                func.lower(ProductionShow.city) == show.city.lower(),
                ProductionShow.id != show.id,
            )
            .order_by(ProductionShow.start_date.asc())
            .first()
        )
        if sibling is None:
            return show.series

        if sibling.series_id is None:
            series = ShowSeries(name=sibling.title, city=sibling.city, state=sibling.state)
            self.db_session.add(series)
            self.db_session.flush()
            sibling.series_id = series.id
            logger.info(f"Created show series {series.id} for '{sibling.title}' in {sibling.city}")
        show.series_id = sibling.series_id
        return sibling.series
