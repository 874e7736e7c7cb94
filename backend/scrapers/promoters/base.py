"""
Base Promoter - Projects reviewed staging rows to domain tables.

Promoters handle the final step: approved pending row -> published table.
This keeps the published tables optimized for app queries while staging
keeps the full extraction history.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional


class BasePromoter(ABC):
    """
    Abstract base for promoters.

    Subclasses must implement:
    - project_to_domain(): Project a staging row to its domain table
    - map_fields(): Map payload fields to domain table fields
    """

    TARGET_TABLE: str = ""

    def __init__(self, db_session):
        """
        Initialize promoter.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db_session = db_session

    @abstractmethod
    def project_to_domain(self, staged) -> Optional[Any]:
        """
        Project a staging row to its domain table.

        Does not commit; the caller owns the transaction.

        Returns:
            The domain model instance or None if skipped
        """
        pass

    @abstractmethod
    def map_fields(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Map payload fields to domain table fields.

        Returns:
            Dict with keys matching domain table columns
        """
        pass

    def _parse_date(self, value) -> Optional[date]:
        """Parse an ISO date string (or pass a date through)."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
        return None

    def _to_decimal(self, value) -> Optional[Decimal]:
        """Convert value to Decimal."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return None
