"""Promoters - Project approved staging rows to published tables."""

from .base import BasePromoter
from .show_promoter import ShowPromoter

__all__ = ["BasePromoter", "ShowPromoter"]
