"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.production_show import ProductionShow, ShowSeries
from models.geocode_cache import GeocodeCacheEntry

__all__ = [
    'db',
    'ProductionShow',
    'ShowSeries',
    'GeocodeCacheEntry',
]
