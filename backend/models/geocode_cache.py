"""
Geocode Cache - Stored geocoder answers keyed by normalized query.

A cached miss (result IS NULL) is also an answer: the metered API is not
called again for the same query.
"""
from datetime import datetime
from models.database import db


class GeocodeCacheEntry(db.Model):
    __tablename__ = "geocode_cache"

    query_key = db.Column(db.String(64), primary_key=True)
    query = db.Column(db.String(1000), nullable=False)
    result = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<GeocodeCacheEntry {self.query[:40]}>"
