"""
Production Show Model - Published show catalog.

Rows are created only by the show promoter from an APPROVED pending show.
(title, start_date, city) is the natural key used to reject duplicate
publishes.
"""
from datetime import datetime
from models.database import db


class ShowSeries(db.Model):
    """Grouping of recurring occurrences of the same show."""

    __tablename__ = "show_series"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(500), nullable=False)
    city = db.Column(db.String(255))
    state = db.Column(db.String(2))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    shows = db.relationship("ProductionShow", backref="series", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
        }


class ProductionShow(db.Model):
    """Canonical published show record."""

    __tablename__ = "production_shows"

    id = db.Column(db.Integer, primary_key=True)
    pending_id = db.Column(
        db.Integer, db.ForeignKey("pending_shows.id"), unique=True
    )
    series_id = db.Column(db.Integer, db.ForeignKey("show_series.id"), index=True)

    title = db.Column(db.String(500), nullable=False)
    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date)

    # Location
    venue_name = db.Column(db.String(500))
    address = db.Column(db.String(500))
    city = db.Column(db.String(255), index=True)
    state = db.Column(db.String(2))
    zip_code = db.Column(db.String(10))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    # Contact
    contact_name = db.Column(db.String(255))
    contact_phone = db.Column(db.String(50))
    contact_email = db.Column(db.String(255))

    # Admission and hours
    entry_fee = db.Column(db.Numeric(8, 2))
    entry_fee_text = db.Column(db.String(255))
    start_time = db.Column(db.String(5))  # HH:MM
    end_time = db.Column(db.String(5))
    show_hours = db.Column(db.String(255))

    description = db.Column(db.Text)
    url = db.Column(db.String(2048))
    source_url = db.Column(db.String(2048))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.UniqueConstraint(
            "title", "start_date", "city",
            name="uq_production_show_natural_key",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pending_id": self.pending_id,
            "series_id": self.series_id,
            "title": self.title,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "venue_name": self.venue_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "coordinates": (
                {"latitude": self.latitude, "longitude": self.longitude}
                if self.latitude is not None and self.longitude is not None
                else None
            ),
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "entry_fee": float(self.entry_fee) if self.entry_fee is not None else None,
            "entry_fee_text": self.entry_fee_text,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "show_hours": self.show_hours,
            "description": self.description,
            "url": self.url,
        }

    def __repr__(self):
        return f"<ProductionShow {self.id} {self.title[:30]} {self.start_date} {self.city}>"
