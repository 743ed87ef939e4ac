from datetime import datetime
from decimal import Decimal
from models import db
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm.collections import attribute_keyed_dict

AMENITIES = ('WIFI', 'PARKING', 'OUTDOOR_SEATING', 'LIVE_MUSIC', 'PET_FRIENDLY', 'TAKEAWAY', 'DELIVERY')
DAYS_OF_WEEK = ('MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY')


class CafeAmenity(db.Model):
    __tablename__ = 'cafe_amenities'

    cafe_id = db.Column(db.Integer, db.ForeignKey('cafes.id', ondelete='CASCADE'), primary_key=True)
    amenity = db.Column(db.String(30), primary_key=True)


class OperatingHours(db.Model):
    __tablename__ = 'cafe_hours'

    cafe_id = db.Column(db.Integer, db.ForeignKey('cafes.id', ondelete='CASCADE'), primary_key=True)
    day_of_week = db.Column(db.String(10), primary_key=True)
    open_time = db.Column(db.String(5))   # "HH:MM"
    close_time = db.Column(db.String(5))
    closed = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {"open": self.open_time, "close": self.close_time, "closed": bool(self.closed)}


class Cafe(db.Model):
    __tablename__ = 'cafes'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=False)

    # Location
    address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False, index=True)
    state = db.Column(db.String(100), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    latitude = db.Column(db.Float, nullable=False, default=0.0)
    longitude = db.Column(db.Float, nullable=False, default=0.0)

    # Contact
    phone = db.Column(db.String(30))
    email = db.Column(db.String(120))
    website = db.Column(db.String(255))

    # Average budget per visit
    min_budget = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    max_budget = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # Derived, written only by services.aggregates
    average_rating = db.Column(db.Numeric(3, 2), nullable=False, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('min_budget >= 0 AND max_budget >= 0', name='budget_non_negative'),
        db.CheckConstraint('min_budget <= max_budget', name='budget_range'),
        db.CheckConstraint('rating_count >= 0', name='rating_count_non_negative'),
    )

    # Relationships
    owner = db.relationship('User', back_populates='cafes')
    menu = db.relationship('MenuItem', back_populates='cafe', order_by='MenuItem.position',
                           collection_class=ordering_list('position'),
                           cascade="all, delete-orphan")
    amenities = db.relationship('CafeAmenity', cascade="all, delete-orphan", lazy='selectin')
    hours = db.relationship('OperatingHours', collection_class=attribute_keyed_dict('day_of_week'),
                            cascade="all, delete-orphan")
    ratings = db.relationship('Rating', back_populates='cafe', cascade="all, delete-orphan")

    @property
    def amenity_names(self):
        return sorted(a.amenity for a in self.amenities)

    def set_amenities(self, names):
        # Keep rows that stay so their keys are not deleted and reinserted
        current = {a.amenity: a for a in self.amenities}
        self.amenities = [current.get(name) or CafeAmenity(amenity=name) for name in sorted(set(names))]

    def to_dict(self, detail=False):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "location": {
                "address": self.address,
                "city": self.city,
                "state": self.state,
                "zip_code": self.zip_code,
                "latitude": self.latitude,
                "longitude": self.longitude
            },
            "budget": {"min": _money(self.min_budget), "max": _money(self.max_budget)},
            "amenities": self.amenity_names,
            "average_rating": _money(self.average_rating),
            "rating_count": self.rating_count or 0,
            "is_active": self.is_active,
            "created_at": self.created_at
        }
        if detail:
            data["contact"] = {"phone": self.phone, "email": self.email, "website": self.website}
            data["menu"] = [item.to_dict() for item in self.menu]
            data["hours"] = {day: hours.to_dict() for day, hours in self.hours.items()}
        return data


def _money(value):
    # JSON has no decimal type; two-decimal floats are exact enough for display
    return float(Decimal(value or 0))
