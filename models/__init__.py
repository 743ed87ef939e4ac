from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# --- Association Tables ---
rating_helpful = db.Table('rating_helpful',
    db.Column('rating_id', db.Integer, db.ForeignKey('ratings.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
)

# --- Import Models ---
from .User import User, ROLES
from .Cafe import Cafe, CafeAmenity, OperatingHours, AMENITIES, DAYS_OF_WEEK
from .MenuItem import MenuItem, MENU_CATEGORIES
from .Rating import Rating, ASPECTS
