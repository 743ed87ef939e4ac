from datetime import datetime
from models import db, rating_helpful

ASPECTS = ('food', 'service', 'ambiance', 'value')

class Rating(db.Model):
    __tablename__ = 'ratings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    cafe_id = db.Column(db.Integer, db.ForeignKey('cafes.id'), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False)
    review = db.Column(db.String(1000), nullable=False)

    # Aspect ratings are all set or all NULL
    food_rating = db.Column(db.Integer)
    service_rating = db.Column(db.Integer)
    ambiance_rating = db.Column(db.Integer)
    value_rating = db.Column(db.Integer)

    # Derived from helpful_users, written only by services.helpful_votes
    helpful_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # One rating per user per cafe
    __table_args__ = (
        db.UniqueConstraint('user_id', 'cafe_id', name='unique_user_cafe_rating'),
        db.CheckConstraint('score >= 1 AND score <= 5', name='valid_score'),
        db.CheckConstraint(
            '(food_rating IS NULL AND service_rating IS NULL AND ambiance_rating IS NULL AND value_rating IS NULL) OR '
            '(food_rating IS NOT NULL AND service_rating IS NOT NULL AND ambiance_rating IS NOT NULL AND value_rating IS NOT NULL)',
            name='aspects_all_or_none'),
    )

    # Relationships
    user = db.relationship('User', back_populates='ratings')
    cafe = db.relationship('Cafe', back_populates='ratings')
    helpful_users = db.relationship('User', secondary=rating_helpful, backref=db.backref('helpful_ratings', lazy='dynamic'))

    @property
    def aspects(self):
        if self.food_rating is None:
            return None
        return {name: getattr(self, f"{name}_rating") for name in ASPECTS}

    def set_aspects(self, aspects):
        for name in ASPECTS:
            setattr(self, f"{name}_rating", aspects[name] if aspects else None)

    def to_dict(self, current_user_id=None):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "cafe_id": self.cafe_id,
            "rating": self.score,
            "review": self.review,
            "aspects": self.aspects,
            "helpful_count": self.helpful_count or 0,
            "is_helpful": any(u.id == current_user_id for u in self.helpful_users) if current_user_id else False,
            "created_at": self.created_at,
            "updated_at": self.updated_at
        }
