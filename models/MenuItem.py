from models import db

MENU_CATEGORIES = ('BEVERAGE', 'FOOD', 'DESSERT', 'SNACK')

class MenuItem(db.Model):
    __tablename__ = 'menu_items'

    id = db.Column(db.Integer, primary_key=True)
    cafe_id = db.Column(db.Integer, db.ForeignKey('cafes.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    price = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.String(20), nullable=False)
    image = db.Column(db.String(255))
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint('price >= 0', name='price_non_negative'),
    )

    # Define relationships
    cafe = db.relationship('Cafe', back_populates='menu')

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price),
            "category": self.category,
            "image": self.image
        }
