from datetime import datetime
from models import db
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ('customer', 'owner', 'admin')

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='customer')
    phone = db.Column(db.String(30))
    avatar = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    cafes = db.relationship('Cafe', back_populates='owner')
    ratings = db.relationship('Rating', back_populates='user', cascade="all, delete-orphan")

    # Hash password before storing
    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    # Check if a password matches the stored hash
    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "avatar": self.avatar
        }
