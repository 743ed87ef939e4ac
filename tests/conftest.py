import itertools
from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from models import db, User, Cafe


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET_KEY": "test-secret-key-long-enough-for-hs256",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(name=None, role="customer"):
        n = next(counter)
        user = User(name=name or f"user{n}", email=f"user{n}@example.com", role=role)
        user.set_password("secret123")
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner", role="owner")


@pytest.fixture
def make_cafe(app, owner):
    def _make(name="Bean There", city="Austin", state="TX", min_budget=10, max_budget=30,
              amenities=(), latitude=30.27, longitude=-97.74, is_active=True,
              created_at=None, description="Coffee and pastries"):
        cafe = Cafe(
            owner_id=owner.id,
            name=name,
            description=description,
            address="1 Main St",
            city=city,
            state=state,
            zip_code="78701",
            latitude=latitude,
            longitude=longitude,
            min_budget=min_budget,
            max_budget=max_budget,
            is_active=is_active,
            created_at=created_at or datetime(2024, 1, 1)
        )
        cafe.set_amenities(amenities)
        db.session.add(cafe)
        db.session.commit()
        return cafe

    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers
