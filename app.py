from flask import Blueprint, Flask, current_app, jsonify, request
import math
import os
import re
import logging

import click

# Database and models
from models import db, User, Cafe
from flask_migrate import Migrate

# Extensions
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required, get_jwt_identity, create_access_token

# Rating & discovery services
from services import (
    CafeHubError, CafeStore, ValidationError, NotFound, ConflictError,
    SearchRequest, BoundingBox,
    search, top_rated, newest, near,
    aspect_summary, rating_distribution,
    create_cafe, update_cafe, delete_cafe, owner_cafes,
    add_menu_item, update_menu_item, delete_menu_item,
    create_rating, update_rating, delete_rating, list_cafe_ratings,
    list_user_ratings, find_user_rating,
    mark_helpful, unmark_helpful, is_marked_helpful,
)
from services.ratings import KEEP

migrate = Migrate()
jwt = JWTManager()
cors = CORS()

api = Blueprint('api', __name__, url_prefix='/api')


# --- Configuration ---

def _database_uri():
    uri = os.environ.get('DATABASE_URL')
    if uri:
        if uri.startswith("postgres://"):
            uri = uri.replace("postgres://", "postgresql://", 1)
        return uri
    BASE_DIR = os.path.abspath(os.path.dirname(__file__))
    return f'sqlite:///{os.path.join(BASE_DIR, "cafehub.db")}'


def create_app(test_config=None):
    app = Flask(__name__)

    app.config['SQLALCHEMY_DATABASE_URI'] = _database_uri()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY', 'change-me-in-production-0c4f2a9e7d1b5e3a')
    app.config['CORS_ORIGINS'] = os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',')
    app.config['DEFAULT_PAGE_SIZE'] = int(os.environ.get('DEFAULT_PAGE_SIZE', 10))
    app.config['NEAR_RADIUS'] = float(os.environ.get('NEAR_RADIUS', 0.1))
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    cors.init_app(app,
        resources={r"/api/*": {
            "origins": app.config['CORS_ORIGINS'],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }},
        supports_credentials=True
    )
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    app.register_blueprint(api)
    app.register_error_handler(CafeHubError, handle_service_error)

    @app.route("/ping")
    def ping():
        return "pong", 200

    @app.cli.command('init-db')
    def init_db():
        """Create all tables without running migrations."""
        db.create_all()
        click.echo("Database tables created")

    return app


def handle_service_error(error):
    if error.status_code >= 500:
        current_app.logger.error("%s on %s %s", error.message, request.method, request.path)
    return jsonify(error.to_dict()), error.status_code


# --- HELPERS ---

def _current_user_id():
    identity = get_jwt_identity()
    return int(identity) if identity is not None else None


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("No data received")
    return data


def _int_arg(name, default):
    raw = request.args.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _float_arg(name, default=None):
    raw = request.args.get(name, '').strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be a number")
    return value


def _pagination():
    page = _int_arg('page', 0)
    per_page = _int_arg('per_page', current_app.config['DEFAULT_PAGE_SIZE'])
    return page, per_page


def _coordinates():
    lat, lng = _float_arg('lat'), _float_arg('lng')
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")
    return lat, lng


def _search_request_from_args(args):
    bounds = None
    lat, lng = _coordinates()
    if lat is not None:
        bounds = BoundingBox(lat, lng, _float_arg('radius', current_app.config['NEAR_RADIUS']))

    return SearchRequest(
        city=args.get('city'),
        state=args.get('state'),
        min_budget=args.get('min_budget'),
        max_budget=args.get('max_budget'),
        term=args.get('search'),
        amenities=args.get('amenities'),
        bounds=bounds,
        sort=args.get('sort')
    )


## AUTHENTICATION ROUTES ##

@api.route('/register', methods=['POST'])
def register():
    data = _payload()
    for field in ['name', 'email', 'password']:
        if not data.get(field):
            raise ValidationError(f"Missing field: {field}")

    email_regex = r'^[\w\.-]+@[\w\.-]+\.\w+$'
    if not re.match(email_regex, data['email']):
        raise ValidationError("Invalid email format")

    password = data['password']
    if len(password) < 8 or not any(char.isdigit() for char in password):
        raise ValidationError("Password must be at least 8 characters long and contain a number")

    role = data.get('role', 'customer')
    if role not in ('customer', 'owner'):
        raise ValidationError("Invalid role")

    if User.query.filter_by(email=data['email']).first():
        raise ConflictError("User already exists")

    new_user = User(
        name=data['name'],
        email=data['email'],
        role=role,
        phone=data.get('phone'),
        avatar=data.get('avatar')
    )
    new_user.set_password(password)

    with CafeStore().atomic() as store:
        store.session.add(new_user)

    return jsonify({"message": "User registered successfully", "id": new_user.id}), 201


@api.route('/login', methods=['POST'])
def login():
    data = _payload()
    if 'email' not in data or 'password' not in data:
        raise ValidationError("Missing email or password")

    user = User.query.filter_by(email=data['email']).first()
    if user and user.check_password(data['password']):
        access_token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
        return jsonify(access_token=access_token, user=user.to_dict()), 200

    return jsonify({"error": "Invalid credentials"}), 401


@api.route('/whoami')
@jwt_required()
def whoami():
    user = db.session.get(User, _current_user_id())
    if not user:
        raise NotFound("User not found")
    return jsonify(user.to_dict())


## CAFE DISCOVERY ROUTES ##

@api.route('/cafes', methods=['GET'])
def list_cafes():
    page, per_page = _pagination()
    result = search(_search_request_from_args(request.args), page, per_page)
    return jsonify(result.to_dict(key="cafes"))


@api.route('/cafes/top-rated', methods=['GET'])
def top_rated_cafes():
    page, per_page = _pagination()
    return jsonify(top_rated(page, per_page).to_dict(key="cafes"))


@api.route('/cafes/newest', methods=['GET'])
def newest_cafes():
    page, per_page = _pagination()
    return jsonify(newest(page, per_page).to_dict(key="cafes"))


@api.route('/cafes/near', methods=['GET'])
def cafes_near():
    lat, lng = _coordinates()
    if lat is None:
        raise ValidationError("lat and lng are required")
    radius = _float_arg('radius', current_app.config['NEAR_RADIUS'])
    page, per_page = _pagination()
    return jsonify(near(lat, lng, radius, page, per_page).to_dict(key="cafes"))


@api.route('/cafes/<int:cafe_id>', methods=['GET'])
def get_cafe(cafe_id):
    cafe = db.session.get(Cafe, cafe_id)
    if not cafe:
        raise NotFound("Cafe not found")

    data = cafe.to_dict(detail=True)
    aspects = aspect_summary(cafe_id)
    data["aspects"] = {
        name: float(value) if value is not None else None
        for name, value in aspects.items() if name != "count"
    }
    data["aspects"]["count"] = aspects["count"]
    return jsonify(data)


## CAFE MANAGEMENT ROUTES ##

@api.route('/cafes', methods=['POST'])
@jwt_required()
def add_cafe():
    cafe = create_cafe(_current_user_id(), _payload())
    return jsonify({"id": cafe.id, "message": "Cafe created successfully"}), 201


@api.route('/cafes/<int:cafe_id>', methods=['PUT'])
@jwt_required()
def edit_cafe(cafe_id):
    cafe = update_cafe(cafe_id, _current_user_id(), _payload())
    return jsonify({"message": "Cafe updated successfully", "cafe": cafe.to_dict(detail=True)}), 200


@api.route('/cafes/<int:cafe_id>', methods=['DELETE'])
@jwt_required()
def remove_cafe(cafe_id):
    delete_cafe(cafe_id, _current_user_id())
    return jsonify({"message": "Cafe deleted successfully"}), 200


@api.route('/cafes/owner/my-cafes', methods=['GET'])
@jwt_required()
def my_cafes():
    return jsonify({"cafes": [cafe.to_dict() for cafe in owner_cafes(_current_user_id())]})


@api.route('/cafes/<int:cafe_id>/menu', methods=['POST'])
@jwt_required()
def add_menu_entry(cafe_id):
    item = add_menu_item(cafe_id, _current_user_id(), _payload())
    return jsonify({"message": "Menu item added successfully", "item": item.to_dict()}), 201


@api.route('/cafes/<int:cafe_id>/menu/<int:item_id>', methods=['PUT'])
@jwt_required()
def edit_menu_entry(cafe_id, item_id):
    item = update_menu_item(cafe_id, item_id, _current_user_id(), _payload())
    return jsonify({"message": "Menu item updated successfully", "item": item.to_dict()}), 200


@api.route('/cafes/<int:cafe_id>/menu/<int:item_id>', methods=['DELETE'])
@jwt_required()
def remove_menu_entry(cafe_id, item_id):
    delete_menu_item(cafe_id, item_id, _current_user_id())
    return jsonify({"message": "Menu item deleted successfully"}), 200


## RATINGS ROUTES ##

@api.route('/cafes/<int:cafe_id>/ratings', methods=['GET'])
@jwt_required(optional=True)
def get_cafe_ratings(cafe_id):
    page, per_page = _pagination()
    result = list_cafe_ratings(cafe_id, request.args.get('sort', 'newest'), page, per_page)
    current_user_id = _current_user_id()

    data = result.to_dict(key="ratings", serialize=lambda r: r.to_dict(current_user_id))
    cafe = db.session.get(Cafe, cafe_id)
    data["summary"] = {
        "average_rating": float(cafe.average_rating or 0),
        "total_ratings": cafe.rating_count or 0,
        "distribution": rating_distribution(cafe_id)
    }
    return jsonify(data)


@api.route('/cafes/<int:cafe_id>/ratings', methods=['POST'])
@jwt_required()
def rate_cafe(cafe_id):
    data = _payload()
    rating = create_rating(
        _current_user_id(),
        cafe_id,
        data.get('rating'),
        data.get('review'),
        data.get('aspects')
    )
    return jsonify({"message": "Rating added successfully", "rating": rating.to_dict()}), 201


@api.route('/ratings/<int:rating_id>', methods=['PUT'])
@jwt_required()
def edit_rating(rating_id):
    data = _payload()
    rating = update_rating(
        rating_id,
        _current_user_id(),
        score=data.get('rating'),
        review=data.get('review'),
        aspects=data['aspects'] if 'aspects' in data else KEEP
    )
    return jsonify({"message": "Rating updated successfully", "rating": rating.to_dict()}), 200


@api.route('/ratings/<int:rating_id>', methods=['DELETE'])
@jwt_required()
def remove_rating(rating_id):
    delete_rating(rating_id, _current_user_id())
    return jsonify({"message": "Rating deleted successfully"}), 200


def _rating_with_cafe(rating, current_user_id=None):
    data = rating.to_dict(current_user_id)
    data["cafe_name"] = rating.cafe.name if rating.cafe else None
    return data


@api.route('/ratings/user', methods=['GET'])
@jwt_required()
def my_ratings():
    current_user_id = _current_user_id()
    page, per_page = _pagination()
    result = list_user_ratings(current_user_id, page, per_page)
    return jsonify(result.to_dict(key="ratings", serialize=lambda r: _rating_with_cafe(r, current_user_id)))


@api.route('/ratings/user/<int:cafe_id>', methods=['GET'])
@jwt_required()
def my_rating_for_cafe(cafe_id):
    current_user_id = _current_user_id()
    return jsonify(_rating_with_cafe(find_user_rating(current_user_id, cafe_id), current_user_id))


## HELPFUL VOTES ##

@api.route('/ratings/<int:rating_id>/helpful', methods=['GET'])
@jwt_required()
def get_helpful(rating_id):
    return jsonify({"is_helpful": is_marked_helpful(rating_id, _current_user_id())})


@api.route('/ratings/<int:rating_id>/helpful', methods=['POST'])
@jwt_required()
def add_helpful(rating_id):
    rating = mark_helpful(rating_id, _current_user_id())
    return jsonify({"message": "Marked as helpful", "helpful_count": rating.helpful_count, "is_helpful": True})


@api.route('/ratings/<int:rating_id>/helpful', methods=['DELETE'])
@jwt_required()
def remove_helpful(rating_id):
    rating = unmark_helpful(rating_id, _current_user_id())
    return jsonify({"message": "Helpful mark removed", "helpful_count": rating.helpful_count, "is_helpful": False})
