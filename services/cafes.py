import logging

from models import Cafe, MenuItem, OperatingHours, AMENITIES, DAYS_OF_WEEK, MENU_CATEGORIES
from .errors import NotFound, PermissionDenied, ValidationError
from .store import CafeStore

logger = logging.getLogger(__name__)

MANAGER_ROLES = ('owner', 'admin')
REQUIRED_FIELDS = ('name', 'description', 'location', 'budget')
LOCATION_FIELDS = ('address', 'city', 'state', 'zip_code')
MAX_LENGTHS = {'name': 100, 'description': 1000}


# --- Payload checks ---

def _number(value, message):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)


def _apply_location(cafe, location, partial):
    if not isinstance(location, dict):
        raise ValidationError("Location must be an object")
    for field in LOCATION_FIELDS:
        if field in location or not partial:
            if not location.get(field):
                raise ValidationError(f"Missing location field: {field}")
            setattr(cafe, field, location[field])
    for field in ('latitude', 'longitude'):
        if field in location or not partial:
            setattr(cafe, field, _number(location.get(field) or 0, "Coordinates must be numbers"))


def _apply_budget(cafe, budget, partial):
    if not isinstance(budget, dict):
        raise ValidationError("Budget must be an object")
    low = budget.get('min', cafe.min_budget if partial else None)
    high = budget.get('max', cafe.max_budget if partial else None)
    low = _number(low, "Budget min and max must be numbers")
    high = _number(high, "Budget min and max must be numbers")
    if low < 0 or high < 0:
        raise ValidationError("Budget cannot be negative")
    if low > high:
        raise ValidationError("Minimum budget cannot exceed maximum budget")
    cafe.min_budget, cafe.max_budget = low, high


def _amenities(values):
    if not isinstance(values, (list, tuple)):
        raise ValidationError("Amenities must be a list")
    names = [str(value).strip().upper() for value in values]
    unknown = [name for name in names if name not in AMENITIES]
    if unknown:
        raise ValidationError(f"Unknown amenity: {unknown[0]}")
    return names


def _apply_hours(cafe, hours):
    if not isinstance(hours, dict):
        raise ValidationError("Hours must be an object")
    wanted = {}
    for day, times in hours.items():
        day = str(day).upper()
        if day not in DAYS_OF_WEEK:
            raise ValidationError(f"Unknown day: {day}")
        if not isinstance(times, dict):
            raise ValidationError(f"Hours for {day} must be an object")
        wanted[day] = times

    # Edit rows in place; a fresh row with the same key would collide on flush
    for day in list(cafe.hours):
        if day not in wanted:
            del cafe.hours[day]
    for day, times in wanted.items():
        entry = cafe.hours.get(day)
        if entry is None:
            entry = OperatingHours(day_of_week=day)
            cafe.hours[day] = entry
        entry.open_time = times.get('open')
        entry.close_time = times.get('close')
        entry.closed = bool(times.get('closed', False))


def _apply_menu_item(item, data, partial=False):
    if not isinstance(data, dict):
        raise ValidationError("Menu item must be an object")
    if 'name' in data or not partial:
        if not data.get('name'):
            raise ValidationError("Menu item name is required")
        item.name = data['name']
    if 'category' in data or not partial:
        category = str(data.get('category') or '').upper()
        if category not in MENU_CATEGORIES:
            raise ValidationError(f"Unknown menu category: {data.get('category')}")
        item.category = category
    if 'price' in data or not partial:
        price = _number(data.get('price'), "Menu item price must be a number")
        if price < 0:
            raise ValidationError("Menu item price cannot be negative")
        item.price = price
    for field in ('description', 'image'):
        if field in data:
            setattr(item, field, data[field])
    return item


def _apply_cafe(cafe, data, partial=False):
    # Rating aggregates are never taken from the payload
    if not partial:
        for field in REQUIRED_FIELDS:
            if not data.get(field):
                raise ValidationError(f"Missing field: {field}")

    for field, limit in MAX_LENGTHS.items():
        if field in data or not partial:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Missing field: {field}")
            if len(value.strip()) > limit:
                raise ValidationError(f"{field.capitalize()} must not exceed {limit} characters")
            setattr(cafe, field, value.strip())

    if 'location' in data or not partial:
        _apply_location(cafe, data.get('location'), partial)
    if 'budget' in data or not partial:
        _apply_budget(cafe, data.get('budget'), partial)

    if 'contact' in data:
        contact = data['contact'] or {}
        if not isinstance(contact, dict):
            raise ValidationError("Contact must be an object")
        for field in ('phone', 'email', 'website'):
            if field in contact or not partial:
                setattr(cafe, field, contact.get(field))

    if 'amenities' in data:
        cafe.set_amenities(_amenities(data['amenities'] or []))
    if 'hours' in data:
        _apply_hours(cafe, data['hours'] or {})

    if 'is_active' in data:
        if not isinstance(data['is_active'], bool):
            raise ValidationError("is_active must be true or false")
        cafe.is_active = data['is_active']


# --- Access ---

def _manager(store, user_id):
    user = store.get_user(user_id)
    if user.role not in MANAGER_ROLES:
        raise PermissionDenied("Only cafe owners can manage cafes")
    return user


def _owned_cafe(store, cafe_id, user):
    cafe = store.lock_cafe(cafe_id)
    if cafe.owner_id != user.id and user.role != 'admin':
        raise PermissionDenied("Not authorized to manage this cafe")
    return cafe


def _menu_item(cafe, item_id):
    for item in cafe.menu:
        if item.id == item_id:
            return item
    raise NotFound("Menu item not found")


# --- Cafes ---

def create_cafe(user_id, data, store=None):
    store = store or CafeStore()
    with store.atomic():
        owner = _manager(store, user_id)
        cafe = Cafe(owner_id=owner.id)
        _apply_cafe(cafe, data)
        for entry in data.get('menu') or []:
            cafe.menu.append(_apply_menu_item(MenuItem(), entry))
        store.insert_cafe(cafe)
    logger.info("User %s created cafe %s", user_id, cafe.id)
    return cafe


def update_cafe(cafe_id, user_id, data, store=None):
    store = store or CafeStore()
    with store.atomic():
        cafe = _owned_cafe(store, cafe_id, _manager(store, user_id))
        _apply_cafe(cafe, data, partial=True)
        store.update_cafe(cafe)
    logger.info("User %s updated cafe %s", user_id, cafe_id)
    return cafe


def delete_cafe(cafe_id, user_id, store=None):
    store = store or CafeStore()
    with store.atomic():
        cafe = _owned_cafe(store, cafe_id, _manager(store, user_id))
        rating_count = len(store.find_ratings_by_cafe(cafe_id))
        store.delete_cafe(cafe)
    logger.info("User %s deleted cafe %s and its %s ratings", user_id, cafe_id, rating_count)


def owner_cafes(user_id, store=None):
    store = store or CafeStore()
    with store.reading():
        owner = _manager(store, user_id)
        return store.find_cafes_by_owner(owner.id)


# --- Menu ---

def add_menu_item(cafe_id, user_id, data, store=None):
    store = store or CafeStore()
    with store.atomic():
        cafe = _owned_cafe(store, cafe_id, _manager(store, user_id))
        item = _apply_menu_item(MenuItem(), data)
        cafe.menu.append(item)
        store.update_cafe(cafe)
    return item


def update_menu_item(cafe_id, item_id, user_id, data, store=None):
    store = store or CafeStore()
    with store.atomic():
        cafe = _owned_cafe(store, cafe_id, _manager(store, user_id))
        item = _apply_menu_item(_menu_item(cafe, item_id), data, partial=True)
        store.update_cafe(cafe)
    return item


def delete_menu_item(cafe_id, item_id, user_id, store=None):
    store = store or CafeStore()
    with store.atomic():
        cafe = _owned_cafe(store, cafe_id, _manager(store, user_id))
        cafe.menu.remove(_menu_item(cafe, item_id))
        cafe.menu.reorder()
        store.update_cafe(cafe)
