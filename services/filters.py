from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_

from models import Cafe, CafeAmenity, AMENITIES
from .errors import ValidationError

SORT_DEFAULT = 'default'
SORT_TOP_RATED = 'top_rated'
SORT_NEWEST = 'newest'
SORT_BUDGET_LOW = 'budget_low'
SORT_BUDGET_HIGH = 'budget_high'


class BoundingBox:
    """Rectangle of +/- ``lat_range`` / ``lng_range`` degrees around a point."""

    def __init__(self, latitude, longitude, lat_range, lng_range=None):
        self.latitude = latitude
        self.longitude = longitude
        self.lat_range = lat_range
        self.lng_range = lat_range if lng_range is None else lng_range

    def __repr__(self):
        return (f"<BoundingBox ({self.latitude}, {self.longitude}) "
                f"+/-{self.lat_range}/{self.lng_range}>")


class SearchRequest:
    def __init__(self, city=None, state=None, min_budget=None, max_budget=None,
                 term=None, amenities=None, bounds=None, sort=SORT_DEFAULT):
        self.city = city
        self.state = state
        self.min_budget = min_budget
        self.max_budget = max_budget
        self.term = term
        self.amenities = amenities
        self.bounds = bounds
        self.sort = sort or SORT_DEFAULT


# --- Criteria ---

class Criterion:
    def clause(self):
        raise NotImplementedError

    def matches(self, cafe):
        raise NotImplementedError


class IsActive(Criterion):
    def clause(self):
        return Cafe.is_active.is_(True)

    def matches(self, cafe):
        return bool(cafe.is_active)


class Contains(Criterion):
    """Case-insensitive substring match against any of the given columns."""

    def __init__(self, value, *columns):
        self.value = value
        self.columns = columns

    def clause(self):
        pattern = "%" + _escape_like(self.value) + "%"
        return or_(*[getattr(Cafe, col).ilike(pattern, escape="\\") for col in self.columns])

    def matches(self, cafe):
        needle = self.value.lower()
        return any(needle in (getattr(cafe, col) or "").lower() for col in self.columns)


class MinBudget(Criterion):
    def __init__(self, value):
        self.value = value

    def clause(self):
        return Cafe.min_budget >= self.value

    def matches(self, cafe):
        return cafe.min_budget >= self.value


class MaxBudget(Criterion):
    def __init__(self, value):
        self.value = value

    def clause(self):
        return Cafe.max_budget <= self.value

    def matches(self, cafe):
        return cafe.max_budget <= self.value


class HasAmenity(Criterion):
    def __init__(self, amenity):
        self.amenity = amenity

    def clause(self):
        return Cafe.amenities.any(CafeAmenity.amenity == self.amenity)

    def matches(self, cafe):
        return self.amenity in cafe.amenity_names


class WithinBounds(Criterion):
    def __init__(self, box):
        self.box = box

    def clause(self):
        return ((func.abs(Cafe.latitude - self.box.latitude) <= self.box.lat_range) &
                (func.abs(Cafe.longitude - self.box.longitude) <= self.box.lng_range))

    def matches(self, cafe):
        return (abs(cafe.latitude - self.box.latitude) <= self.box.lat_range and
                abs(cafe.longitude - self.box.longitude) <= self.box.lng_range)


# --- Sorting ---

class SortMode:
    # Every mode ends on the primary key so ties always come back in one order

    def __init__(self, name, keys):
        self.name = name
        self.keys = keys

    def order_by(self):
        return [getattr(Cafe, col).desc().nulls_last() if descending else getattr(Cafe, col).asc().nulls_first()
                for col, descending in self.keys]

    def sort(self, cafes):
        ordered = list(cafes)
        # Least significant key first; list.sort is stable
        for col, descending in reversed(self.keys):
            ordered.sort(key=lambda cafe: _none_lowest(getattr(cafe, col)), reverse=descending)
        return ordered

    def __repr__(self):
        return f"<SortMode {self.name}>"


def _none_lowest(value):
    # NULL sorts below everything, same as NULLS FIRST / NULLS LAST in order_by()
    return (value is not None, value)


SORT_MODES = {
    SORT_DEFAULT: SortMode(SORT_DEFAULT, [('id', False)]),
    SORT_TOP_RATED: SortMode(SORT_TOP_RATED, [('average_rating', True), ('rating_count', True), ('id', False)]),
    SORT_NEWEST: SortMode(SORT_NEWEST, [('created_at', True), ('id', True)]),
    SORT_BUDGET_LOW: SortMode(SORT_BUDGET_LOW, [('min_budget', False), ('id', False)]),
    SORT_BUDGET_HIGH: SortMode(SORT_BUDGET_HIGH, [('max_budget', True), ('id', False)]),
}


class CafeQuery:
    def __init__(self, criteria, sort):
        self.criteria = criteria
        self.sort = sort

    def clauses(self):
        return [criterion.clause() for criterion in self.criteria]

    def matches(self, cafe):
        return all(criterion.matches(cafe) for criterion in self.criteria)

    def apply(self, cafes):
        return self.sort.sort(cafe for cafe in cafes if self.matches(cafe))


# --- Compilation ---

def compile_request(request):
    criteria = [IsActive()]

    city = _text(request.city)
    if city:
        criteria.append(Contains(city, 'city'))
    state = _text(request.state)
    if state:
        criteria.append(Contains(state, 'state'))

    min_budget = _budget(request.min_budget, 'min_budget')
    max_budget = _budget(request.max_budget, 'max_budget')
    if min_budget is not None and max_budget is not None and min_budget > max_budget:
        raise ValidationError("min_budget cannot be greater than max_budget")
    if min_budget is not None:
        criteria.append(MinBudget(min_budget))
    if max_budget is not None:
        criteria.append(MaxBudget(max_budget))

    term = _text(request.term)
    if term:
        criteria.append(Contains(term, 'name', 'description', 'city'))

    for amenity in _amenities(request.amenities):
        criteria.append(HasAmenity(amenity))

    if request.bounds is not None:
        criteria.append(WithinBounds(_bounds(request.bounds)))

    sort = SORT_MODES.get(request.sort)
    if sort is None:
        raise ValidationError(f"Unknown sort mode: {request.sort}")

    return CafeQuery(criteria, sort)


def _text(value):
    if value is None:
        return None
    return str(value).strip() or None


def _escape_like(value):
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _budget(value, field):
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return amount


def _amenities(values):
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(',')
    wanted = []
    for value in values:
        name = str(value).strip().upper()
        if not name:
            continue
        if name not in AMENITIES:
            raise ValidationError(f"Unknown amenity: {value}")
        if name not in wanted:
            wanted.append(name)
    return wanted


def _bounds(box):
    try:
        latitude = float(box.latitude)
        longitude = float(box.longitude)
        lat_range = float(box.lat_range)
        lng_range = float(box.lng_range)
    except (TypeError, ValueError):
        raise ValidationError("Coordinates and radius must be numbers")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValidationError("Coordinates are out of range")
    if lat_range < 0 or lng_range < 0:
        raise ValidationError("Radius cannot be negative")
    return BoundingBox(latitude, longitude, lat_range, lng_range)
