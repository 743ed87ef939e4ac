import logging

from .errors import InvalidPagination
from .filters import (BoundingBox, SearchRequest, SORT_NEWEST, SORT_TOP_RATED,
                      compile_request)
from .store import CafeStore

logger = logging.getLogger(__name__)


class SearchPage:
    """One page of results plus what a client needs to paginate."""

    def __init__(self, items, total, page, page_size):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size

    @property
    def has_more(self):
        return (self.page + 1) * self.page_size < self.total

    @property
    def pages(self):
        return -(-self.total // self.page_size)

    def to_dict(self, key="items", serialize=None):
        serialize = serialize or (lambda item: item.to_dict())
        return {
            key: [serialize(item) for item in self.items],
            "total": self.total,
            "pages": self.pages,
            "current_page": self.page,
            "per_page": self.page_size,
            "has_more": self.has_more
        }


def check_pagination(page, page_size):
    if page_size is None or page_size <= 0:
        raise InvalidPagination("Page size must be greater than zero")
    if page is None or page < 0:
        raise InvalidPagination("Page number cannot be negative")


def search(request, page=0, page_size=10, store=None):
    # page is zero-based; past the end gives an empty page, not an error
    check_pagination(page, page_size)
    cafe_query = compile_request(request)
    store = store or CafeStore()
    with store.reading():
        items, total = store.find_cafes(cafe_query, page * page_size, page_size)
    logger.debug("Cafe search sort=%s page=%s matched %s", cafe_query.sort.name, page, total)
    return SearchPage(items, total, page, page_size)


# --- Canned queries ---

def top_rated(page=0, page_size=10, store=None):
    return search(SearchRequest(sort=SORT_TOP_RATED), page, page_size, store)


def newest(page=0, page_size=10, store=None):
    return search(SearchRequest(sort=SORT_NEWEST), page, page_size, store)


def near(latitude, longitude, radius, page=0, page_size=10, store=None):
    request = SearchRequest(bounds=BoundingBox(latitude, longitude, radius))
    return search(request, page, page_size, store)
