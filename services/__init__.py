from .errors import (CafeHubError, ValidationError, InvalidPagination, NotFound,
                     PermissionDenied, ConflictError, SelfVoteDenied, StoreUnavailable)
from .store import CafeStore
from .aggregates import recompute_aggregates, aspect_summary, rating_distribution
from .helpful_votes import mark_helpful, unmark_helpful, is_marked_helpful
from .filters import (SearchRequest, BoundingBox, compile_request, SORT_DEFAULT, SORT_TOP_RATED,
                      SORT_NEWEST, SORT_BUDGET_LOW, SORT_BUDGET_HIGH)
from .search import SearchPage, search, top_rated, newest, near
from .ratings import (create_rating, update_rating, delete_rating, list_cafe_ratings,
                      list_user_ratings, find_user_rating)
from .cafes import (create_cafe, update_cafe, delete_cafe, owner_cafes,
                    add_menu_item, update_menu_item, delete_menu_item)
