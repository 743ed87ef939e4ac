import logging

from sqlalchemy.exc import IntegrityError

from models import Rating, ASPECTS
from .aggregates import recompute_aggregates
from .errors import ConflictError, NotFound, PermissionDenied, ValidationError
from .search import SearchPage, check_pagination
from .store import CafeStore

logger = logging.getLogger(__name__)

MAX_REVIEW_LENGTH = 1000

# Leave aspects untouched on update
KEEP = object()

RATING_SORTS = {
    'newest': (Rating.created_at.desc(), Rating.id.desc()),
    'oldest': (Rating.created_at.asc(), Rating.id.asc()),
    'highest': (Rating.score.desc(), Rating.id.desc()),
    'lowest': (Rating.score.asc(), Rating.id.desc()),
    'helpful': (Rating.helpful_count.desc(), Rating.id.desc()),
}


def _validate_score(score, field='rating'):
    if isinstance(score, bool) or not isinstance(score, int) or not 1 <= score <= 5:
        raise ValidationError(f"{field.capitalize()} must be an integer between 1 and 5")
    return score


def _validate_review(review):
    if not isinstance(review, str) or not review.strip():
        raise ValidationError("Review is required")
    review = review.strip()
    if len(review) > MAX_REVIEW_LENGTH:
        raise ValidationError(f"Review must not exceed {MAX_REVIEW_LENGTH} characters")
    return review


def _validate_aspects(aspects):
    # all four or none
    if not aspects:
        return None
    if not isinstance(aspects, dict):
        raise ValidationError("Aspects must be an object")
    missing = [name for name in ASPECTS if aspects.get(name) is None]
    if missing:
        raise ValidationError(f"Aspect ratings must include {', '.join(ASPECTS)}")
    unknown = set(aspects) - set(ASPECTS)
    if unknown:
        raise ValidationError(f"Unknown aspect: {sorted(unknown)[0]}")
    return {name: _validate_score(aspects[name], name) for name in ASPECTS}


def create_rating(user_id, cafe_id, score, review, aspects=None, store=None):
    score = _validate_score(score)
    review = _validate_review(review)
    aspects = _validate_aspects(aspects)

    store = store or CafeStore()
    with store.atomic():
        store.lock_cafe(cafe_id)
        store.get_user(user_id)
        if store.find_rating(user_id, cafe_id) is not None:
            raise ConflictError("You have already rated this cafe")

        rating = Rating(user_id=user_id, cafe_id=cafe_id, score=score, review=review)
        rating.set_aspects(aspects)
        try:
            store.insert_rating(rating)
        except IntegrityError as exc:
            # Lost the race against a concurrent insert for the same pair
            raise ConflictError("You have already rated this cafe") from exc

        recompute_aggregates(cafe_id, store)
    logger.info("User %s rated cafe %s: %s", user_id, cafe_id, score)
    return rating


def update_rating(rating_id, user_id, score=None, review=None, aspects=KEEP, store=None):
    if score is not None:
        score = _validate_score(score)
    if review is not None:
        review = _validate_review(review)
    if aspects is not KEEP:
        aspects = _validate_aspects(aspects)

    store = store or CafeStore()
    with store.atomic():
        rating = store.get_rating(rating_id)
        if rating.user_id != user_id:
            raise PermissionDenied("Not authorized to edit this rating")
        cafe_id = rating.cafe_id
        store.lock_cafe(cafe_id)

        score_changed = score is not None and score != rating.score
        if score is not None:
            rating.score = score
        if review is not None:
            rating.review = review
        if aspects is not KEEP:
            rating.set_aspects(aspects)
        store.update_rating(rating)

        if score_changed:
            recompute_aggregates(cafe_id, store)
    logger.info("User %s updated rating %s", user_id, rating_id)
    return rating


def delete_rating(rating_id, user_id, store=None):
    store = store or CafeStore()
    with store.atomic():
        rating = store.get_rating(rating_id)
        if rating.user_id != user_id:
            raise PermissionDenied("Not authorized to delete this rating")
        cafe_id = rating.cafe_id
        store.lock_cafe(cafe_id)
        store.delete_rating(rating)
        recompute_aggregates(cafe_id, store)
    logger.info("User %s deleted rating %s on cafe %s", user_id, rating_id, cafe_id)


def list_cafe_ratings(cafe_id, sort='newest', page=0, page_size=10, store=None):
    check_pagination(page, page_size)
    order_by = RATING_SORTS.get(sort or 'newest')
    if order_by is None:
        raise ValidationError(f"Unknown sort mode: {sort}")

    store = store or CafeStore()
    with store.reading():
        store.get_cafe(cafe_id)
        items, total = store.find_ratings_page(cafe_id, order_by, page * page_size, page_size)
    return SearchPage(items, total, page, page_size)


def list_user_ratings(user_id, page=0, page_size=10, store=None):
    check_pagination(page, page_size)
    store = store or CafeStore()
    with store.reading():
        store.get_user(user_id)
        items, total = store.find_ratings_by_user_page(user_id, page * page_size, page_size)
    return SearchPage(items, total, page, page_size)


def find_user_rating(user_id, cafe_id, store=None):
    store = store or CafeStore()
    with store.reading():
        store.get_cafe(cafe_id)
        rating = store.find_rating(user_id, cafe_id)
    if rating is None:
        raise NotFound("No rating found for this cafe")
    return rating
