import logging

from .errors import SelfVoteDenied
from .store import CafeStore

logger = logging.getLogger(__name__)


def _sync_count(rating):
    rating.helpful_count = len(rating.helpful_users)


def mark_helpful(rating_id, user_id, store=None):
    store = store or CafeStore()
    with store.atomic():
        rating = store.lock_rating(rating_id)
        user = store.get_user(user_id)
        if rating.user_id == user.id:
            raise SelfVoteDenied("You cannot mark your own rating as helpful")
        if user not in rating.helpful_users:
            rating.helpful_users.append(user)
            logger.info("User %s marked rating %s helpful", user_id, rating_id)
        _sync_count(rating)
    return rating


def unmark_helpful(rating_id, user_id, store=None):
    store = store or CafeStore()
    with store.atomic():
        rating = store.lock_rating(rating_id)
        user = store.get_user(user_id)
        if user in rating.helpful_users:
            rating.helpful_users.remove(user)
            logger.info("User %s withdrew helpful mark on rating %s", user_id, rating_id)
        _sync_count(rating)
    return rating


def is_marked_helpful(rating_id, user_id, store=None):
    store = store or CafeStore()
    with store.reading():
        store.get_rating(rating_id)
        store.get_user(user_id)
        return store.has_voted(rating_id, user_id)
