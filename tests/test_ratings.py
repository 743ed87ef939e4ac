from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import services.ratings
from models import db, Cafe, Rating
from services import (CafeStore, ConflictError, NotFound, PermissionDenied, StoreUnavailable,
                      ValidationError, create_rating, delete_rating, list_cafe_ratings,
                      mark_helpful, update_rating)

ASPECTS = {"food": 5, "service": 4, "ambiance": 3, "value": 4}


class BrokenAggregateStore(CafeStore):
    """Fails on the aggregate write, after the rating row is flushed."""

    def update_cafe_aggregates(self, cafe_id, average_rating, rating_count):
        raise OperationalError("UPDATE cafes", {}, Exception("connection reset"))


@pytest.fixture
def cafe(make_cafe):
    return make_cafe()


def _aggregates(cafe_id):
    cafe = db.session.get(Cafe, cafe_id)
    return cafe.average_rating, cafe.rating_count


def test_create_rating_with_aspects(make_user, cafe):
    user = make_user()
    rating = create_rating(user.id, cafe.id, 5, "  Perfect croissants  ", ASPECTS)

    stored = db.session.get(Rating, rating.id)
    assert stored.review == "Perfect croissants"
    assert stored.aspects == ASPECTS
    assert stored.helpful_count == 0
    assert _aggregates(cafe.id) == (Decimal("5.00"), 1)


def test_second_rating_for_same_cafe_conflicts(make_user, cafe):
    user = make_user()
    create_rating(user.id, cafe.id, 4, "Good")

    with pytest.raises(ConflictError):
        create_rating(user.id, cafe.id, 1, "Changed my mind")

    assert Rating.query.filter_by(user_id=user.id, cafe_id=cafe.id).count() == 1
    assert _aggregates(cafe.id) == (Decimal("4.00"), 1)


@pytest.mark.parametrize("score, review, aspects", [
    (0, "Too low", None),
    (6, "Too high", None),
    (4.5, "Not an integer", None),
    (True, "Not a number", None),
    (3, "", None),
    (3, "x" * 1001, None),
    (3, "Partial aspects", {"food": 5, "service": 4}),
    (3, "Aspect out of range", {"food": 5, "service": 4, "ambiance": 3, "value": 9}),
    (3, "Unknown aspect", dict(ASPECTS, music=5)),
])
def test_invalid_ratings_are_rejected(make_user, cafe, score, review, aspects):
    with pytest.raises(ValidationError):
        create_rating(make_user().id, cafe.id, score, review, aspects)
    assert Rating.query.count() == 0


def test_rating_unknown_cafe_or_user(make_user, cafe):
    with pytest.raises(NotFound):
        create_rating(make_user().id, 9999, 4, "Where is it?")
    with pytest.raises(NotFound):
        create_rating(9999, cafe.id, 4, "Who am I?")


def test_update_score_recomputes(make_user, cafe):
    first = create_rating(make_user().id, cafe.id, 2, "Meh")
    create_rating(make_user().id, cafe.id, 4, "Nice")

    update_rating(first.id, first.user_id, score=5)
    assert _aggregates(cafe.id) == (Decimal("4.50"), 2)


def test_update_without_score_change_skips_recompute(make_user, cafe, monkeypatch):
    rating = create_rating(make_user().id, cafe.id, 3, "Okay")
    calls = []
    monkeypatch.setattr(services.ratings, "recompute_aggregates",
                        lambda cafe_id, store=None: calls.append(cafe_id))

    update_rating(rating.id, rating.user_id, review="Better on second visit", aspects=ASPECTS)
    update_rating(rating.id, rating.user_id, score=3)
    assert calls == []

    stored = db.session.get(Rating, rating.id)
    assert stored.review == "Better on second visit"
    assert stored.aspects == ASPECTS


def test_update_can_clear_aspects(make_user, cafe):
    rating = create_rating(make_user().id, cafe.id, 3, "Okay", ASPECTS)
    update_rating(rating.id, rating.user_id, aspects=None)
    assert db.session.get(Rating, rating.id).aspects is None


def test_only_the_author_can_change_a_rating(make_user, cafe):
    rating = create_rating(make_user().id, cafe.id, 3, "Fine")
    intruder = make_user()

    with pytest.raises(PermissionDenied):
        update_rating(rating.id, intruder.id, score=1)
    with pytest.raises(PermissionDenied):
        delete_rating(rating.id, intruder.id)

    assert db.session.get(Rating, rating.id).score == 3


def test_delete_rating_recomputes_and_drops_votes(make_user, cafe):
    keep = create_rating(make_user().id, cafe.id, 5, "Great")
    gone = create_rating(make_user().id, cafe.id, 1, "Awful")
    mark_helpful(gone.id, keep.user_id)

    delete_rating(gone.id, gone.user_id)

    assert db.session.get(Rating, gone.id) is None
    assert _aggregates(cafe.id) == (Decimal("5.00"), 1)
    with pytest.raises(NotFound):
        delete_rating(gone.id, gone.user_id)


def test_failed_aggregate_write_rolls_back_the_rating(make_user, cafe):
    user = make_user()
    with pytest.raises(StoreUnavailable):
        create_rating(user.id, cafe.id, 5, "Lost in transit", store=BrokenAggregateStore())

    assert Rating.query.count() == 0
    assert _aggregates(cafe.id) == (Decimal("0"), 0)


def test_list_cafe_ratings_sorts_and_paginates(make_user, cafe):
    low = create_rating(make_user().id, cafe.id, 1, "Cold coffee")
    high = create_rating(make_user().id, cafe.id, 5, "Hot coffee")
    mid = create_rating(make_user().id, cafe.id, 3, "Lukewarm coffee")
    mark_helpful(mid.id, low.user_id)

    highest = list_cafe_ratings(cafe.id, sort="highest")
    assert [r.id for r in highest.items] == [high.id, mid.id, low.id]
    assert highest.total == 3

    helpful = list_cafe_ratings(cafe.id, sort="helpful", page=0, page_size=1)
    assert [r.id for r in helpful.items] == [mid.id]
    assert helpful.has_more is True

    last = list_cafe_ratings(cafe.id, sort="lowest", page=2, page_size=1)
    assert [r.id for r in last.items] == [high.id]
    assert last.has_more is False


def test_list_cafe_ratings_errors(make_user, cafe):
    with pytest.raises(ValidationError):
        list_cafe_ratings(cafe.id, sort="random")
    with pytest.raises(ValidationError):
        list_cafe_ratings(cafe.id, page_size=0)
    with pytest.raises(NotFound):
        list_cafe_ratings(4242)
