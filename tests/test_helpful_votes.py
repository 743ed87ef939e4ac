import pytest

from models import db, Cafe, Rating
from services import (NotFound, SelfVoteDenied, ConflictError, create_rating,
                      is_marked_helpful, mark_helpful, unmark_helpful)


@pytest.fixture
def rating(make_user, make_cafe):
    author = make_user("author")
    cafe = make_cafe()
    return create_rating(author.id, cafe.id, 4, "Great cold brew")


def _voters(rating_id):
    rating = db.session.get(Rating, rating_id)
    return {user.id for user in rating.helpful_users}, rating.helpful_count


def test_mark_then_unmark_restores_state(rating, make_user):
    voter = make_user()
    before = _voters(rating.id)

    mark_helpful(rating.id, voter.id)
    assert _voters(rating.id) == ({voter.id}, 1)

    unmark_helpful(rating.id, voter.id)
    assert _voters(rating.id) == before == (set(), 0)


def test_marking_twice_is_a_no_op(rating, make_user):
    voter = make_user()
    mark_helpful(rating.id, voter.id)
    mark_helpful(rating.id, voter.id)
    assert _voters(rating.id) == ({voter.id}, 1)


def test_unmark_without_vote_is_a_no_op(rating, make_user):
    voter = make_user()
    unmark_helpful(rating.id, voter.id)
    assert _voters(rating.id) == (set(), 0)


def test_count_tracks_every_voter(rating, make_user):
    voters = [make_user() for _ in range(3)]
    for voter in voters:
        mark_helpful(rating.id, voter.id)
    unmark_helpful(rating.id, voters[0].id)
    assert _voters(rating.id) == ({voters[1].id, voters[2].id}, 2)


def test_author_cannot_vote_on_own_rating(rating, make_user):
    other = make_user()
    mark_helpful(rating.id, other.id)

    with pytest.raises(SelfVoteDenied) as excinfo:
        mark_helpful(rating.id, rating.user_id)

    assert isinstance(excinfo.value, ConflictError)
    assert _voters(rating.id) == ({other.id}, 1)


def test_is_marked_helpful(rating, make_user):
    voter, bystander = make_user(), make_user()
    mark_helpful(rating.id, voter.id)

    assert is_marked_helpful(rating.id, voter.id) is True
    assert is_marked_helpful(rating.id, bystander.id) is False
    # lookups do not change anything
    assert _voters(rating.id) == ({voter.id}, 1)


def test_votes_leave_cafe_aggregates_alone(rating, make_user):
    cafe = db.session.get(Cafe, rating.cafe_id)
    before = (cafe.average_rating, cafe.rating_count)

    mark_helpful(rating.id, make_user().id)

    cafe = db.session.get(Cafe, rating.cafe_id)
    assert (cafe.average_rating, cafe.rating_count) == before


def test_unknown_rating_or_user(rating, make_user):
    voter = make_user()
    with pytest.raises(NotFound):
        mark_helpful(9999, voter.id)
    with pytest.raises(NotFound):
        unmark_helpful(9999, voter.id)
    with pytest.raises(NotFound):
        is_marked_helpful(9999, voter.id)
    with pytest.raises(NotFound):
        mark_helpful(rating.id, 9999)
    with pytest.raises(NotFound):
        unmark_helpful(rating.id, 9999)
    with pytest.raises(NotFound):
        is_marked_helpful(rating.id, 9999)
