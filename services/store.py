import logging
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db, Cafe, Rating, User, rating_helpful
from .errors import ConflictError, NotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class CafeStore:
    """Query/command interface over one SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self._depth = 0

    # --- Transaction scopes ---

    @contextmanager
    def atomic(self):
        # Commit only at the outermost scope; inner scopes join it
        self._depth += 1
        outermost = self._depth == 1
        try:
            yield self
            if outermost:
                self.session.commit()
        except IntegrityError as exc:
            if not outermost:
                raise
            self.session.rollback()
            raise ConflictError("Conflicts with an existing record") from exc
        except SQLAlchemyError as exc:
            if not outermost:
                raise
            self.session.rollback()
            logger.error("Store failure, transaction rolled back: %s", exc)
            raise StoreUnavailable("The data store is unavailable") from exc
        except BaseException:
            if outermost:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

    @contextmanager
    def reading(self):
        """Read-only scope: no commit, store errors surface as StoreUnavailable."""
        try:
            yield self
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store failure during read: %s", exc)
            raise StoreUnavailable("The data store is unavailable") from exc

    # --- Lookups ---

    def get_cafe(self, cafe_id):
        cafe = self.session.get(Cafe, cafe_id)
        if cafe is None:
            raise NotFound("Cafe not found")
        return cafe

    def lock_cafe(self, cafe_id):
        # SELECT ... FOR UPDATE, held until the transaction ends
        stmt = (select(Cafe).where(Cafe.id == cafe_id)
                .with_for_update()
                .execution_options(populate_existing=True))
        cafe = self.session.execute(stmt).scalar_one_or_none()
        if cafe is None:
            raise NotFound("Cafe not found")
        return cafe

    def get_rating(self, rating_id):
        rating = self.session.get(Rating, rating_id)
        if rating is None:
            raise NotFound("Rating not found")
        return rating

    def lock_rating(self, rating_id):
        stmt = (select(Rating).where(Rating.id == rating_id)
                .with_for_update()
                .execution_options(populate_existing=True))
        rating = self.session.execute(stmt).scalar_one_or_none()
        if rating is None:
            raise NotFound("Rating not found")
        return rating

    def get_user(self, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def find_rating(self, user_id, cafe_id):
        return self.session.query(Rating).filter_by(user_id=user_id, cafe_id=cafe_id).first()

    def has_voted(self, rating_id, user_id):
        stmt = select(rating_helpful.c.rating_id).where(
            rating_helpful.c.rating_id == rating_id,
            rating_helpful.c.user_id == user_id
        )
        return self.session.execute(stmt).first() is not None

    # --- Rating commands ---

    def insert_rating(self, rating):
        self.session.add(rating)
        self.session.flush()
        return rating

    def update_rating(self, rating):
        self.session.flush()
        return rating

    def delete_rating(self, rating):
        self.session.delete(rating)
        self.session.flush()

    # --- Rating reads ---

    def find_ratings_by_cafe(self, cafe_id):
        return self.session.query(Rating).filter_by(cafe_id=cafe_id).order_by(Rating.id).all()

    def score_totals(self, cafe_id):
        count, total = (self.session.query(func.count(Rating.id), func.coalesce(func.sum(Rating.score), 0))
                        .filter(Rating.cafe_id == cafe_id)
                        .one())
        return count, total

    def find_ratings_page(self, cafe_id, order_by, offset, limit):
        query = self.session.query(Rating).filter_by(cafe_id=cafe_id)
        total = query.count()
        items = query.order_by(*order_by).offset(offset).limit(limit).all()
        return items, total

    def find_ratings_by_user_page(self, user_id, offset, limit):
        query = self.session.query(Rating).filter_by(user_id=user_id)
        total = query.count()
        items = query.order_by(Rating.created_at.desc(), Rating.id.desc()).offset(offset).limit(limit).all()
        return items, total

    def score_counts(self, cafe_id):
        rows = (self.session.query(Rating.score, func.count(Rating.id))
                .filter(Rating.cafe_id == cafe_id)
                .group_by(Rating.score)
                .all())
        return dict(rows)

    def aspect_averages(self, cafe_id):
        return (self.session.query(
                    func.avg(Rating.food_rating),
                    func.avg(Rating.service_rating),
                    func.avg(Rating.ambiance_rating),
                    func.avg(Rating.value_rating),
                    func.count(Rating.id))
                .filter(Rating.cafe_id == cafe_id, Rating.food_rating.isnot(None))
                .one())

    # --- Cafe commands / reads ---

    def insert_cafe(self, cafe):
        self.session.add(cafe)
        self.session.flush()
        return cafe

    def update_cafe(self, cafe):
        self.session.flush()
        return cafe

    def delete_cafe(self, cafe):
        # ratings, helpful votes, menu, amenities and hours go with it
        self.session.delete(cafe)
        self.session.flush()

    def find_cafes_by_owner(self, owner_id):
        return (self.session.query(Cafe)
                .filter_by(owner_id=owner_id)
                .order_by(Cafe.created_at.desc(), Cafe.id.desc())
                .all())

    def update_cafe_aggregates(self, cafe_id, average_rating, rating_count):
        updated = (self.session.query(Cafe)
                   .filter_by(id=cafe_id)
                   .update({"average_rating": average_rating, "rating_count": rating_count}))
        if not updated:
            raise NotFound("Cafe not found")

    def find_cafes(self, cafe_query, offset, limit):
        query = self.session.query(Cafe).filter(*cafe_query.clauses())
        total = query.count()
        items = query.order_by(*cafe_query.sort.order_by()).offset(offset).limit(limit).all()
        return items, total
