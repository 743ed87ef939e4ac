import logging
from decimal import Decimal, ROUND_HALF_UP

from models import ASPECTS
from .store import CafeStore

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')


def rounded_mean(total, count):
    if not count:
        return ZERO
    return (Decimal(total) / Decimal(count)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _rounded(value):
    # func.avg comes back as float (sqlite) or Decimal (postgres)
    if value is None:
        return None
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def recompute_aggregates(cafe_id, store=None):
    # Cafe row is locked first so concurrent writers cannot interleave
    store = store or CafeStore()
    with store.atomic():
        store.lock_cafe(cafe_id)
        count, total = store.score_totals(cafe_id)
        average = rounded_mean(total, count)
        store.update_cafe_aggregates(cafe_id, average, count)
    logger.info("Cafe %s aggregates: average=%s count=%s", cafe_id, average, count)
    return average, count


def aspect_summary(cafe_id, store=None):
    # Ratings without aspects are skipped here but still count toward the headline average
    store = store or CafeStore()
    with store.reading():
        store.get_cafe(cafe_id)
        *averages, rated = store.aspect_averages(cafe_id)
    summary = {name: _rounded(avg) for name, avg in zip(ASPECTS, averages)}
    summary["count"] = rated or 0
    return summary


def rating_distribution(cafe_id, store=None):
    store = store or CafeStore()
    with store.reading():
        store.get_cafe(cafe_id)
        counts = store.score_counts(cafe_id)
    total = sum(counts.values())
    distribution = []
    for score in (5, 4, 3, 2, 1):
        count = counts.get(score, 0)
        percentage = 0
        if total:
            percentage = int((Decimal(count * 100) / total).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        distribution.append({"rating": score, "count": count, "percentage": percentage})
    return distribution
