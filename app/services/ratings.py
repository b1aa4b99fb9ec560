from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.review import Review
from app.models.tour import DEFAULT_RATINGS_AVERAGE, Tour

_LOG = logging.getLogger("app.ratings")


def calc_average_ratings(db: Session, tour_id: uuid.UUID) -> tuple[int, float]:
    """Recompute a tour's rating summary from its reviews; unrated reviews are ignored."""
    quantity, average = db.execute(
        select(func.count(Review.rating), func.avg(Review.rating)).where(
            Review.tour_id == tour_id, Review.rating.is_not(None)
        )
    ).one()
    quantity = int(quantity or 0)
    average = float(average) if quantity else DEFAULT_RATINGS_AVERAGE

    tour = db.get(Tour, tour_id)
    if tour is None:
        return quantity, average
    tour.ratings_quantity = quantity
    tour.ratings_average = average
    db.flush()
    _LOG.debug("tour %s ratings: quantity=%s average=%.1f", tour_id, quantity, tour.ratings_average)
    return quantity, tour.ratings_average


def sync_tour_ratings(db: Session, review: Review, previous: dict[str, Any] | None = None) -> None:
    """Recompute every tour the write touched, including the one a review was moved away from."""
    tour_ids = [review.tour_id]
    if previous and previous.get("tour_id") != review.tour_id:
        tour_ids.append(previous.get("tour_id"))
    for tour_id in tour_ids:
        if tour_id is not None:
            calc_average_ratings(db, tour_id)
