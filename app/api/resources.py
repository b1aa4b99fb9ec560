from __future__ import annotations

from typing import Any

from fastapi import Request

from app.api.handler_factory import ResourceDescriptor
from app.core.deps import current_user_id
from app.models.booking import Booking
from app.models.review import Review
from app.models.tour import Tour
from app.models.user import User
from app.schemas.booking import BookingUpsert
from app.schemas.review import ReviewUpsert
from app.schemas.tour import TourUpsert
from app.schemas.user import UserAdminUpsert
from app.services.document_store import Collection
from app.services.ratings import sync_tour_ratings
from app.services.serialization import Populate

GUIDE_FIELDS = ("name", "email", "role", "photo")
AUTHOR_FIELDS = ("name", "photo")

TOP_CHEAP_PARAMS = {
    "limit": "5",
    "sort": "-ratings_average,price",
    "fields": "name,price,ratings_average,summary,difficulty",
}


def _public_tours(model) -> list:
    return [model.secret_tour.is_(False)]


def _active_users(model) -> list:
    return [model.active.is_(True)]


def _set_tour_user_ids(request: Request, payload: dict[str, Any]) -> dict[str, Any]:
    if not payload.get("tour_id") and request.path_params.get("tour_id"):
        payload["tour_id"] = request.path_params["tour_id"]
    if not payload.get("user_id"):
        payload["user_id"] = current_user_id(request)
    return payload


tour_collection = Collection(
    model=Tour,
    schema=TourUpsert,
    auto_populate=(Populate("guides", select=GUIDE_FIELDS),),
    scope=_public_tours,
)
review_collection = Collection(
    model=Review,
    schema=ReviewUpsert,
    auto_populate=(Populate("user", select=AUTHOR_FIELDS),),
    after_write=sync_tour_ratings,
)
user_collection = Collection(model=User, schema=UserAdminUpsert, scope=_active_users)
booking_collection = Collection(
    model=Booking,
    schema=BookingUpsert,
    auto_populate=(Populate("user", select=GUIDE_FIELDS), Populate("tour", select=("name",))),
)

TOURS = ResourceDescriptor(
    tour_collection,
    populate=(Populate("reviews", populate=(Populate("user", select=AUTHOR_FIELDS),)),),
)
REVIEWS = ResourceDescriptor(review_collection, parent=("tour_id", "tour_id"), prepare_payload=_set_tour_user_ids)
USERS = ResourceDescriptor(user_collection)
BOOKINGS = ResourceDescriptor(booking_collection)
