from fastapi import APIRouter, Depends

from app.api.handler_factory import create_one, delete_one, get_all, get_one, update_one
from app.api.resources import REVIEWS
from app.core.deps import get_current_user, require_role

# Mounted at /reviews and /tours/{tour_id}/reviews.
router = APIRouter(dependencies=[Depends(get_current_user)])
review_editors = [Depends(require_role("user", "admin"))]

router.add_api_route("", get_all(REVIEWS), methods=["GET"], name="list_reviews")
router.add_api_route(
    "",
    create_one(REVIEWS),
    methods=["POST"],
    status_code=201,
    dependencies=[Depends(require_role("user"))],
    name="create_review",
)
router.add_api_route("/{id}", get_one(REVIEWS), methods=["GET"], name="get_review")
router.add_api_route("/{id}", update_one(REVIEWS), methods=["PATCH"], dependencies=review_editors, name="update_review")
router.add_api_route("/{id}", delete_one(REVIEWS), methods=["DELETE"], status_code=204, dependencies=review_editors, name="delete_review")
