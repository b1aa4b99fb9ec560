from fastapi import APIRouter
from app.api.v1 import bookings, reviews, tours, users

router = APIRouter()
router.include_router(tours.router, prefix="/tours", tags=["Tours"])
router.include_router(reviews.router, prefix="/tours/{tour_id}/reviews", tags=["Reviews"])
router.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])
