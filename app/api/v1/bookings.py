from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.handler_factory import create_one, delete_one, get_all, get_one, success, update_one
from app.api.resources import BOOKINGS, TOURS
from app.core.deps import get_current_user, require_role
from app.db.session import get_db
from app.models.booking import Booking
from app.models.tour import Tour
from app.models.user import User

router = APIRouter(dependencies=[Depends(get_current_user)])
booking_admins = [Depends(require_role("admin", "lead-guide"))]


@router.get("/my-tours")
def my_tours(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tour_ids = select(Booking.tour_id).where(Booking.user_id == user.id)
    tours = TOURS.collection.bind(db).find(Tour.id.in_(tour_ids)).sort_by(Tour.name).all()
    return success({"data": [TOURS.collection.serialize(tour) for tour in tours]}, results=len(tours))


router.add_api_route("", get_all(BOOKINGS), methods=["GET"], dependencies=booking_admins, name="list_bookings")
router.add_api_route("", create_one(BOOKINGS), methods=["POST"], status_code=201, dependencies=booking_admins, name="create_booking")
router.add_api_route("/{id}", get_one(BOOKINGS), methods=["GET"], dependencies=booking_admins, name="get_booking")
router.add_api_route("/{id}", update_one(BOOKINGS), methods=["PATCH"], dependencies=booking_admins, name="update_booking")
router.add_api_route("/{id}", delete_one(BOOKINGS), methods=["DELETE"], status_code=204, dependencies=booking_admins, name="delete_booking")
