from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.handler_factory import create_one, delete_one, get_all, get_one, success, update_one
from app.api.resources import TOP_CHEAP_PARAMS, TOURS
from app.core.deps import require_role
from app.db.session import get_db
from app.services.tour_reports import distances, monthly_plan, parse_lat_lng, parse_unit, tour_stats, tours_within

router = APIRouter()
tour_writers = [Depends(require_role("admin", "lead-guide"))]

router.add_api_route("/top-5-cheap", get_all(TOURS, params=TOP_CHEAP_PARAMS), methods=["GET"], name="top_tours")


@router.get("/tour-stats")
def get_tour_stats(db: Session = Depends(get_db)):
    return success({"stats": tour_stats(db)})


@router.get("/monthly-plan/{year}", dependencies=[Depends(require_role("admin", "lead-guide", "guide"))])
def get_monthly_plan(year: int, db: Session = Depends(get_db)):
    return success({"plan": monthly_plan(db, year)})


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}")
def get_tours_within(distance: float, latlng: str, unit: str, db: Session = Depends(get_db)):
    lat, lng = parse_lat_lng(latlng)
    tours = tours_within(db, distance, lat, lng, parse_unit(unit))
    return success({"data": [TOURS.collection.serialize(tour) for tour in tours]}, results=len(tours))


@router.get("/distances/{latlng}/unit/{unit}")
def get_distances(latlng: str, unit: str, db: Session = Depends(get_db)):
    lat, lng = parse_lat_lng(latlng)
    return success({"data": distances(db, lat, lng, parse_unit(unit))})


router.add_api_route("", get_all(TOURS, check_page_bounds=True), methods=["GET"], name="list_tours")
router.add_api_route("", create_one(TOURS), methods=["POST"], status_code=201, dependencies=tour_writers, name="create_tour")
router.add_api_route("/{id}", get_one(TOURS), methods=["GET"], name="get_tour")
router.add_api_route("/{id}", update_one(TOURS), methods=["PATCH"], dependencies=tour_writers, name="update_tour")
router.add_api_route("/{id}", delete_one(TOURS), methods=["DELETE"], status_code=204, dependencies=tour_writers, name="delete_tour")
