"""Load or wipe development fixtures.

    python -m app.scripts.import_dev_data --import dev-data
    python -m app.scripts.import_dev_data --delete

The directory holds ``users.json``, ``tours.json`` and ``reviews.json``. Each is a
list of objects using the API field names; ``id`` may be given so reviews and
tour guides can reference users and tours. Users carry a plain ``password``.
"""
from __future__ import annotations

import argparse
import json
import uuid
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.db.session import SessionLocal
from app.models.booking import Booking
from app.models.review import Review
from app.models.tour import Tour, tour_guides
from app.models.user import User
from app.schemas.review import ReviewUpsert
from app.schemas.tour import TourUpsert
from app.services.ratings import calc_average_ratings
from app.services.serialization import serialize_value

JSON_COLUMNS = ("images", "start_dates", "start_location", "locations")


def _read(directory: Path, name: str) -> list[dict[str, Any]]:
    path = directory / name
    if not path.exists():
        return []
    with path.open(encoding="utf-8") as fh:
        return list(json.load(fh))


def _row_id(item: dict[str, Any]) -> uuid.UUID:
    raw = item.pop("id", None)
    return uuid.UUID(str(raw)) if raw else uuid.uuid4()


def import_users(db: Session, items: list[dict[str, Any]]) -> int:
    for item in items:
        item = dict(item)
        db.add(
            User(
                id=_row_id(item),
                name=item["name"],
                email=str(item["email"]).strip().lower(),
                photo=item.get("photo") or "default.jpg",
                role=item.get("role") or "user",
                password_hash=hash_password(item["password"]),
                active=bool(item.get("active", True)),
            )
        )
    db.flush()
    return len(items)


def import_tours(db: Session, items: list[dict[str, Any]]) -> int:
    for item in items:
        item = dict(item)
        row_id = _row_id(item)
        data = TourUpsert.model_validate(item).model_dump()
        guide_ids = data.pop("guides")
        tour = Tour(id=row_id)
        for key, value in data.items():
            setattr(tour, key, serialize_value(value) if key in JSON_COLUMNS else value)
        guides = [db.get(User, guide_id) for guide_id in guide_ids]
        tour.guides = [guide for guide in guides if guide is not None]
        db.add(tour)
    db.flush()
    return len(items)


def import_reviews(db: Session, items: list[dict[str, Any]]) -> int:
    tour_ids = set()
    for item in items:
        item = dict(item)
        row_id = _row_id(item)
        data = ReviewUpsert.model_validate(item).model_dump()
        db.add(Review(id=row_id, **data))
        tour_ids.add(data["tour_id"])
    db.flush()
    for tour_id in tour_ids:
        calc_average_ratings(db, tour_id)
    return len(items)


def import_data(db: Session, directory: Path) -> dict[str, int]:
    counts = {
        "users": import_users(db, _read(directory, "users.json")),
        "tours": import_tours(db, _read(directory, "tours.json")),
        "reviews": import_reviews(db, _read(directory, "reviews.json")),
    }
    db.commit()
    return counts


def delete_data(db: Session) -> None:
    db.query(Booking).delete()
    db.query(Review).delete()
    db.execute(tour_guides.delete())
    db.query(Tour).delete()
    db.query(User).delete()
    db.commit()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Import or delete development data")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--import", dest="directory", type=Path, help="directory with users/tours/reviews JSON")
    mode.add_argument("--delete", action="store_true", help="delete all users, tours, reviews and bookings")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        if args.delete:
            delete_data(db)
            print("Data successfully deleted")
        else:
            counts = import_data(db, args.directory)
            print("Data successfully loaded: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    finally:
        db.close()


if __name__ == "__main__":
    main()
