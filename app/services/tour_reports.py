"""Aggregate reports over tours: difficulty stats, monthly start plan and geo lookups."""
from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.tour import Tour

EARTH_RADIUS = {"mi": 3963.2, "km": 6378.1}
STATS_MIN_RATING = 4.5


def _visible():
    return Tour.secret_tour.is_(False)


def tour_stats(db: Session) -> list[dict[str, Any]]:
    difficulty = func.upper(Tour.difficulty).label("difficulty")
    avg_price = func.avg(Tour.price).label("avg_price")
    stmt = (
        select(
            difficulty,
            func.count(Tour.id).label("num_tours"),
            func.coalesce(func.sum(Tour.ratings_quantity), 0).label("num_ratings"),
            func.avg(Tour.ratings_average).label("avg_rating"),
            avg_price,
            func.min(Tour.price).label("min_price"),
            func.max(Tour.price).label("max_price"),
        )
        .where(Tour.ratings_average >= STATS_MIN_RATING, _visible())
        .group_by(func.upper(Tour.difficulty))
        .order_by(avg_price.desc())
    )
    stats = []
    for row in db.execute(stmt):
        stats.append(
            {
                "difficulty": row.difficulty,
                "num_tours": int(row.num_tours),
                "num_ratings": int(row.num_ratings or 0),
                "avg_rating": float(row.avg_rating),
                "avg_price": float(row.avg_price),
                "min_price": float(row.min_price),
                "max_price": float(row.max_price),
            }
        )
    return stats


def _parse_start_date(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def monthly_plan(db: Session, year: int) -> list[dict[str, Any]]:
    starts: dict[int, list[str]] = defaultdict(list)
    for name, start_dates in db.execute(select(Tour.name, Tour.start_dates).where(_visible())):
        for raw in start_dates or []:
            started = _parse_start_date(raw)
            if started is not None and started.year == year:
                starts[started.month].append(name)
    plan = [
        {"month": month, "num_tour_starts": len(names), "tours": names}
        for month, names in starts.items()
    ]
    plan.sort(key=lambda item: (-item["num_tour_starts"], item["month"]))
    return plan[:12]


def parse_lat_lng(raw: str) -> tuple[float, float]:
    parts = [part.strip() for part in str(raw or "").split(",")]
    try:
        if len(parts) != 2:
            raise ValueError(raw)
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Please provide latitude and longitude in the format lat,lng.",
        )
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise HTTPException(status_code=400, detail="Latitude or longitude out of range.")
    return lat, lng


def parse_unit(raw: str) -> str:
    if raw not in EARTH_RADIUS:
        raise HTTPException(status_code=400, detail='Unit must be "mi" or "km".')
    return raw


def haversine(lat1: float, lng1: float, lat2: float, lng2: float, unit: str = "km") -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS[unit] * math.asin(min(1.0, math.sqrt(a)))


def _start_point(tour: Tour) -> tuple[float, float] | None:
    location = tour.start_location or {}
    coordinates = location.get("coordinates") if isinstance(location, dict) else None
    if not coordinates or len(coordinates) != 2:
        return None
    lng, lat = coordinates
    return float(lat), float(lng)


def _located_tours(db: Session) -> list[tuple[Tour, tuple[float, float]]]:
    located = []
    for tour in db.scalars(select(Tour).where(_visible())):
        point = _start_point(tour)
        if point is not None:
            located.append((tour, point))
    return located


def tours_within(db: Session, distance: float, lat: float, lng: float, unit: str) -> list[Tour]:
    if distance < 0:
        raise HTTPException(status_code=400, detail="Distance must not be negative.")
    return [
        tour
        for tour, (t_lat, t_lng) in _located_tours(db)
        if haversine(lat, lng, t_lat, t_lng, unit) <= distance
    ]


def distances(db: Session, lat: float, lng: float, unit: str) -> list[dict[str, Any]]:
    rows = [
        {"id": str(tour.id), "name": tour.name, "distance": haversine(lat, lng, t_lat, t_lng, unit)}
        for tour, (t_lat, t_lng) in _located_tours(db)
    ]
    rows.sort(key=lambda item: item["distance"])
    return rows
