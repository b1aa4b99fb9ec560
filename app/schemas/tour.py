import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.tour import DEFAULT_RATINGS_AVERAGE

Difficulty = Literal["easy", "medium", "difficult"]

class GeoPoint(BaseModel):
    model_config = ConfigDict(extra="forbid")
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)  # [lng, lat]
    address: Optional[str] = None
    description: Optional[str] = None

class TourLocation(GeoPoint):
    day: Optional[int] = None

class TourUpsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=10, max_length=40)
    duration: int = Field(gt=0)
    max_group_size: int = Field(gt=0)
    difficulty: Difficulty
    ratings_average: float = Field(default=DEFAULT_RATINGS_AVERAGE, ge=1, le=5)
    ratings_quantity: int = Field(default=0, ge=0)
    price: float = Field(ge=0)
    price_discount: Optional[float] = Field(default=None, ge=0)
    summary: str = Field(min_length=1)
    description: Optional[str] = None
    image_cover: str = Field(min_length=1)
    images: List[str] = []
    start_dates: List[datetime] = []
    secret_tour: bool = False
    start_location: Optional[GeoPoint] = None
    locations: List[TourLocation] = []
    guides: List[uuid.UUID] = []

    @field_validator("name", "summary", "description")
    @classmethod
    def _trim(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _discount_below_price(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(f"Discount price ({self.price_discount}) should be below the regular price")
        return self
