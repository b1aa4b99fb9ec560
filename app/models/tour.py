from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, JSON, String, Table, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin, VersionMixin
from app.services.slugs import slugify

DIFFICULTIES = ("easy", "medium", "difficult")
DEFAULT_RATINGS_AVERAGE = 4.5

tour_guides = Table(
    "tour_guides",
    Base.metadata,
    Column("tour_id", UUID(as_uuid=True), ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

class Tour(Base, UUIDMixin, TimestampMixin, VersionMixin):
    __tablename__ = "tours"
    __virtuals__ = ("duration_weeks",)

    name: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    slug: Mapped[str | None] = mapped_column(String(60), nullable=True, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)  # easy|medium|difficult
    ratings_average: Mapped[float] = mapped_column(Float, default=DEFAULT_RATINGS_AVERAGE, nullable=False)
    ratings_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    price_discount: Mapped[float | None] = mapped_column(Float, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_cover: Mapped[str] = mapped_column(String(255), nullable=False)
    images: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    start_dates: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    secret_tour: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_location: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    locations: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    guides: Mapped[list["User"]] = relationship("User", secondary=tour_guides, back_populates="guided_tours")
    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="tour", cascade="all, delete-orphan")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="tour", cascade="all, delete-orphan")

    @validates("name")
    def _sync_slug(self, key, value):
        self.slug = slugify(value, "tour")
        return value

    @validates("ratings_average")
    def _round_ratings_average(self, key, value):
        if value is None:
            return value
        return round(float(value) * 10) / 10

    @property
    def duration_weeks(self) -> float | None:
        if self.duration is None:
            return None
        return self.duration / 7
