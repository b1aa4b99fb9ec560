from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin, VersionMixin

USER_ROLES = ("user", "guide", "lead-guide", "admin")

class User(Base, UUIDMixin, TimestampMixin, VersionMixin):
    __tablename__ = "users"
    __hidden_fields__ = ("password_hash", "password_changed_at", "password_reset_token", "password_reset_expires", "active")

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    photo: Mapped[str] = mapped_column(String(255), default="default.jpg", nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)  # user|guide|lead-guide|admin
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    password_reset_token: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    password_reset_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="user", cascade="all, delete-orphan")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="user", cascade="all, delete-orphan")
    guided_tours: Mapped[list["Tour"]] = relationship("Tour", secondary="tour_guides", back_populates="guides")
