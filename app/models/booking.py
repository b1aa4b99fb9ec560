import uuid
from sqlalchemy import Boolean, Float, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin, VersionMixin

class Booking(Base, UUIDMixin, TimestampMixin, VersionMixin):
    __tablename__ = "bookings"

    tour_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    # Admins may record bookings paid outside the checkout flow.
    paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tour: Mapped["Tour"] = relationship("Tour", back_populates="bookings")
    user: Mapped["User"] = relationship("User", back_populates="bookings")
