import uuid
from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin, VersionMixin

class Review(Base, UUIDMixin, TimestampMixin, VersionMixin):
    __tablename__ = "reviews"
    __table_args__ = (UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),)

    review: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tour_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    tour: Mapped["Tour"] = relationship("Tour", back_populates="reviews")
    user: Mapped["User"] = relationship("User", back_populates="reviews")
