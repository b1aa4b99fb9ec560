"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def _base_columns():
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    ]

def upgrade():
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False, unique=True),
        sa.Column("photo", sa.String(length=255), nullable=False, server_default="default.jpg"),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_reset_token", sa.String(length=128), nullable=True),
        sa.Column("password_reset_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_password_reset_token", "users", ["password_reset_token"])

    op.create_table(
        "tours",
        *_base_columns(),
        sa.Column("name", sa.String(length=40), nullable=False, unique=True),
        sa.Column("slug", sa.String(length=60), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("max_group_size", sa.Integer(), nullable=False),
        sa.Column("difficulty", sa.String(length=20), nullable=False),
        sa.Column("ratings_average", sa.Float(), nullable=False, server_default="4.5"),
        sa.Column("ratings_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("price_discount", sa.Float(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_cover", sa.String(length=255), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("start_dates", sa.JSON(), nullable=False),
        sa.Column("secret_tour", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("start_location", sa.JSON(), nullable=True),
        sa.Column("locations", sa.JSON(), nullable=False),
    )
    op.create_index("ix_tours_slug", "tours", ["slug"])
    op.create_index("ix_tours_price", "tours", ["price"])

    op.create_table(
        "tour_guides",
        sa.Column("tour_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "reviews",
        *_base_columns(),
        sa.Column("review", sa.Text(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("tour_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),
    )
    op.create_index("ix_reviews_tour_id", "reviews", ["tour_id"])
    op.create_index("ix_reviews_user_id", "reviews", ["user_id"])

    op.create_table(
        "bookings",
        *_base_columns(),
        sa.Column("tour_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_bookings_tour_id", "bookings", ["tour_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])

def downgrade():
    op.drop_table("bookings")
    op.drop_table("reviews")
    op.drop_table("tour_guides")
    op.drop_table("tours")
    op.drop_table("users")
