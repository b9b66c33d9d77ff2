"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-03-01

Creates all tables for the Event Finder application:
profiles, events, event_going, event_ratings, event_comments,
event_images, organizer_follows.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

role_enum = sa.Enum("user", "organizer", "admin", name="role")
status_enum = sa.Enum("draft", "published", "cancelled", name="eventstatus")
genre_enum = sa.Enum(
    "electronic", "rock", "pop", "hip-hop", "techno", "house", "trance", "dnb", "dubstep", "other",
    name="genre",
)
price_type_enum = sa.Enum("free", "paid", name="pricetype")


def upgrade() -> None:
    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("role", role_enum, nullable=False, server_default="user"),
        sa.Column("avatar_url", sa.Text, nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("show_location", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("organizer_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("lineup", sa.Text, nullable=True),
        sa.Column("poster_url", sa.Text, nullable=True),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("lat", sa.Numeric(10, 6), nullable=True),
        sa.Column("lng", sa.Numeric(10, 6), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("genre", genre_enum, nullable=False),
        sa.Column("age_label", sa.String(20), nullable=False, server_default="18+"),
        sa.Column("price_type", price_type_enum, nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("ticket_url", sa.Text, nullable=True),
        sa.Column("status", status_enum, nullable=False, server_default="draft", index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("ends_at > starts_at", name="ends_at_after_starts_at"),
    )
    op.create_index("events_region_city_idx", "events", ["region", "city"])

    # --- event_going ---
    op.create_table(
        "event_going",
        sa.Column("going_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="event_going_event_user_unique"),
    )

    # --- event_ratings ---
    op.create_table(
        "event_ratings",
        sa.Column("rating_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("rating", sa.Numeric(2, 1), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="event_ratings_event_user_unique"),
        sa.CheckConstraint("rating >= 1.0 AND rating <= 5.0", name="rating_range"),
    )

    # --- event_comments ---
    op.create_table(
        "event_comments",
        sa.Column("comment_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_images ---
    op.create_table(
        "event_images",
        sa.Column("image_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("image_ref", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- organizer_follows ---
    op.create_table(
        "organizer_follows",
        sa.Column("follow_id", sa.String(36), primary_key=True),
        sa.Column("organizer_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("organizer_id", "user_id", name="organizer_follows_organizer_user_unique"),
    )


def downgrade() -> None:
    op.drop_table("organizer_follows")
    op.drop_table("event_images")
    op.drop_table("event_comments")
    op.drop_table("event_ratings")
    op.drop_table("event_going")
    op.drop_index("events_region_city_idx", table_name="events")
    op.drop_table("events")
    op.drop_table("profiles")
    price_type_enum.drop(op.get_bind(), checkfirst=True)
    genre_enum.drop(op.get_bind(), checkfirst=True)
    status_enum.drop(op.get_bind(), checkfirst=True)
    role_enum.drop(op.get_bind(), checkfirst=True)
