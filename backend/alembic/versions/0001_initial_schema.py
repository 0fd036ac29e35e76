"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates all tables for the Student Events application:
users, events, rsvps, otps.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("student", "admin", name="userrole")
event_status = sa.Enum("pending", "approved", "rejected", "cancelled", "completed", name="eventstatus")
event_category = sa.Enum(
    "academic", "social", "sports", "cultural", "career", "workshop", "other", name="eventcategory",
)
rsvp_status = sa.Enum("attending", "waitlisted", "cancelled", name="rsvpstatus")
otp_purpose = sa.Enum("registration", "login", "password_reset", "email_verification", name="otppurpose")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("student_id", sa.String(50), nullable=True, unique=True),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("graduation_year", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("end_time", sa.String(5), nullable=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("category", event_category, nullable=False, server_default="other"),
        sa.Column("status", event_status, nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="50"),
        sa.Column("current_attendees", sa.Integer, nullable=False, server_default="0"),
        sa.Column("image_url", sa.String(500), nullable=False, server_default=""),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tags", sa.String(500), nullable=False, server_default=""),
        sa.Column("contact_email", sa.String(254), nullable=False),
        sa.Column("contact_phone", sa.String(30), nullable=True),
        sa.Column("is_featured", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("capacity > 0", name="ck_events_capacity_positive"),
        sa.CheckConstraint("current_attendees >= 0", name="ck_events_attendees_non_negative"),
    )
    op.create_index("ix_events_created_by", "events", ["created_by"])
    op.create_index("ix_events_status_date", "events", ["status", "date"])
    op.create_index("ix_events_category", "events", ["category"])

    # --- rsvps ---
    op.create_table(
        "rsvps",
        sa.Column("rsvp_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", rsvp_status, nullable=False, server_default="attending"),
        sa.Column("number_of_guests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("dietary_preferences", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_rsvp_event_user"),
        sa.CheckConstraint("number_of_guests BETWEEN 0 AND 5", name="ck_rsvps_guests_range"),
    )
    op.create_index("ix_rsvps_event_status", "rsvps", ["event_id", "status"])
    op.create_index("ix_rsvps_user", "rsvps", ["user_id"])

    # --- otps ---
    op.create_table(
        "otps",
        sa.Column("otp_id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("purpose", otp_purpose, nullable=False, server_default="registration"),
        sa.Column("code", sa.String(8), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_otps_email_purpose", "otps", ["email", "purpose"])
    op.create_index("ix_otps_expires_at", "otps", ["expires_at"])


def downgrade() -> None:
    op.drop_table("otps")
    op.drop_table("rsvps")
    op.drop_table("events")
    op.drop_table("users")
    for enum_type in (otp_purpose, rsvp_status, event_category, event_status, user_role):
        enum_type.drop(op.get_bind(), checkfirst=True)
