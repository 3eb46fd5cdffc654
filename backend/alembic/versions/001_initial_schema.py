"""Initial schema: users, venues, bookings, events, payments, tickets, refunds.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hourly_rate", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("hourly_rate >= 0", name="check_venue_rate_non_negative"),
        sa.CheckConstraint("capacity > 0", name="check_venue_capacity_positive"),
    )
    op.create_index("ix_venues_id", "venues", ["id"])
    op.create_index("ix_venues_owner_id", "venues", ["owner_id"])

    op.create_table(
        "venue_blocked_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR (start_time < end_time)",
            name="check_blocked_slot_window",
        ),
    )
    op.create_index("ix_blocked_slots_venue_date", "venue_blocked_slots", ["venue_id", "date"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("reference_model", sa.String(20), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("platform_fee_percentage", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("net_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("gateway_order_id", sa.String(100), nullable=True),
        sa.Column("gateway_transaction_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("gateway_order_id", name="uq_payments_gateway_order_id"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        sa.CheckConstraint(
            "platform_fee_percentage >= 0 AND platform_fee_percentage <= 100",
            name="check_payment_fee_percentage_range",
        ),
        # Fee split is exact: fee + net always equals the charged amount
        sa.CheckConstraint("platform_fee + net_amount = amount", name="check_payment_fee_split"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed', 'refunded')",
            name="check_payment_status",
        ),
        sa.CheckConstraint("reference_model IN ('Booking', 'Ticket')", name="check_payment_reference_model"),
        sa.CheckConstraint("type IN ('venue_booking', 'ticket_purchase')", name="check_payment_type"),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_gateway_transaction_id", "payments", ["gateway_transaction_id"])
    op.create_index("ix_payments_reference", "payments", ["reference_model", "reference_id"])
    # Reaper query: pending payments older than the hold window
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("expected_guests", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purpose", sa.String(500), nullable=True),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("owner_responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="check_booking_window"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        sa.CheckConstraint("expected_guests >= 0", name="check_booking_guests_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded', 'failed')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_requester_id", "bookings", ["requester_id"])
    # Overlap check on every create/accept filters by venue, day and status
    op.create_index("ix_bookings_venue_date_status", "bookings", ["venue_id", "booking_date", "status"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="public"),
        sa.Column("ticket_type", sa.String(20), nullable=False, server_default="free"),
        sa.Column("ticket_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attendees", sa.Integer(), nullable=False),
        sa.Column("current_attendees", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("private_code", sa.String(16), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("venue_approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("venue_approval_reason", sa.String(500), nullable=True),
        sa.Column("venue_approval_by", sa.Integer(), nullable=True),
        sa.Column("venue_approval_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("admin_approval_reason", sa.String(500), nullable=True),
        sa.Column("admin_approval_by", sa.Integer(), nullable=True),
        sa.Column("admin_approval_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("max_attendees > 0", name="check_event_max_attendees_positive"),
        sa.CheckConstraint("current_attendees >= 0", name="check_event_attendees_non_negative"),
        # Final safety net against overselling
        sa.CheckConstraint("current_attendees <= max_attendees", name="check_event_attendees_lte_max"),
        sa.CheckConstraint("ticket_price >= 0", name="check_event_price_non_negative"),
        sa.CheckConstraint(
            "(ticket_type = 'free' AND ticket_price = 0) OR (ticket_type = 'paid' AND ticket_price > 0)",
            name="check_event_pricing",
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'upcoming', 'ongoing', 'completed', 'cancelled', 'rejected', 'blocked')",
            name="check_event_status",
        ),
        sa.CheckConstraint("event_type IN ('public', 'private')", name="check_event_type"),
        sa.CheckConstraint(
            "venue_approval_status IN ('pending', 'approved', 'rejected')", name="check_event_venue_approval"
        ),
        sa.CheckConstraint(
            "admin_approval_status IN ('pending', 'approved', 'rejected')", name="check_event_admin_approval"
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_venue_id", "events", ["venue_id"])
    # Public listing: upcoming events ordered by date
    op.create_index("ix_events_status_date", "events", ["status", "event_date"])

    op.create_table(
        "event_access_grants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_access_grant"),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_code", sa.String(20), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("qr_payload", sa.Text(), nullable=False),
        sa.Column("ticket_type", sa.String(20), nullable=False, server_default="general"),
        sa.Column("price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
        sa.CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'used', 'cancelled', 'expired')", name="check_ticket_status"
        ),
        sa.CheckConstraint("ticket_type IN ('general', 'vip', 'early_bird')", name="check_ticket_type"),
        sa.CheckConstraint(
            "price = 0 OR status NOT IN ('active', 'used') OR payment_id IS NOT NULL",
            name="check_priced_ticket_paid",
        ),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_ticket_code", "tickets", ["ticket_code"], unique=True)
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_event_status", "tickets", ["event_id", "status"])

    op.create_table(
        "refunds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("reason_details", sa.String(1000), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("refund_type", sa.String(10), nullable=False, server_default="full"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.String(1000), nullable=True),
        sa.Column("gateway_refund_id", sa.String(100), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="check_refund_amount_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'processing', 'completed', 'failed')",
            name="check_refund_status",
        ),
        sa.CheckConstraint(
            "reason IN ('event_cancelled', 'booking_cancelled', 'duplicate_payment', "
            "'admin_initiated', 'user_request', 'other')",
            name="check_refund_reason",
        ),
        sa.CheckConstraint("refund_type IN ('full', 'partial')", name="check_refund_type"),
    )
    op.create_index("ix_refunds_id", "refunds", ["id"])
    op.create_index("ix_refunds_payment_id", "refunds", ["payment_id"])
    op.create_index("ix_refunds_user_id", "refunds", ["user_id"])
    op.create_index("ix_refunds_status_created", "refunds", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("refunds")
    op.drop_table("tickets")
    op.drop_table("event_access_grants")
    op.drop_table("events")
    op.drop_table("bookings")
    op.drop_table("payments")
    op.drop_table("venue_blocked_slots")
    op.drop_table("venues")
    op.drop_table("users")
