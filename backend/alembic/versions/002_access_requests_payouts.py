"""Private access requests, owner counter-offers and payouts.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "event_access_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("responded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_access_request"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_access_request_status"
        ),
    )
    op.create_index("ix_event_access_requests_event_id", "event_access_requests", ["event_id"])

    # Existing grants were code checks nobody has reviewed yet
    op.execute(
        "INSERT INTO event_access_requests (event_id, user_id, status, created_at, updated_at) "
        "SELECT event_id, user_id, 'pending', created_at, updated_at FROM event_access_grants"
    )
    op.drop_table("event_access_grants")

    op.add_column("bookings", sa.Column("requested_booking_date", sa.Date(), nullable=True))
    op.add_column("bookings", sa.Column("requested_start_time", sa.Time(), nullable=True))
    op.add_column("bookings", sa.Column("requested_end_time", sa.Time(), nullable=True))

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recipient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("gross_amount", sa.Integer(), nullable=False),
        sa.Column("platform_commission_percentage", sa.Float(), nullable=False),
        sa.Column("platform_commission", sa.Integer(), nullable=False),
        sa.Column("net_amount", sa.Integer(), nullable=False),
        sa.Column("bank_details", sa.String(500), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("type", "reference_id", name="uq_payout_reference"),
        sa.CheckConstraint("gross_amount > 0", name="check_payout_gross_positive"),
        sa.CheckConstraint("net_amount = gross_amount - platform_commission", name="check_payout_net"),
        sa.CheckConstraint("type IN ('venue_booking', 'event_tickets')", name="check_payout_type"),
        sa.CheckConstraint("status IN ('pending', 'processed', 'failed')", name="check_payout_status"),
    )
    op.create_index("ix_payouts_id", "payouts", ["id"])
    op.create_index("ix_payouts_recipient_id", "payouts", ["recipient_id"])
    op.create_index("ix_payouts_status_created", "payouts", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("payouts")
    op.drop_column("bookings", "requested_end_time")
    op.drop_column("bookings", "requested_start_time")
    op.drop_column("bookings", "requested_booking_date")

    op.create_table(
        "event_access_grants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_access_grant"),
    )
    op.execute(
        "INSERT INTO event_access_grants (event_id, user_id, created_at, updated_at) "
        "SELECT event_id, user_id, created_at, updated_at FROM event_access_requests "
        "WHERE status <> 'rejected'"
    )
    op.drop_table("event_access_requests")
