"""Initial schema: users, academies, batches, bookings, ledger and payouts.

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

MONEY = sa.Numeric(12, 2)
RATE = sa.Numeric(6, 4)
PERCENTAGE = sa.Numeric(5, 2)

BOOKING_STATUSES = (
    "'slot_booked', 'approved', 'confirmed', 'cancelled', 'completed', 'rejected', "
    "'requested', 'pending', 'payment_pending'"
)
PAYMENT_STATUSES = "'not_initiated', 'initiated', 'pending', 'success', 'failed', 'cancelled'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _soft_delete() -> list[sa.Column]:
    return [
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("mobile", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'academy', 'admin', 'super_admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(10), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_soft_delete(),
        *_timestamps(),
    )
    op.create_index("ix_participants_id", "participants", ["id"])
    op.create_index("ix_participants_user_id", "participants", ["user_id"])

    op.create_table(
        "sports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_sports_id", "sports", ["id"])

    op.create_table(
        "academies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("mobile", sa.String(20), nullable=True),
        sa.Column("age_min", sa.Integer(), nullable=True),
        sa.Column("age_max", sa.Integer(), nullable=True),
        sa.Column("allowed_genders", sa.JSON(), nullable=True),
        sa.Column("allowed_disabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_only_for_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        *_soft_delete(),
        *_timestamps(),
    )
    op.create_index("ix_academies_id", "academies", ["id"])
    op.create_index("ix_academies_owner_user_id", "academies", ["owner_user_id"])

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id"), nullable=False),
        sa.Column("sport_id", sa.Integer(), sa.ForeignKey("sports.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("age_min", sa.Integer(), nullable=True),
        sa.Column("age_max", sa.Integer(), nullable=True),
        sa.Column("allowed_genders", sa.JSON(), nullable=True),
        sa.Column("is_allowed_disabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("capacity_max", sa.Integer(), nullable=True),
        sa.Column("booked_slots", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("admission_fee", MONEY, nullable=True),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("discounted_price", MONEY, nullable=True),
        *_soft_delete(),
        *_timestamps(),
        sa.CheckConstraint("booked_slots >= 0", name="check_booked_slots_non_negative"),
        sa.CheckConstraint(
            "capacity_max IS NULL OR booked_slots <= capacity_max",
            name="check_booked_slots_lte_capacity",
        ),
        sa.CheckConstraint("capacity_max IS NULL OR capacity_max > 0", name="check_capacity_positive"),
    )
    op.create_index("ix_batches_id", "batches", ["id"])
    op.create_index("ix_batches_academy_id", "batches", ["academy_id"])
    op.create_index("ix_batches_academy_active", "batches", ["academy_id", "is_active"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reference", sa.String(32), nullable=True, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id"), nullable=False),
        sa.Column("sport_id", sa.Integer(), sa.ForeignKey("sports.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'slot_booked'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("admission_fee_per_participant", MONEY, nullable=False),
        sa.Column("total_admission_fee", MONEY, nullable=False),
        sa.Column("base_fee_per_participant", MONEY, nullable=False),
        sa.Column("total_base_fee", MONEY, nullable=False),
        sa.Column("batch_amount", MONEY, nullable=False),
        sa.Column("platform_fee", MONEY, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax_percentage", PERCENTAGE, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("priced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("commission_rate", RATE, nullable=True),
        sa.Column("commission_amount", MONEY, nullable=True),
        sa.Column("payout_amount", MONEY, nullable=True),
        sa.Column("commission_computed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'not_initiated'")),
        sa.Column("gateway_order_id", sa.String(64), nullable=True),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("gateway_signature", sa.String(255), nullable=True),
        sa.Column("payment_amount", MONEY, nullable=True),
        sa.Column("payment_currency", sa.String(3), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_failure_reason", sa.Text(), nullable=True),
        sa.Column("payment_initiated_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_cancelled_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payout_status", sa.String(20), nullable=False, server_default=sa.text("'not_initiated'")),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(f"status IN ({BOOKING_STATUSES})", name="check_booking_status"),
        sa.CheckConstraint(f"payment_status IN ({PAYMENT_STATUSES})", name="check_booking_payment_status"),
        sa.CheckConstraint("participant_count > 0", name="check_booking_participant_count_positive"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_batch_id", "bookings", ["batch_id"])
    op.create_index("ix_bookings_academy_id", "bookings", ["academy_id"])
    op.create_index("ix_bookings_gateway_order_id", "bookings", ["gateway_order_id"])
    # Capacity reconciliation and enrollment checks filter by batch + status
    op.create_index("ix_bookings_batch_status", "bookings", ["batch_id", "status"])
    # "My bookings, newest first"
    op.create_index("ix_bookings_user_created", "bookings", ["user_id", "created_at"])

    op.create_table(
        "booking_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("participant_id", sa.Integer(), sa.ForeignKey("participants.id"), nullable=False),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_booking_participants_id", "booking_participants", ["id"])
    op.create_index("ix_booking_participants_booking_id", "booking_participants", ["booking_id"])
    # PARTIAL UNIQUE INDEX: the enrollment guarantee. Two concurrent requests
    # for the same participant in the same batch cannot both commit.
    op.create_index(
        "uq_active_participant_batch",
        "booking_participants",
        ["batch_id", "participant_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("gateway_order_id", sa.String(64), nullable=False),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("gateway_signature", sa.String(255), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("type", sa.String(20), nullable=False, server_default=sa.text("'payment'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'initiated'")),
        sa.Column("source", sa.String(30), nullable=False, server_default=sa.text("'user_verification'")),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "gateway_order_id", name="uq_transaction_booking_order"),
    )
    op.create_index("ix_transactions_id", "transactions", ["id"])
    op.create_index("ix_transactions_booking_id", "transactions", ["booking_id"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])

    op.create_table(
        "payout_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id"), nullable=False),
        sa.Column("gateway_account_id", sa.String(64), nullable=False),
        sa.Column("activation_status", sa.String(20), nullable=False, server_default=sa.text("'created'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_payout_accounts_id", "payout_accounts", ["id"])
    op.create_index("ix_payout_accounts_academy_id", "payout_accounts", ["academy_id"])

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("payout_account_id", sa.Integer(), sa.ForeignKey("payout_accounts.id"), nullable=True),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id"), nullable=False),
        sa.Column("academy_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("batch_amount", MONEY, nullable=False),
        sa.Column("commission_rate", RATE, nullable=False),
        sa.Column("commission_amount", MONEY, nullable=False),
        sa.Column("payout_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "transaction_id", name="uq_payout_booking_transaction"),
    )
    op.create_index("ix_payouts_id", "payouts", ["id"])
    op.create_index("ix_payouts_booking_id", "payouts", ["booking_id"])
    op.create_index("ix_payouts_academy_id", "payouts", ["academy_id"])

    op.create_table(
        "platform_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("platform_fee", MONEY, nullable=False),
        sa.Column("tax_percentage", PERCENTAGE, nullable=False),
        sa.Column("tax_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("commission_rate", PERCENTAGE, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("actor_role", sa.String(20), nullable=True),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("academy_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_booking", "audit_events", ["booking_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("platform_settings")
    op.drop_table("payouts")
    op.drop_table("payout_accounts")
    op.drop_table("transactions")
    op.drop_table("booking_participants")
    op.drop_table("bookings")
    op.drop_table("batches")
    op.drop_table("academies")
    op.drop_table("sports")
    op.drop_table("participants")
    op.drop_table("users")
