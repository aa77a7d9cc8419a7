"""Tip pool schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default="server"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("table_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("tip_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("tip_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("server_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("closed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_tip_amount", "orders", ["tip_amount"])
    op.create_index("ix_orders_server_id", "orders", ["server_id"])
    op.create_index("ix_orders_closed_at", "orders", ["closed_at"])

    # Shifts table
    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("location", sa.String(100), nullable=False, server_default="main"),
        sa.Column("hours_worked", sa.Numeric(8, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("tip_pool_calculated", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_shifts_user_id", "shifts", ["user_id"])
    op.create_index("ix_shifts_start_time", "shifts", ["start_time"])

    # Tip distribution rules
    op.create_table(
        "tip_distribution_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    # Tip pools - one per day
    op.create_table(
        "tip_pools",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shift_date", sa.Date(), nullable=False),
        sa.Column("total_tips", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("distribution_rule_id", sa.Integer(), sa.ForeignKey("tip_distribution_rules.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="calculated"),
        sa.Column("calculated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("calculated_at", sa.DateTime(), nullable=True),
        sa.Column("distributed_at", sa.DateTime(), nullable=True),
        sa.Column("finalized_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("shift_date", name="uq_tip_pools_shift_date"),
    )
    op.create_index("ix_tip_pools_shift_date", "tip_pools", ["shift_date"])

    # Tip payouts
    op.create_table(
        "tip_payouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tip_pool_id", sa.Integer(), sa.ForeignKey("tip_pools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("base_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("bonus_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("hours_worked", sa.Numeric(8, 2), nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("percentage_share", sa.Numeric(7, 2), nullable=True),
        sa.Column("calculation_details", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_tip_payouts_tip_pool_id", "tip_payouts", ["tip_pool_id"])
    op.create_index("ix_tip_payouts_user_id", "tip_payouts", ["user_id"])

    # Tip disputes
    op.create_table(
        "tip_disputes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payout_id", sa.Integer(), sa.ForeignKey("tip_payouts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("ix_tip_disputes_payout_id", "tip_disputes", ["payout_id"])


def downgrade() -> None:
    op.drop_table("tip_disputes")
    op.drop_table("tip_payouts")
    op.drop_table("tip_pools")
    op.drop_table("tip_distribution_rules")
    op.drop_table("shifts")
    op.drop_table("orders")
    op.drop_table("users")
