"""create payments table

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

PAYMENT_STATUSES = (
    "created", "kyc_pending", "compliance_review", "processing",
    "blockchain_pending", "converting", "settling",
    "completed", "failed", "cancelled",
)


def upgrade() -> None:
    postgresql.ENUM(*PAYMENT_STATUSES, name="paymentstatus").create(
        op.get_bind(), checkfirst=True,
    )
    paymentstatus = postgresql.ENUM(*PAYMENT_STATUSES, name="paymentstatus", create_type=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("quote_id", sa.String(32), index=True, nullable=False),
        sa.Column("sender_id", sa.String(64), index=True, nullable=False),
        sa.Column("status", paymentstatus, server_default="created", nullable=False),
        sa.Column("status_reason", sa.String(500), nullable=True),
        sa.Column("request", sa.JSON(), nullable=False),
        sa.Column("fees", sa.JSON(), nullable=False),
        sa.Column("payout_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("compliance", sa.JSON(), nullable=True),
        sa.Column("rail_id", sa.String(64), nullable=True),
        sa.Column("fallback_rail_id", sa.String(64), nullable=True),
        sa.Column("estimated_completion_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.CheckConstraint("payout_amount >= 0", name="ck_payments_payout_non_negative"),
    )
    op.create_index("ix_payments_sender_created", "payments", ["sender_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_payments_sender_created", table_name="payments")
    op.drop_table("payments")
    postgresql.ENUM(name="paymentstatus").drop(op.get_bind(), checkfirst=True)
