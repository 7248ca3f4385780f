"""initial schema: users, categories, bills, transactions, budgets, recurring transactions

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-03-22 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "biannually", "annually")
TXN_TYPES = ("income", "expense")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "userprofile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=100)),
        sa.Column("currency", sa.String(length=3)),
        *_timestamps(),
    )
    op.create_table(
        "category",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE")),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("is_income", sa.Boolean(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_name"),
    )
    op.create_table(
        "bill",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Enum("pending", "paid", "overdue", name="bill_status"), nullable=False),
        sa.Column("recurring", sa.Boolean(), nullable=False),
        sa.Column("frequency", sa.Enum(*FREQUENCIES, name="frequency")),
        sa.Column("category_id", sa.String(length=32)),
        sa.Column("notes", sa.Text()),
        sa.Column("paid_at", sa.Date()),
        sa.Column(
            "previous_bill_id",
            sa.String(length=32),
            sa.ForeignKey("bill.id", ondelete="SET NULL"),
            unique=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_bill_amount_positive"),
        sa.CheckConstraint(
            "(recurring AND frequency IS NOT NULL) OR (NOT recurring AND frequency IS NULL)",
            name="ck_bill_frequency_iff_recurring",
        ),
    )
    op.create_index("ix_bill_user_due", "bill", ["user_id", "due_date"])
    op.create_table(
        "transaction",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("transaction_type", sa.Enum(*TXN_TYPES, name="txn_type"), nullable=False),
        sa.Column("category_id", sa.String(length=32)),
        sa.Column("notes", sa.Text()),
        sa.Column("bill_id", sa.String(length=32), sa.ForeignKey("bill.id", ondelete="SET NULL"), unique=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
    )
    op.create_index("ix_transaction_user_date", "transaction", ["user_id", "transaction_date"])
    op.create_table(
        "budget",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category_id", sa.String(length=32), sa.ForeignKey("category.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "category_id", "month", "year", name="uq_budget_period"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_month"),
    )
    op.create_table(
        "recurringtransaction",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("transaction_type", sa.Enum(*TXN_TYPES, name="txn_type"), nullable=False),
        sa.Column("frequency", sa.Enum(*FREQUENCIES, name="frequency"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("category_id", sa.String(length=32)),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_recurring_txn_window"),
    )


def downgrade() -> None:
    op.drop_table("recurringtransaction")
    op.drop_table("budget")
    op.drop_index("ix_transaction_user_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_index("ix_bill_user_due", table_name="bill")
    op.drop_table("bill")
    op.drop_table("category")
    op.drop_table("userprofile")
    op.drop_table("user")
