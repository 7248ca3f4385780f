from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "UTC"))
except Exception:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


def new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    profile: Mapped["UserProfile"] = relationship(back_populates="user", uselist=False)


class UserProfile(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100))
    currency: Mapped[str | None] = mapped_column(String(3))

    user: Mapped[User] = relationship(back_populates="profile")


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUALLY = "biannually"
    ANNUALLY = "annually"


class BillStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    # Display-only; derived from pending + due date at read time.
    OVERDUE = "overdue"


class TxnType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Category(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    # NULL user_id => default category shared by everyone
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#888888")
    icon: Mapped[str | None] = mapped_column(String(50))
    is_income: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_name"),
    )


class Bill(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BillStatus] = mapped_column(
        SAEnum(BillStatus, name="bill_status", values_callable=lambda e: [m.value for m in e]),
        default=BillStatus.PENDING,
        nullable=False,
    )
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    frequency: Mapped[Frequency | None] = mapped_column(
        SAEnum(Frequency, name="frequency", values_callable=lambda e: [m.value for m in e]),
    )
    # Weak reference: a missing category reads as "Uncategorized"
    category_id: Mapped[str | None] = mapped_column(String(32))
    notes: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[date | None] = mapped_column(Date)
    # Bill whose payment scheduled this one
    previous_bill_id: Mapped[str | None] = mapped_column(
        ForeignKey("bill.id", ondelete="SET NULL"), unique=True
    )

    category: Mapped["Category | None"] = relationship(
        "Category",
        primaryjoin="foreign(Bill.category_id) == Category.id",
        viewonly=True,
        lazy="joined",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bill_amount_positive"),
        CheckConstraint(
            "(recurring AND frequency IS NOT NULL) OR (NOT recurring AND frequency IS NULL)",
            name="ck_bill_frequency_iff_recurring",
        ),
        Index("ix_bill_user_due", "user_id", "due_date"),
    )


class Transaction(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="txn_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    category_id: Mapped[str | None] = mapped_column(String(32))
    notes: Mapped[str | None] = mapped_column(Text)
    # One payment per bill
    bill_id: Mapped[str | None] = mapped_column(ForeignKey("bill.id", ondelete="SET NULL"), unique=True)

    category: Mapped["Category | None"] = relationship(
        "Category",
        primaryjoin="foreign(Transaction.category_id) == Category.id",
        viewonly=True,
        lazy="joined",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        Index("ix_transaction_user_date", "user_id", "transaction_date"),
    )


class Budget(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("category.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    category: Mapped["Category"] = relationship("Category", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "month", "year", name="uq_budget_period"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_month"),
    )


class RecurringTransaction(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    transaction_type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="txn_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    frequency: Mapped[Frequency] = mapped_column(
        SAEnum(Frequency, name="frequency", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    category_id: Mapped[str | None] = mapped_column(String(32))
    notes: Mapped[str | None] = mapped_column(Text)

    category: Mapped["Category | None"] = relationship(
        "Category",
        primaryjoin="foreign(RecurringTransaction.category_id) == Category.id",
        viewonly=True,
        lazy="joined",
    )

    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_recurring_txn_window"),
    )
