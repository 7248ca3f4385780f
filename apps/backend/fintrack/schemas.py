from __future__ import annotations

from datetime import date, datetime
import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import BillStatus, Frequency, TxnType


CENT = Decimal("0.01")
# Numeric(14, 2): 12 integer digits
MAX_AMOUNT = Decimal("1e12")


def to_cents(v: Decimal) -> Decimal:
    """Round a money amount half-up to cents; the result must still be positive."""
    if not v.is_finite():
        raise ValueError("amount must be finite")
    if abs(v) >= MAX_AMOUNT:
        raise ValueError("amount is too large")
    cents = v.quantize(CENT, rounding=ROUND_HALF_UP)
    if cents <= 0:
        raise ValueError("amount must be at least 0.01")
    return cents


def _positive_amount(v: Decimal | None) -> Decimal | None:
    if v is None:
        return v
    return to_cents(v)


def _non_empty(v: str | None, field: str) -> str | None:
    if v is None:
        return v
    stripped = v.strip()
    if not stripped:
        raise ValueError(f"{field} must not be empty")
    return stripped


# Category Schemas
class CategoryOut(BaseModel):
    id: str
    name: str
    color: str
    icon: Optional[str] = None
    is_income: bool
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


# Profile Schemas
class ProfileOut(BaseModel):
    user_id: int
    display_name: Optional[str] = None
    currency: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    currency: Optional[str] = None

    @field_validator("display_name")
    def display_name_blank_to_none(cls, v: str | None):
        if v is None:
            return v
        return v.strip() or None

    @field_validator("currency")
    def currency_code(cls, v: str | None):
        if v is None:
            return v
        code = v.strip().upper()
        # ISO 4217 alpha code
        if len(code) != 3 or not code.isalpha() or not code.isascii():
            raise ValueError("currency must be a 3-letter code")
        return code


# Bill Schemas
class BillCreate(BaseModel):
    name: str
    amount: Decimal
    due_date: date
    recurring: bool = False
    frequency: Optional[Frequency] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    def name_not_empty(cls, v: str):
        return _non_empty(v, "name")

    @field_validator("amount")
    def amount_positive(cls, v: Decimal):
        return _positive_amount(v)


class BillUpdate(BaseModel):
    name: Optional[str] = None
    amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    status: Optional[BillStatus] = None
    recurring: Optional[bool] = None
    frequency: Optional[Frequency] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    def name_not_empty(cls, v: str | None):
        return _non_empty(v, "name")

    @field_validator("amount")
    def amount_positive(cls, v: Decimal | None):
        return _positive_amount(v)


class BillOut(BaseModel):
    id: str
    user_id: int
    name: str
    amount: Decimal
    due_date: date
    status: BillStatus
    effective_status: BillStatus
    recurring: bool
    frequency: Optional[Frequency] = None
    category_id: Optional[str] = None
    category_name: str
    category_color: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[date] = None
    previous_bill_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Transaction Schemas
class TransactionCreate(BaseModel):
    description: str
    amount: Decimal
    transaction_date: date
    transaction_type: TxnType = TxnType.EXPENSE
    category_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("description")
    def description_not_empty(cls, v: str):
        return _non_empty(v, "description")

    @field_validator("amount")
    def amount_positive(cls, v: Decimal):
        return _positive_amount(v)


class TransactionUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    transaction_date: Optional[date] = None
    transaction_type: Optional[TxnType] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("description")
    def description_not_empty(cls, v: str | None):
        return _non_empty(v, "description")

    @field_validator("amount")
    def amount_positive(cls, v: Decimal | None):
        return _positive_amount(v)


class TransactionOut(BaseModel):
    id: str
    user_id: int
    description: str
    amount: Decimal
    transaction_date: date
    transaction_type: TxnType
    category_id: Optional[str] = None
    notes: Optional[str] = None
    bill_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# mark-paid result
class PaymentWarningOut(BaseModel):
    code: str
    detail: str


class MarkPaidOut(BaseModel):
    bill: BillOut
    transaction: Optional[TransactionOut] = None
    next_bill: Optional[BillOut] = None
    warnings: list[PaymentWarningOut] = Field(default_factory=list)


# Budget Schemas
class BudgetUpsert(BaseModel):
    id: Optional[str] = None
    category_id: str
    amount: Decimal
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)

    @field_validator("amount")
    def amount_positive(cls, v: Decimal):
        return _positive_amount(v)


class BudgetOut(BaseModel):
    id: str
    category_id: str
    category: Optional[CategoryOut] = None
    amount: Decimal
    month: int
    year: int
    spent: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


# Recurring transaction Schemas
class RecurringTransactionCreate(BaseModel):
    description: str
    amount: Decimal
    transaction_type: TxnType = TxnType.EXPENSE
    frequency: Frequency = Frequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("description")
    def description_not_empty(cls, v: str):
        return _non_empty(v, "description")

    @field_validator("amount")
    def amount_positive(cls, v: Decimal):
        return _positive_amount(v)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringTransactionOut(BaseModel):
    id: str
    description: str
    amount: Decimal
    transaction_type: TxnType
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    category_id: Optional[str] = None
    notes: Optional[str] = None
    upcoming: list[date] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# Reports
class CategorySpendingOut(BaseModel):
    category_id: Optional[str] = None
    category: str
    color: str
    amount: Decimal


class MonthlyFinancialsOut(BaseModel):
    month: int
    label: str
    income: Decimal
    expenses: Decimal
    savings: Decimal


# Receipts
class ReceiptItem(BaseModel):
    name: str = "Unknown Item"
    price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("1")
    category: Optional[str] = None

    @field_validator("price")
    def price_not_negative(cls, v: Decimal):
        return abs(v)

    @field_validator("quantity")
    def quantity_positive(cls, v: Decimal):
        if v <= 0:
            raise ValueError("quantity must be positive")
        return v


class ReceiptData(BaseModel):
    merchant: str = "Receipt Scan"
    date: dt.date
    total: Decimal = Decimal("0")
    items: list[ReceiptItem] = Field(default_factory=list)
    tax_amount: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("tax_amount", "taxAmount"))
    tip_amount: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("tip_amount", "tipAmount"))
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("payment_method", "paymentMethod")
    )
    category: Optional[str] = None


class ReceiptParseRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ReceiptImportRequest(BaseModel):
    receipt: ReceiptData
    # Stable id only; category names from the model are not matched.
    category_id: Optional[str] = None


class ReceiptScanRequest(BaseModel):
    image_base64: str = Field(..., min_length=1)
    mime_type: str = "image/jpeg"
