from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fintrack import models, schemas
from fintrack.errors import ConflictError, FinTrackError, ValidationError
from fintrack.services.gateway import PersistenceGateway, TransactionMaterializer
from fintrack.services.rollover import next_due_date


logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

_BILL_FIELDS = ("name", "amount", "due_date", "recurring", "frequency", "category_id", "notes")


class PaymentWarning(str, Enum):
    TRANSACTION_NOT_RECORDED = "transaction_not_recorded"
    NEXT_BILL_NOT_SCHEDULED = "next_bill_not_scheduled"


@dataclass
class StepWarning:
    code: PaymentWarning
    detail: str


@dataclass
class MarkPaidResult:
    """Outcome of :meth:`BillService.mark_paid`.

    ``bill`` is always the paid bill. ``transaction`` and ``next_bill`` are
    ``None`` when their step was skipped or failed; a failure also adds a
    :class:`StepWarning`.
    """

    bill: models.Bill
    transaction: Optional[models.Transaction] = None
    next_bill: Optional[models.Bill] = None
    warnings: list[StepWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def has_warning(self, code: PaymentWarning) -> bool:
        return any(w.code == code for w in self.warnings)


@dataclass(frozen=True)
class _BillSnapshot:
    id: str
    name: str
    amount: Decimal
    due_date: date
    recurring: bool
    frequency: Optional[models.Frequency]
    category_id: Optional[str]
    notes: Optional[str]

    @classmethod
    def of(cls, bill: models.Bill) -> "_BillSnapshot":
        return cls(
            id=bill.id,
            name=bill.name,
            amount=bill.amount,
            due_date=bill.due_date,
            recurring=bool(bill.recurring),
            frequency=bill.frequency,
            category_id=bill.category_id,
            notes=bill.notes,
        )


def effective_status(bill: models.Bill, today: date) -> models.BillStatus:
    """Display status: unpaid bills past their due date read as overdue."""
    status = models.BillStatus(bill.status)
    if status == models.BillStatus.PAID:
        return status
    if bill.due_date < today:
        return models.BillStatus.OVERDUE
    return models.BillStatus.PENDING


def to_bill_out(bill: models.Bill, today: date) -> schemas.BillOut:
    category = bill.category
    return schemas.BillOut(
        id=bill.id,
        user_id=bill.user_id,
        name=bill.name,
        amount=bill.amount,
        due_date=bill.due_date,
        status=bill.status,
        effective_status=effective_status(bill, today),
        recurring=bill.recurring,
        frequency=bill.frequency,
        category_id=bill.category_id,
        category_name=category.name if category is not None else UNCATEGORIZED,
        category_color=category.color if category is not None else None,
        notes=bill.notes,
        paid_at=bill.paid_at,
        previous_bill_id=bill.previous_bill_id,
        created_at=bill.created_at,
        updated_at=bill.updated_at,
    )


def _coerce_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError("amount must be a positive number")
    try:
        return schemas.to_cents(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a positive number of at least 0.01") from None


def _coerce_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError("due_date must be a valid calendar date")


def normalize_bill_fields(values: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a complete set of bill fields and return the storable form.

    A non-recurring bill never keeps a frequency, so a stale value cannot
    resurface when ``recurring`` is toggled back on later.
    """
    name = values.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must not be empty")

    recurring = bool(values.get("recurring") or False)
    frequency = values.get("frequency")
    if recurring:
        if frequency is None or frequency == "":
            raise ValidationError("frequency is required for recurring bills")
        try:
            frequency = models.Frequency(frequency)
        except ValueError:
            raise ValidationError(f"Unknown frequency: {frequency}") from None
    else:
        frequency = None

    notes = values.get("notes")
    if isinstance(notes, str):
        notes = notes.strip() or None
    else:
        notes = None
    return {
        "name": name.strip(),
        "amount": _coerce_amount(values.get("amount")),
        "due_date": _coerce_date(values.get("due_date")),
        "recurring": recurring,
        "frequency": frequency,
        "category_id": values.get("category_id") or None,
        "notes": notes,
    }


class BillService:
    """Bill CRUD plus the pay-and-roll-over lifecycle."""

    def __init__(
        self,
        db: Session,
        *,
        user_id: int,
        gateway: PersistenceGateway | None = None,
        materializer: TransactionMaterializer | None = None,
    ) -> None:
        self.db = db
        self.user_id = user_id
        self.gateway = gateway or PersistenceGateway(db, user_id=user_id)
        self.materializer = materializer or TransactionMaterializer(self.gateway)

    # ---- Queries ---------------------------------------------------------
    def get(self, bill_id: str) -> models.Bill:
        return self.gateway.get(models.Bill, bill_id)

    def get_all(
        self,
        *,
        status: models.BillStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        category_id: str | None = None,
        today: date | None = None,
    ) -> list[models.Bill]:
        today = today or models.today_local()
        q = self.db.query(models.Bill).filter(models.Bill.user_id == self.user_id)
        if status == models.BillStatus.OVERDUE:
            q = q.filter(
                models.Bill.status != models.BillStatus.PAID,
                models.Bill.due_date < today,
            )
        elif status is not None:
            q = q.filter(models.Bill.status == status)
        if start_date is not None:
            q = q.filter(models.Bill.due_date >= start_date)
        if end_date is not None:
            q = q.filter(models.Bill.due_date <= end_date)
        if category_id is not None:
            q = q.filter(models.Bill.category_id == category_id)
        return q.order_by(models.Bill.due_date, models.Bill.created_at).all()

    # ---- Mutations -------------------------------------------------------
    def create(self, payload: Mapping[str, Any]) -> models.Bill:
        values = normalize_bill_fields(payload)
        values["status"] = models.BillStatus.PENDING
        return self.gateway.create(models.Bill, values)

    def update(self, bill_id: str, patch: Mapping[str, Any]) -> models.Bill:
        bill = self.get(bill_id)
        changes = dict(patch)
        requested = changes.pop("status", None)
        if requested is not None:
            try:
                requested = models.BillStatus(requested)
            except ValueError:
                raise ValidationError(f"Unknown status: {requested}") from None
            if requested != models.BillStatus(bill.status):
                if bill.status == models.BillStatus.PAID:
                    raise ValidationError("A paid bill cannot be reopened")
                raise ValidationError("Use mark_paid to pay a bill; overdue is derived from the due date")
        merged = {key: getattr(bill, key) for key in _BILL_FIELDS}
        merged.update({k: v for k, v in changes.items() if k in _BILL_FIELDS})
        values = normalize_bill_fields(merged)
        return self.gateway.update(models.Bill, bill_id, values)

    def delete(self, bill_id: str) -> None:
        self.gateway.delete(models.Bill, bill_id)

    # ---- Lifecycle -------------------------------------------------------
    def mark_paid(self, bill_id: str, *, today: date | None = None) -> MarkPaidResult:
        """Mark a bill paid, record the payment and schedule the next occurrence.

        The status update is the operation of record: if it fails nothing else
        runs and the error propagates. Recording the transaction and creating
        the successor bill are best effort; their failures come back as
        warnings on the result and never undo the payment.
        """
        today = today or models.today_local()
        bill = self.get(bill_id)
        # Captured before the update so the rollover uses the original due date.
        snapshot = _BillSnapshot.of(bill)

        if bill.status == models.BillStatus.PAID:
            raise ConflictError("Bill is already paid")
        paid = self.gateway.transition(
            models.Bill,
            bill_id,
            unless={"status": models.BillStatus.PAID},
            values={"status": models.BillStatus.PAID, "paid_at": today},
        )
        if not paid:
            raise ConflictError("Bill is already paid")
        logger.info("bill %s marked paid (due %s)", snapshot.id, snapshot.due_date)

        result = MarkPaidResult(bill=bill)

        try:
            result.transaction = self._record_payment(snapshot, today)
        except (FinTrackError, SQLAlchemyError) as exc:
            self._discard_failed_step()
            logger.warning("payment transaction for bill %s not recorded", snapshot.id, exc_info=True)
            result.warnings.append(
                StepWarning(PaymentWarning.TRANSACTION_NOT_RECORDED, _describe(exc, "Transaction not recorded"))
            )

        if snapshot.recurring:
            try:
                result.next_bill = self._schedule_next(snapshot)
            except (FinTrackError, SQLAlchemyError) as exc:
                self._discard_failed_step()
                logger.warning("next occurrence of bill %s not scheduled", snapshot.id, exc_info=True)
                result.warnings.append(
                    StepWarning(PaymentWarning.NEXT_BILL_NOT_SCHEDULED, _describe(exc, "Next bill not scheduled"))
                )

        return result

    def _record_payment(self, snapshot: _BillSnapshot, today: date) -> models.Transaction:
        return self.materializer.create(
            {
                "description": f"Bill payment: {snapshot.name}",
                "amount": snapshot.amount,
                "transaction_date": today,
                "transaction_type": models.TxnType.EXPENSE,
                "category_id": snapshot.category_id,
                "notes": f"Payment for bill: {snapshot.name} (ID: {snapshot.id})",
                "bill_id": snapshot.id,
            }
        )

    def _schedule_next(self, snapshot: _BillSnapshot) -> models.Bill:
        try:
            due_date = next_due_date(snapshot.due_date, snapshot.frequency)
        except (ValueError, OverflowError):
            raise ValidationError(f"No due date after {snapshot.due_date} can be represented") from None
        return self.gateway.create(
            models.Bill,
            {
                "name": snapshot.name,
                "amount": snapshot.amount,
                "due_date": due_date,
                "status": models.BillStatus.PENDING,
                "recurring": True,
                "frequency": snapshot.frequency,
                "category_id": snapshot.category_id,
                "notes": snapshot.notes,
                "previous_bill_id": snapshot.id,
            },
        )

    def _discard_failed_step(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.exception("rollback failed")


def _describe(exc: Exception, fallback: str) -> str:
    detail = getattr(exc, "detail", None)
    return f"{fallback}: {detail}" if detail else fallback
