from __future__ import annotations

import base64
import binascii
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .core.database import get_db
from .core.deps import get_current_user
from . import models
from .schemas import (
    BillCreate,
    BillOut,
    BillUpdate,
    BudgetOut,
    BudgetUpsert,
    CategoryOut,
    CategorySpendingOut,
    MarkPaidOut,
    MonthlyFinancialsOut,
    PaymentWarningOut,
    ProfileOut,
    ProfileUpdate,
    ReceiptData,
    ReceiptImportRequest,
    ReceiptParseRequest,
    ReceiptScanRequest,
    RecurringTransactionCreate,
    RecurringTransactionOut,
    TransactionCreate,
    TransactionOut,
    TransactionUpdate,
)
from .services.bill_service import BillService, to_bill_out
from .services.budget_service import BudgetService
from .services.gateway import PersistenceGateway
from .services.profile_service import ProfileService
from .services.receipt_parser import parse_receipt_text
from .services.receipt_service import ReceiptService
from .services.report_service import ReportService
from .services.rollover import iter_due_dates


router = APIRouter()

UPCOMING_HORIZON_DAYS = 366
UPCOMING_LIMIT = 3


# ---- Categories --------------------------------------------------------------
@router.get("/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    # 사용자 카테고리 + 기본 카테고리
    return (
        db.query(models.Category)
        .filter((models.Category.user_id == current_user.id) | (models.Category.is_default.is_(True)))
        .order_by(models.Category.is_income, models.Category.name)
        .all()
    )


# ---- Profile -----------------------------------------------------------------
@router.get("/profile", response_model=ProfileOut)
def get_profile(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return ProfileService(db, user_id=current_user.id).get()


@router.patch("/profile", response_model=ProfileOut)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return ProfileService(db, user_id=current_user.id).update(payload.model_dump(exclude_unset=True))


# ---- Bills -------------------------------------------------------------------
@router.get("/bills", response_model=list[BillOut])
def list_bills(
    status: Optional[models.BillStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    category_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    today = models.today_local()
    svc = BillService(db, user_id=current_user.id)
    rows = svc.get_all(status=status, start_date=start_date, end_date=end_date, category_id=category_id, today=today)
    return [to_bill_out(row, today) for row in rows]


@router.post("/bills", response_model=BillOut, status_code=201)
def create_bill(
    payload: BillCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    bill = BillService(db, user_id=current_user.id).create(payload.model_dump())
    return to_bill_out(bill, models.today_local())


@router.get("/bills/{bill_id}", response_model=BillOut)
def get_bill(bill_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    bill = BillService(db, user_id=current_user.id).get(bill_id)
    return to_bill_out(bill, models.today_local())


@router.patch("/bills/{bill_id}", response_model=BillOut)
def update_bill(
    bill_id: str,
    payload: BillUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    bill = BillService(db, user_id=current_user.id).update(bill_id, payload.model_dump(exclude_unset=True))
    return to_bill_out(bill, models.today_local())


@router.delete("/bills/{bill_id}", status_code=204)
def delete_bill(bill_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    BillService(db, user_id=current_user.id).delete(bill_id)
    return None


@router.post("/bills/{bill_id}/pay", response_model=MarkPaidOut)
def pay_bill(bill_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    today = models.today_local()
    result = BillService(db, user_id=current_user.id).mark_paid(bill_id, today=today)
    return MarkPaidOut(
        bill=to_bill_out(result.bill, today),
        transaction=TransactionOut.model_validate(result.transaction) if result.transaction else None,
        next_bill=to_bill_out(result.next_bill, today) if result.next_bill else None,
        warnings=[PaymentWarningOut(code=w.code.value, detail=w.detail) for w in result.warnings],
    )


# ---- Transactions ------------------------------------------------------------
@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    transaction_type: Optional[models.TxnType] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    q = db.query(models.Transaction).filter(models.Transaction.user_id == current_user.id)
    if start_date is not None:
        q = q.filter(models.Transaction.transaction_date >= start_date)
    if end_date is not None:
        q = q.filter(models.Transaction.transaction_date <= end_date)
    if transaction_type is not None:
        q = q.filter(models.Transaction.transaction_type == transaction_type)
    q = q.order_by(models.Transaction.transaction_date.desc(), models.Transaction.created_at.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


@router.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return PersistenceGateway(db, user_id=current_user.id).create(models.Transaction, payload.model_dump())


@router.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    for key in ("description", "amount", "transaction_date", "transaction_type"):
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} must not be null")
    return PersistenceGateway(db, user_id=current_user.id).update(models.Transaction, transaction_id, changes)


@router.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    PersistenceGateway(db, user_id=current_user.id).delete(models.Transaction, transaction_id)
    return None


# ---- Budgets -----------------------------------------------------------------
@router.get("/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1900),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return BudgetService(db, user_id=current_user.id).get_all(month=month, year=year)


@router.put("/budgets", response_model=BudgetOut)
def upsert_budget(
    payload: BudgetUpsert,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return BudgetService(db, user_id=current_user.id).upsert(payload)


@router.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    BudgetService(db, user_id=current_user.id).delete(budget_id)
    return None


# ---- Recurring transactions --------------------------------------------------
def _upcoming(rule: models.RecurringTransaction, today: date) -> list[date]:
    horizon = today + timedelta(days=UPCOMING_HORIZON_DAYS)
    until = min(rule.end_date, horizon) if rule.end_date else horizon
    upcoming = [d for d in iter_due_dates(rule.start_date, rule.frequency, until=until) if d >= today]
    return upcoming[:UPCOMING_LIMIT]


def _recurring_out(rule: models.RecurringTransaction, today: date) -> RecurringTransactionOut:
    item = RecurringTransactionOut.model_validate(rule, from_attributes=True)
    item.upcoming = _upcoming(rule, today)
    return item


@router.get("/recurring-transactions", response_model=list[RecurringTransactionOut])
def list_recurring_transactions(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    today = models.today_local()
    rows = (
        db.query(models.RecurringTransaction)
        .filter(models.RecurringTransaction.user_id == current_user.id)
        .order_by(models.RecurringTransaction.start_date)
        .all()
    )
    return [_recurring_out(row, today) for row in rows]


@router.post("/recurring-transactions", response_model=RecurringTransactionOut, status_code=201)
def create_recurring_transaction(
    payload: RecurringTransactionCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    row = PersistenceGateway(db, user_id=current_user.id).create(models.RecurringTransaction, payload.model_dump())
    return _recurring_out(row, models.today_local())


@router.delete("/recurring-transactions/{rule_id}", status_code=204)
def delete_recurring_transaction(
    rule_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    PersistenceGateway(db, user_id=current_user.id).delete(models.RecurringTransaction, rule_id)
    return None


# ---- Reports -----------------------------------------------------------------
@router.get("/reports/monthly-spending", response_model=list[CategorySpendingOut])
def monthly_spending(
    year: Optional[int] = Query(None, ge=1900),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    today = models.today_local()
    return ReportService(db, user_id=current_user.id).monthly_spending(year or today.year, month or today.month)


@router.get("/reports/yearly", response_model=list[MonthlyFinancialsOut])
def yearly_financials(
    year: Optional[int] = Query(None, ge=1900),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return ReportService(db, user_id=current_user.id).yearly_financials(year or models.today_local().year)


# ---- Receipts ----------------------------------------------------------------
@router.post("/receipts/parse", response_model=ReceiptData)
def parse_receipt(payload: ReceiptParseRequest):
    return parse_receipt_text(payload.text, today=models.today_local())


@router.post("/receipts/scan", response_model=ReceiptData)
def scan_receipt(
    payload: ReceiptScanRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    try:
        image = base64.b64decode(payload.image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="image_base64 is not valid base64")
    return ReceiptService(db, user_id=current_user.id).scan(image, mime_type=payload.mime_type)


@router.post("/receipts/import", response_model=list[TransactionOut], status_code=201)
def import_receipt(
    payload: ReceiptImportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = ReceiptService(db, user_id=current_user.id)
    return svc.import_items(payload.receipt, category_id=payload.category_id)
