from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from fintrack import models
from fintrack.schemas import CategorySpendingOut, MonthlyFinancialsOut
from fintrack.services.bill_service import UNCATEGORIZED


DEFAULT_COLOR = "#888888"
_ZERO = Decimal("0")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class ReportService:
    def __init__(self, db: Session, *, user_id: int) -> None:
        self.db = db
        self.user_id = user_id

    def _transactions(self, start: date, end: date, txn_type: models.TxnType | None = None) -> list[models.Transaction]:
        q = self.db.query(models.Transaction).filter(
            models.Transaction.user_id == self.user_id,
            models.Transaction.transaction_date >= start,
            models.Transaction.transaction_date <= end,
        )
        if txn_type is not None:
            q = q.filter(models.Transaction.transaction_type == txn_type)
        return q.all()

    def monthly_spending(self, year: int, month: int) -> list[CategorySpendingOut]:
        """Expense totals for one month grouped by category, largest first."""
        start, end = month_bounds(year, month)
        totals: dict[str | None, Decimal] = defaultdict(lambda: _ZERO)
        labels: dict[str | None, tuple[str, str]] = {}
        for txn in self._transactions(start, end, models.TxnType.EXPENSE):
            key = txn.category_id if txn.category is not None else None
            totals[key] += Decimal(txn.amount)
            if key not in labels:
                if txn.category is not None:
                    labels[key] = (txn.category.name, txn.category.color or DEFAULT_COLOR)
                else:
                    labels[key] = (UNCATEGORIZED, DEFAULT_COLOR)
        items = [
            CategorySpendingOut(category_id=key, category=labels[key][0], color=labels[key][1], amount=amount)
            for key, amount in totals.items()
        ]
        items.sort(key=lambda item: item.amount, reverse=True)
        return items

    def yearly_financials(self, year: int) -> list[MonthlyFinancialsOut]:
        """Income, expenses and savings for each month of ``year``."""
        income = [_ZERO] * 12
        expenses = [_ZERO] * 12
        for txn in self._transactions(date(year, 1, 1), date(year, 12, 31)):
            idx = txn.transaction_date.month - 1
            if txn.transaction_type == models.TxnType.INCOME:
                income[idx] += Decimal(txn.amount)
            else:
                expenses[idx] += Decimal(txn.amount)
        return [
            MonthlyFinancialsOut(
                month=i + 1,
                label=calendar.month_abbr[i + 1],
                income=income[i],
                expenses=expenses[i],
                savings=income[i] - expenses[i],
            )
            for i in range(12)
        ]

    def spent_by_category(self, year: int, month: int) -> dict[str, Decimal]:
        start, end = month_bounds(year, month)
        spent: dict[str, Decimal] = defaultdict(lambda: _ZERO)
        for txn in self._transactions(start, end, models.TxnType.EXPENSE):
            if txn.category_id is not None:
                spent[txn.category_id] += Decimal(txn.amount)
        return dict(spent)
