from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from fintrack import models, schemas
from fintrack.errors import ValidationError
from fintrack.services.gateway import PersistenceGateway
from fintrack.services.report_service import ReportService


class BudgetService:
    def __init__(self, db: Session, *, user_id: int) -> None:
        self.db = db
        self.user_id = user_id
        self.gateway = PersistenceGateway(db, user_id=user_id)

    def get_all(self, *, month: Optional[int] = None, year: Optional[int] = None) -> list[schemas.BudgetOut]:
        """Budgets, optionally for one month, with the amount spent so far."""
        q = self.db.query(models.Budget).filter(models.Budget.user_id == self.user_id)
        if month is not None and year is not None:
            q = q.filter(models.Budget.month == month, models.Budget.year == year)
        rows = q.order_by(models.Budget.year, models.Budget.month).all()

        reports = ReportService(self.db, user_id=self.user_id)
        spent_cache: dict[tuple[int, int], dict[str, Decimal]] = {}
        out: list[schemas.BudgetOut] = []
        for row in rows:
            period = (row.year, row.month)
            if period not in spent_cache:
                spent_cache[period] = reports.spent_by_category(row.year, row.month)
            item = schemas.BudgetOut.model_validate(row, from_attributes=True)
            item.spent = spent_cache[period].get(row.category_id, Decimal("0"))
            out.append(item)
        return out

    def upsert(self, payload: schemas.BudgetUpsert) -> models.Budget:
        category = (
            self.db.query(models.Category)
            .filter(models.Category.id == payload.category_id)
            .filter((models.Category.user_id == self.user_id) | (models.Category.user_id.is_(None)))
            .first()
        )
        if category is None:
            raise ValidationError("Invalid category_id")
        if category.is_income:
            raise ValidationError("Budgets can only be set on expense categories")

        values = payload.model_dump(exclude={"id"})
        if payload.id:
            return self.gateway.update(models.Budget, payload.id, values)

        # 동일 카테고리/기간 예산이 있으면 갱신 (멱등 upsert)
        existing = (
            self.db.query(models.Budget)
            .filter(
                models.Budget.user_id == self.user_id,
                models.Budget.category_id == payload.category_id,
                models.Budget.month == payload.month,
                models.Budget.year == payload.year,
            )
            .first()
        )
        if existing is not None:
            return self.gateway.update(models.Budget, existing.id, {"amount": payload.amount})
        return self.gateway.create(models.Budget, values)

    def delete(self, budget_id: str) -> None:
        self.gateway.delete(models.Budget, budget_id)
