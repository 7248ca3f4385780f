from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fintrack import models
from fintrack.errors import NotFoundError, PersistenceFailure


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=models.Base)


class PersistenceGateway:
    """Owner-scoped create/read/update/delete over the ORM models.

    Every write commits on its own. A failing write is rolled back and
    re-raised as :class:`PersistenceFailure`, leaving earlier commits intact.
    """

    def __init__(self, db: Session, *, user_id: int) -> None:
        self.db = db
        self.user_id = user_id

    def _scoped(self, model: type[ModelT]):
        return self.db.query(model).filter(model.user_id == self.user_id)

    def get(self, model: type[ModelT], record_id: str) -> ModelT:
        try:
            row = self._scoped(model).filter(model.id == record_id).first()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to load {model.__name__}") from exc
        if row is None:
            raise NotFoundError(f"{model.__name__} not found")
        return row

    def query(self, model: type[ModelT], **filters: Any) -> list[ModelT]:
        q = self._scoped(model)
        for key, value in filters.items():
            q = q.filter(getattr(model, key) == value)
        try:
            return q.all()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to query {model.__name__}") from exc

    def create(self, model: type[ModelT], values: Mapping[str, Any]) -> ModelT:
        row = model(**{**values, "user_id": self.user_id})
        self.db.add(row)
        self._commit(f"create {model.__name__}")
        self.db.refresh(row)
        return row

    def update(self, model: type[ModelT], record_id: str, patch: Mapping[str, Any]) -> ModelT:
        row = self.get(model, record_id)
        for key, value in patch.items():
            setattr(row, key, value)
        self._commit(f"update {model.__name__}")
        self.db.refresh(row)
        return row

    def transition(
        self,
        model: type[ModelT],
        record_id: str,
        *,
        unless: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> bool:
        """Compare-and-set update.

        Applies ``values`` only while none of the ``unless`` columns already hold
        the given value. Returns ``False`` when nothing was updated.
        """
        q = self._scoped(model).filter(model.id == record_id)
        for key, current in unless.items():
            q = q.filter(getattr(model, key) != current)
        try:
            updated = q.update(dict(values), synchronize_session=False)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"Failed to update {model.__name__}") from exc
        self._commit(f"update {model.__name__}")
        return bool(updated)

    def delete(self, model: type[ModelT], record_id: str) -> None:
        row = self.get(model, record_id)
        self.db.delete(row)
        self._commit(f"delete {model.__name__}")

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.debug("rollback after failed %s", action)
            raise PersistenceFailure(f"Failed to {action}") from exc


class TransactionMaterializer:
    """Turns a payment description into a persisted ledger entry."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway

    def create(self, fields: Mapping[str, Any]) -> models.Transaction:
        return self.gateway.create(models.Transaction, fields)
