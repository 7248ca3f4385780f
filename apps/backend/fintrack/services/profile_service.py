from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from fintrack import models
from fintrack.core.config import settings
from fintrack.errors import ValidationError
from fintrack.services.gateway import PersistenceGateway


class ProfileService:
    """Display name and currency of the current user (one profile per user)."""

    def __init__(self, db: Session, *, user_id: int) -> None:
        self.gateway = PersistenceGateway(db, user_id=user_id)

    def get(self) -> models.UserProfile:
        rows = self.gateway.query(models.UserProfile)
        if rows:
            return rows[0]
        # 프로필 없는 사용자: 기본 통화로 생성
        return self.gateway.create(models.UserProfile, {"currency": settings.DEFAULT_CURRENCY})

    def update(self, patch: Mapping[str, Any]) -> models.UserProfile:
        if "currency" in patch and patch["currency"] is None:
            raise ValidationError("currency must not be null")
        profile = self.get()
        return self.gateway.update(models.UserProfile, profile.id, patch)
