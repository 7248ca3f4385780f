from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from fintrack import models
from fintrack.core.database import get_db
from fintrack.seed import ensure_demo_user


def get_current_user(db: Session = Depends(get_db)) -> models.User:
    """Single-user mode: the oldest user owns every record.

    An empty database gets the demo user. Tests override this dependency to
    act as someone else.
    """
    user = db.query(models.User).order_by(models.User.id).first()
    if user is None:
        user = ensure_demo_user(db)
        db.commit()
    return user
