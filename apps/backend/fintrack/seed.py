from __future__ import annotations

from sqlalchemy.orm import Session

from .core.config import settings
from .core.database import session_scope
from .models import Category, User, UserProfile


DEMO_EMAIL = "demo@example.com"

# (name, color, icon, is_income)
DEFAULT_CATEGORIES: tuple[tuple[str, str, str, bool], ...] = (
    ("Food & Dining", "#38bdf8", "utensils", False),
    ("Shopping", "#a78bfa", "shopping-bag", False),
    ("Housing", "#fb7185", "home", False),
    ("Transportation", "#34d399", "car", False),
    ("Entertainment", "#fbbf24", "film", False),
    ("Healthcare", "#f472b6", "heart-pulse", False),
    ("Utilities", "#60a5fa", "plug", False),
    ("Income", "#22c55e", "wallet", True),
    ("Other", "#94a3b8", "more-horizontal", False),
)


def ensure_demo_user(db: Session) -> User:
    """Return the demo user, creating it with a profile if missing. Flushes, does not commit."""
    user = db.query(User).filter_by(email=DEMO_EMAIL).first()
    if user is None:
        user = User(email=DEMO_EMAIL, is_active=True)
        db.add(user)
        db.flush()
        db.add(UserProfile(user_id=user.id, display_name="Demo", currency=settings.DEFAULT_CURRENCY))
        db.flush()
    return user


def seed_default_categories(db: Session) -> list[Category]:
    """Create the shared default categories that are missing. Idempotent by name."""
    existing = {
        c.name: c
        for c in db.query(Category).filter(Category.user_id.is_(None), Category.is_default.is_(True)).all()
    }
    rows: list[Category] = []
    for name, color, icon, is_income in DEFAULT_CATEGORIES:
        row = existing.get(name)
        if row is None:
            row = Category(name=name, color=color, icon=icon, is_income=is_income, is_default=True)
            db.add(row)
        rows.append(row)
    db.flush()
    return rows


def seed() -> None:
    with session_scope() as db:
        ensure_demo_user(db)
        seed_default_categories(db)


if __name__ == "__main__":
    seed()
