from __future__ import annotations

import os
import tempfile
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from fintrack import models
from fintrack.core.database import Base, get_db, make_engine
from fintrack.main import app
from fintrack.seed import ensure_demo_user, seed_default_categories


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # 사용자 환경을 건드리지 않도록 임시 파일 SQLite 사용
    fd, path = tempfile.mkstemp(prefix="fintrack_test_", suffix=".sqlite3")
    os.close(fd)
    yield f"sqlite:///{path}"
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = make_engine(test_db_url, wal=False)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db_session(engine) -> Generator[Session, Any, Any]:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    # demo user + 기본 카테고리
    ensure_demo_user(session)
    seed_default_categories(session)
    session.commit()

    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture()
def demo_user(db_session: Session) -> models.User:
    return ensure_demo_user(db_session)


@pytest.fixture()
def make_user(db_session: Session) -> Callable[[str], models.User]:
    def _make(email: str) -> models.User:
        user = models.User(email=email, is_active=True)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def category(db_session: Session) -> models.Category:
    return db_session.query(models.Category).filter_by(name="Utilities").one()


@pytest.fixture(autouse=True)
def override_dependency(db_session: Session):
    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client() -> Generator[TestClient, Any, Any]:
    with TestClient(app) as c:
        yield c
