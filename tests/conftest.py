import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-for-premium-entitlements")
os.environ.setdefault("PREMIUM_ADMIN_EMAILS", "support@easybudget.test")
os.environ.setdefault("AUDIT_LOG_ENABLED", "1")

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import database as database_module
import models  # noqa: F401
from database import Base, build_engine
from models.premium import PremiumSubscription, PromoCode
from models.user import User

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite so worker threads see the same database."""
    test_engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'premium.db'}")
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine, monkeypatch: pytest.MonkeyPatch) -> sessionmaker:
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(database_module, "SessionLocal", factory)
    monkeypatch.setattr(database_module, "engine", engine)
    return factory


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(
        *,
        email: Optional[str] = None,
        created_at: datetime = T0,
        is_admin: bool = False,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            is_admin=is_admin,
            created_at=created_at,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_promo(db_session: Session) -> Callable[..., PromoCode]:
    def _make(code: str = "EASY2", *, duration_days: Optional[int] = 30, max_redemptions: Optional[int] = None) -> PromoCode:
        promo = PromoCode(code=code, duration_days=duration_days, max_redemptions=max_redemptions, current_redemptions=0)
        db_session.add(promo)
        db_session.commit()
        return promo

    return _make


@pytest.fixture()
def make_grant(db_session: Session) -> Callable[..., PremiumSubscription]:
    def _make(
        user: User,
        *,
        expires_at: Optional[datetime],
        status: str = "active",
        grant_type: str = "recurring",
        provider: str = "store",
    ) -> PremiumSubscription:
        grant = PremiumSubscription(
            user_id=user.id,
            grant_type=grant_type,
            provider=provider,
            status=status,
            purchased_at=T0 - timedelta(days=1),
            expires_at=expires_at,
        )
        db_session.add(grant)
        db_session.commit()
        return grant

    return _make
