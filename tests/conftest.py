"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from peerlend.api.dependencies import get_engine
from peerlend.api.main import create_app
from peerlend.domain.engine import LendingEngine
from peerlend.domain.models import RiskProfile, User
from peerlend.infrastructure.database.models import Base
from peerlend.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def lending_engine() -> LendingEngine:
    """Empty engine with a frozen clock"""
    return LendingEngine(clock=lambda: FIXED_NOW)


@pytest.fixture
def lender(lending_engine: LendingEngine) -> User:
    """Lender with $50,000 on account"""
    user = lending_engine.register_user(
        email="lender@example.com",
        password="secret123",
        name="John Lender",
        credit_score=750,
        risk_profile=RiskProfile.CONSERVATIVE,
        user_id="lender",
    ).value
    lending_engine.deposit(user.id, 50_000)
    return user


@pytest.fixture
def borrower(lending_engine: LendingEngine) -> User:
    """Borrower with credit score 680 and $1,000 on account"""
    user = lending_engine.register_user(
        email="borrower@example.com",
        password="secret123",
        name="Sarah Borrower",
        credit_score=680,
        user_id="borrower",
    ).value
    lending_engine.deposit(user.id, 1_000)
    return user


@pytest.fixture
def client(db: Session, lending_engine: LendingEngine) -> TestClient:
    """Create FastAPI test client with test database and a fresh engine"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: lending_engine
    return TestClient(app)
