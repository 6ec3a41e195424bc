# tests/conftest.py
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contactbook import crud, errors
from contactbook.auth import create_access_token, get_password_hash
from contactbook.core import Settings, get_settings
from contactbook.database import Base, get_db
from contactbook.mail import get_mailer
from contactbook.schemas import UserCreate
from main import app


class RecordingMailer:
    """Collects messages instead of sending them."""

    def __init__(self):
        self.outbox: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, text: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.outbox.append({"to": to, "subject": subject, "text": text})


# DB (SQLite in-memory, fresh for every test)
@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def mailer():
    return RecordingMailer()


# Client fixture: override DB and mail dependencies per test
@pytest.fixture()
def client(db_session, mailer):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def create_user(db_session):
    def _create_user(
        email="user@example.com",
        password="secret123",
        first_name="Test",
        last_name="User",
    ):
        user_in = UserCreate(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            password_confirm=password,
        )
        return crud.create_user(db_session, user_in, get_password_hash(password))

    return _create_user


@pytest.fixture()
def auth_headers():
    def _auth_headers(user) -> dict:
        token = create_access_token(user.id, get_settings())
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture()
def production_settings(monkeypatch):
    """Run the app with production settings for one test."""
    settings = Settings(ENVIRONMENT="production")
    app.dependency_overrides[get_settings] = lambda: settings
    # the error handlers read settings outside of dependency injection
    monkeypatch.setattr(errors, "get_settings", lambda: settings)
    yield settings
    app.dependency_overrides.pop(get_settings, None)
