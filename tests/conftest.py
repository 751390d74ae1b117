import os

# Must be set before the application modules are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from finance_tracker import crud
from finance_tracker.auth import hash_password
from finance_tracker.database import Base, SessionLocal, engine
from finance_tracker.main import app
from finance_tracker.schemas import ProfileIn

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user():
    """Create a profile in its own session and return its id."""

    def _make(email, full_name=None, is_admin=False, password=PASSWORD):
        session = SessionLocal()
        try:
            data = ProfileIn(email=email, password=password, full_name=full_name, is_admin=is_admin)
            return crud.create_profile(session, data, hash_password(password)).id
        finally:
            session.close()

    return _make


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def login():
    def _login(client, email, password=PASSWORD):
        response = client.post("/login", data={"email": email, "password": password}, follow_redirects=False)
        assert response.status_code == 302
        return response

    return _login
