import os

# config.py refuses to import without a secret; set one before the app loads.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel
import pytest

from todo_api import security
from todo_api.database import build_engine

# --- Test Database Setup ---
# Use an in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True, scope="session")
def fast_password_hashing():
    # Minimum bcrypt cost keeps the suite quick; the algorithm is unchanged.
    security.pwd_context.update(bcrypt__rounds=4)
    yield


@pytest.fixture(name="test_engine")
def test_engine_fixture():
    # StaticPool keeps every session on the same in-memory connection
    test_engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="test_db_session")
def test_db_session_fixture(test_engine: Engine):
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(test_engine: Engine):
    from todo_api.main import app
    from todo_api.database import get_session

    def get_session_override():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def register(client: TestClient, email: str, password: str = "strong-password") -> dict:
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "confirmPassword": password},
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="authenticated_client")
def authenticated_client_fixture(client: TestClient):
    """
    Registers a user and returns a client that sends its bearer token.
    """
    data = register(client, "authuser@example.com", "auth-password")
    client.headers["Authorization"] = f"Bearer {data['token']}"
    return client
