import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pubquiz.auth import hash_password
from pubquiz.database import Base, get_db
from pubquiz.main import app
from pubquiz.models import User


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(client, session_factory):
    db = session_factory()
    db.add(
        User(
            name="Quizmaster",
            email="admin@example.com",
            password_hash=hash_password("admin-password"),
            role="admin",
        )
    )
    db.commit()
    db.close()

    resp = client.post("/login", json={"email": "admin@example.com", "password": "admin-password"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture()
def register_team(client):
    def _register(name: str) -> dict:
        email = f"{name.lower().replace(' ', '-')}@example.com"
        resp = client.post("/register", json={"name": name, "email": email, "password": "secret-pass"})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        return {"id": body["data"]["id"], "headers": {"Authorization": f"Bearer {body['access_token']}"}}

    return _register
