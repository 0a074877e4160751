# tests/conftest.py

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Dict

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="mongodb://localhost:27017",
        database_name="taskboard_test",
        host="127.0.0.1",
        port=8000,
        cors_origins=["*"],
        session_ttl=timedelta(days=7),
        session_update_age=timedelta(days=1),
        cookie_secure=False,
        # lowest cost bcrypt accepts; keeps the suite fast
        bcrypt_rounds=4,
        log_level="DEBUG",
        log_dir=None,
    )


@pytest.fixture()
def db():
    return mongomock.MongoClient()["taskboard_test"]


@pytest.fixture()
def app(settings: Settings, db):
    return create_app(settings, db)


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def login_as(client: TestClient) -> Callable[..., Dict[str, str]]:
    """
    Register (if needed) and log in a user, returning bearer headers.

    The login cookie is cleared afterwards so that requests made without
    the returned headers are anonymous.
    """

    def _login(name: str, email: str | None = None, password: str = "correct-horse") -> Dict[str, str]:
        email = email or f"{name.lower()}@example.com"
        client.post("/auth/register", json={"name": name, "email": email, "password": password})
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        client.cookies.clear()
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return _login


@pytest.fixture()
def alice(login_as) -> Dict[str, str]:
    return login_as("Alice")


@pytest.fixture()
def bob(login_as) -> Dict[str, str]:
    return login_as("Bob")


@pytest.fixture()
def make_task(client: TestClient) -> Callable[..., dict]:
    def _make(headers: Dict[str, str], title: str = "Write report", **fields) -> dict:
        r = client.post("/tasks", json={"title": title, **fields}, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()

    return _make


@pytest.fixture()
def make_tag(client: TestClient) -> Callable[..., dict]:
    def _make(headers: Dict[str, str], name: str = "Work", **fields) -> dict:
        r = client.post("/tags", json={"name": name, **fields}, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()

    return _make
