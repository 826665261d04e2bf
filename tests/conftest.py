"""Shared fixtures: one app per test on a throwaway SQLite file.

bcrypt runs at its minimum cost and the auth rate limit is raised so the
suites can register and log in freely; rate limiting has its own tests.
"""
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from taskboard.config import Settings
from taskboard.main import create_app

ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"
PASSWORD = "Str0ng!pass"


def make_settings(tmp_path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "jwt_access_secret": ACCESS_SECRET,
        "jwt_refresh_secret": REFRESH_SECRET,
        "env": "test",
        "database_url": f"sqlite:///{tmp_path / 'taskboard-test.db'}",
        "bcrypt_rounds": 4,
        "auth_rate_limit_max": 1000,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_user(
    client: TestClient,
    name: str = "Ada Lovelace",
    email: str = "ada@example.com",
    password: str = PASSWORD,
) -> Dict[str, Any]:
    """Register through the API; returns user, access token and refresh cookie."""
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return {
        "user": data["user"],
        "access_token": data["accessToken"],
        "refresh_token": response.cookies.get("refreshToken"),
        "headers": auth_headers(data["accessToken"]),
    }


@pytest.fixture
def ada(client) -> Dict[str, Any]:
    return register_user(client)


@pytest.fixture
def bob(client) -> Dict[str, Any]:
    return register_user(client, name="Bob Builder", email="bob@example.com")
