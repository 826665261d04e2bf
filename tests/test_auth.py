"""Register/login/refresh/logout through the HTTP API."""
from sqlmodel import select

from taskboard.models import User

from .conftest import PASSWORD, auth_headers, register_user


def _stored_refresh_token(app, email: str):
    with app.state.db.session() as session:
        return session.exec(select(User).where(User.email == email)).one().refresh_token


class TestRegister:
    def test_returns_user_without_password(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Ada Lovelace", "email": "ada@example.com", "password": PASSWORD},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Registration successful"
        user = body["data"]["user"]
        assert user["email"] == "ada@example.com"
        assert user["name"] == "Ada Lovelace"
        assert "password" not in user
        assert "refreshToken" not in user
        assert "refreshToken" not in body["data"]
        assert body["data"]["accessToken"]

    def test_sets_http_only_refresh_cookie(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Ada Lovelace", "email": "ada@example.com", "password": PASSWORD},
        )
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("refreshToken=")
        assert "HttpOnly" in set_cookie
        assert "Path=/" in set_cookie
        assert "Max-Age=604800" in set_cookie
        assert "samesite=lax" in set_cookie.lower()
        assert "Secure" not in set_cookie

    def test_stores_refresh_token_on_user(self, app, client):
        registered = register_user(client)
        assert _stored_refresh_token(app, "ada@example.com") == registered["refresh_token"]

    def test_duplicate_email_is_case_insensitive(self, client):
        register_user(client, email="ada@example.com")
        response = client.post(
            "/api/auth/register",
            json={"name": "Other Ada", "email": "ADA@Example.com", "password": PASSWORD},
        )
        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "message": "An account with this email already exists.",
        }

    def test_email_is_stored_lowercase(self, client):
        registered = register_user(client, email="Grace.Hopper@Example.COM")
        assert registered["user"]["email"] == "grace.hopper@example.com"

    def test_weak_password_is_rejected_with_field_errors(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Ada Lovelace", "email": "ada@example.com", "password": "password"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert {"field": "password", "message": "Password must contain at least one uppercase letter"} in body["errors"]

    def test_short_name_and_bad_email(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": " A ", "email": "not-an-email", "password": PASSWORD},
        )
        assert response.status_code == 400
        fields = {error["field"] for error in response.json()["errors"]}
        assert fields == {"name", "email"}

    def test_secure_cookie_in_production(self, tmp_path):
        from fastapi.testclient import TestClient

        from taskboard.main import create_app

        from .conftest import make_settings

        app = create_app(make_settings(tmp_path, env="production"))
        with TestClient(app, base_url="https://testserver") as client:
            response = client.post(
                "/api/auth/register",
                json={"name": "Ada Lovelace", "email": "ada@example.com", "password": PASSWORD},
            )
        assert "Secure" in response.headers["set-cookie"]


class TestLogin:
    def test_login_succeeds(self, client, ada):
        response = client.post("/api/auth/login", json={"email": "ADA@example.com", "password": PASSWORD})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == ada["user"]["id"]
        assert "password" not in body["data"]["user"]
        assert response.cookies.get("refreshToken")

    def test_login_rotates_stored_refresh_token(self, app, client, ada):
        response = client.post("/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
        new_token = response.cookies.get("refreshToken")
        assert new_token != ada["refresh_token"]
        assert _stored_refresh_token(app, "ada@example.com") == new_token

    def test_wrong_password(self, client, ada):
        response = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "Wr0ng!pass"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password."

    def test_unknown_email_looks_like_wrong_password(self, client):
        response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password."

    def test_missing_password(self, client):
        response = client.post("/api/auth/login", json={"email": "ada@example.com", "password": ""})
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "password"


class TestRefresh:
    def test_refresh_rotates_and_rejects_reuse(self, app, client, ada):
        login = client.post("/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
        original = login.cookies.get("refreshToken")

        response = client.post("/api/auth/refresh")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert set(body["data"]) == {"accessToken"}
        rotated = response.cookies.get("refreshToken")
        assert rotated and rotated != original
        assert _stored_refresh_token(app, "ada@example.com") == rotated

        client.cookies.clear()
        reuse = client.post("/api/auth/refresh", json={"refreshToken": original})
        assert reuse.status_code == 401
        assert reuse.json()["message"] == "Invalid refresh token."

    def test_new_access_token_works(self, client, ada):
        response = client.post("/api/auth/refresh")
        token = response.json()["data"]["accessToken"]
        profile = client.get("/api/user/profile", headers=auth_headers(token))
        assert profile.status_code == 200

    def test_token_from_body_when_no_cookie(self, client, ada):
        client.cookies.clear()
        response = client.post("/api/auth/refresh", json={"refreshToken": ada["refresh_token"]})
        assert response.status_code == 200

    def test_missing_token(self, client):
        response = client.post("/api/auth/refresh")
        assert response.status_code == 401
        assert response.json()["message"] == "Refresh token not provided."

    def test_garbage_token(self, client):
        response = client.post("/api/auth/refresh", json={"refreshToken": "garbage"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired refresh token."

    def test_access_token_is_not_accepted_as_refresh_token(self, client, ada):
        client.cookies.clear()
        response = client.post("/api/auth/refresh", json={"refreshToken": ada["access_token"]})
        assert response.status_code == 401


class TestLogout:
    def test_logout_revokes_refresh_token(self, app, client, ada):
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Logged out successfully"}
        assert _stored_refresh_token(app, "ada@example.com") is None
        assert 'refreshToken=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]

        client.cookies.clear()
        again = client.post("/api/auth/refresh", json={"refreshToken": ada["refresh_token"]})
        assert again.status_code == 401

    def test_logout_without_session_is_idempotent(self, client):
        assert client.post("/api/auth/logout").status_code == 200
        assert client.post("/api/auth/logout").status_code == 200

    def test_logout_with_unknown_token(self, client):
        client.cookies.set("refreshToken", "not-a-live-token")
        response = client.post("/api/auth/logout")
        assert response.status_code == 200


class TestAccessTokenCheck:
    def test_missing_header(self, client):
        response = client.get("/api/user/profile")
        assert response.status_code == 401
        assert response.json()["message"] == "Access denied. No token provided."

    def test_invalid_token(self, client):
        response = client.get("/api/user/profile", headers=auth_headers("garbage"))
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_expired_token(self, tmp_path):
        from fastapi.testclient import TestClient

        from taskboard.main import create_app

        from .conftest import make_settings

        app = create_app(make_settings(tmp_path, access_token_expire_minutes=-1))
        with TestClient(app) as client:
            registered = register_user(client)
            response = client.get("/api/user/profile", headers=registered["headers"])
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_EXPIRED"

    def test_refresh_token_cannot_authenticate_requests(self, client, ada):
        response = client.get("/api/user/profile", headers=auth_headers(ada["refresh_token"]))
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"
