"""
Tests for the auth blueprint: login, logout, /me and admin signup.
"""
from unittest.mock import MagicMock, patch

import pytest
from planner import create_app
from planner.config import TestingConfig
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError


@pytest.fixture
def app():
    return create_app(TestingConfig)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def xano():
    return MagicMock()


def log_in(client, user=None):
    with client.session_transaction() as sess:
        sess["xano_auth_token"] = "tok"
        if user:
            sess["user"] = user


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_success(self, client, xano):
        """Test that a good login stores the token and returns the user."""
        xano.login.return_value = {"authToken": "abc", "user": {"id": 5, "email": "a@b.c", "team_id": 3}}
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/login", json={"email": "a@b.c", "password": "pw"})

        assert response.status_code == 200
        assert response.get_json() == {"status": "success", "user": {"id": 5, "email": "a@b.c", "team_id": 3}}
        with client.session_transaction() as sess:
            assert sess["xano_auth_token"] == "abc"
            assert sess["team_id"] == 3

    def test_login_fetches_user_when_missing(self, client, xano):
        """Test that /auth/me is used when login returns no user."""
        xano.login.return_value = {"authToken": "abc"}
        xano.get_me.return_value = {"id": 9}
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/login", json={"email": "a@b.c", "password": "pw"})
        assert response.get_json()["user"] == {"id": 9}

    def test_login_missing_fields(self, client):
        """Test that missing credentials return 400."""
        assert client.post("/api/auth/login", json={"email": "a@b.c"}).status_code == 400
        assert client.post("/api/auth/login", data="x", content_type="text/plain").status_code == 400

    def test_login_bad_credentials(self, client, xano):
        """Test that Xano rejecting the credentials returns 401."""
        xano.login.side_effect = XanoUnauthorizedError("Invalid", status_code=401)
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/login", json={"email": "a@b.c", "password": "bad"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid email or password"

    def test_login_upstream_failure(self, client, xano):
        """Test that other Xano failures return 502."""
        xano.login.side_effect = XanoAPIError("Down", status_code=500)
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/login", json={"email": "a@b.c", "password": "pw"})
        assert response.status_code == 502
        assert response.get_json() == {"error": "Login failed", "details": "Down"}

    def test_login_without_token(self, client, xano):
        """Test that a response without authToken is treated as a failure."""
        xano.login.return_value = {}
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/login", json={"email": "a@b.c", "password": "pw"})
        assert response.status_code == 502


class TestSession:
    """Tests for /me and /logout."""

    def test_me_requires_login(self, client):
        """Test that /me without a session returns 401 with a redirect."""
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.get_json()["redirect"] == "/login"

    def test_me_cached_user(self, client):
        """Test that the cached session user is returned."""
        log_in(client, user={"id": 1, "role": "admin"})
        response = client.get("/api/auth/me")
        assert response.status_code == 200
        assert response.get_json() == {"id": 1, "role": "admin"}

    def test_me_fetches_from_xano(self, client, xano):
        """Test that /me falls back to Xano when no user is cached."""
        log_in(client)
        xano.get_me.return_value = {"id": 2}
        with patch("planner.auth.utils.get_xano_client", return_value=xano):
            response = client.get("/api/auth/me")
        assert response.get_json() == {"id": 2}

    def test_me_expired_token(self, client, xano):
        """Test that an expired token clears the session."""
        log_in(client)
        xano.get_me.side_effect = XanoUnauthorizedError("Expired", status_code=401)
        with patch("planner.auth.utils.get_xano_client", return_value=xano):
            response = client.get("/api/auth/me")
        assert response.status_code == 401
        with client.session_transaction() as sess:
            assert "xano_auth_token" not in sess

    def test_logout(self, client):
        """Test that logout clears the session."""
        log_in(client, user={"id": 1})
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        with client.session_transaction() as sess:
            assert "xano_auth_token" not in sess
            assert "user" not in sess


class TestSignup:
    """Tests for admin-only signup."""

    def test_signup_requires_admin(self, client):
        """Test that non-admins get 403."""
        log_in(client, user={"id": 1, "role": "user"})
        response = client.post("/api/auth/signup", json={"email": "n@b.c", "password": "pw"})
        assert response.status_code == 403

    def test_signup_requires_login(self, client):
        """Test that anonymous callers get 401."""
        assert client.post("/api/auth/signup", json={"email": "n@b.c", "password": "pw"}).status_code == 401

    def test_signup_success(self, client, xano):
        """Test that admins can create users and the new token is dropped."""
        log_in(client, user={"id": 1, "admin": True})
        xano.signup.return_value = {"id": 7, "email": "n@b.c", "authToken": "secret"}
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/signup", json={"email": "n@b.c", "password": "pw", "admin": True})

        assert response.status_code == 201
        assert response.get_json()["user"] == {"id": 7, "email": "n@b.c"}
        xano.signup.assert_called_once_with("n@b.c", "pw", admin=True)

    def test_signup_duplicate(self, client, xano):
        """Test that Xano's status code is passed through on failure."""
        log_in(client, user={"id": 1, "role": "admin"})
        xano.signup.side_effect = XanoAPIError("Duplicate", status_code=400)
        with patch("planner.auth.routes.get_xano_client", return_value=xano):
            response = client.post("/api/auth/signup", json={"email": "n@b.c", "password": "pw"})
        assert response.status_code == 400
        assert response.get_json()["details"] == "Duplicate"
