"""
Tests for the Flask HTTP layer.

Tests:
- Cookie attributes on login and logout
- Pre-login and per-session CSRF checks
- Session resume, remember-token fallback and rotation
- Generic 401 bodies
- Login throttling
- Expired-record purge
"""

from __future__ import annotations

import pytest

from sessionguard.core.config import SecureConfig
from sessionguard.security.throttle import LoginThrottle
from sessionguard.web import create_app


USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"


def set_cookies(response):
    """Map cookie name -> raw Set-Cookie header."""
    return {
        header.split("=", 1)[0]: header
        for header in response.headers.getlist("Set-Cookie")
    }


def cookie_value(response, name):
    header = set_cookies(response)[name]
    return header.split(";", 1)[0].split("=", 1)[1]


class Browser:
    """Minimal cookie-carrying wrapper around the Flask test client."""

    def __init__(self, client, user_agent=USER_AGENT):
        self.client = client
        self.user_agent = user_agent
        self.cookies = {}

    def _headers(self, extra=None):
        headers = {"User-Agent": self.user_agent}
        if self.cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in self.cookies.items())
        headers.update(extra or {})
        return headers

    def _remember(self, response):
        for name, header in set_cookies(response).items():
            value = header.split(";", 1)[0].split("=", 1)[1]
            if value and "Max-Age=0" not in header:
                self.cookies[name] = value
            else:
                self.cookies.pop(name, None)
        return response

    def get(self, path, headers=None):
        return self._remember(self.client.get(path, headers=self._headers(headers)))

    def post(self, path, json=None, headers=None):
        return self._remember(self.client.post(path, json=json, headers=self._headers(headers)))

    def csrf(self):
        return self.get("/api/auth/csrf").get_json()["csrf_token"]

    def register(self, username="alice", password="correct-pw"):
        token = self.csrf()
        return self.post(
            "/api/auth/register",
            json={"username": username, "password": password},
            headers={"X-CSRF-Token": token},
        )

    def login(self, username="alice", password="correct-pw", remember=False):
        token = self.csrf()
        return self.post(
            "/api/auth/login",
            json={"username": username, "password": password, "remember": remember},
            headers={"X-CSRF-Token": token},
        )


@pytest.fixture
def throttle():
    return LoginThrottle(max_failures=3, window_seconds=60)


@pytest.fixture
def app(facade, throttle):
    app = create_app(config=SecureConfig(), facade=facade, throttle=throttle)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def browser(app):
    return Browser(app.test_client(use_cookies=False))


@pytest.fixture
def registered(browser):
    response = browser.register()
    assert response.status_code == 201
    return browser


class TestHealth:
    def test_health(self, browser):
        response = browser.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"
        assert response.headers["Cache-Control"] == "no-store"

    def test_unknown_route_is_json(self, browser):
        response = browser.get("/api/nope")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Not Found"}


class TestRegister:
    """Tests for POST /api/auth/register."""

    def test_register_created(self, browser):
        response = browser.register()

        assert response.status_code == 201
        assert response.get_json()["username"] == "alice"

    def test_register_duplicate(self, registered):
        assert registered.register().status_code == 409

    def test_register_invalid_input(self, browser):
        response = browser.register(username="a!", password="correct-pw")
        assert response.status_code == 400

    def test_register_requires_csrf(self, browser):
        response = browser.post("/api/auth/register", json={"username": "alice", "password": "correct-pw"})
        assert response.status_code == 403


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_session_cookie_attributes(self, registered):
        response = registered.login()

        assert response.status_code == 200
        header = set_cookies(response)["sg_session"]
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=Strict" in header
        assert "Path=/" in header
        assert "Expires" not in header

    def test_remember_cookie_expires_with_token(self, registered):
        response = registered.login(remember=True)

        header = set_cookies(response)["sg_remember"]
        assert "Expires=" in header
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=Strict" in header

    def test_no_remember_cookie_unless_requested(self, registered):
        response = registered.login(remember=False)
        assert "sg_remember" not in set_cookies(response)

    def test_response_carries_session_csrf_token(self, registered):
        response = registered.login()
        assert response.get_json()["csrf_token"]

    def test_wrong_password_is_generic_401(self, registered):
        response = registered.login(password="wrong-pw")

        assert response.status_code == 401
        assert response.get_json() == {"error": "Invalid username or password"}
        assert "sg_session" not in set_cookies(response)

    def test_missing_csrf_header_rejected(self, registered):
        registered.csrf()
        response = registered.post("/api/auth/login", json={"username": "alice", "password": "correct-pw"})

        assert response.status_code == 403
        assert "sg_session" not in set_cookies(response)

    def test_mismatched_csrf_header_rejected(self, registered):
        registered.csrf()
        response = registered.post(
            "/api/auth/login",
            json={"username": "alice", "password": "correct-pw"},
            headers={"X-CSRF-Token": "forged"},
        )
        assert response.status_code == 403

    def test_login_rotates_presented_session_id(self, registered, facade):
        registered.login()
        planted = registered.cookies["sg_session"]

        registered.login()

        assert registered.cookies["sg_session"] != planted
        assert facade.sessions.peek(planted) is None

    def test_lockout_after_repeated_failures(self, registered):
        for _ in range(3):
            assert registered.login(password="wrong-pw").status_code == 401

        assert registered.login().status_code == 429


class TestSession:
    """Tests for GET /api/auth/session."""

    def test_resume_with_session_cookie(self, registered):
        login = registered.login()
        response = registered.get("/api/auth/session")

        assert response.status_code == 200
        body = response.get_json()
        assert body["user_id"] == login.get_json()["user_id"]
        assert body["resumed_from"] == "session"
        assert body["csrf_token"] == login.get_json()["csrf_token"]

    def test_no_cookies_is_401(self, browser):
        response = browser.get("/api/auth/session")

        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_other_user_agent_is_401_and_destroys_session(self, registered, facade):
        registered.login()
        session_id = registered.cookies["sg_session"]

        registered.user_agent = "curl/8.5.0"
        response = registered.get("/api/auth/session")

        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}
        assert facade.sessions.peek(session_id) is None

    def test_remember_token_restores_session_and_rotates(self, registered):
        registered.login(remember=True)
        old_token = registered.cookies["sg_remember"]
        old_session = registered.cookies.pop("sg_session")

        response = registered.get("/api/auth/session")

        assert response.status_code == 200
        assert response.get_json()["resumed_from"] == "remember_token"
        cookies = set_cookies(response)
        assert cookie_value(response, "sg_remember") != old_token
        assert cookie_value(response, "sg_session") != old_session
        assert "Expires=" in cookies["sg_remember"]

    def test_replayed_remember_token_is_401(self, registered):
        registered.login(remember=True)
        stolen = registered.cookies["sg_remember"]
        registered.cookies.pop("sg_session")
        registered.get("/api/auth/session")

        registered.cookies = {"sg_remember": stolen}
        response = registered.get("/api/auth/session")

        assert response.status_code == 401
        assert "Max-Age=0" in set_cookies(response)["sg_remember"]


class TestLogout:
    """Tests for POST /api/auth/logout."""

    def test_logout_requires_session_csrf_token(self, registered):
        registered.login()
        response = registered.post("/api/auth/logout")

        assert response.status_code == 403
        assert registered.get("/api/auth/session").status_code == 200

    def test_logout_clears_cookies_and_tokens(self, registered, token_store):
        login = registered.login(remember=True)
        csrf = login.get_json()["csrf_token"]

        response = registered.post("/api/auth/logout", headers={"X-CSRF-Token": csrf})

        assert response.status_code == 200
        cookies = set_cookies(response)
        assert "Max-Age=0" in cookies["sg_session"]
        assert "Max-Age=0" in cookies["sg_remember"]
        assert len(token_store) == 0
        assert registered.get("/api/auth/session").status_code == 401


    def test_remember_cookie_alone_requires_csrf(self, registered, token_store):
        registered.login(remember=True)
        registered.login(remember=True)
        assert len(token_store) == 2
        registered.cookies.pop("sg_session")

        response = registered.post("/api/auth/logout")

        assert response.status_code == 403
        assert len(token_store) == 2

    def test_remember_cookie_alone_with_double_submit_token(self, registered, token_store):
        registered.login(remember=True)
        registered.cookies.pop("sg_session")
        token = registered.csrf()

        response = registered.post("/api/auth/logout", headers={"X-CSRF-Token": token})

        assert response.status_code == 200
        assert len(token_store) == 0

    def test_dead_session_cookie_requires_csrf(self, registered, facade):
        registered.login()
        facade.sessions.destroy(registered.cookies["sg_session"])

        assert registered.post("/api/auth/logout").status_code == 403

    def test_logout_without_cookies_needs_double_submit_token(self, browser):
        assert browser.post("/api/auth/logout").status_code == 403

        token = browser.csrf()
        response = browser.post("/api/auth/logout", headers={"X-CSRF-Token": token})
        assert response.status_code == 200


class TestPurge:
    """Expired sessions and tokens are swept while the app runs."""

    def test_first_request_purges_idle_sessions(self, app, browser, facade, session_store, clock, alice):
        facade.sessions.create(alice.id, "fp")
        clock.advance(hours=1)

        browser.get("/api/health")

        assert len(session_store) == 0

    def test_purge_is_rate_limited(self, app, browser, facade, session_store, clock, alice):
        browser.get("/api/health")
        facade.sessions.create(alice.id, "fp")
        clock.advance(hours=1)

        browser.get("/api/health")

        assert len(session_store) == 1

    def test_purge_command(self, app, facade, session_store, token_store, clock, alice):
        facade.sessions.create(alice.id, "fp")
        facade.tokens.issue(alice.id)
        clock.advance(days=31)

        result = app.test_cli_runner().invoke(args=["purge"])

        assert result.exit_code == 0
        assert "Purged 1 sessions and 1 remember tokens" in result.output
        assert len(session_store) == 0
        assert len(token_store) == 0
