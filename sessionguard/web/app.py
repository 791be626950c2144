"""
SessionGuard Web API
====================
Flask backend exposing login, session resume and logout over cookies.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from typing import Optional

import click
from flask import Blueprint, Flask, current_app, g, jsonify, make_response, request
from flask.cli import with_appcontext
from werkzeug.exceptions import HTTPException

from sessionguard.core.auth import (
    Argon2Hasher,
    AuthFacade,
    Authenticator,
    CredentialStore,
    RememberTokenManager,
    SessionManager,
)
from sessionguard.core.auth.csrf import csrf_tokens_match, generate_csrf_token
from sessionguard.core.auth.facade import RESUMED_FROM_REMEMBER_TOKEN
from sessionguard.core.auth.fingerprint import fingerprint_from_user_agent
from sessionguard.core.config import SecureConfig
from sessionguard.core.errors import (
    AuthError,
    CsrfError,
    InvalidCredentialsError,
    StoreUnavailableError,
    UnauthenticatedError,
    UserExistsError,
    ValidationError,
)
from sessionguard.core.logging import configure_from
from sessionguard.db import (
    RetryingStore,
    RetryPolicy,
    SQLiteRememberTokenStore,
    SQLiteSessionStore,
    SQLiteUserStore,
)
from sessionguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
    audit_log,
)
from sessionguard.security.constants import CSRF_HEADER_NAME
from sessionguard.security.throttle import LoginThrottle


logger = logging.getLogger("sessionguard.web")

api = Blueprint("api", __name__, url_prefix="/api")


@dataclass
class AuthState:
    """Per-application collaborators, kept in app.extensions."""
    config: SecureConfig
    facade: AuthFacade
    throttle: LoginThrottle
    audit: Optional[TamperAwareAuditLog] = None
    next_purge_at: float = 0.0
    purge_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


# ============================================================
# APP FACTORY
# ============================================================

def build_facade(config: SecureConfig, audit: Optional[TamperAwareAuditLog] = None) -> AuthFacade:
    """Wire the SQLite-backed stores and managers described by `config`."""
    security = config.security
    db_path = config.paths.database_path
    policy = RetryPolicy.from_config(security)
    timeout = security.store_timeout_seconds

    users = RetryingStore(SQLiteUserStore(db_path, timeout=timeout), policy)
    sessions = RetryingStore(SQLiteSessionStore(db_path, timeout=timeout), policy)
    tokens = RetryingStore(SQLiteRememberTokenStore(db_path, timeout=timeout), policy)

    credentials = CredentialStore(users, Argon2Hasher.from_config(security))
    return AuthFacade(
        Authenticator(credentials),
        SessionManager.from_config(sessions, security, audit=audit),
        RememberTokenManager.from_config(tokens, security, audit=audit),
        audit=audit,
    )


def create_app(
    config: Optional[SecureConfig] = None,
    facade: Optional[AuthFacade] = None,
    throttle: Optional[LoginThrottle] = None,
    audit: Optional[TamperAwareAuditLog] = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        config: Configuration (defaults to SecureConfig.get_instance())
        facade: Pre-built facade; when omitted, SQLite stores under the
            configured data directory are used and an audit log is opened
        throttle: Login throttle (defaults to one built from config)
        audit: Audit log used for HTTP-level events
    """
    config = config or SecureConfig.get_instance()

    if facade is None:
        config.ensure_directories()
        audit = audit or TamperAwareAuditLog(config.paths.audit_log_path)
        facade = build_facade(config, audit)

    if throttle is None:
        throttle = LoginThrottle(
            max_failures=config.security.max_login_attempts,
            window_seconds=config.security.lockout_duration_seconds,
        )

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024
    app.config["DEBUG"] = config.app.debug_mode
    app.extensions["sessionguard"] = AuthState(config, facade, throttle, audit)

    app.register_blueprint(api)
    app.before_request(purge_if_due)
    app.after_request(add_security_headers)
    app.cli.add_command(purge_command)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(AuthError, handle_auth_error)

    return app


def _state() -> AuthState:
    return current_app.extensions["sessionguard"]


# ============================================================
# EXPIRED RECORD PURGE
# ============================================================

def purge_if_due() -> None:
    """Sweep expired sessions and tokens at most once per purge interval."""
    state = _state()
    now = time.monotonic()
    if now < state.next_purge_at:
        return
    # Another request is already sweeping
    if not state.purge_lock.acquire(blocking=False):
        return
    try:
        if now < state.next_purge_at:
            return
        state.next_purge_at = now + state.config.security.purge_interval_seconds
        sessions, tokens = state.facade.purge_expired()
        if sessions or tokens:
            logger.info("Purged %d sessions and %d remember tokens", sessions, tokens)
    finally:
        state.purge_lock.release()


@click.command("purge")
@with_appcontext
def purge_command() -> None:
    """Delete idle sessions and expired remember tokens."""
    sessions, tokens = _state().facade.purge_expired()
    click.echo(f"Purged {sessions} sessions and {tokens} remember tokens")


# ============================================================
# RESPONSES AND COOKIES
# ============================================================

def add_security_headers(response):
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


def handle_http_error(exc: HTTPException):
    return jsonify({"error": exc.name}), exc.code


def handle_auth_error(exc: AuthError):
    # Internal kinds never reach the client
    logger.warning("Request rejected: %s", exc.kind, extra={"auth_event": exc.kind})
    return _unauthorized()


def _unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def _set_cookie(response, name: str, value: str, expires: Optional[datetime] = None) -> None:
    response.set_cookie(
        name,
        value,
        expires=expires,
        path="/",
        secure=_state().config.app.secure_cookies,
        httponly=True,
        samesite="Strict",
    )


def _clear_cookie(response, name: str) -> None:
    response.delete_cookie(
        name,
        path="/",
        secure=_state().config.app.secure_cookies,
        httponly=True,
        samesite="Strict",
    )


def _fingerprint() -> str:
    return fingerprint_from_user_agent(
        request.headers.get("User-Agent"),
        salt=_state().config.security.fingerprint_salt,
    )


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _pre_session_csrf_ok() -> bool:
    """Double-submit check: header must equal the pre-login CSRF cookie."""
    state = _state()
    if csrf_tokens_match(
        request.cookies.get(state.config.app.csrf_cookie_name),
        request.headers.get(CSRF_HEADER_NAME),
    ):
        return True

    logger.warning("Pre-session CSRF token rejected", extra={"auth_event": CsrfError.kind})
    audit_log(
        state.audit, AuditEventType.CSRF_REJECTED, AuditSeverity.WARNING,
        "Pre-session CSRF token rejected", details={"path": request.path},
    )
    return False


def _csrf_rejected():
    return jsonify({"error": "CSRF token missing or invalid"}), 403


# ============================================================
# AUTH DECORATOR
# ============================================================

def require_auth(f):
    """
    Resume the caller's session (or remember token) before the view runs.

    The authenticated context is available as `g.auth`. When a remember
    token was consumed, the new session and rotated token cookies are
    set on the view's response.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        state = _state()
        cookies = state.config.app
        session_id = request.cookies.get(cookies.session_cookie_name)
        remember_token = request.cookies.get(cookies.remember_cookie_name)

        try:
            g.auth = state.facade.resume(session_id, remember_token, fingerprint=_fingerprint())
        except UnauthenticatedError:
            response = make_response(_unauthorized())
            if session_id:
                _clear_cookie(response, cookies.session_cookie_name)
            if remember_token:
                _clear_cookie(response, cookies.remember_cookie_name)
            return response

        response = make_response(f(*args, **kwargs))
        if g.auth.resumed_from == RESUMED_FROM_REMEMBER_TOKEN:
            _set_cookie(response, cookies.session_cookie_name, g.auth.session_id)
            _set_cookie(
                response,
                cookies.remember_cookie_name,
                g.auth.remember_token.raw_token,
                expires=g.auth.remember_token.expires_at,
            )
        return response
    return wrapper


# ============================================================
# HEALTH CHECK
# ============================================================

@api.route("/health")
def health():
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat()
    })


# ============================================================
# AUTH ROUTES
# ============================================================

@api.route("/auth/csrf", methods=["GET"])
def issue_csrf_token():
    token = generate_csrf_token()
    response = make_response(jsonify({"csrf_token": token}))
    _set_cookie(response, _state().config.app.csrf_cookie_name, token)
    return response


@api.route("/auth/register", methods=["POST"])
def register():
    if not _pre_session_csrf_ok():
        return _csrf_rejected()

    data = _json_body()
    username = data.get("username", "")
    password = data.get("password", "")

    try:
        user = _state().facade.register(username, password)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except UserExistsError:
        return jsonify({"error": "Username already taken"}), 409
    except StoreUnavailableError:
        logger.error("Registration failed: store unavailable")
        return jsonify({"error": "Service unavailable"}), 503

    return jsonify({
        "message": "Registration successful",
        "user_id": user.id,
        "username": user.username,
    }), 201


@api.route("/auth/login", methods=["POST"])
def login():
    state = _state()
    cookies = state.config.app

    if not _pre_session_csrf_ok():
        return _csrf_rejected()

    data = _json_body()
    username = data.get("username", "")
    password = data.get("password", "")
    remember = data.get("remember") is True
    remote_addr = request.remote_addr

    if state.throttle.is_locked(username, remote_addr):
        audit_log(
            state.audit, AuditEventType.LOGIN_THROTTLED, AuditSeverity.WARNING,
            "Login attempt while locked out", details={"remote_addr": remote_addr},
        )
        return jsonify({"error": "Too many failed attempts. Try again later."}), 429

    try:
        result = state.facade.login(
            username,
            password,
            remember,
            _fingerprint(),
            previous_session_id=request.cookies.get(cookies.session_cookie_name),
        )
    except InvalidCredentialsError:
        state.throttle.record_failure(username, remote_addr)
        return jsonify({"error": "Invalid username or password"}), 401
    except UnauthenticatedError:
        return _unauthorized()

    state.throttle.reset(username)

    response = make_response(jsonify({
        "message": "Login successful",
        "user_id": result.user_id,
        "csrf_token": result.csrf_token,
    }))
    _set_cookie(response, cookies.session_cookie_name, result.session_id)
    if result.remember_token is not None:
        _set_cookie(
            response,
            cookies.remember_cookie_name,
            result.remember_token.raw_token,
            expires=result.remember_token.expires_at,
        )
    # The pre-login token is spent; the session carries its own from here
    _clear_cookie(response, cookies.csrf_cookie_name)
    return response


@api.route("/auth/session", methods=["GET"])
@require_auth
def current_session():
    return jsonify({
        "user_id": g.auth.user_id,
        "csrf_token": g.auth.csrf_token,
        "resumed_from": g.auth.resumed_from,
    })


@api.route("/auth/logout", methods=["POST"])
def logout():
    state = _state()
    cookies = state.config.app
    session_id = request.cookies.get(cookies.session_cookie_name)
    remember_token = request.cookies.get(cookies.remember_cookie_name)

    # A live session is checked against its own token; anything else
    # (remember cookie only, dead session cookie) needs the double-submit token
    if state.facade.is_active(session_id):
        if not state.facade.verify_csrf(session_id, request.headers.get(CSRF_HEADER_NAME)):
            return _csrf_rejected()
    elif not _pre_session_csrf_ok():
        return _csrf_rejected()

    state.facade.logout(session_id, remember_token)

    response = make_response(jsonify({"message": "Logged out successfully"}))
    _clear_cookie(response, cookies.session_cookie_name)
    _clear_cookie(response, cookies.remember_cookie_name)
    return response


# ============================================================
# ENTRY POINT
# ============================================================

def main() -> None:
    """Run the development server with configuration from the environment."""
    config = SecureConfig.get_instance()
    config.ensure_directories()
    configure_from(config.logging, config.paths.log_dir)

    app = create_app(config)
    app.run(host="127.0.0.1", port=5000, threaded=True)


if __name__ == "__main__":
    main()
