from __future__ import annotations

from flask import Blueprint, g, jsonify, request, session

from inventaris.application.auth_service import AuthService
from inventaris.db import get_db
from inventaris.domain.contracts import Actor
from inventaris.errors import AuthRequiredError, ValidationError
from inventaris.security import clear_login_failures, ensure_login_allowed, record_login_failure
from inventaris.ui_strings import success_message


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_PUBLIC_PATHS = {"/health", "/metrics", "/api/auth/login", "/api/auth/logout"}

_auth_service = AuthService()


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        path = request.path or "/"
        if path in _PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        current_actor()
        return None


def current_actor() -> Actor:
    """Actor for this HTTP request, loaded fresh from the session user id."""
    actor = getattr(g, "actor", None)
    if actor is not None:
        return actor
    actor = _auth_service.load_actor(get_db(), session.get("user_id"))
    if actor is None:
        session.pop("user_id", None)
        raise AuthRequiredError()
    g.actor = actor
    return actor


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    if not email or not password:
        raise ValidationError(message_key="auth_missing_credentials")

    ensure_login_allowed(email)
    actor = _auth_service.login(get_db(), email, password)
    if actor is None:
        record_login_failure(email)
        raise AuthRequiredError(code="invalid_credentials", message_key="auth_invalid_credentials")

    clear_login_failures(email)
    session.clear()
    session["user_id"] = actor.id
    session["user_role"] = actor.role
    g.actor = actor
    return jsonify(
        {
            "id": actor.id,
            "role": actor.role,
            "display_name": actor.display_name,
            "departments": sorted(actor.assigned_departments),
        }
    )


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    g.pop("actor", None)
    return jsonify({"message": success_message("logged_out")})
