import os

from flask import Flask, Response, jsonify, request, session
from werkzeug.exceptions import HTTPException

from inventaris.config import Config
from inventaris.db import close_db, get_db, init_db
from inventaris.db_migrations import register_db_cli
from inventaris.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from inventaris.security import apply_security_headers, enforce_rate_limit


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_request_hooks(app)
    _register_error_handlers(app)
    _register_auth(app)
    _register_services(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        # Tests build their own schema without running alembic.
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT diabaikan di luar development.")
        return

    with app.app_context():
        init_db()


def _register_services(app: Flask) -> None:
    from inventaris.application.container import build_services

    app.extensions["inventaris"] = build_services(app.config, db_provider=get_db)


def _register_blueprints(app: Flask) -> None:
    from inventaris.routes.api_routes import api_bp

    app.register_blueprint(api_bp)


def _register_auth(app: Flask) -> None:
    from inventaris.auth import register_auth

    register_auth(app)


def _register_request_hooks(app: Flask) -> None:
    # Request id and timing come first so a throttled request is still traced.
    @app.before_request
    def _start_request():
        ensure_request_id()
        mark_request_start()
        return enforce_rate_limit()

    @app.after_request
    def _finish_request(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        return apply_security_headers(observe_response(response))


def _request_context() -> dict:
    return {
        "request_path": request.path,
        "http_method": request.method,
        "user_id": session.get("user_id"),
    }


def _register_error_handlers(app: Flask) -> None:
    from inventaris.errors import AppError, SystemError

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                **_request_context(),
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        response = jsonify(exc.to_response_payload(request_id))
        retry_after = (exc.payload or {}).get("retry_after")
        if retry_after is not None:
            response.headers["Retry-After"] = str(retry_after)
        return response, exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(
            code="unexpected_error",
            message_key="unexpected_error",
            http_status=500,
            critical=True,
            details=str(exc),
        )
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                **_request_context(),
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": app.config.get("ENV", "unknown"),
            "metrics": metrics_snapshot(),
        }
        try:
            get_db().execute("SELECT 1").fetchone()
            payload["db_status"] = "ok"
        except Exception as exc:
            app.logger.warning("health_db_unreachable", extra={"details": str(exc)})
            payload["status"] = "degraded"
            payload["db_status"] = "unreachable"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return Response(prometheus_metrics_text(), mimetype="text/plain; version=0.0.4")
