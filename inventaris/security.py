from __future__ import annotations

import threading
import time
from typing import Dict, Tuple

from flask import current_app, request, session

from inventaris.errors import ValidationError


_EXEMPT_PATHS = {"/health", "/metrics"}


class FixedWindowCounter:
    """Per-key hit counts over fixed windows, in process memory."""

    max_keys = 10_000

    def __init__(self, clock=time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def _current(self, key: str, now: float, window_seconds: int) -> Tuple[float, int]:
        start, count = self._windows.get(key, (now, 0))
        if now - start >= window_seconds:
            return now, 0
        return start, count

    def _prune(self, now: float, window_seconds: int) -> None:
        if len(self._windows) <= self.max_keys:
            return
        cutoff = now - window_seconds
        self._windows = {key: value for key, value in self._windows.items() if value[0] >= cutoff}

    def hit(self, key: str, *, window_seconds: int) -> Tuple[int, int]:
        """Count one hit; returns (hits in window, seconds until the window resets)."""
        now = self._clock()
        with self._lock:
            start, count = self._current(key, now, window_seconds)
            count += 1
            self._windows[key] = (start, count)
            self._prune(now, window_seconds)
            return count, max(0, int(window_seconds - (now - start)))

    def peek(self, key: str, *, window_seconds: int) -> Tuple[int, int]:
        now = self._clock()
        with self._lock:
            start, count = self._current(key, now, window_seconds)
            return count, max(0, int(window_seconds - (now - start)))

    def clear(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)


_REQUESTS = FixedWindowCounter()
_LOGIN_FAILURES = FixedWindowCounter()


def _too_many(retry_after: int) -> ValidationError:
    return ValidationError(
        code="rate_limit_exceeded",
        message_key="rate_limit_exceeded",
        http_status=429,
        payload={"retry_after": retry_after},
    )


def _config_int(name: str, default: int) -> int:
    return max(1, int(current_app.config.get(name, default) or default))


def _client_ip() -> str:
    return str(request.remote_addr or "").strip() or "unknown"


def enforce_rate_limit():
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return None
    if request.method == "OPTIONS" or request.path in _EXEMPT_PATHS:
        return None

    user = str(session.get("user_id") or "").strip() or "anon"
    route = request.url_rule.rule if request.url_rule else request.path
    hits, retry_after = _REQUESTS.hit(
        f"{_client_ip()}|{user}|{request.method}|{route}",
        window_seconds=_config_int("RATE_LIMIT_WINDOW_SECONDS", 60),
    )
    if hits > _config_int("RATE_LIMIT_MAX_REQUESTS", 300):
        raise _too_many(retry_after)
    return None


def _login_key(email: str) -> str:
    return f"{_client_ip()}|{str(email or '').strip().lower()}"


def ensure_login_allowed(email: str) -> None:
    """Refuse further password checks once an address has failed too often from this client."""
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return
    failures, retry_after = _LOGIN_FAILURES.peek(
        _login_key(email),
        window_seconds=_config_int("LOGIN_FAILURE_WINDOW_SECONDS", 300),
    )
    if failures >= _config_int("LOGIN_MAX_FAILURES", 10):
        raise _too_many(retry_after)


def record_login_failure(email: str) -> None:
    _LOGIN_FAILURES.hit(_login_key(email), window_seconds=_config_int("LOGIN_FAILURE_WINDOW_SECONDS", 300))


def clear_login_failures(email: str) -> None:
    _LOGIN_FAILURES.clear(_login_key(email))


def apply_security_headers(response):
    if not bool(current_app.config.get("SECURITY_HEADERS_ENABLED", True)):
        return response
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    # JSON only: nothing may be loaded or framed from our responses.
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("Cache-Control", "no-store")
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _REQUESTS.clear()
    _LOGIN_FAILURES.clear()
