from __future__ import annotations

from typing import Any, Dict

from inventaris.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Terjadi kesalahan. Silakan coba lagi.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class EmptyItemsError(ValidationError):
    default_code = "empty_items"
    default_message_key = "items_required"


class EmptyReasonError(ValidationError):
    default_code = "empty_reason"
    default_message_key = "reason_required"


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class UnauthorizedError(PermissionError):
    default_code = "unauthorized"


class AuthRequiredError(UserActionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "request_not_found"
    default_http_status = 404


class InvalidStateTransition(UserActionError):
    default_code = "invalid_state_transition"
    default_message_key = "invalid_state_transition"
    default_http_status = 409

    def __init__(self, *, from_status: str | None = None, event: str | None = None, **kwargs: Any) -> None:
        payload = dict(kwargs.pop("payload", None) or {})
        if from_status is not None:
            payload.setdefault("status", from_status)
        if event is not None:
            payload.setdefault("event", event)
        self.from_status = from_status
        self.event = event
        if "details" not in kwargs and from_status is not None and event is not None:
            kwargs["details"] = f"cannot {event} a request in status {from_status}"
        super().__init__(payload=payload, **kwargs)


class InvalidMembershipError(UserActionError):
    default_code = "invalid_membership"
    default_message_key = "invalid_membership"
    default_http_status = 409


class InvalidMonthError(AppError, ValueError):
    default_code = "invalid_month"
    default_message_key = "invalid_month"
    default_http_status = 500
    default_critical = True


class TransientFailure(AppError):
    default_code = "temporarily_unavailable"
    default_message_key = "temporarily_unavailable"
    default_http_status = 503
    default_critical = False
    retryable = True


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
