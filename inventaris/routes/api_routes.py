from __future__ import annotations

from datetime import datetime
from typing import Any, List

from flask import Blueprint, current_app, jsonify, request

from inventaris.application.container import Services
from inventaris.auth import current_actor
from inventaris.db import get_db
from inventaris.domain.contracts import IncomingLineInput, RequestLineInput, parse_timestamp
from inventaris.domain.doc_number import doc_number_preview, parse_doc_number
from inventaris.domain.request_state import allowed_events
from inventaris.errors import EmptyItemsError, ValidationError
from inventaris.infrastructure.repositories.inventory import DepartmentRepository
from inventaris.ui_strings import success_message


api_bp = Blueprint("api", __name__, url_prefix="/api")

_DEPARTMENTS = DepartmentRepository()


def _services() -> Services:
    return current_app.extensions["inventaris"]


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _request_ids(payload: dict) -> List[Any]:
    raw = payload.get("request_ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationError(message_key="request_ids_required")
    return raw


def _request_lines(payload: dict) -> List[RequestLineInput]:
    raw = payload.get("items")
    if not isinstance(raw, list) or not raw:
        raise EmptyItemsError()
    lines = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError(details="each item must be an object")
        dept_code = str(entry.get("dept_code") or "").strip() or None
        lines.append(RequestLineInput(item_id=entry.get("item_id"), quantity=entry.get("quantity"), dept_code=dept_code))
    return lines


def _bool_arg(name: str) -> bool:
    return str(request.args.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


@api_bp.route("/me", methods=["GET"])
def me():
    actor = current_actor()
    scope = _services().queries.resolve_scope(get_db(), actor)
    return jsonify(
        {
            "id": actor.id,
            "role": actor.role,
            "display_name": actor.display_name,
            "primary_department": actor.primary_department,
            "departments": sorted(actor.assigned_departments),
            "scope": scope.to_dict(),
        }
    )


@api_bp.route("/scope", methods=["GET"])
def scope():
    resolved = _services().queries.resolve_scope(get_db(), current_actor())
    return jsonify(resolved.to_dict())


@api_bp.route("/departments", methods=["GET"])
def departments():
    rows = _DEPARTMENTS.list_all(get_db())
    return jsonify({"departments": [{"code": d.code, "name": d.name, "category": d.category} for d in rows]})


@api_bp.route("/doc-numbers/preview", methods=["GET"])
def doc_number_preview_api():
    dept_code = str(request.args.get("dept_code") or "").strip()
    if not dept_code:
        raise ValidationError(message_key="department_required")
    on = parse_timestamp(request.args.get("date")) or datetime.now()
    try:
        preview = doc_number_preview(dept_code, on)
    except ValueError as exc:
        raise ValidationError(details=str(exc)) from None
    return jsonify({"doc_number": preview})


@api_bp.route("/doc-numbers/parse", methods=["GET"])
def doc_number_parse_api():
    parts = parse_doc_number(str(request.args.get("value") or ""))
    if parts is None:
        return jsonify({"valid": False})
    return jsonify(
        {
            "valid": True,
            "sequence": parts.sequence,
            "dept_code": parts.dept_code,
            "month": parts.month,
            "year": parts.year,
        }
    )


@api_bp.route("/requests", methods=["GET"])
def list_requests():
    status = str(request.args.get("status") or "").strip() or None
    rows = _services().queries.list_requests(get_db(), current_actor(), status=status)
    return jsonify({"requests": [row.to_dict() for row in rows]})


@api_bp.route("/requests", methods=["POST"])
def create_request():
    actor = current_actor()
    payload = _payload()
    lines = _request_lines(payload)
    dept_code = str(payload.get("dept_code") or "").strip() or None
    request_date = parse_timestamp(payload.get("request_date"))
    signature = str(payload.get("admin_signature") or "").strip() or None
    lifecycle = _services().lifecycle
    db = get_db()
    if any(line.dept_code for line in lines):
        created = lifecycle.create_requests_by_department(
            db,
            actor,
            lines,
            default_dept_code=dept_code,
            request_date=request_date,
            admin_signature=signature,
        )
    else:
        created = [
            lifecycle.create_request(
                db,
                actor,
                dept_code or "",
                lines,
                request_date=request_date,
                admin_signature=signature,
            )
        ]
    return (
        jsonify({"message": success_message("request_created"), "requests": [row.to_dict() for row in created]}),
        201,
    )


@api_bp.route("/requests/<int:request_id>", methods=["GET"])
def get_request(request_id: int):
    row = _services().queries.get_request(get_db(), current_actor(), request_id)
    body = row.to_dict()
    body["allowed_events"] = allowed_events(row.status)
    return jsonify(body)


@api_bp.route("/requests/<int:request_id>/approve", methods=["POST"])
def approve_request(request_id: int):
    payload = _payload()
    signature = str(payload.get("signature") or "").strip() or None
    row = _services().lifecycle.approve_request(get_db(), current_actor(), request_id, signature=signature)
    return jsonify({"message": success_message("request_approved"), "request": row.to_dict()})


@api_bp.route("/requests/<int:request_id>/reject", methods=["POST"])
def reject_request(request_id: int):
    reason = str(_payload().get("reason") or "")
    row = _services().lifecycle.reject_request(get_db(), current_actor(), request_id, reason)
    return jsonify({"message": success_message("request_rejected"), "request": row.to_dict()})


@api_bp.route("/requests/<int:request_id>/sign", methods=["POST"])
def sign_request(request_id: int):
    signature = str(_payload().get("signature") or "")
    row = _services().lifecycle.sign_request(get_db(), current_actor(), request_id, signature)
    return jsonify({"message": success_message("request_signed"), "request": row.to_dict()})


@api_bp.route("/requests/approve-bulk", methods=["POST"])
def approve_bulk():
    payload = _payload()
    signature = str(payload.get("signature") or "").strip() or None
    result = _services().lifecycle.approve_requests_bulk(
        get_db(),
        current_actor(),
        _request_ids(payload),
        signature=signature,
    )
    return jsonify(result.to_dict())


@api_bp.route("/requests/reject-bulk", methods=["POST"])
def reject_bulk():
    payload = _payload()
    result = _services().lifecycle.reject_requests_bulk(
        get_db(),
        current_actor(),
        _request_ids(payload),
        str(payload.get("reason") or ""),
    )
    return jsonify(result.to_dict())


@api_bp.route("/approvals", methods=["GET"])
def pending_approvals():
    rows = _services().queries.pending_approvals(get_db(), current_actor())
    return jsonify({"requests": [row.to_dict() for row in rows]})


@api_bp.route("/batches/candidates", methods=["GET"])
def batch_candidates():
    rows = _services().batches.list_schedulable(get_db(), current_actor())
    return jsonify({"requests": [row.to_dict() for row in rows]})


@api_bp.route("/batches", methods=["GET"])
def list_batches():
    status = str(request.args.get("status") or "").strip() or None
    rows = _services().batches.list_batches(get_db(), current_actor(), status=status)
    return jsonify({"batches": [row.to_dict() for row in rows]})


@api_bp.route("/batches", methods=["POST"])
def create_batch():
    payload = _payload()
    batch = _services().batches.create_batch(
        get_db(),
        current_actor(),
        _request_ids(payload),
        payload.get("schedule_datetime"),
    )
    return jsonify({"message": success_message("batch_created"), "batch": batch.to_dict()}), 201


@api_bp.route("/batches/<int:batch_id>", methods=["GET"])
def get_batch(batch_id: int):
    batch = _services().batches.get_batch(get_db(), current_actor(), batch_id)
    return jsonify(batch.to_dict())


@api_bp.route("/batches/<int:batch_id>/review", methods=["POST"])
def review_batch(batch_id: int):
    payload = _payload()
    if not isinstance(payload.get("approved"), bool):
        raise ValidationError(details="approved must be true or false")
    batch = _services().batches.review_batch(
        get_db(),
        current_actor(),
        batch_id,
        payload["approved"],
        schedule_datetime=payload.get("schedule_datetime"),
        signature=str(payload.get("signature") or "").strip() or None,
    )
    return jsonify({"message": success_message("batch_reviewed"), "batch": batch.to_dict()})


@api_bp.route("/hand-over", methods=["POST"])
def hand_over():
    payload = _payload()
    result = _services().lifecycle.hand_over(get_db(), current_actor(), _request_ids(payload))
    body = result.to_dict()
    body["message"] = success_message("handover_processed")
    return jsonify(body)


@api_bp.route("/items", methods=["GET"])
def list_items():
    stock = _services().stock
    db = get_db()
    rows = stock.low_stock_items(db) if _bool_arg("low_stock") else stock.list_items(db)
    return jsonify({"items": [_item_body(item) for item in rows]})


def _item_body(item) -> dict:
    return {
        "id": item.id,
        "sku": item.sku,
        "name": item.name,
        "unit": item.unit,
        "current_stock": item.current_stock,
        "min_stock": item.min_stock,
        "is_low_stock": item.is_low_stock,
    }


@api_bp.route("/items", methods=["POST"])
def create_item():
    payload = _payload()
    item = _services().stock.create_item(
        get_db(),
        current_actor(),
        sku=payload.get("sku"),
        name=payload.get("name"),
        unit=payload.get("unit") or "pcs",
        current_stock=payload.get("current_stock", 0),
        min_stock=payload.get("min_stock", 0),
    )
    return jsonify({"message": success_message("item_saved"), "item": _item_body(item)}), 201


@api_bp.route("/items/<int:item_id>", methods=["PUT"])
def update_item(item_id: int):
    item = _services().stock.update_item(get_db(), current_actor(), item_id, _payload())
    return jsonify({"message": success_message("item_saved"), "item": _item_body(item)})


@api_bp.route("/items/<int:item_id>", methods=["DELETE"])
def delete_item(item_id: int):
    _services().stock.delete_item(get_db(), current_actor(), item_id)
    return jsonify({"message": success_message("item_deleted"), "item_id": item_id})


@api_bp.route("/incoming", methods=["POST"])
def record_incoming():
    payload = _payload()
    raw_lines = payload.get("items")
    if not isinstance(raw_lines, list):
        raise ValidationError(message_key="items_required")
    lines = []
    for entry in raw_lines:
        if not isinstance(entry, dict):
            raise ValidationError(details="each item must be an object")
        try:
            lines.append(IncomingLineInput(item_id=int(entry.get("item_id")), quantity=entry.get("quantity")))
        except (TypeError, ValueError):
            raise ValidationError(message_key="item_not_found") from None
    receipt = _services().stock.record_incoming(
        get_db(),
        current_actor(),
        po_number=payload.get("po_number"),
        incoming_date=payload.get("incoming_date"),
        lines=lines,
        notes=payload.get("notes"),
    )
    return (
        jsonify(
            {
                "message": success_message("incoming_recorded"),
                "incoming": {
                    "id": receipt.id,
                    "po_number": receipt.po_number,
                    "incoming_date": receipt.incoming_date,
                    "notes": receipt.notes,
                    "items": [{"item_id": line.item_id, "quantity": line.quantity} for line in receipt.lines],
                },
            }
        ),
        201,
    )


@api_bp.route("/notifications", methods=["GET"])
def list_notifications():
    actor = current_actor()
    notifications = _services().notifications
    db = get_db()
    rows = notifications.list_for_user(db, actor.id, unread_only=_bool_arg("unread"))
    return jsonify(
        {
            "notifications": [row.to_dict() for row in rows],
            "unread_count": notifications.unread_count(db, actor.id),
        }
    )


@api_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_notification_read(notification_id: int):
    _services().notifications.mark_read(get_db(), current_actor().id, notification_id)
    return jsonify({"id": notification_id, "is_read": True})


@api_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_notifications_read():
    updated = _services().notifications.mark_all_read(get_db(), current_actor().id)
    return jsonify({"updated": updated})


@api_bp.route("/dashboard/stats", methods=["GET"])
def dashboard_stats():
    stats = _services().queries.dashboard_stats(get_db(), current_actor())
    return jsonify(stats.to_dict())
