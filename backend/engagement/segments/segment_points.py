from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from engagement.extensions import db
from engagement.jobs.points_reconciler import reconcile_points
from engagement.services.registry import get_services
from engagement.utils.clock import parse_timestamp
from engagement.utils.jwt_utils import is_system_caller

points_bp = Blueprint("points_bp", __name__, url_prefix="/api/points")
points_system_bp = Blueprint("points_system_bp", __name__, url_prefix="/api/system/points")

_INIT = False


@points_bp.before_app_request
def _ensure_tables_once():
    global _INIT
    if _INIT:
        return
    try:
        db.create_all()
    except Exception:
        current_app.logger.exception("table bootstrap failed; run migrations")
    _INIT = True


def _limit(default: int = 10, ceiling: int = 100) -> int:
    raw = (request.args.get("limit") or "").strip()
    try:
        limit = int(raw) if raw else default
    except Exception:
        limit = default
    if limit < 1:
        limit = default
    if limit > ceiling:
        limit = ceiling
    return limit


def _payload_or_error():
    payload = request.get_json(silent=True) or {}
    user_id = str(payload.get("user_id") or payload.get("userId") or "").strip()
    action_type = str(payload.get("action_type") or payload.get("actionType") or "").strip()
    if not user_id or not action_type:
        return None, (jsonify({"ok": False, "message": "user_id and action_type are required"}), 400)
    return payload, None


@points_bp.get("/top")
def top():
    items = get_services().ledger.top_n(_limit())
    return jsonify({"ok": True, "items": items}), 200


@points_bp.get("/<user_id>")
def balance(user_id):
    points = get_services().ledger.get_balance(user_id)
    return jsonify({"ok": True, "user_id": user_id, "points": points}), 200


@points_bp.get("/<user_id>/history")
def history(user_id):
    rows = get_services().ledger.history(user_id, limit=_limit(default=200, ceiling=500))
    return jsonify({"ok": True, "user_id": user_id, "items": [r.to_dict() for r in rows]}), 200


# -------------------------
# collaborator (system) endpoints
# -------------------------

@points_system_bp.before_request
def _system_only():
    if not is_system_caller(request.headers.get("Authorization", "")):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    return None


@points_system_bp.post("/award")
def award():
    payload, err = _payload_or_error()
    if err:
        return err
    result = get_services().ledger.award(
        payload.get("user_id") or payload.get("userId"),
        payload.get("action_type") or payload.get("actionType"),
        idempotency_key=payload.get("idempotency_key"),
        occurred_at=parse_timestamp(payload.get("occurred_at")),
    )
    return jsonify(result.to_dict()), 200


@points_system_bp.post("/deduct")
def deduct():
    payload, err = _payload_or_error()
    if err:
        return err
    result = get_services().ledger.deduct(
        payload.get("user_id") or payload.get("userId"),
        payload.get("action_type") or payload.get("actionType"),
        idempotency_key=payload.get("idempotency_key"),
        occurred_at=parse_timestamp(payload.get("occurred_at")),
    )
    return jsonify(result.to_dict()), 200


@points_system_bp.post("/toggle")
def toggle():
    payload, err = _payload_or_error()
    if err:
        return err
    if not isinstance(payload.get("is_completed"), bool):
        return jsonify({"ok": False, "message": "is_completed must be a boolean"}), 400
    result = get_services().ledger.toggle(
        payload.get("user_id") or payload.get("userId"),
        payload.get("action_type") or payload.get("actionType"),
        payload["is_completed"],
        idempotency_key=payload.get("idempotency_key"),
        occurred_at=parse_timestamp(payload.get("occurred_at")),
    )
    return jsonify(result.to_dict()), 200


@points_system_bp.post("/reconcile")
def reconcile():
    raw = request.args.get("limit") or ""
    limit = int(raw) if raw.isdigit() else 500
    return jsonify({"ok": True, **reconcile_points(limit=limit)}), 200
