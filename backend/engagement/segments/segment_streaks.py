from __future__ import annotations

from flask import Blueprint, jsonify, request

from engagement.services.registry import get_services
from engagement.utils.clock import parse_timestamp
from engagement.utils.jwt_utils import is_system_caller

streaks_bp = Blueprint("streaks_bp", __name__, url_prefix="/api/streaks")
streaks_system_bp = Blueprint("streaks_system_bp", __name__, url_prefix="/api/system")


@streaks_bp.get("/<user_id>")
def stats(user_id):
    data = get_services().streaks.get_stats(user_id)
    return jsonify({"ok": True, "stats": data}), 200


@streaks_bp.get("/<user_id>/logs")
def logs(user_id):
    raw = (request.args.get("limit") or "").strip()
    try:
        limit = int(raw) if raw else 50
    except Exception:
        limit = 50
    limit = max(1, min(200, limit))
    rows = get_services().streaks.list_logs(user_id, limit=limit)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


# -------------------------
# collaborator (system) endpoints
# -------------------------

@streaks_system_bp.before_request
def _system_only():
    if not is_system_caller(request.headers.get("Authorization", "")):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    return None


@streaks_system_bp.post("/logs")
def record_log():
    payload = request.get_json(silent=True) or {}
    user_id = str(payload.get("user_id") or payload.get("userId") or "").strip()
    if not user_id:
        return jsonify({"ok": False, "message": "user_id is required"}), 400

    result = get_services().streaks.record_daily_log(
        user_id,
        occurred_at=parse_timestamp(payload.get("occurred_at")),
        payload=payload,
    )
    return jsonify(result.to_dict()), 201


@streaks_system_bp.patch("/logs/<int:log_id>")
def update_log(log_id: int):
    payload = request.get_json(silent=True) or {}
    log = get_services().streaks.update_log_event(log_id, payload)
    return jsonify({"ok": True, "log": log.to_dict()}), 200


@streaks_system_bp.delete("/logs/<int:log_id>")
def delete_log(log_id: int):
    state = get_services().streaks.delete_log_event(log_id)
    return jsonify({
        "ok": True,
        "deleted": int(log_id),
        "stats": state.to_dict() if state else None,
    }), 200


@streaks_system_bp.post("/streaks/<user_id>/recalculate")
def recalculate(user_id):
    state = get_services().streaks.recalculate(user_id)
    return jsonify({"ok": True, "stats": state.to_dict()}), 200
