from __future__ import annotations

from flask import Blueprint, jsonify, request

from engagement.jobs.leaderboard_runner import run_leaderboards
from engagement.services.leaderboards import parse_window
from engagement.services.registry import get_services
from engagement.utils.jwt_utils import is_system_caller

leaderboards_bp = Blueprint("leaderboards_bp", __name__, url_prefix="/api/leaderboards")
leaderboards_system_bp = Blueprint("leaderboards_system_bp", __name__, url_prefix="/api/system/leaderboards")


@leaderboards_bp.get("")
def get_leaderboard():
    raw = (request.args.get("type") or "").strip()
    if not raw:
        return jsonify({"ok": False, "message": "Missing or invalid leaderboard type"}), 400
    snap = get_services().leaderboards.get_snapshot(raw)
    return jsonify({"ok": True, "leaderboard": snap.to_dict()}), 200


@leaderboards_bp.get("/all")
def list_leaderboards():
    items = get_services().leaderboards.list_snapshots()
    return jsonify({"ok": True, "items": [s.to_dict() for s in items]}), 200


@leaderboards_bp.get("/static/<window_type>")
def static_leaderboard(window_type):
    """Cheap read path: the JSON mirror written at generation time."""
    kind = parse_window(window_type)
    entries = get_services().leaderboards.read_artifact(kind)
    if entries is None:
        return jsonify({"ok": False, "message": f"No {kind} leaderboard artifact"}), 404
    return jsonify({"ok": True, "type": kind, "entries": entries}), 200


@leaderboards_system_bp.before_request
def _system_only():
    if not is_system_caller(request.headers.get("Authorization", "")):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    return None


@leaderboards_system_bp.post("/generate")
def generate():
    payload = request.get_json(silent=True) or {}
    raw = (payload.get("type") or request.args.get("type") or "").strip()
    types = [parse_window(raw)] if raw else None

    summary = run_leaderboards(get_services().leaderboards, types=types)
    status = 503 if summary["errors"] else 200
    return jsonify({"ok": not summary["errors"], **summary}), status
