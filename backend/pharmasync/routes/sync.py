# Overview: Flask API routes for device synchronization; parses input and returns JSON responses.

"""Sync API routes: push, pull and audit"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import audit_service, pull_service, push_service
from ..decorators import require_auth
from pharmasync.time_utils import parse_iso_datetime
from pharmasync.validation import ValidationError


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _bad_request(message: str):
    return jsonify({"success": False, "errors": [message]}), 400


def _server_error():
    return jsonify({"success": False, "errors": ["Internal server error"]}), 500


@sync_bp.post("/push")
@require_auth
def push_route():
    """
    Apply entities recorded offline by a device.

    Per-entity rejections are reported in `errors` / `failures` with 200;
    only a malformed envelope is a 400.
    """
    body = request.get_json(silent=True)
    if body is None:
        return _bad_request("Request body must be JSON")

    try:
        result = push_service.push_changes(body, user_id=g.user_id, role=g.role)
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        current_app.logger.warning("Sync push rejected for %s: %s", g.user_id, e)
        return _bad_request(str(e))
    except Exception:
        current_app.logger.exception("Sync push failed")
        return _server_error()


@sync_bp.get("/pull")
@require_auth
def pull_route():
    """Everything changed since ?lastSyncAt (everything when omitted)."""
    raw = request.args.get("lastSyncAt")
    try:
        last_sync_at = parse_iso_datetime(raw)
    except ValueError:
        return _bad_request(f"Invalid lastSyncAt: {raw}")

    try:
        return jsonify(pull_service.pull_changes(last_sync_at=last_sync_at, role=g.role)), 200
    except Exception:
        current_app.logger.exception("Sync pull failed")
        return _server_error()


@sync_bp.post("/audit")
@require_auth
def audit_route():
    """Compare device snapshots against server state."""
    body = request.get_json(silent=True)
    if body is None:
        return _bad_request("Request body must be JSON")

    try:
        return jsonify(audit_service.audit_snapshots(body, role=g.role, user_id=g.user_id)), 200

    except ValidationError as e:
        return _bad_request(str(e))
    except Exception:
        current_app.logger.exception("Sync audit failed")
        return _server_error()
