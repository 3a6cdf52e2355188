# Overview: Flask API routes for batch expiry and sync maintenance.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_OWNER
from ..services import fefo_service, idempotency_service
from pharmasync.time_utils import utcnow


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/expiring")
@require_auth
def expiring_batches_route():
    """
    Batches with stock left expiring within ?days (default 60).

    Each row carries an alert level: EXPIRED, CRITICAL, WARNING or OK.
    """
    try:
        days = int(request.args.get("days", fefo_service.WARNING_DAYS))
    except ValueError:
        return jsonify({"success": False, "errors": ["days must be an integer"]}), 400
    if days < 0:
        return jsonify({"success": False, "errors": ["days must be >= 0"]}), 400

    now = utcnow()
    batches = fefo_service.get_expiring_batches(days, now=now)
    return jsonify({
        "success": True,
        "batches": [
            {
                **batch.to_dict(),
                "alert_level": fefo_service.expiration_alert_level(batch.expiration_date, now=now),
            }
            for batch in batches
        ],
    }), 200


@inventory_bp.post("/idempotency-keys/purge")
@require_auth
@require_role(ROLE_OWNER)
def purge_idempotency_keys_route():
    """Delete expired idempotency keys. OWNER only."""
    try:
        deleted = idempotency_service.purge_expired()
    except Exception:
        current_app.logger.exception("Idempotency key purge failed")
        return jsonify({"success": False, "errors": ["Internal server error"]}), 500

    current_app.logger.info("Idempotency keys purged by %s: %d", g.user_id, deleted)
    return jsonify({"success": True, "deleted": deleted}), 200
