# Overview: Flask API routes for the cash movement outbox read by the cash-drawer ledger.

from flask import Blueprint, jsonify, current_app

from ..decorators import require_actor
from ..errors import DepositError
from ..services import cash_service
from ..validation import parse_id_list
from .common import current_policy, json_body, json_error


cash_movements_bp = Blueprint("cash_movements", __name__, url_prefix="/api/cash-movements")


@cash_movements_bp.get("/pending")
@require_actor
def pending_cash_movements_route():
    try:
        movements = cash_service.list_pending_cash_movements()
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except Exception:
        current_app.logger.exception("Failed to list pending cash movements")
        return jsonify({"error": "Internal server error"}), 500


@cash_movements_bp.post("/ack")
@require_actor
def acknowledge_cash_movements_route():
    """Body: {"ids": [1, 2, 3]}"""
    try:
        ids = parse_id_list(json_body())
        movements = cash_service.acknowledge_cash_movements(
            ids, attempts=current_policy().lock_retry_attempts
        )
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to acknowledge cash movements")
        return jsonify({"error": "Internal server error"}), 500
