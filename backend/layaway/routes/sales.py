# Overview: Flask API routes for sales, consignment payouts and trade-ins; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DepositError, ValidationError
from ..services import sales_service
from ..validation import parse_reason
from .common import current_policy, json_body, json_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    """Sale with lines, consignment settlements and part exchanges."""
    try:
        return jsonify({"sale": sales_service.get_sale_detail(sale_id)}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CONSIGNMENT
# =============================================================================

@sales_bp.get("/consignments/unsettled")
@require_actor
def unsettled_consignments_route():
    try:
        supplier_id = request.args.get("supplier_id")
        if supplier_id is not None and not supplier_id.isdigit():
            raise ValidationError("supplier_id must be an integer", details={"field": "supplier_id"})
        settlements = sales_service.list_unsettled_consignments(
            supplier_id=int(supplier_id) if supplier_id else None
        )
        return jsonify({
            "settlements": [s.to_dict() for s in settlements],
            "count": len(settlements),
            "total_payout_cents": sum(s.payout_amount_cents for s in settlements),
        }), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list unsettled consignments")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/consignments/<int:settlement_id>/pay")
@require_actor
def pay_settlement_route(settlement_id: int):
    try:
        settlement = sales_service.mark_settlement_paid(
            settlement_id,
            paid_by=g.actor_id,
            attempts=current_policy().lock_retry_attempts,
        )
        current_app.logger.info(
            "Consignment settlement %s paid (%s cents)",
            settlement.id,
            settlement.payout_amount_cents,
        )
        return jsonify({"settlement": settlement.to_dict()}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to pay consignment settlement")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PART EXCHANGES
# =============================================================================

@sales_bp.post("/part-exchanges/<int:part_exchange_id>/hold")
@require_actor
def hold_part_exchange_route(part_exchange_id: int):
    """Body: {"reason": "Awaiting serial check"} (required)."""
    try:
        reason = parse_reason(json_body(), required=True)
        record = sales_service.hold_part_exchange(
            part_exchange_id,
            reason,
            actor_id=g.actor_id,
            attempts=current_policy().lock_retry_attempts,
        )
        return jsonify({"part_exchange": record.to_dict()}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to hold part exchange")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/part-exchanges/<int:part_exchange_id>/release")
@require_actor
def release_part_exchange_route(part_exchange_id: int):
    try:
        record = sales_service.release_part_exchange_hold(
            part_exchange_id,
            actor_id=g.actor_id,
            attempts=current_policy().lock_retry_attempts,
        )
        return jsonify({"part_exchange": record.to_dict()}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to release part exchange hold")
        return jsonify({"error": "Internal server error"}), 500
