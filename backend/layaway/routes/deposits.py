# Overview: Flask API routes for deposit orders; parses input and returns JSON responses.

# backend/layaway/routes/deposits.py
"""
Deposit Order API Routes

WHY: Let the point-of-sale take layaway orders, record installments and
close orders out via REST API.

DESIGN:
- Payloads are validated into strict shapes (validation.py) before any
  service is called
- Every response carries the authoritative post-mutation order so the UI
  can refresh without a second request
- Domain errors map to 400/404/409/503 with structured details
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DepositError
from ..services import deposit_service, ledger_service, lifecycle_service, payment_service
from ..validation import parse_create_order, parse_item_cost_update, parse_payment, parse_reason
from .common import current_policy, json_body, json_error


deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/deposit-orders")


# =============================================================================
# ORDERS
# =============================================================================

@deposits_bp.post("/")
@require_actor
def create_order_route():
    """
    Create a deposit order.

    Request body:
    {
        "items": [
            {"product_id": 12, "quantity": 1},
            {"product_name": "Engraved band", "quantity": 1, "unit_price_cents": 45000}
        ],
        "part_exchanges": [{"product_name": "Old watch", "allowance_cents": 5000}],  (optional)
        "initial_payment": {"amount_cents": 10000, "method": "cash"},  (optional)
        "customer_name": "Jane Doe",  (optional)
        "expected_pickup_date": "2026-12-01"  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        409: Insufficient stock / overpayment
    """
    try:
        data = parse_create_order(json_body())
        order = lifecycle_service.create_order(data, actor_id=g.actor_id, policy=current_policy())
        return jsonify({"order": deposit_service.get_order_summary(order.id)}), 201

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/")
@require_actor
def list_orders_route():
    try:
        orders = deposit_service.list_orders(status=request.args.get("status") or None)
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list deposit orders")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/stats")
@require_actor
def order_stats_route():
    try:
        return jsonify(deposit_service.get_order_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute deposit order stats")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        return jsonify({"order": deposit_service.get_order_summary(order_id)}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to get deposit order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS & ITEMS
# =============================================================================

@deposits_bp.post("/<int:order_id>/payments")
@require_actor
def record_payment_route(order_id: int):
    """
    Record a payment against an active order.

    Request body:
    {
        "amount_cents": 5000,
        "method": "cash",  (cash, card, transfer, other)
        "reference": "AUTH-12345",  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: Payment recorded, with updated order
        400: Invalid input
        409: Order not active / overpayment
    """
    try:
        data = parse_payment(json_body())
        payment = payment_service.record_payment(
            order_id,
            data.amount_cents,
            data.method,
            received_by=g.actor_id,
            policy=current_policy(),
            reference=data.reference,
            notes=data.notes,
        )
        return jsonify({
            "payment": payment.to_dict(),
            "order": deposit_service.get_order_summary(order_id),
        }), 201

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to record deposit payment")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>/payments")
@require_actor
def list_payments_route(order_id: int):
    try:
        return jsonify(payment_service.get_payment_summary(order_id)), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to get deposit payments")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>/events")
@require_actor
def order_events_route(order_id: int):
    """Audit trail for one order, oldest first."""
    try:
        deposit_service.get_order(order_id)
        events = ledger_service.get_order_events(order_id)
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to get deposit order events")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.patch("/<int:order_id>/items/<int:item_id>/cost")
@require_actor
def update_item_cost_route(order_id: int, item_id: int):
    try:
        data = parse_item_cost_update(json_body())
        item = deposit_service.update_custom_item_cost(
            order_id,
            item_id,
            data.unit_cost_cents,
            category=data.category,
            description=data.description,
            actor_id=g.actor_id,
            attempts=current_policy().lock_retry_attempts,
        )
        return jsonify({"item": item.to_dict()}), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update deposit item cost")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@deposits_bp.post("/<int:order_id>/complete")
@require_actor
def complete_order_route(order_id: int):
    """
    Complete a fully paid order: creates the sale and deducts stock.

    Returns:
        200: {sale, order, advisories}
        409: Balance due / not active / insufficient stock
    """
    try:
        result = lifecycle_service.complete_order(order_id, actor_id=g.actor_id, policy=current_policy())
        current_app.logger.info(
            "Deposit order %s completed as sale %s",
            result.order.document_number,
            result.sale.document_number,
        )
        for advisory in result.advisories:
            current_app.logger.warning(
                "Deposit order %s completion advisory: %s",
                result.order.document_number,
                advisory["message"],
            )
        return jsonify({
            "sale": result.sale.to_dict(),
            "order": result.order.to_dict(),
            "advisories": result.advisories,
        }), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to complete deposit order")
        return jsonify({"error": "Internal server error"}), 500


def _close(order_id: int, action):
    try:
        reason = parse_reason(json_body())
        closure = action(order_id, actor_id=g.actor_id, reason=reason, attempts=current_policy().lock_retry_attempts)
        current_app.logger.info(
            "Deposit order %s %s (refund due %s)",
            closure.order.document_number,
            closure.order.status,
            closure.refund_due_cents,
        )
        return jsonify({
            "order": closure.order.to_dict(),
            "refund_due_cents": closure.refund_due_cents,
            "released": closure.released,
        }), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to close deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/void")
@require_actor
def void_order_route(order_id: int):
    """Void an order that took payments. Body: {"reason": "..."} (optional)."""
    return _close(order_id, lifecycle_service.void_order)


@deposits_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    return _close(order_id, lifecycle_service.cancel_order)


@deposits_bp.post("/<int:order_id>/expire")
@require_actor
def expire_order_route(order_id: int):
    return _close(order_id, lifecycle_service.expire_order)
