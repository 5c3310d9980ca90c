# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DepositError
from ..services import inventory_service
from ..validation import parse_adjust_stock, parse_receive_stock
from .common import current_policy, json_body, json_error


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/reserved")
@require_actor
def reserved_items_route():
    """Products with active reservations (the "reserved items" card)."""
    try:
        items = inventory_service.list_reserved_items()
        return jsonify({"items": items, "count": len(items)}), 200
    except Exception:
        current_app.logger.exception("Failed to list reserved items")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>")
@require_actor
def stock_position_route(product_id: int):
    try:
        return jsonify(inventory_service.get_stock_position(product_id)), 200

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to get stock position")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/receive")
@require_actor
def receive_stock_route(product_id: int):
    """
    Receive goods.

    Request body: {"quantity": 5, "note": "PO-1001"}
    """
    try:
        quantity, note = parse_receive_stock(json_body())
        movement = inventory_service.receive_stock(
            product_id,
            quantity,
            actor_id=g.actor_id,
            note=note,
            attempts=current_policy().lock_retry_attempts,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "position": inventory_service.get_stock_position(product_id),
        }), 201

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Request body: {"quantity_delta": -1, "reason": "Damaged in store"}
    """
    try:
        delta, reason = parse_adjust_stock(json_body())
        movement = inventory_service.adjust_stock(
            product_id,
            delta,
            reason,
            actor_id=g.actor_id,
            attempts=current_policy().lock_retry_attempts,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "position": inventory_service.get_stock_position(product_id),
        }), 201

    except DepositError as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
