# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order API routes. Capability checks happen in order_service."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service
from ..services.errors import WorkflowError
from ..validation import ValidationError, json_object
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders of the current company, newest first.

    Query: status (optional), limit (default 200, max 500)
    """
    try:
        limit = min(request.args.get("limit", 200, type=int), 500)
        orders = order_service.list_orders(
            g.company,
            actor=g.current_user,
            status=request.args.get("status"),
            limit=limit,
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
def create_order_route():
    """Create a pending order; queues the "order received" message."""
    try:
        data = json_object(request.get_json(silent=True))
        order = order_service.create_order(g.company, data, actor=g.current_user)
        return jsonify({"order": order.to_dict()}), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.view_order(g.company, order_id, actor=g.current_user)
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<order_id>")
@require_auth
def update_order_route(order_id: str):
    """Edit customer/product attributes. Status and stage are rejected."""
    try:
        data = json_object(request.get_json(silent=True))
        order = order_service.update_order(g.company, order_id, data, actor=g.current_user)
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/status")
@require_auth
def change_status_route(order_id: str):
    """
    Change status along pending -> processing, pending -> cancelled,
    processing -> cancelled.

    Body: {"status": "...", "expected_status": "..." (optional)}
    """
    try:
        data = json_object(request.get_json(silent=True))
        to_status = data.get("status")
        if not to_status:
            return jsonify({"error": "status required"}), 400

        order = order_service.change_status(
            g.company,
            order_id,
            to_status,
            actor=g.current_user,
            expected_status=data.get("expected_status"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/force-complete")
@require_auth
def force_complete_route(order_id: str):
    """
    Audited override: complete without a passing inspection.

    Body: {"reason": "..."}
    """
    try:
        data = json_object(request.get_json(silent=True))
        order = order_service.force_complete(
            g.company, order_id, actor=g.current_user, reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to force-complete order")
        return jsonify({"error": "Internal server error"}), 500
