# Overview: Flask API routes for customer notifications; parses input and returns JSON responses.

"""
Notification API routes

Messages are queued here and delivered by the outbox worker
(`flask notifications worker`), never inline with the request.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import notification_service
from ..services.errors import WorkflowError
from ..validation import ValidationError, json_object
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    Notification history of the current company, newest first.

    Query: order_id, status (PENDING/SENT/FAILED), limit (default 100, max 500)
    """
    try:
        records = notification_service.list_notifications(
            g.company,
            actor=g.current_user,
            order_id=request.args.get("order_id"),
            status=request.args.get("status"),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"notifications": [r.to_dict() for r in records]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/orders/<order_id>/manual")
@require_auth
def send_manual_route(order_id: str):
    """
    Queue an operator-written message to the order's customer.

    Body: {"message": "..."}
    """
    try:
        data = json_object(request.get_json(silent=True))
        record = notification_service.send_manual(
            g.company, order_id, data.get("message"), actor=g.current_user,
        )
        return jsonify({"notification": record.to_dict()}), 202

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to queue manual notification")
        return jsonify({"error": "Internal server error"}), 500
