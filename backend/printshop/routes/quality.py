# Overview: Flask API routes for the quality gate; parses input and returns JSON responses.

"""Quality inspection API routes."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import quality_service
from ..services.errors import WorkflowError
from ..validation import ValidationError, json_object
from ..decorators import require_auth


quality_bp = Blueprint("quality", __name__, url_prefix="/api/quality")


@quality_bp.get("/queue")
@require_auth
def queue_route():
    """Orders waiting in Embalagem with their latest inspection."""
    try:
        queue = quality_service.inspection_queue(g.company, actor=g.current_user)
        return jsonify({
            "queue": queue,
            "checklist_items": list(quality_service.CHECKLIST_ITEMS),
        }), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load inspection queue")
        return jsonify({"error": "Internal server error"}), 500


@quality_bp.post("/orders/<order_id>/inspect")
@require_auth
def inspect_route(order_id: str):
    """
    Record an inspection.

    Body: {"checklist": {item: bool}, "tracking_code": "...", "carrier": "...", "notes": "..."}

    Returns:
    - 200: approved with tracking code; order completed
    - 202: approved but held for a tracking code (AWAITING_TRACKING_CODE)
    - 422: checklist items failed (INSPECTION_REJECTED)
    """
    try:
        data = json_object(request.get_json(silent=True))
        record = quality_service.inspect(
            g.company,
            order_id,
            checklist=data.get("checklist"),
            actor=g.current_user,
            tracking_code=data.get("tracking_code"),
            carrier=data.get("carrier"),
            notes=data.get("notes"),
        )

        if record.failed_items:
            return jsonify({
                "error": "INSPECTION_REJECTED",
                "message": "Checklist items failed",
                "failed_items": record.failed_items,
                "inspection": record.to_dict(),
            }), 422

        if not record.dispatch_ready:
            # Approved, held until a carrier tracking code is recorded
            return jsonify({
                "status": "AWAITING_TRACKING_CODE",
                "message": "Tracking code required to dispatch",
                "inspection": record.to_dict(),
                "order_status": "processing",
            }), 202

        return jsonify({"inspection": record.to_dict(), "order_status": "completed"}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record inspection")
        return jsonify({"error": "Internal server error"}), 500


@quality_bp.get("/orders/<order_id>/inspections")
@require_auth
def inspections_route(order_id: str):
    try:
        records = quality_service.list_inspections(g.company, order_id, actor=g.current_user)
        return jsonify({"inspections": [r.to_dict() for r in records]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list inspections")
        return jsonify({"error": "Internal server error"}), 500
