# Overview: Flask API routes for the production board; parses input and returns JSON responses.

"""
Production board API routes

The board is polled by clients (BOARD_POLL_INTERVAL_SECONDS); the snapshot
version lets them skip re-rendering when nothing moved.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import board_service
from ..services import production_service
from ..services.errors import WorkflowError
from ..validation import ValidationError, json_object
from ..decorators import require_auth


production_bp = Blueprint("production", __name__, url_prefix="/api/production")


@production_bp.get("/board")
@require_auth
def board_route():
    """
    Authoritative board snapshot.

    Query: since_version (optional) - returns {"changed": false} when the
    board still has that version.
    """
    try:
        snapshot = board_service.board_snapshot(g.company, actor=g.current_user)
        since = request.args.get("since_version")
        if since and since == snapshot.version:
            return jsonify({"changed": False, "version": snapshot.version}), 200

        body = snapshot.to_dict()
        body["changed"] = True
        body["poll_interval_seconds"] = current_app.config.get("BOARD_POLL_INTERVAL_SECONDS", 10)
        return jsonify(body), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load production board")
        return jsonify({"error": "Internal server error"}), 500


@production_bp.get("/metrics")
@require_auth
def metrics_route():
    """Average minutes per stage. Query: window_days (default STAGE_METRICS_WINDOW_DAYS)."""
    try:
        metrics = production_service.stage_metrics(
            g.company,
            actor=g.current_user,
            window_days=request.args.get("window_days", type=int),
        )
        return jsonify({"metrics": metrics}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute stage metrics")
        return jsonify({"error": "Internal server error"}), 500


@production_bp.post("/orders/<order_id>/move")
@require_auth
def move_route(order_id: str):
    """
    Move an order one stage forward.

    Body: {"from_stage": "Corte" | "none", "to_stage": "Estampa", "note": "..."}

    409 carries the authoritative order so the client can refresh.
    """
    try:
        data = json_object(request.get_json(silent=True))
        if "from_stage" not in data or "to_stage" not in data:
            return jsonify({"error": "from_stage and to_stage required"}), 400

        order = production_service.move_stage(
            g.company,
            order_id,
            from_stage=data.get("from_stage"),
            to_stage=data.get("to_stage"),
            actor=g.current_user,
            note=data.get("note"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to move order stage")
        return jsonify({"error": "Internal server error"}), 500


@production_bp.post("/orders/<order_id>/revert")
@require_auth
def revert_route(order_id: str):
    """
    Move an order one stage backward.

    Body: {"from_stage": "Estampa", "reason": "..."}
    """
    try:
        data = json_object(request.get_json(silent=True))
        if "from_stage" not in data:
            return jsonify({"error": "from_stage required"}), 400

        order = production_service.revert_stage(
            g.company,
            order_id,
            from_stage=data.get("from_stage"),
            actor=g.current_user,
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to revert order stage")
        return jsonify({"error": "Internal server error"}), 500


@production_bp.get("/orders/<order_id>/log")
@require_auth
def log_route(order_id: str):
    try:
        entries = production_service.get_production_log(g.company, order_id, actor=g.current_user)
        return jsonify({"log": [e.to_dict() for e in entries]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load production log")
        return jsonify({"error": "Internal server error"}), 500
