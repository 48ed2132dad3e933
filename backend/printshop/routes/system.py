# Overview: Flask API routes for health checks.

"""
System health endpoint.

Checks what the production console needs to operate: the database, an
initialized permission matrix and root company, and the notification
outbox backlog. A failing WhatsApp gateway never makes the API unhealthy.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Company, RolePermission, NotificationRecord
from printshop.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _timed(name: str, probe) -> dict:
    """
    Run one probe and attach its latency.

    probe() returns (status, details[, warning]); any exception is logged
    and reported as unhealthy.
    """
    start_time = time.time()
    try:
        status, details, *warning = probe()
        result = {"status": status, "details": details}
        if warning:
            result["warning"] = warning[0]
    except Exception:
        current_app.logger.exception("%s health check failed", name)
        result = {"status": "unhealthy", "error": f"{name} error"}
    result["latency_ms"] = round((time.time() - start_time) * 1000, 2)
    return result


def _database_probe():
    return "healthy", {"companies": db.session.query(Company).count()}


def _permissions_probe():
    # An empty matrix locks every non-superadmin out
    details = {
        "matrix_rows": db.session.query(RolePermission).count(),
        "root_company": db.session.query(Company).filter_by(is_root=True).count() > 0,
    }
    if not details["matrix_rows"] or not details["root_company"]:
        return "degraded", details, "System not initialized; run `flask system init`"
    return "healthy", details


def _outbox_probe():
    return "healthy", {
        "pending": db.session.query(NotificationRecord).filter_by(status="PENDING").count(),
        "failed": db.session.query(NotificationRecord).filter_by(status="FAILED").count(),
        "provider_configured": bool(current_app.config.get("WHATSAPP_API_URL")),
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": _timed("Database", _database_probe),
        "permissions": _timed("Permissions", _permissions_probe),
        "notifications": _timed("Outbox", _outbox_probe),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
