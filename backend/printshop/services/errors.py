# Overview: Domain errors raised by the workflow services.

"""
Workflow error taxonomy.

Surfaced to the acting user: UnauthorizedError, InvalidTransitionError,
StaleStateError (and OrderNotFoundError). NotificationError never leaves
the notification dispatcher.

Each surfaced error carries the HTTP status and a stable code so routes
can map them without re-deciding policy.
"""

from __future__ import annotations


class WorkflowError(ValueError):
    """Base class for business-rule violations in the order workflow."""
    code = "WORKFLOW_ERROR"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class UnauthorizedError(WorkflowError):
    """Resolver denied the capability. Blocking, no retry."""
    code = "UNAUTHORIZED"
    http_status = 403


class InvalidTransitionError(WorkflowError):
    """Requested stage or status edge does not exist."""
    code = "INVALID_TRANSITION"
    http_status = 400


class StaleStateError(WorkflowError):
    """
    Persisted state differs from what the caller last observed.

    Carries the authoritative order (when known) so the caller can refresh
    before another attempt.
    """
    code = "STALE_STATE"
    http_status = 409

    def __init__(self, message: str, *, order=None):
        super().__init__(message)
        self.order = order

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.order is not None:
            body["order"] = self.order.to_dict()
        return body


class OrderNotFoundError(WorkflowError):
    code = "NOT_FOUND"
    http_status = 404


class NotificationError(Exception):
    """Delivery failure inside the notification dispatcher. Never re-raised."""
    pass
