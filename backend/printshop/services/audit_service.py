# Overview: Append-only audit trail for security and workflow overrides.

from ..extensions import db
from ..models import AuditEvent
from printshop.time_utils import utcnow


def log_audit_event(
    *,
    event_type: str,
    success: bool,
    user_id: int | None = None,
    company_id: int | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> AuditEvent:
    """
    Log an audit event with company context.

    commit=False lets the caller write the event in the same transaction as
    the change it documents (force-complete, stage revert).
    """
    event = AuditEvent(
        user_id=user_id,
        company_id=company_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def list_audit_events(company_id: int, *, event_type: str | None = None, limit: int = 100) -> list[AuditEvent]:
    q = db.session.query(AuditEvent).filter_by(company_id=company_id)
    if event_type:
        q = q.filter_by(event_type=event_type)
    return q.order_by(AuditEvent.id.desc()).limit(limit).all()
