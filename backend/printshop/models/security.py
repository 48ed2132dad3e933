from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Security and workflow audit log with company context.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.

    event_type examples:
    - PERMISSION_DENIED
    - CROSS_TENANT_ACCESS_DENIED
    - MODULE_TOGGLED
    - PERMISSION_CHANGED
    - ORDER_FORCE_COMPLETED
    - STAGE_REVERTED
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_company_occurred", "company_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(128), nullable=True)  # e.g. "order:<id>", "module:vendas"
    action = db.Column(db.String(64), nullable=True)     # e.g. "vendas:edit"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
