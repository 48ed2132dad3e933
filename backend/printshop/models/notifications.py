from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z, utcnow


class NotificationRecord(db.Model):
    """
    Outbound customer message (outbox row and audit trail in one).

    LIFECYCLE:
        PENDING -> SENT
        PENDING -> FAILED (-> PENDING again only while attempts remain)

    http_status stays NULL when the provider was never reached. Rows are
    never deleted; only the delivery result fields are filled in.
    """
    __tablename__ = "notification_records"
    __table_args__ = (
        db.Index("ix_notification_records_status_due", "status", "next_attempt_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    order_id = db.Column(db.String(36), nullable=False, index=True)  # weak reference

    event = db.Column(db.String(32), nullable=False)
    channel = db.Column(db.String(16), nullable=False, default="whatsapp")
    send_kind = db.Column(db.String(16), nullable=False, default="automatic")  # automatic | manual

    payload = db.Column(db.JSON, nullable=False, default=dict)
    response = db.Column(db.Text, nullable=True)
    http_status = db.Column(db.Integer, nullable=True)
    error = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "order_id": self.order_id,
            "event": self.event,
            "channel": self.channel,
            "send_kind": self.send_kind,
            "payload": self.payload,
            "response": self.response,
            "http_status": self.http_status,
            "error": self.error,
            "status": self.status,
            "attempts": self.attempts,
            "next_attempt_at": to_utc_z(self.next_attempt_at),
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at),
        }
