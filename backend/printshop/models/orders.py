from __future__ import annotations

import uuid

from ..extensions import db
from printshop.time_utils import to_utc_z, utcnow


def _new_order_id() -> str:
    return str(uuid.uuid4())


class Order(db.Model):
    """
    One custom-apparel manufacturing job.

    STATE:
    - status: pending | processing | completed | cancelled
    - production_stage: NULL (none) | Corte | Estampa | Acabamento | Embalagem

    INVARIANTS:
    - production_stage is not NULL only while status = processing
    - status = completed only through an approved inspection with a tracking
      code, or through the audited force-complete action (force_completed)

    CONCURRENCY: version_id is SQLAlchemy's optimistic lock. A flush against
    a row that changed since it was read raises StaleDataError.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_company_status", "company_id", "status"),
        db.Index("ix_orders_company_stage", "company_id", "production_stage"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_order_id)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(120), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)

    shirt_size = db.Column(db.String(4), nullable=False)
    shirt_color = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    production_stage = db.Column(db.String(16), nullable=True)
    force_completed = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    company = db.relationship("Company", backref=db.backref("orders", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} stage={self.production_stage}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shirt_size": self.shirt_size,
            "shirt_color": self.shirt_color,
            "quantity": self.quantity,
            "total_price_cents": self.total_price_cents,
            "notes": self.notes,
            "status": self.status,
            "production_stage": self.production_stage,
            "force_completed": self.force_completed,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductionLogEntry(db.Model):
    """
    Stage-change log (append-only).

    One row per stage entered. minutes_in_previous_stage is the time since
    the previous entry for the same order, which is what stage duration
    metrics are computed from. stage may also be the pseudo-stages
    "dispatched" and "force_completed".
    """
    __tablename__ = "production_log"
    __table_args__ = (
        db.Index("ix_production_log_order_entered", "order_id", "entered_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)

    stage = db.Column(db.String(16), nullable=False)
    previous_stage = db.Column(db.String(16), nullable=True)
    minutes_in_previous_stage = db.Column(db.Integer, nullable=True)
    is_revert = db.Column(db.Boolean, nullable=False, default=False)

    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operator_name = db.Column(db.String(120), nullable=True)
    note = db.Column(db.Text, nullable=True)

    entered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    order = db.relationship("Order", backref=db.backref("production_log", lazy=True, order_by="ProductionLogEntry.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "stage": self.stage,
            "previous_stage": self.previous_stage,
            "minutes_in_previous_stage": self.minutes_in_previous_stage,
            "is_revert": self.is_revert,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "note": self.note,
            "entered_at": to_utc_z(self.entered_at),
        }


class QualityInspection(db.Model):
    """
    One dispatch inspection attempt on an order.

    approved is derived from the checklist at creation time (every item
    true). An order may accumulate several records; the latest one is the
    displayed inspection status.
    """
    __tablename__ = "quality_inspections"
    __table_args__ = (
        db.Index("ix_quality_inspections_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)

    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    operator_name = db.Column(db.String(120), nullable=True)

    checklist = db.Column(db.JSON, nullable=False, default=dict)
    tracking_code = db.Column(db.String(64), nullable=True)
    carrier = db.Column(db.String(64), nullable=True)
    approved = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", backref=db.backref("inspections", lazy=True, order_by="QualityInspection.id"))

    @property
    def failed_items(self) -> list[str]:
        return sorted(key for key, ok in (self.checklist or {}).items() if not ok)

    @property
    def dispatch_ready(self) -> bool:
        return bool(self.approved and self.tracking_code)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "checklist": self.checklist,
            "failed_items": self.failed_items,
            "tracking_code": self.tracking_code,
            "carrier": self.carrier,
            "approved": self.approved,
            "dispatch_ready": self.dispatch_ready,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
