# Overview: Quality gate for dispatch (checklist + tracking code).

"""
Quality Gate

Two independent conditions, both required to complete an order:
- quality conformance: every checklist item is true  -> approved
- dispatch readiness: a non-empty tracking code       -> dispatch_ready

OUTCOMES of inspect():
- approved + tracking code : order -> completed, stage cleared,
                             "dispatched" log entry + notification
- approved, no tracking    : record stored, order stays in Embalagem
- not approved             : rejection stored, order stays in Embalagem
                             and can be re-inspected

Every call stores exactly one QualityInspection; the latest one is what the
console shows as the order's inspection status.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Company, Order, QualityInspection, User
from ..permissions import Capability, PRODUCTION_MODULE
from ..validation import ValidationError
from . import permission_service
from . import order_service
from . import production_service
from . import notification_service
from .concurrency import commit_or_stale
from .errors import InvalidTransitionError
from printshop.time_utils import utcnow


CHECKLIST_ITEMS = (
    "tamanho_correto",
    "cor_conforme",
    "estampa_centralizada",
    "sem_manchas",
    "costura_revisada",
    "embalagem_lacrada",
)

MAX_TRACKING_CODE_LENGTH = 64


def normalize_checklist(raw) -> dict[str, bool]:
    """
    Validate checklist input against the standard items.

    Missing items count as not checked; unknown items and non-boolean
    values are rejected.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("checklist must be an object of item -> boolean")

    unknown = sorted(set(raw) - set(CHECKLIST_ITEMS))
    if unknown:
        raise ValidationError(f"Unknown checklist items: {', '.join(unknown)}")

    checklist = {}
    for item in CHECKLIST_ITEMS:
        value = raw.get(item, False)
        if not isinstance(value, bool):
            raise ValidationError(f"checklist.{item} must be a boolean")
        checklist[item] = value
    return checklist


def _clean(value, field: str, max_length: int = MAX_TRACKING_CODE_LENGTH) -> str | None:
    text = str(value or "").strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None


def inspect(
    company: Company,
    order_id: str,
    *,
    checklist,
    actor: User,
    tracking_code: str | None = None,
    carrier: str | None = None,
    notes: str | None = None,
) -> QualityInspection:
    """
    Record one inspection attempt and complete the order when it passes.

    Raises:
        UnauthorizedError: actor lacks edit on the production module
        OrderNotFoundError: order not in this company
        InvalidTransitionError: order is not processing in Embalagem
        ValidationError: malformed checklist or fields
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.EDIT, resource=f"order:{order_id}",
    )

    items = normalize_checklist(checklist)
    tracking = _clean(tracking_code, "tracking_code")
    carrier = _clean(carrier, "carrier")

    order = order_service.get_order(company.id, order_id, for_update=True)
    if (
        order.status != order_service.STATUS_PROCESSING
        or order.production_stage != production_service.ProductionStage.EMBALAGEM.value
    ):
        raise InvalidTransitionError(
            f"Order {order_id} is not awaiting inspection "
            f"(status {order.status}, stage {order.production_stage or 'none'})"
        )

    record = QualityInspection(
        order_id=order.id,
        operator_id=actor.id,
        operator_name=actor.name or actor.email,
        checklist=items,
        tracking_code=tracking,
        carrier=carrier,
        approved=all(items.values()),
        notes=(notes or "").strip() or None,
        created_at=utcnow(),
    )
    with commit_or_stale(order):
        db.session.add(record)

        if record.dispatch_ready:
            production_service.complete_dispatch(order, actor=actor, note=f"Tracking {tracking}")
            notification_service.enqueue(
                order,
                notification_service.EVENT_DISPATCHED,
                context={"tracking_code": tracking, "carrier": carrier},
                actor=actor,
            )
    return record


def latest_inspection(order_id: str) -> QualityInspection | None:
    return (
        db.session.query(QualityInspection)
        .filter_by(order_id=order_id)
        .order_by(QualityInspection.id.desc())
        .first()
    )


def list_inspections(company: Company, order_id: str, *, actor: User) -> list[QualityInspection]:
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.VIEW, resource=f"order:{order_id}",
    )
    order = order_service.get_order(company.id, order_id)
    return (
        db.session.query(QualityInspection)
        .filter_by(order_id=order.id)
        .order_by(QualityInspection.id.asc())
        .all()
    )


def inspection_queue(company: Company, *, actor: User) -> list[dict]:
    """Orders waiting in Embalagem with their latest inspection (if any)."""
    permission_service.require_capability(actor, company, PRODUCTION_MODULE, Capability.VIEW)

    orders = (
        db.session.query(Order)
        .filter_by(
            company_id=company.id,
            status=order_service.STATUS_PROCESSING,
            production_stage=production_service.ProductionStage.EMBALAGEM.value,
        )
        .order_by(Order.updated_at.asc())
        .all()
    )
    queue = []
    for order in orders:
        latest = latest_inspection(order.id)
        queue.append({
            "order": order.to_dict(),
            "latest_inspection": latest.to_dict() if latest else None,
        })
    return queue
