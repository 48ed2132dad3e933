# Overview: Order entity store and top-level status lifecycle.

"""
Order Entity Store

STATUS LIFECYCLE:
    pending -> processing      (payment confirmed; enters production, stage none)
    pending -> cancelled
    processing -> cancelled    (clears production stage)
    processing -> completed    ONLY via quality gate or force_complete()

INVARIANTS (see order_invariant_violations):
- production_stage set  =>  status = processing
- status = completed    =>  approved inspection with tracking code, or force_completed

Force-complete is the audited replacement for the old "edit status directly"
path. It bypasses the quality gate on purpose and leaves a trail.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Company, Order, QualityInspection, User
from ..permissions import Capability, PRODUCTION_MODULE
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_order,
)
from . import permission_service
from . import notification_service
from . import production_service
from .audit_service import log_audit_event
from .concurrency import lock_for_update, commit_or_stale
from .errors import InvalidTransitionError, OrderNotFoundError, StaleStateError


STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_CANCELLED)

# Status edges reachable through change_status(). Completion is not one of them.
STATUS_TRANSITIONS = {
    (STATUS_PENDING, STATUS_PROCESSING),
    (STATUS_PENDING, STATUS_CANCELLED),
    (STATUS_PROCESSING, STATUS_CANCELLED),
}

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name", "customer_email", "customer_phone",
        "shirt_size", "shirt_color", "quantity", "total_price_cents", "notes",
    },
    required_on_create={
        "customer_name", "customer_email", "customer_phone",
        "shirt_size", "shirt_color", "quantity", "total_price_cents",
    },
)


def get_order(company_id: int, order_id: str, *, for_update: bool = False) -> Order:
    """
    Load an order inside a company.

    Orders of other companies are reported as not found.
    """
    q = db.session.query(Order).filter_by(id=order_id, company_id=company_id)
    if for_update:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def list_orders(
    company: Company,
    *,
    actor: User,
    status: str | None = None,
    limit: int = 200,
) -> list[Order]:
    permission_service.require_capability(actor, company, PRODUCTION_MODULE, Capability.VIEW)

    q = db.session.query(Order).filter_by(company_id=company.id)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter_by(status=status)
    return q.order_by(Order.created_at.desc(), Order.id).limit(limit).all()


def view_order(company: Company, order_id: str, *, actor: User) -> Order:
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.VIEW, resource=f"order:{order_id}",
    )
    return get_order(company.id, order_id)


def create_order(company: Company, payload: dict, *, actor: User) -> Order:
    """
    Create a pending order and queue the "order received" message.
    """
    permission_service.require_capability(actor, company, PRODUCTION_MODULE, Capability.EDIT)

    patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=False)
    enforce_rules_order(patch)

    order = Order(company_id=company.id, status=STATUS_PENDING, production_stage=None, **patch)
    db.session.add(order)
    db.session.flush()

    notification_service.enqueue(order, notification_service.EVENT_RECEIVED, actor=actor)
    db.session.commit()
    return order


def update_order(company: Company, order_id: str, payload: dict, *, actor: User) -> Order:
    """
    Edit customer/product attributes. Status and stage are not writable here.
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.EDIT, resource=f"order:{order_id}",
    )

    if payload and ("status" in payload or "production_stage" in payload):
        raise InvalidTransitionError(
            "Status and production stage cannot be edited directly; "
            "use the status, production or force-complete actions"
        )

    patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=True)
    enforce_rules_order(patch)

    order = get_order(company.id, order_id, for_update=True)
    if order.status in (STATUS_COMPLETED, STATUS_CANCELLED):
        raise InvalidTransitionError(f"Order {order_id} is {order.status} and can no longer be edited")

    with commit_or_stale(order):
        for key, value in patch.items():
            setattr(order, key, value)
    return order


def change_status(
    company: Company,
    order_id: str,
    to_status: str,
    *,
    actor: User,
    expected_status: str | None = None,
) -> Order:
    """
    Move an order along the non-production status edges.

    expected_status, when given, must match the persisted status
    (StaleStateError otherwise).
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.EDIT, resource=f"order:{order_id}",
    )

    if to_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    order = get_order(company.id, order_id, for_update=True)

    if expected_status is not None and order.status != expected_status:
        raise StaleStateError(
            f"Order {order_id} is {order.status}, not {expected_status}",
            order=order,
        )

    if to_status == STATUS_COMPLETED:
        raise InvalidTransitionError(
            "Orders are completed by the quality gate; use force-complete for an audited override"
        )

    if (order.status, to_status) not in STATUS_TRANSITIONS:
        raise InvalidTransitionError(f"Cannot change order status from {order.status} to {to_status}")

    with commit_or_stale(order):
        order.status = to_status
        if to_status == STATUS_CANCELLED:
            order.production_stage = None
    return order


def force_complete(company: Company, order_id: str, *, actor: User, reason: str) -> Order:
    """
    Complete an order without a passing inspection.

    Requires delete capability on the production module and a reason.
    The order is flagged force_completed and an ORDER_FORCE_COMPLETED audit
    event plus a production log entry are written in the same transaction.
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.DELETE, resource=f"order:{order_id}",
    )

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required to force-complete an order")

    order = get_order(company.id, order_id, for_update=True)
    if order.status in (STATUS_COMPLETED, STATUS_CANCELLED):
        raise InvalidTransitionError(f"Order {order_id} is already {order.status}")

    previous_stage = order.production_stage
    with commit_or_stale(order):
        order.status = STATUS_COMPLETED
        order.production_stage = None
        order.force_completed = True

        production_service.append_log_entry(
            order,
            production_service.FORCE_COMPLETED,
            previous_stage=previous_stage,
            actor=actor,
            note=reason,
        )
        log_audit_event(
            event_type="ORDER_FORCE_COMPLETED",
            success=True,
            user_id=actor.id,
            company_id=company.id,
            resource=f"order:{order.id}",
            action="force_complete",
            reason=reason,
            commit=False,
        )
    return order


def order_invariant_violations(order: Order) -> list[str]:
    """
    Check the state invariants of one order. Empty list means consistent.
    """
    problems = []

    if order.production_stage is not None and order.status != STATUS_PROCESSING:
        problems.append(f"stage {order.production_stage} set while status is {order.status}")

    if order.status == STATUS_COMPLETED and not order.force_completed:
        dispatched = db.session.query(QualityInspection).filter(
            QualityInspection.order_id == order.id,
            QualityInspection.approved.is_(True),
            QualityInspection.tracking_code.isnot(None),
            QualityInspection.tracking_code != "",
        ).first()
        if dispatched is None:
            problems.append("completed without an approved inspection carrying a tracking code")

    return problems
