# Overview: Production stage machine, stage-change log, and stage metrics.

"""
Production Stage Machine

================================================================================
STATE MACHINE (orders with status = processing):

    none -> Corte -> Estampa -> Acabamento -> Embalagem -> (dispatched)

RULES:
1. One step at a time, forward only (Corte -> Embalagem is forbidden)
2. none -> Corte requires status = processing
3. Embalagem -> dispatched is NOT a move: it happens only when the quality
   gate approves with a tracking code (see quality_service.inspect)
4. The caller's from_stage must equal the persisted stage; otherwise the
   caller is stale and must re-read before trying again
5. Backward correction is a separate, audited revert_stage() of exactly
   one step, with a mandatory reason

Every applied change appends one ProductionLogEntry in the same
transaction as the stage update, and queues a customer notification
(reverts notify nobody).
================================================================================
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Company, Order, ProductionLogEntry, User
from ..permissions import Capability, PRODUCTION_MODULE
from ..validation import ValidationError
from . import permission_service
from . import order_service
from . import notification_service
from .audit_service import log_audit_event
from .concurrency import commit_or_stale
from .errors import InvalidTransitionError, StaleStateError
from printshop.time_utils import utcnow, minutes_between


class ProductionStage(str, Enum):
    CORTE = "Corte"
    ESTAMPA = "Estampa"
    ACABAMENTO = "Acabamento"
    EMBALAGEM = "Embalagem"


STAGE_SEQUENCE = tuple(s.value for s in ProductionStage)

# Pseudo-stages: never stored on the order, only in the log.
DISPATCHED = "dispatched"
FORCE_COMPLETED = "force_completed"

NO_STAGE_NAMES = {None, "", "none"}

# from -> only legal forward target
TRANSITIONS: dict[str | None, str] = {
    None: ProductionStage.CORTE.value,
    ProductionStage.CORTE.value: ProductionStage.ESTAMPA.value,
    ProductionStage.ESTAMPA.value: ProductionStage.ACABAMENTO.value,
    ProductionStage.ACABAMENTO.value: ProductionStage.EMBALAGEM.value,
    ProductionStage.EMBALAGEM.value: DISPATCHED,
}


def normalize_stage(value, *, allow_dispatched: bool = False) -> str | None:
    """
    Map client input to a stage name. "none", "" and None mean no stage.

    Raises InvalidTransitionError for unknown names.
    """
    if isinstance(value, ProductionStage):
        return value.value
    if value is not None and not isinstance(value, str):
        raise InvalidTransitionError("Production stage must be a stage name")
    if value in NO_STAGE_NAMES:
        return None
    if value in STAGE_SEQUENCE:
        return value
    if allow_dispatched and value == DISPATCHED:
        return DISPATCHED
    raise InvalidTransitionError(f"Unknown production stage '{value}'")


def can_transition(from_stage: str | None, to_stage: str | None) -> bool:
    """True if (from_stage -> to_stage) is an edge of the forward table."""
    return from_stage in TRANSITIONS and TRANSITIONS[from_stage] == to_stage


def previous_stage_of(stage: str) -> str | None:
    idx = STAGE_SEQUENCE.index(stage)
    return STAGE_SEQUENCE[idx - 1] if idx > 0 else None


def append_log_entry(
    order: Order,
    stage: str,
    *,
    previous_stage: str | None,
    actor: User | None,
    note: str | None = None,
    is_revert: bool = False,
) -> ProductionLogEntry:
    """
    Append a stage-change log row for order (no commit).

    minutes_in_previous_stage is measured from the order's previous log
    entry, so it is only known once the order has entered production.
    """
    now = utcnow()
    # The order's pending UPDATE is flushed by the caller's commit
    with db.session.no_autoflush:
        last = (
            db.session.query(ProductionLogEntry)
            .filter_by(order_id=order.id)
            .order_by(ProductionLogEntry.id.desc())
            .first()
        )
    entry = ProductionLogEntry(
        order_id=order.id,
        stage=stage,
        previous_stage=previous_stage,
        minutes_in_previous_stage=minutes_between(last.entered_at, now) if last else None,
        is_revert=is_revert,
        operator_id=actor.id if actor else None,
        operator_name=(actor.name or actor.email) if actor else None,
        note=note,
        entered_at=now,
    )
    db.session.add(entry)
    return entry


def move_stage(
    company: Company,
    order_id: str,
    *,
    from_stage,
    to_stage,
    actor: User,
    note: str | None = None,
) -> Order:
    """
    Advance an order one production stage.

    Raises:
        UnauthorizedError: actor lacks edit on the production module
        OrderNotFoundError: order not in this company
        StaleStateError: persisted stage differs from from_stage
        InvalidTransitionError: edge not in the forward table
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.EDIT, resource=f"order:{order_id}",
    )

    believed = normalize_stage(from_stage)
    target = normalize_stage(to_stage, allow_dispatched=True)

    order = order_service.get_order(company.id, order_id, for_update=True)
    current = order.production_stage

    if current != believed:
        raise StaleStateError(
            f"Order {order_id} is in stage {current or 'none'}, not {believed or 'none'}",
            order=order,
        )

    if order.status != order_service.STATUS_PROCESSING:
        raise InvalidTransitionError(
            f"Order {order_id} is {order.status}; only processing orders move through production"
        )

    if target == DISPATCHED:
        raise InvalidTransitionError("Dispatch requires an approved quality inspection with a tracking code")

    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move from {current or 'none'} to {target or 'none'}")

    with commit_or_stale(order):
        order.production_stage = target
        append_log_entry(order, target, previous_stage=current, actor=actor, note=note)
        notification_service.enqueue(order, target, actor=actor)
    return order


def revert_stage(
    company: Company,
    order_id: str,
    *,
    from_stage,
    actor: User,
    reason: str,
) -> Order:
    """
    Move an order exactly one stage backward (mis-drop correction).

    Corte cannot be reverted (production entry is undone by cancelling).
    The log entry is flagged is_revert and a STAGE_REVERTED audit event is
    written. No customer notification is queued.
    """
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.EDIT, resource=f"order:{order_id}",
    )

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required to revert a stage")

    believed = normalize_stage(from_stage)
    order = order_service.get_order(company.id, order_id, for_update=True)
    current = order.production_stage

    if current != believed:
        raise StaleStateError(
            f"Order {order_id} is in stage {current or 'none'}, not {believed or 'none'}",
            order=order,
        )

    if current is None or previous_stage_of(current) is None:
        raise InvalidTransitionError(f"Cannot revert from {current or 'none'}")

    target = previous_stage_of(current)
    with commit_or_stale(order):
        order.production_stage = target
        append_log_entry(order, target, previous_stage=current, actor=actor, note=reason, is_revert=True)
        log_audit_event(
            event_type="STAGE_REVERTED",
            success=True,
            user_id=actor.id,
            company_id=company.id,
            resource=f"order:{order.id}",
            action=f"{current}->{target}",
            reason=reason,
            commit=False,
        )
    return order


def complete_dispatch(order: Order, *, actor: User, note: str | None = None) -> ProductionLogEntry:
    """
    Embalagem -> dispatched. Called by the quality gate only (no commit).
    """
    if order.production_stage != ProductionStage.EMBALAGEM.value:
        raise InvalidTransitionError(f"Cannot dispatch from {order.production_stage or 'none'}")

    order.status = order_service.STATUS_COMPLETED
    order.production_stage = None
    return append_log_entry(
        order,
        DISPATCHED,
        previous_stage=ProductionStage.EMBALAGEM.value,
        actor=actor,
        note=note,
    )


def get_production_log(company: Company, order_id: str, *, actor: User) -> list[ProductionLogEntry]:
    permission_service.require_capability(
        actor, company, PRODUCTION_MODULE, Capability.VIEW, resource=f"order:{order_id}",
    )
    order = order_service.get_order(company.id, order_id)
    return (
        db.session.query(ProductionLogEntry)
        .filter_by(order_id=order.id)
        .order_by(ProductionLogEntry.id.asc())
        .all()
    )


def stage_metrics(company: Company, *, actor: User, window_days: int | None = None, now=None) -> dict:
    """
    Average minutes spent per stage over the trailing window.

    Reverts are excluded so mis-drops do not skew the averages.
    """
    permission_service.require_capability(actor, company, PRODUCTION_MODULE, Capability.VIEW)

    if window_days is None:
        window_days = current_app.config.get("STAGE_METRICS_WINDOW_DAYS", 30)
    if window_days <= 0:
        raise ValidationError("window_days must be > 0")

    since = (now or utcnow()) - timedelta(days=window_days)

    rows = (
        db.session.query(
            ProductionLogEntry.previous_stage,
            func.avg(ProductionLogEntry.minutes_in_previous_stage),
            func.count(ProductionLogEntry.id),
        )
        .join(Order, Order.id == ProductionLogEntry.order_id)
        .filter(
            Order.company_id == company.id,
            ProductionLogEntry.entered_at >= since,
            ProductionLogEntry.minutes_in_previous_stage.isnot(None),
            ProductionLogEntry.previous_stage.in_(STAGE_SEQUENCE),
            ProductionLogEntry.is_revert.is_(False),
        )
        .group_by(ProductionLogEntry.previous_stage)
        .all()
    )

    per_stage = {stage: {"average_minutes": 0, "samples": 0} for stage in STAGE_SEQUENCE}
    total_minutes = 0.0
    total_samples = 0
    for stage, avg_minutes, samples in rows:
        per_stage[stage] = {"average_minutes": round(float(avg_minutes or 0)), "samples": samples}
        total_minutes += float(avg_minutes or 0) * samples
        total_samples += samples

    return {
        "window_days": window_days,
        "per_stage": per_stage,
        "average_minutes": round(total_minutes / total_samples) if total_samples else 0,
        "samples": total_samples,
    }
