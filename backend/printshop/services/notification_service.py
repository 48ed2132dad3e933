# Overview: Customer notification outbox and its delivery worker.

"""
Notification Dispatcher (outbox pattern)

FLOW:
    workflow transaction --enqueue()--> NotificationRecord(PENDING)
    worker --dispatch_pending()--> provider.send() --> SENT | FAILED

WHY AN OUTBOX:
- Stage moves and inspections never wait on the messaging gateway
- The record is written in the same transaction as the transition, so a
  committed transition always has its notification queued
- Retry policy is explicit configuration (NOTIFICATION_MAX_ATTEMPTS,
  default 1 = at-most-once) instead of an implicit gap

FAILURE POLICY:
- Delivery errors are logged and recorded on the row, never raised
- http_status stays NULL when the gateway was not reached
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Company, NotificationRecord, Order, User
from ..permissions import Module, Capability
from . import permission_service
from . import order_service
from .concurrency import commit_with_retry
from .messaging import MessagingError, get_provider
from ..validation import ValidationError
from printshop.time_utils import utcnow


STATUS_PENDING = "PENDING"
STATUS_SENT = "SENT"
STATUS_FAILED = "FAILED"

SEND_AUTOMATIC = "automatic"
SEND_MANUAL = "manual"

EVENT_RECEIVED = "received"
EVENT_DISPATCHED = "dispatched"
EVENT_MANUAL = "manual"

MAX_MANUAL_MESSAGE_LENGTH = 1000

MESSAGE_TEMPLATES = {
    EVENT_RECEIVED: (
        "Olá {customer_name}! Recebemos seu pedido de {quantity} camiseta(s) "
        "{shirt_color} tamanho {shirt_size}. Valor total: R$ {total_price}."
    ),
    "Corte": "Seu pedido entrou na produção! ✂️",
    "Estampa": "Estamos estampando sua camiseta! 🎨",
    "Acabamento": "Seu pedido está quase pronto! 🧵",
    "Embalagem": "Seu pedido será despachado em breve! 📦",
    EVENT_DISPATCHED: (
        "Seu pedido foi despachado! 🚚 Transportadora: {carrier}. "
        "Código de rastreio: {tracking_code}"
    ),
}


def render_message(order: Order, event: str, context: dict | None = None) -> str:
    """Render the fixed template for event against the order."""
    template = MESSAGE_TEMPLATES.get(event)
    if template is None:
        raise ValueError(f"No message template for event '{event}'")

    values = {
        "customer_name": order.customer_name,
        "quantity": order.quantity,
        "shirt_color": order.shirt_color,
        "shirt_size": order.shirt_size,
        "total_price": f"{order.total_price_cents / 100:.2f}",
        "carrier": "não informada",
        "tracking_code": "",
    }
    values.update({k: v for k, v in (context or {}).items() if v})
    return template.format(**values)


def enqueue(
    order: Order,
    event: str,
    *,
    send_kind: str = SEND_AUTOMATIC,
    message: str | None = None,
    context: dict | None = None,
    actor: User | None = None,
) -> NotificationRecord:
    """
    Append a pending notification for order to the outbox.

    Does not commit: the row joins the caller's transaction.
    """
    text = message if message is not None else render_message(order, event, context)
    record = NotificationRecord(
        company_id=order.company_id,
        order_id=order.id,
        event=event,
        channel="whatsapp",
        send_kind=send_kind,
        payload={"recipient": order.customer_phone, "message": text},
        status=STATUS_PENDING,
        attempts=0,
        created_by_user_id=actor.id if actor else None,
        created_at=utcnow(),
    )
    db.session.add(record)
    return record


def send_manual(company: Company, order_id: str, message: str, *, actor: User) -> NotificationRecord:
    """Queue an operator-written message for an order's customer."""
    permission_service.require_capability(
        actor, company, Module.UTILIDADES, Capability.EDIT, resource=f"order:{order_id}",
    )
    text = (message or "").strip()
    if not text:
        raise ValidationError("message is required")
    if len(text) > MAX_MANUAL_MESSAGE_LENGTH:
        raise ValidationError(f"message exceeds max length {MAX_MANUAL_MESSAGE_LENGTH}")

    order = order_service.get_order(company.id, order_id)
    record = enqueue(order, EVENT_MANUAL, send_kind=SEND_MANUAL, message=text, actor=actor)
    db.session.commit()
    return record


@dataclass
class DispatchSummary:
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    retrying: list[int] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.sent) + len(self.failed) + len(self.retrying)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "retrying": self.retrying,
        }


def _due_records(now: datetime, limit: int) -> list[NotificationRecord]:
    return (
        db.session.query(NotificationRecord)
        .filter(NotificationRecord.status == STATUS_PENDING)
        .filter(
            (NotificationRecord.next_attempt_at.is_(None))
            | (NotificationRecord.next_attempt_at <= now)
        )
        .order_by(NotificationRecord.id.asc())
        .limit(limit)
        .all()
    )


def _record_failure(record: NotificationRecord, error: str, now: datetime, *, http_status=None, response=None) -> bool:
    """Mark a failed attempt. Returns True if the record will be retried."""
    max_attempts = max(1, current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", 1))
    backoff = current_app.config.get("NOTIFICATION_RETRY_BACKOFF_SECONDS", 60)

    record.http_status = http_status
    record.response = response
    record.error = error

    if record.attempts < max_attempts:
        record.status = STATUS_PENDING
        record.next_attempt_at = now + timedelta(seconds=backoff * (2 ** (record.attempts - 1)))
        return True

    record.status = STATUS_FAILED
    record.next_attempt_at = None
    return False


def deliver(record: NotificationRecord, provider, now: datetime) -> str:
    """
    Attempt one delivery of record. Never raises.

    Returns the resulting status.
    """
    record.attempts += 1
    payload = record.payload or {}

    try:
        result = provider.send(payload.get("recipient"), payload.get("message", ""))
    except MessagingError as exc:
        current_app.logger.warning(
            "Notification %s (%s, order %s) failed: %s",
            record.id, record.event, record.order_id, exc,
        )
        retry = _record_failure(record, str(exc), now, http_status=exc.http_status, response=exc.response_text)
        return STATUS_PENDING if retry else STATUS_FAILED
    except Exception as exc:
        current_app.logger.exception("Notification %s crashed the provider", record.id)
        retry = _record_failure(record, f"Unexpected provider error: {exc}", now)
        return STATUS_PENDING if retry else STATUS_FAILED

    record.status = STATUS_SENT
    record.http_status = result.http_status
    record.response = result.body
    record.error = None
    record.sent_at = now
    record.next_attempt_at = None
    return STATUS_SENT


def dispatch_pending(*, provider=None, now: datetime | None = None, limit: int | None = None) -> DispatchSummary:
    """
    Worker step: deliver every due PENDING record once.

    Each record is committed individually so one slow or broken message
    never rolls back the results of the others.
    """
    provider = provider or get_provider()
    now = now or utcnow()
    limit = limit or current_app.config.get("NOTIFICATION_BATCH_SIZE", 50)

    summary = DispatchSummary()
    for record in _due_records(now, limit):
        status = deliver(record, provider, now)
        commit_with_retry()
        if status == STATUS_SENT:
            summary.sent.append(record.id)
        elif status == STATUS_FAILED:
            summary.failed.append(record.id)
        else:
            summary.retrying.append(record.id)

    if summary.processed:
        current_app.logger.info(
            "Notification dispatch: %d sent, %d failed, %d retrying",
            len(summary.sent), len(summary.failed), len(summary.retrying),
        )
    return summary


def list_notifications(
    company: Company,
    *,
    actor: User,
    order_id: str | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[NotificationRecord]:
    permission_service.require_capability(actor, company, Module.UTILIDADES, Capability.VIEW)

    q = db.session.query(NotificationRecord).filter_by(company_id=company.id)
    if order_id:
        q = q.filter_by(order_id=order_id)
    if status:
        q = q.filter_by(status=status.upper())
    return q.order_by(NotificationRecord.id.desc()).limit(limit).all()
