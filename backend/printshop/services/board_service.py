# Overview: Production board snapshots and the poll-and-diff board coordinator.

"""
Board Coordinator

The board shows every processing order in one column per stage, plus a
"none" column for orders that entered processing but not yet Corte.

RECONCILIATION:
- The database is authoritative. The coordinator keeps a local position
  map only for the duration of a drop round trip.
- drop(): optimistic local move -> move_stage() -> on success refresh;
  on failure revert the local position (and refresh on StaleState)
- run(): fixed-interval poll that diffs consecutive snapshots, which is how
  one operator sees another operator's moves

Dropping onto Embalagem means "ready for inspection"; completion happens
only through the quality gate.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Company, Order, User
from ..permissions import Capability, PRODUCTION_MODULE
from . import permission_service
from . import production_service
from .errors import StaleStateError, WorkflowError
from printshop.time_utils import utcnow, to_utc_z


NO_STAGE_COLUMN = "none"
BOARD_COLUMNS = (NO_STAGE_COLUMN,) + production_service.STAGE_SEQUENCE


def column_of(stage: str | None) -> str:
    return stage or NO_STAGE_COLUMN


@dataclass(frozen=True)
class BoardCard:
    order_id: str
    column: str
    version_id: int
    customer_name: str
    shirt_size: str
    shirt_color: str
    quantity: int
    updated_at: datetime | None

    @classmethod
    def from_order(cls, order: Order) -> "BoardCard":
        return cls(
            order_id=order.id,
            column=column_of(order.production_stage),
            version_id=order.version_id,
            customer_name=order.customer_name,
            shirt_size=order.shirt_size,
            shirt_color=order.shirt_color,
            quantity=order.quantity,
            updated_at=order.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "column": self.column,
            "version_id": self.version_id,
            "customer_name": self.customer_name,
            "shirt_size": self.shirt_size,
            "shirt_color": self.shirt_color,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


@dataclass
class BoardSnapshot:
    columns: dict[str, list[BoardCard]]
    taken_at: datetime

    @property
    def cards(self) -> dict[str, BoardCard]:
        return {card.order_id: card for cards in self.columns.values() for card in cards}

    @property
    def counts(self) -> dict[str, int]:
        return {column: len(cards) for column, cards in self.columns.items()}

    @property
    def version(self) -> str:
        """Fingerprint of (order, column, version_id); equal iff nothing moved or changed."""
        parts = sorted(f"{c.order_id}:{c.column}:{c.version_id}" for c in self.cards.values())
        return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()

    def column_of(self, order_id: str) -> str | None:
        card = self.cards.get(order_id)
        return card.column if card else None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "taken_at": to_utc_z(self.taken_at),
            "counts": self.counts,
            "columns": {
                column: [card.to_dict() for card in cards]
                for column, cards in self.columns.items()
            },
        }


@dataclass
class BoardDiff:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    moved: list[tuple[str, str, str]] = field(default_factory=list)  # (order_id, from, to)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.moved)

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "removed": self.removed,
            "moved": [{"order_id": o, "from": f, "to": t} for o, f, t in self.moved],
        }


@dataclass
class DropResult:
    ok: bool
    order_id: str
    column: str | None
    error_code: str | None = None
    message: str | None = None
    refreshed: bool = False


def board_snapshot(company: Company, *, actor: User) -> BoardSnapshot:
    """Read the authoritative board for company."""
    permission_service.require_capability(actor, company, PRODUCTION_MODULE, Capability.VIEW)

    orders = (
        db.session.query(Order)
        .filter_by(company_id=company.id, status="processing")
        .order_by(Order.created_at.asc(), Order.id)
        .populate_existing()
        .all()
    )

    columns: dict[str, list[BoardCard]] = {column: [] for column in BOARD_COLUMNS}
    for order in orders:
        card = BoardCard.from_order(order)
        columns.setdefault(card.column, []).append(card)

    return BoardSnapshot(columns=columns, taken_at=utcnow())


def diff_snapshots(old: BoardSnapshot | None, new: BoardSnapshot) -> BoardDiff:
    old_cards = old.cards if old else {}
    new_cards = new.cards

    diff = BoardDiff()
    for order_id, card in new_cards.items():
        before = old_cards.get(order_id)
        if before is None:
            diff.added.append(order_id)
        elif before.column != card.column:
            diff.moved.append((order_id, before.column, card.column))
    diff.removed = [order_id for order_id in old_cards if order_id not in new_cards]
    return diff


class BoardCoordinator:
    """
    Interactive board state for one operator in one company.

    Usage:
        coordinator = BoardCoordinator(company, operator)
        coordinator.refresh()
        result = coordinator.drop(order_id, "Estampa")
    """

    def __init__(self, company: Company, actor: User, *, poll_interval: float | None = None):
        self.company = company
        self.actor = actor
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else current_app.config.get("BOARD_POLL_INTERVAL_SECONDS", 10)
        )
        self.snapshot: BoardSnapshot | None = None
        self.positions: dict[str, str] = {}

    def refresh(self) -> BoardDiff:
        """Re-read the authoritative board and reset local positions to it."""
        new = board_snapshot(self.company, actor=self.actor)
        diff = diff_snapshots(self.snapshot, new)
        self.snapshot = new
        self.positions = {order_id: card.column for order_id, card in new.cards.items()}
        return diff

    def drop(self, order_id: str, target_column: str) -> DropResult:
        """Handle a card dropped onto target_column."""
        if self.snapshot is None:
            self.refresh()

        believed = self.positions.get(order_id)
        if believed is None:
            return DropResult(
                ok=False,
                order_id=order_id,
                column=None,
                error_code="NOT_FOUND",
                message=f"Order {order_id} is not on the board",
            )

        if believed == target_column:
            return DropResult(ok=True, order_id=order_id, column=believed)

        self.positions[order_id] = target_column
        try:
            production_service.move_stage(
                self.company,
                order_id,
                from_stage=believed,
                to_stage=target_column,
                actor=self.actor,
            )
        except StaleStateError as exc:
            db.session.rollback()
            self.positions[order_id] = believed
            self.refresh()
            return DropResult(
                ok=False,
                order_id=order_id,
                column=self.positions.get(order_id),
                error_code=exc.code,
                message=str(exc),
                refreshed=True,
            )
        except WorkflowError as exc:
            db.session.rollback()
            self.positions[order_id] = believed
            return DropResult(
                ok=False,
                order_id=order_id,
                column=believed,
                error_code=exc.code,
                message=str(exc),
            )

        self.refresh()
        return DropResult(
            ok=True,
            order_id=order_id,
            column=self.positions.get(order_id),
            refreshed=True,
        )

    def run(self, *, iterations: int | None = None, on_change=None, sleep=time.sleep) -> None:
        """
        Poll-and-diff loop. Calls on_change(diff, snapshot) when the board moved.

        iterations=None polls until interrupted.
        """
        count = 0
        while iterations is None or count < iterations:
            diff = self.refresh()
            if diff.changed and on_change is not None:
                on_change(diff, self.snapshot)
            count += 1
            if iterations is None or count < iterations:
                sleep(self.poll_interval)
