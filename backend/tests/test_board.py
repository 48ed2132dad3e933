"""
Board coordinator tests.

Verifies:
- Snapshots group processing orders by column with counts and a version
- A drop goes through move_stage and refreshes on success
- A rejected drop reverts the card to where it was
- A stale drop re-reads the authoritative board
- The poll loop reports other operators' moves as diffs
"""

import pytest

from printshop.extensions import db
from printshop.services import board_service
from printshop.services import production_service


@pytest.fixture
def coordinator(company_a, admin_a):
    board = board_service.BoardCoordinator(company_a, admin_a, poll_interval=0)
    return board


class TestSnapshot:

    def test_columns_and_counts(self, admin_a, company_a, order_factory):
        a = order_factory(company_a)
        b = order_factory(company_a, stage="Estampa")
        order_factory(company_a, status="pending")
        order_factory(company_a, status="completed")

        snapshot = board_service.board_snapshot(company_a, actor=admin_a)

        assert list(snapshot.columns) == ["none", "Corte", "Estampa", "Acabamento", "Embalagem"]
        assert snapshot.counts == {"none": 1, "Corte": 0, "Estampa": 1, "Acabamento": 0, "Embalagem": 0}
        assert snapshot.column_of(a.id) == "none"
        assert snapshot.column_of(b.id) == "Estampa"

    def test_version_changes_only_when_board_changes(self, admin_a, company_a, order_a):
        first = board_service.board_snapshot(company_a, actor=admin_a)
        again = board_service.board_snapshot(company_a, actor=admin_a)
        assert first.version == again.version

        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)
        moved = board_service.board_snapshot(company_a, actor=admin_a)
        assert moved.version != first.version

    def test_other_company_orders_hidden(self, admin_a, company_a, company_b, order_factory):
        order_factory(company_b, stage="Corte")
        snapshot = board_service.board_snapshot(company_a, actor=admin_a)
        assert sum(snapshot.counts.values()) == 0

    def test_diff(self, admin_a, company_a, order_factory):
        a = order_factory(company_a)
        old = board_service.board_snapshot(company_a, actor=admin_a)
        production_service.move_stage(company_a, a.id, from_stage=None, to_stage="Corte", actor=admin_a)
        b = order_factory(company_a)
        new = board_service.board_snapshot(company_a, actor=admin_a)

        diff = board_service.diff_snapshots(old, new)
        assert diff.changed
        assert diff.moved == [(a.id, "none", "Corte")]
        assert diff.added == [b.id]
        assert diff.removed == []


class TestDrop:

    def test_successful_drop(self, coordinator, order_a):
        coordinator.refresh()
        result = coordinator.drop(order_a.id, "Corte")

        assert result.ok
        assert result.refreshed
        assert result.column == "Corte"
        assert coordinator.snapshot.counts["Corte"] == 1

    def test_drop_on_embalagem_is_ready_for_inspection(self, coordinator, company_a, order_factory):
        order = order_factory(company_a, stage="Acabamento")
        coordinator.refresh()

        result = coordinator.drop(order.id, "Embalagem")

        assert result.ok
        db.session.refresh(order)
        assert order.status == "processing"
        assert order.production_stage == "Embalagem"

    def test_invalid_drop_reverts_position(self, coordinator, company_a, order_factory):
        order = order_factory(company_a, stage="Corte")
        coordinator.refresh()

        result = coordinator.drop(order.id, "Embalagem")

        assert not result.ok
        assert result.error_code == "INVALID_TRANSITION"
        assert result.column == "Corte"
        assert coordinator.positions[order.id] == "Corte"

    def test_backward_drop_rejected(self, coordinator, company_a, order_factory):
        order = order_factory(company_a, stage="Estampa")
        coordinator.refresh()

        result = coordinator.drop(order.id, "Corte")

        assert not result.ok
        assert coordinator.positions[order.id] == "Estampa"

    def test_stale_drop_refreshes(self, coordinator, admin_a, company_a, order_a):
        coordinator.refresh()
        # another operator moves the card after our last poll
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        result = coordinator.drop(order_a.id, "Corte")

        assert not result.ok
        assert result.error_code == "STALE_STATE"
        assert result.refreshed
        assert result.column == "Corte"
        assert coordinator.positions[order_a.id] == "Corte"

    def test_unauthorized_drop(self, company_a, cliente_a, order_a):
        board = board_service.BoardCoordinator(company_a, cliente_a, poll_interval=0)
        board.snapshot = board_service.BoardSnapshot(columns={}, taken_at=None)
        board.positions = {order_a.id: "none"}

        result = board.drop(order_a.id, "Corte")

        assert not result.ok
        assert result.error_code == "UNAUTHORIZED"
        assert board.positions[order_a.id] == "none"

    def test_unknown_card(self, coordinator, db_session):
        coordinator.refresh()
        result = coordinator.drop("missing", "Corte")
        assert not result.ok
        assert result.error_code == "NOT_FOUND"


class TestPollLoop:

    def test_run_reports_changes_from_other_operators(self, coordinator, vendedor_a, company_a, order_a):
        seen = []
        moves = iter([
            lambda: production_service.move_stage(
                company_a, order_a.id, from_stage=None, to_stage="Corte", actor=vendedor_a,
            ),
            lambda: None,
        ])

        def fake_sleep(seconds):
            next(moves)()

        coordinator.run(iterations=3, on_change=lambda diff, snap: seen.append(diff), sleep=fake_sleep)

        # first poll adds the card, second sees the move, third sees nothing new
        assert len(seen) == 2
        assert seen[0].added == [order_a.id]
        assert seen[1].moved == [(order_a.id, "none", "Corte")]

    def test_run_sleeps_between_polls_only(self, coordinator, db_session):
        sleeps = []
        coordinator.run(iterations=2, sleep=sleeps.append)
        assert sleeps == [0]


class TestBoardRoute:

    def test_board_and_since_version(self, client, admin_a, order_a, login):
        headers = login(admin_a)
        resp = client.get("/api/production/board", headers=headers)
        assert resp.status_code == 200
        assert resp.json["counts"]["none"] == 1
        version = resp.json["version"]

        resp = client.get(f"/api/production/board?since_version={version}", headers=headers)
        assert resp.json == {"changed": False, "version": version}
