"""
Notification outbox tests.

Verifies:
- Workflow actions queue messages instead of sending inline
- The worker delivers through the WhatsApp gateway and records the result
- Delivery failures never reach the workflow and leave one record
- Retry policy is explicit (at-most-once by default)
"""

from datetime import timedelta

import httpx
import pytest

from printshop.extensions import db
from printshop.models import NotificationRecord
from printshop.services import notification_service
from printshop.services import production_service
from printshop.services import quality_service
from printshop.services.errors import UnauthorizedError
from printshop.services.messaging import MessagingError, WhatsAppProvider, normalize_phone
from printshop.validation import ValidationError
from printshop.time_utils import utcnow


ALL_OK = {item: True for item in quality_service.CHECKLIST_ITEMS}


class TestTemplates:

    def test_received_template_uses_order_fields(self, order_a):
        message = notification_service.render_message(order_a, "received")
        assert "Maria Silva" in message
        assert "tamanho M" in message
        assert "R$ 119.80" in message

    def test_every_stage_has_a_template(self):
        for stage in production_service.STAGE_SEQUENCE:
            assert stage in notification_service.MESSAGE_TEMPLATES

    def test_unknown_event(self, order_a):
        with pytest.raises(ValueError):
            notification_service.render_message(order_a, "Lavagem")

    def test_phone_normalized_to_digits(self):
        assert normalize_phone("+55 (11) 98765-4321") == "5511987654321"


class TestDispatch:

    def test_delivers_to_gateway(self, admin_a, company_a, order_a, gateway):
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        summary = notification_service.dispatch_pending()

        assert len(summary.sent) == 1
        assert gateway.bodies == [{
            "phone": "11987654321",
            "message": notification_service.render_message(order_a, "Corte"),
        }]
        request = gateway.requests[0]
        assert request.url.path == "/send-message"
        assert request.headers["Authorization"] == "Bearer test-token"

        record = db.session.query(NotificationRecord).one()
        assert record.status == "SENT"
        assert record.http_status == 200
        assert record.attempts == 1
        assert record.sent_at is not None

    def test_transport_failure_is_recorded_not_raised(self, admin_a, company_a, order_a, gateway):
        gateway.error = httpx.ConnectError("connection refused")

        order = production_service.move_stage(
            company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a,
        )
        assert order.production_stage == "Corte"

        summary = notification_service.dispatch_pending()
        assert summary.failed and not summary.sent

        records = db.session.query(NotificationRecord).all()
        assert len(records) == 1
        assert records[0].status == "FAILED"
        assert records[0].http_status is None
        assert "unreachable" in records[0].error

        db.session.refresh(order_a)
        assert order_a.production_stage == "Corte"

    def test_gateway_error_status_recorded(self, admin_a, company_a, order_a, gateway):
        gateway.status_code = 502
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        notification_service.dispatch_pending()

        record = db.session.query(NotificationRecord).one()
        assert record.status == "FAILED"
        assert record.http_status == 502

    def test_failed_record_not_retried_by_default(self, admin_a, company_a, order_a, gateway):
        gateway.status_code = 500
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        notification_service.dispatch_pending()
        later = utcnow() + timedelta(hours=1)
        summary = notification_service.dispatch_pending(now=later)

        assert summary.processed == 0
        assert len(gateway.requests) == 1

    def test_retry_policy_with_backoff(self, app, admin_a, company_a, order_a, gateway):
        app.config["NOTIFICATION_MAX_ATTEMPTS"] = 2
        app.config["NOTIFICATION_RETRY_BACKOFF_SECONDS"] = 60
        gateway.status_code = 503
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        now = utcnow()
        first = notification_service.dispatch_pending(now=now)
        assert len(first.retrying) == 1

        assert notification_service.dispatch_pending(now=now + timedelta(seconds=30)).processed == 0

        gateway.status_code = 200
        second = notification_service.dispatch_pending(now=now + timedelta(seconds=61))
        assert len(second.sent) == 1

        record = db.session.query(NotificationRecord).one()
        assert record.status == "SENT"
        assert record.attempts == 2

    def test_unconfigured_provider_records_failure(self, admin_a, company_a, order_a):
        production_service.move_stage(company_a, order_a.id, from_stage=None, to_stage="Corte", actor=admin_a)

        summary = notification_service.dispatch_pending(provider=WhatsAppProvider(None, None))

        assert len(summary.failed) == 1
        record = db.session.query(NotificationRecord).one()
        assert record.http_status is None
        assert record.error == "Messaging provider not configured"

    def test_inspection_outcome_survives_failed_dispatch(self, admin_a, company_a, order_factory, gateway):
        gateway.error = httpx.ReadTimeout("timed out")
        order = order_factory(company_a, stage="Embalagem")

        quality_service.inspect(company_a, order.id, checklist=ALL_OK, actor=admin_a, tracking_code="BR123456789BR")
        notification_service.dispatch_pending()

        db.session.refresh(order)
        assert order.status == "completed"
        record = db.session.query(NotificationRecord).filter_by(order_id=order.id).one()
        assert record.event == "dispatched"
        assert record.http_status is None


class TestProvider:

    def test_send_raises_messaging_error_on_http_error(self):
        def handler(request):
            return httpx.Response(401, text="bad token")

        provider = WhatsAppProvider("http://wuzapi.test", "t", transport=httpx.MockTransport(handler))
        with pytest.raises(MessagingError) as exc:
            provider.send("11999998888", "oi")
        assert exc.value.http_status == 401
        assert exc.value.response_text == "bad token"

    def test_recipient_without_digits(self):
        provider = WhatsAppProvider("http://wuzapi.test", "t")
        with pytest.raises(MessagingError):
            provider.send("n/a", "oi")


class TestManualMessages:

    def test_admin_queues_manual_message(self, admin_a, company_a, order_a):
        record = notification_service.send_manual(company_a, order_a.id, "Seu pedido atrasou 1 dia", actor=admin_a)
        assert record.send_kind == "manual"
        assert record.event == "manual"
        assert record.payload["message"] == "Seu pedido atrasou 1 dia"
        assert record.status == "PENDING"

    def test_empty_message_rejected(self, admin_a, company_a, order_a):
        with pytest.raises(ValidationError):
            notification_service.send_manual(company_a, order_a.id, "   ", actor=admin_a)

    def test_vendedor_cannot_send_manual(self, vendedor_a, company_a, order_a):
        with pytest.raises(UnauthorizedError):
            notification_service.send_manual(company_a, order_a.id, "oi", actor=vendedor_a)

    def test_history_over_http(self, client, admin_a, company_a, order_a, login):
        headers = login(admin_a)
        resp = client.post(
            f"/api/notifications/orders/{order_a.id}/manual",
            json={"message": "Olá!"},
            headers=headers,
        )
        assert resp.status_code == 202

        resp = client.get(f"/api/notifications?order_id={order_a.id}", headers=headers)
        assert resp.status_code == 200
        assert [n["send_kind"] for n in resp.json["notifications"]] == ["manual"]
