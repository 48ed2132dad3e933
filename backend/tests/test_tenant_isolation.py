# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that a user never acts outside their own company.

These tests create two client companies with their own users and orders,
then verify that:
1. Sessions carry the company of the user and cannot be redirected
2. Cross-tenant capability checks are denied and audited
3. Cross-tenant order reads look like missing orders (404, not 403)
4. Only superadmins may act in another company via X-Company-Id
"""

from datetime import timedelta

import pytest

from printshop.extensions import db
from printshop.models import AuditEvent, SessionToken
from printshop.permissions import Capability, Module
from printshop.services import order_service
from printshop.services import permission_service
from printshop.services import tenant_service
from printshop.services.errors import UnauthorizedError
from printshop.services.session_service import create_session, validate_session
from printshop.time_utils import utcnow
from printshop.validation import ConflictError, ValidationError


PASSWORD = "Password123!"


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_lookup_by_slug_is_case_insensitive(self, company_a):
        assert tenant_service.get_company_by_slug(" LOJA-AZUL ").id == company_a.id

    def test_create_company(self, db_session):
        company = tenant_service.create_company(name="Loja Rosa", slug="Loja-Rosa")
        assert company.slug == "loja-rosa"
        assert company.is_active is True
        assert company.is_root is False

    @pytest.mark.parametrize("name,slug", [("", "ok-slug"), ("Loja", "Bad Slug"), ("Loja", "x")])
    def test_create_company_validation(self, db_session, name, slug):
        with pytest.raises(ValidationError):
            tenant_service.create_company(name=name, slug=slug)

    def test_duplicate_slug(self, company_a):
        with pytest.raises(ConflictError):
            tenant_service.create_company(name="Outra", slug="loja-azul")

    def test_single_root_company(self, root_company):
        with pytest.raises(ConflictError):
            tenant_service.create_company(name="Outra Matriz", slug="outra-matriz", is_root=True)

    def test_validate_company_active(self, company_a):
        company_a.is_active = False
        db.session.commit()
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.validate_company_active(company_a.id)
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.validate_company_active(99999)


class TestSessions:

    def test_session_captures_company(self, admin_a, company_a):
        session, token = create_session(admin_a.id)
        assert session.company_id == company_a.id

        context = validate_session(token)
        assert context.user.id == admin_a.id
        assert context.company.id == company_a.id

    def test_token_stored_hashed(self, admin_a):
        session, token = create_session(admin_a.id)
        assert session.token_hash != token
        assert db.session.query(SessionToken).filter_by(token_hash=token).count() == 0

    def test_idle_session_revoked(self, admin_a):
        session, token = create_session(admin_a.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db.session.commit()

        assert validate_session(token) is None
        db.session.refresh(session)
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_company_deactivation_revokes_sessions(self, client, admin_a, company_a, login):
        headers = login(admin_a)
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        company_a.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=headers).status_code == 401
        session = db.session.query(SessionToken).filter_by(user_id=admin_a.id).one()
        assert session.revoked_reason == "Company deactivated"


class TestCrossTenantCapabilities:

    def test_can_perform_denies_other_company(self, admin_b, company_a):
        assert permission_service.can_perform(admin_b, company_a, Module.VENDAS, Capability.VIEW) is False
        assert db.session.query(AuditEvent).count() == 0

    def test_cross_tenant_denial_is_audited(self, admin_b, company_a, order_a):
        with pytest.raises(UnauthorizedError):
            order_service.view_order(company_a, order_a.id, actor=admin_b)

        event = db.session.query(AuditEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").one()
        assert event.user_id == admin_b.id
        assert event.company_id == company_a.id
        assert event.resource == f"order:{order_a.id}"
        assert event.success is False

    def test_order_queries_scoped_to_company(self, admin_a, admin_b, company_a, company_b, order_factory):
        order_factory(company_a)
        order_factory(company_b)

        orders_a = order_service.list_orders(company_a, actor=admin_a)
        orders_b = order_service.list_orders(company_b, actor=admin_b)

        assert len(orders_a) == 1 and orders_a[0].company_id == company_a.id
        assert len(orders_b) == 1 and orders_b[0].company_id == company_b.id


class TestCrossTenantHttp:

    def test_foreign_order_looks_missing(self, client, admin_b, order_a, login):
        headers = login(admin_b)

        assert client.get(f"/api/orders/{order_a.id}", headers=headers).status_code == 404
        resp = client.post(
            f"/api/production/orders/{order_a.id}/move",
            json={"from_stage": "none", "to_stage": "Corte"},
            headers=headers,
        )
        assert resp.status_code == 404

        resp = client.get("/api/orders", headers=headers)
        assert resp.json["orders"] == []

    def test_non_superadmin_cannot_switch_company(self, client, admin_a, company_b, login):
        headers = dict(login(admin_a), **{"X-Company-Id": str(company_b.id)})

        resp = client.get("/api/orders", headers=headers)

        assert resp.status_code == 403
        event = db.session.query(AuditEvent).filter_by(event_type="COMPANY_SWITCH_DENIED").one()
        assert event.user_id == admin_a.id

    def test_superadmin_switches_company(self, client, superadmin, company_a, order_a, login):
        headers = dict(login(superadmin), **{"X-Company-Id": str(company_a.id)})

        resp = client.get("/api/orders", headers=headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [order_a.id]

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.json["company"]["slug"] == "loja-azul"

    def test_superadmin_switch_to_unknown_company(self, client, superadmin, login):
        headers = dict(login(superadmin), **{"X-Company-Id": "99999"})
        assert client.get("/api/orders", headers=headers).status_code == 403

    @pytest.mark.parametrize("header", ["abc", "inactive"])
    def test_superadmin_switch_to_unusable_company(self, client, superadmin, company_a, login, header):
        if header == "inactive":
            company_a.is_active = False
            db.session.commit()
            header = str(company_a.id)

        headers = dict(login(superadmin), **{"X-Company-Id": header})
        assert client.get("/api/orders", headers=headers).status_code == 403


class TestLogin:

    def test_same_email_in_two_companies(self, client, company_a, company_b, user_factory):
        user_factory(company_a, "admin", email="dono@example.com")
        user_b = user_factory(company_b, "vendedor", email="dono@example.com")

        resp = client.post("/api/auth/login", json={
            "company": "loja-verde", "email": "dono@example.com", "password": PASSWORD,
        })
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user_b.id
        assert resp.json["company"]["slug"] == "loja-verde"

    def test_wrong_company(self, client, admin_a, company_b):
        resp = client.post("/api/auth/login", json={
            "company": "loja-verde", "email": admin_a.email, "password": PASSWORD,
        })
        assert resp.status_code == 401

    def test_wrong_password(self, client, admin_a):
        resp = client.post("/api/auth/login", json={
            "company": "loja-azul", "email": admin_a.email, "password": "Wrong123!",
        })
        assert resp.status_code == 401

    def test_inactive_company(self, client, admin_a, company_a):
        company_a.is_active = False
        db.session.commit()
        resp = client.post("/api/auth/login", json={
            "company": "loja-azul", "email": admin_a.email, "password": PASSWORD,
        })
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "x@example.com"})
        assert resp.status_code == 400

        resp = client.post("/api/auth/login", json=["loja-azul", "x@example.com"])
        assert resp.status_code == 400

    def test_me_reports_modules_and_navigation(self, client, vendedor_a, login):
        resp = client.get("/api/auth/me", headers=login(vendedor_a))
        assert resp.status_code == 200
        assert resp.json["active_modules"] == ["vendas", "utilidades", "meus_pedidos"]
        nav = resp.json["navigation"]
        assert nav["vendas"] == {"view": True, "edit": True, "delete": False, "export": False}
        assert nav["relatorios"]["view"] is False
        assert nav["utilidades"]["view"] is False

    def test_logout_revokes_token(self, client, admin_a, login):
        headers = login(admin_a)
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
