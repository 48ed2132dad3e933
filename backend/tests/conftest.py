"""
Pytest fixtures for printshop backend tests.

Provides test database setup, company/user/order fixtures, a mocked
WhatsApp gateway and test client helpers.
"""

import json

import httpx
import pytest
from printshop import create_app
from printshop.extensions import db
from printshop.models import Company, CompanyModule, Order
from printshop.permissions import Module
from printshop.services.auth_service import create_user
from printshop.services.messaging import WhatsAppProvider
from printshop.services import permission_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'WHATSAPP_API_URL': 'http://wuzapi.test',
        'WHATSAPP_API_TOKEN': 'test-token',
        'NOTIFICATION_MAX_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop("messaging_provider", None)
        app.config['NOTIFICATION_MAX_ATTEMPTS'] = 1

        yield db.session

        db.session.rollback()
        app.extensions.pop("messaging_provider", None)


@pytest.fixture(scope='function')
def matrix(db_session):
    """Default role x module permission matrix."""
    permission_service.assign_default_role_permissions()
    db_session.commit()


def activate(company, *modules):
    for module in modules:
        db.session.add(CompanyModule(company_id=company.id, module=Module(module).value, is_active=True))
    db.session.commit()


@pytest.fixture(scope='function')
def root_company(db_session):
    """The operating business (every module always active)."""
    company = Company(name="Grupo Agil", slug="grupo-agil", is_root=True, is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_a(db_session):
    """Client company A with the production and messaging modules enabled."""
    company = Company(name="Loja Azul", slug="loja-azul", is_active=True)
    db_session.add(company)
    db_session.commit()
    activate(company, Module.VENDAS, Module.UTILIDADES, Module.MEUS_PEDIDOS)
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Client company B (second tenant)."""
    company = Company(name="Loja Verde", slug="loja-verde", is_active=True)
    db_session.add(company)
    db_session.commit()
    activate(company, Module.VENDAS, Module.UTILIDADES)
    return company


def make_user(company, role, email=None, name=None):
    return create_user(
        company_id=company.id,
        email=email or f"{role}@{company.slug}.local",
        name=name or role.title(),
        password=PASSWORD,
        role=role,
        rounds=4,
    )


@pytest.fixture(scope='function')
def superadmin(root_company, matrix):
    return make_user(root_company, "superadmin")


@pytest.fixture(scope='function')
def admin_a(company_a, matrix):
    return make_user(company_a, "admin", name="Ana Admin")


@pytest.fixture(scope='function')
def vendedor_a(company_a, matrix):
    return make_user(company_a, "vendedor", name="Vitor Vendas")


@pytest.fixture(scope='function')
def cliente_a(company_a, matrix):
    return make_user(company_a, "cliente")


@pytest.fixture(scope='function')
def admin_b(company_b, matrix):
    return make_user(company_b, "admin")


def make_order(company, *, status="processing", stage=None, phone="(11) 98765-4321", **overrides):
    """Insert an order directly in the given state."""
    fields = dict(
        company_id=company.id,
        customer_name="Maria Silva",
        customer_email="maria@example.com",
        customer_phone=phone,
        shirt_size="M",
        shirt_color="Preto",
        quantity=2,
        total_price_cents=11980,
        status=status,
        production_stage=stage,
    )
    fields.update(overrides)
    order = Order(**fields)
    db.session.add(order)
    db.session.commit()
    return order


@pytest.fixture(scope='function')
def order_a(company_a):
    """Processing order of company A that has not entered production yet."""
    return make_order(company_a)


class GatewayRecorder:
    """httpx MockTransport that records every request sent to the gateway."""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"success": self.status_code < 400})

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture(scope='function')
def gateway(app, db_session):
    """Mocked WhatsApp gateway registered as the app's messaging provider."""
    recorder = GatewayRecorder()
    provider = WhatsAppProvider(
        "http://wuzapi.test",
        "test-token",
        transport=httpx.MockTransport(recorder),
    )
    app.extensions["messaging_provider"] = provider
    return recorder


def get_auth_token(client, company, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'company': company.slug,
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(client, user) -> dict:
    return auth_headers(get_auth_token(client, user.company, user.email))


@pytest.fixture(scope='function')
def order_factory(db_session):
    return make_order


@pytest.fixture(scope='function')
def user_factory(matrix):
    return make_user


@pytest.fixture(scope='function')
def login(client):
    """login(user) -> Authorization headers for that user."""
    def _login(user):
        return headers_for(client, user)
    return _login
