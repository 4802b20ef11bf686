"""
Pytest fixtures for tillpos backend tests.

Provides an in-memory database, two tenants, a cashier, a register,
products and a test client.
"""

import pytest
from tillpos import create_app
from tillpos.extensions import db
from tillpos.models import ApiSettings, Company, CompanySettings, Employee, Product
from tillpos.models.tenancy import PLAN_LIMITS, PLAN_PREMIUM
from tillpos.services import register_service
from tillpos.services.auth_service import hash_password


ADMIN_PASSWORD = "Password123"
WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYMENT_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'CARD_POLL_INTERVAL_SECONDS': 0,
        'CARD_POLL_MAX_ATTEMPTS': 3,
        'LOG_LEVEL': 'WARNING',
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def admin_password_hash():
    """bcrypt is slow on purpose; hash once per run."""
    return hash_password(ADMIN_PASSWORD)


def _make_company(db_session, name, code, password_hash, gateway_user_id):
    registers, products, employees = PLAN_LIMITS[PLAN_PREMIUM]
    company = Company(
        name=name,
        code=code,
        plan=PLAN_PREMIUM,
        is_active=True,
        max_cash_registers=registers,
        max_products=products,
        max_employees=employees,
    )
    db_session.add(company)
    db_session.flush()
    db_session.add(CompanySettings(
        company_id=company.id,
        company_name=name,
        admin_username="admin",
        admin_password_hash=password_hash,
    ))
    db_session.add(ApiSettings(
        company_id=company.id,
        gateway_access_token=f"TEST-TOKEN-{code}",
        gateway_user_id=gateway_user_id,
        gateway_store_id="STORE001",
        gateway_pos_id="42",
        gateway_enabled=True,
    ))
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_a(db_session, admin_password_hash):
    """Create Company A (first tenant)."""
    return _make_company(db_session, "Company A - Acme Cafe", "ACME", admin_password_hash, "1001")


@pytest.fixture(scope='function')
def company_b(db_session, admin_password_hash):
    """Create Company B (second tenant)."""
    return _make_company(db_session, "Company B - Beta Bakery", "BETA", admin_password_hash, "2002")


@pytest.fixture(scope='function')
def cashier_a(db_session, company_a):
    employee = Employee(company_id=company_a.id, name="Ana Cashier", role="cashier", is_active=True)
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def register_a(db_session, company_a, cashier_a):
    """Closed register in Company A with cashier_a assigned."""
    return register_service.create_register(company_a.id, "Front Counter", employee_id=cashier_a.id)


@pytest.fixture(scope='function')
def register_b(db_session, company_b):
    return register_service.create_register(company_b.id, "Beta Counter")


@pytest.fixture(scope='function')
def coffee(db_session, company_a):
    """Product priced 500 cash / 550 card."""
    product = Product(
        company_id=company_a.id,
        name="Coffee",
        cash_price_cents=500,
        card_price_cents=550,
        category="Drinks",
        stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def tea(db_session, company_a):
    """Product priced 300 on every tender."""
    product = Product(
        company_id=company_a.id,
        name="Tea",
        cash_price_cents=300,
        card_price_cents=300,
        category="Drinks",
        stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def open_register_a(db_session, company_a, register_a):
    """register_a opened with 10000 cents in the drawer."""
    register_service.open_register(company_a.id, register_a.id, 10000)
    return register_a


@pytest.fixture(scope='function')
def headers_a(client, company_a):
    return auth_headers(get_auth_token(client, company_a.code))


@pytest.fixture(scope='function')
def headers_b(client, company_b):
    return auth_headers(get_auth_token(client, company_b.code))


def get_auth_token(client, company_code: str, username: str = "admin", password: str = ADMIN_PASSWORD) -> str:
    """Helper to get an admin token for a company."""
    response = client.post('/api/auth/login', json={
        'company_code': company_code,
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
