"""
Pytest fixtures for Linus POS backend tests.

Provides the in-memory app, a clean database per test, seeded users and
auth header helpers.
"""

from decimal import Decimal

import pytest

from linuspos import create_app
from linuspos.extensions import db
from linuspos.models import Product
from linuspos.models.auth import ROLE_ADMIN, ROLE_STAFF
from linuspos.services import auth_service


ADMIN_PASSWORD = "admin123"
STAFF_PASSWORD = "sara123"
MANAGER_PASSWORD = "omar123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_USERNAME': 'admin',
        'DEFAULT_STORE_NAME': 'Test Shop',
        'DEFAULT_CURRENCY': 'SAR',
        'DEFAULT_LOW_STOCK_THRESHOLD': 5,
        'DEFAULT_TAX_RATE': '0.15',
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
        db.session.remove()


@pytest.fixture(scope='function')
def admin_user(db_session):
    """The protected admin account (all permissions)."""
    return auth_service.create_user("admin", ADMIN_PASSWORD, "Administrator", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def staff_user(db_session):
    """A cashier with no permissions."""
    return auth_service.create_user("sara", STAFF_PASSWORD, "Sara", role=ROLE_STAFF)


@pytest.fixture(scope='function')
def manager_user(db_session):
    """Staff account granted inventory and reports only."""
    return auth_service.create_user(
        "omar",
        MANAGER_PASSWORD,
        "Omar",
        role=ROLE_STAFF,
        permissions={"canManageInventory": True, "canViewReports": True},
    )


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "sara", STAFF_PASSWORD))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, "omar", MANAGER_PASSWORD))


@pytest.fixture(scope='function')
def products(db_session):
    """p1 and p2 from the checkout examples plus a low and an empty product."""
    rows = [
        make_product("p1", "Cola", "10.00", stock=20, category="Drinks", barcode="6281000000011"),
        make_product("p2", "Bread", "5.00", stock=8, category="Bakery", barcode="6281000000028"),
        make_product("p3", "Milk", "4.25", stock=5, category="Dairy", barcode="6281000000035"),
        make_product("p4", "Dates", "12.00", stock=0, category="Snacks", barcode="6281000000042"),
    ]
    return {p.id: p for p in rows}


def make_product(product_id, name, price, *, stock=10, category="", barcode=None):
    """Insert one product directly and commit."""
    product = Product(
        id=product_id,
        name=name,
        price=Decimal(price),
        stock=stock,
        category=category,
        barcode=barcode or product_id.upper(),
    )
    db.session.add(product)
    db.session.commit()
    return product


def stock_of(product_id):
    """Current stock as stored (bypasses the identity map)."""
    db.session.expire_all()
    return db.session.query(Product.stock).filter(Product.id == product_id).scalar()


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
