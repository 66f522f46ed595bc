"""
Pytest fixtures for storefront backend tests.

Provides the app on an in-memory database, per-test table cleanup, user /
catalog fixtures and authentication helpers.
"""

from decimal import Decimal

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Category, Product, User
from storefront.models.users import ROLE_ADMIN, ROLE_CUSTOMER
from storefront.services.auth_service import hash_password

PASSWORD = "Secret123"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'JWT_SECRET': 'test-jwt-secret',
        'STRIPE_SECRET_KEY': 'sk_test_dummy',
        'STRIPE_WEBHOOK_SECRET': '',
        'FRONTEND_URL': 'http://shop.test',
        'BACKEND_URL': 'http://api.shop.test',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'BANK_NAME': 'Banco Test',
        'BANK_CBU': '0000003100000000000001',
        'BANK_ALIAS': 'STORE.TEST',
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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, name, email, role=ROLE_CUSTOMER):
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    return _make_user(db_session, "Ana Customer", "ana@example.com")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _make_user(db_session, "Bruno Customer", "bruno@example.com")


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "Store Admin", "admin@example.com", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Hardware", slug="hardware", description="PC components")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: make_product(name=..., price=..., stock=..., product_type=...)."""
    def _make(**overrides):
        fields = {
            "name": "Mechanical Keyboard",
            "price": Decimal("100.00"),
            "stock": 5,
            "product_type": "normal",
            "status": "available",
            "category_id": category.id,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.email, PASSWORD))


@pytest.fixture(scope='function')
def other_headers(client, other_customer):
    return auth_headers(get_auth_token(client, other_customer.email, PASSWORD))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email, PASSWORD))


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
