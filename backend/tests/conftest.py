"""
Pytest fixtures for retail API tests.

Provides the app on an in-memory database, a clean slate per test, and
factories for stores, products, ledger rows and authenticated users.
"""

import pytest

from retail_api import create_app
from retail_api.cache import get_cache
from retail_api.extensions import db
from retail_api.models import InventoryLedger, Product, Store, Supplier, User
from retail_api.models.auth import PERMISSION_DEFAULTS, ROLE_ADMIN, ROLE_USER
from retail_api.services import session_service
from retail_api.services.auth_service import hash_password

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'RETRY_BACKOFF_BASE': 0,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Empty every table and the report cache before each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    get_cache().clear()

    yield db.session

    db.session.rollback()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_store(db_session):
    counter = {"n": 0}

    def _make(name=None, is_active=True):
        counter["n"] += 1
        store = Store(name=name or f"Store {counter['n']}", is_active=is_active)
        db_session.add(store)
        db_session.commit()
        return store

    return _make


@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(price_cents=1000, category="General", cost_cents=500, name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            category=category,
            price_cents=price_cents,
            cost_cents=cost_cents,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def stock(db_session):
    """Put `quantity` units of a product on a store's shelf."""
    def _stock(store, product, quantity, min_stock=2, max_stock=500):
        row = InventoryLedger(
            store_id=store.id,
            product_id=product.id,
            quantity=quantity,
            min_stock=min_stock,
            max_stock=max_stock,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _stock


@pytest.fixture
def quantity_of(db_session):
    """Current on-hand quantity, or None when the row does not exist."""
    def _quantity(store, product):
        db_session.expire_all()
        row = db_session.query(InventoryLedger).filter_by(store_id=store.id, product_id=product.id).first()
        return row.quantity if row else None

    return _quantity


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role=ROLE_USER, store=None, permissions=None, is_active=True, email=None):
        counter["n"] += 1
        flags = dict(PERMISSION_DEFAULTS)
        flags.update(permissions or {})
        user = User(
            name=f"User {counter['n']}",
            email=email or f"user{counter['n']}@retail.test",
            password_hash=hash_password(PASSWORD),
            role=role,
            store_id=store.id if store is not None and role != ROLE_ADMIN else None,
            permissions=flags,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers():
    """Bearer headers for a fresh session of `user`."""
    def _headers(user):
        _, token = session_service.create_session(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# =============================================================================
# Common scenario
# =============================================================================

@pytest.fixture
def store_a(make_store):
    return make_store("Centro")


@pytest.fixture
def store_b(make_store):
    return make_store("Norte")


@pytest.fixture
def product(make_product):
    return make_product(price_cents=1000)


@pytest.fixture
def supplier(db_session):
    supplier = Supplier(name="Distribuidora Andina", categories=["General"], is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture
def admin(make_user):
    return make_user(role=ROLE_ADMIN, email="admin@retail.test")


@pytest.fixture
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


@pytest.fixture
def clerk(make_user, store_a):
    """Store user of store A with the default permissions."""
    return make_user(store=store_a, email="clerk@retail.test")


@pytest.fixture
def clerk_headers(clerk, auth_headers):
    return auth_headers(clerk)


@pytest.fixture
def other_clerk_headers(make_user, store_b, auth_headers):
    """Store user of store B."""
    return auth_headers(make_user(store=store_b, email="north@retail.test"))
