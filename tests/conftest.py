import os, tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["POSTGRES_DSN"] = f"sqlite:///{os.path.join(_DB_DIR, 'storefront.db')}"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient

from storefront.core.ratelimit import redis_client
from storefront.db import models
from storefront.db.session import Base, SessionLocal, engine
from storefront.main import app
from storefront.security.utils import create_access_token, hash_password

PASSWORD = "12345678"

@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)

@pytest.fixture
def db():
    s = SessionLocal()
    try: yield s
    finally: s.close()

@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)

@pytest.fixture
def client(fake_redis):
    app.dependency_overrides[redis_client] = lambda: fake_redis
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def make_user(db):
    def _make(email="customer@example.com", role="customer", first_name="Test", last_name="User"):
        u = models.User(email=email, password_hash=hash_password(PASSWORD), role=role,
                        first_name=first_name, last_name=last_name)
        db.add(u); db.commit(); db.refresh(u)
        return u
    return _make

def bearer(user) -> dict:
    token, _ = create_access_token(user.email, user.role, user.id)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def customer(make_user):
    return make_user()

@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin")

@pytest.fixture
def customer_headers(customer):
    return bearer(customer)

@pytest.fixture
def admin_headers(admin):
    return bearer(admin)

@pytest.fixture
def make_product(db):
    def _make(name="Running Shoe", price="100000", stock=5, discount_percent=0, sizes=None, colors=None, is_active=True):
        p = models.Product(name=name, price=Decimal(price), stock=stock, discount_percent=discount_percent,
                           is_active=is_active)
        p.sizes = [models.ProductSize(size=s, stock=q) for s, q in (sizes or {}).items()]
        p.colors = [models.ProductColor(color=c) for c in (colors or [])]
        db.add(p); db.commit(); db.refresh(p)
        return p
    return _make

@pytest.fixture
def make_order(db):
    """Insert an order directly, bypassing checkout."""
    def _make(user, product, quantity=1, status=models.OrderStatus.PENDING, code="12345678", size=None):
        o = models.Order(order_code=code, user_id=user.id, total=Decimal(product.price) * quantity,
                         address="12 Example Street, Tehran", status=status)
        o.items = [models.OrderItem(product_id=product.id, quantity=quantity, price=product.price, size=size)]
        db.add(o); db.commit(); db.refresh(o)
        return o
    return _make

@pytest.fixture
def auth_for():
    return bearer
