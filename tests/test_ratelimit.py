import secrets
from datetime import datetime, timedelta

from redis.exceptions import ConnectionError as RedisConnectionError

from storefront.core.config import settings
from storefront.core.ratelimit import hit, redis_client
from storefront.main import app
from storefront.security import utils as security_utils

def test_fixed_window_counter(fake_redis):
    assert hit(fake_redis, "k", 2, 60) == (True, 60)
    allowed, ttl = hit(fake_redis, "k", 2, 60)
    assert allowed and 0 < ttl <= 60
    allowed, _ = hit(fake_redis, "k", 2, 60)
    assert not allowed
    assert fake_redis.ttl("k") > 0

def _order_payload(product):
    return {"items": [{"product_id": product.id, "quantity": 1}], "address": "12 Example Street, Tehran"}

def test_order_placement_is_limited_per_user(client, customer, make_user, make_product, auth_for, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_ORDERS", 1)
    p = make_product(stock=5)
    first = auth_for(customer)
    # a fresh token for the same user shares the counter
    later = datetime.utcnow() + timedelta(minutes=5)
    monkeypatch.setattr(security_utils, "now_utc", lambda: later)
    second = auth_for(customer)
    assert first != second
    assert client.post("/orders/v1/orders", json=_order_payload(p), headers=first).status_code == 201
    assert client.post("/orders/v1/orders", json=_order_payload(p), headers=second).status_code == 429
    other = auth_for(make_user(email="other@example.com"))
    assert client.post("/orders/v1/orders", json=_order_payload(p), headers=other).status_code == 201

def test_login_limit_ignores_bearer_header(client, customer, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_AUTH", 2)
    codes = []
    for _ in range(5):
        headers = {"Authorization": f"Bearer {secrets.token_hex(16)}"}
        r = client.post("/auth/login", json={"email": customer.email, "password": "wrong-password"}, headers=headers)
        codes.append(r.status_code)
    assert codes == [401, 401, 429, 429, 429]

def test_limiter_fails_open_when_redis_is_down(client, customer, monkeypatch):
    class DownRedis:
        def pipeline(self):
            raise RedisConnectionError("connection refused")

    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_AUTH", 1)
    app.dependency_overrides[redis_client] = lambda: DownRedis()
    for _ in range(3):
        r = client.post("/auth/login", json={"email": customer.email, "password": "12345678"})
        assert r.status_code == 200
