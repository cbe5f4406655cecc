import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import DBAPIError, TimeoutError as PoolTimeout

from storefront.core.config import settings
from storefront.core.errors import InsufficientStock, TransactionFault
from storefront.db import models
from storefront.db.session import SessionLocal
from storefront.kafka import producer
from storefront.schemas import OrderCreate
from storefront.services import orders as order_service

ADDRESS = "12 Example Street, Tehran"

class SerializationFailure(Exception):
    sqlstate = "40001"

def _order(client, headers, items, **extra):
    return client.post("/orders/v1/orders", json={"items": items, "address": ADDRESS, **extra}, headers=headers)

def test_discounted_order_totals_and_decrements_stock(client, db, customer_headers, make_product):
    p = make_product(price="100000", stock=5, discount_percent=10)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 2}])
    assert r.status_code == 201, r.text
    body = r.json()
    assert Decimal(body["total"]) == Decimal("180000")
    assert body["status"] == "PENDING"
    assert body["payment_method"] == "ONLINE"
    assert len(body["order_code"]) == 8 and body["order_code"].isdigit()
    assert Decimal(body["items"][0]["price"]) == Decimal("90000")
    assert body["items"][0]["product"]["name"] == p.name

    db.expire_all()
    p = db.get(models.Product, p.id)
    assert p.stock == 3
    assert p.sales_count == 2

def test_sized_line_decrements_size_stock(client, db, customer_headers, make_product):
    p = make_product(stock=10, sizes={"42": 3, "43": 1})
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 2, "size": "42"}])
    assert r.status_code == 201, r.text
    db.expire_all()
    sizes = {s.size: s.stock for s in db.get(models.Product, p.id).sizes}
    assert sizes == {"42": 1, "43": 1}
    assert db.get(models.Product, p.id).stock == 8

def test_one_size_ignores_size_rows(client, db, customer_headers, make_product):
    p = make_product(stock=4, sizes={"M": 1})
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 3, "size": "ONE_SIZE"}])
    assert r.status_code == 201, r.text
    db.expire_all()
    p = db.get(models.Product, p.id)
    assert p.stock == 1
    assert p.sizes[0].stock == 1

def test_insufficient_stock_writes_nothing(client, db, customer, customer_headers, make_product):
    p = make_product(name="Yoga Mat", stock=1)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 2}])
    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient stock for Yoga Mat. Available: 1, Requested: 2"
    assert r.json()["code"] == "INSUFFICIENT_STOCK"
    db.expire_all()
    assert db.query(models.Order).count() == 0
    assert db.get(models.Product, p.id).stock == 1

def test_repeated_lines_are_checked_cumulatively(client, db, customer_headers, make_product):
    p = make_product(stock=3)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 2}, {"product_id": p.id, "quantity": 2}])
    assert r.status_code == 400
    assert "Available: 3, Requested: 4" in r.json()["detail"]
    assert db.query(models.Order).count() == 0

def _assert_untouched(db, product_id, stock, size_stock):
    db.expire_all()
    p = db.get(models.Product, product_id)
    assert p.stock == stock
    assert p.sales_count == 0
    assert {s.size: s.stock for s in p.sizes} == size_stock
    assert db.query(models.Order).count() == 0
    assert db.query(models.OrderItem).count() == 0

def test_invalid_size(client, db, customer_headers, make_product):
    p = make_product(name="Trainer", sizes={"42": 2})
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 1, "size": "50"}])
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid size 50 for Trainer"
    _assert_untouched(db, p.id, 5, {"42": 2})

def test_size_stock_is_checked(client, db, customer_headers, make_product):
    p = make_product(name="Trainer", stock=10, sizes={"42": 1})
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 2, "size": "42"}])
    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient stock for size 42 of Trainer. Available: 1, Requested: 2"
    _assert_untouched(db, p.id, 10, {"42": 1})

def test_failure_on_later_line_rolls_back_earlier_lines(client, db, customer_headers, make_product):
    first = make_product(name="First", stock=5)
    second = make_product(name="Second", stock=0)
    r = _order(client, customer_headers, [{"product_id": first.id, "quantity": 1}, {"product_id": second.id, "quantity": 1}])
    assert r.status_code == 400
    db.expire_all()
    assert db.get(models.Product, first.id).stock == 5
    assert db.get(models.Product, first.id).sales_count == 0
    assert db.query(models.OrderItem).count() == 0

@pytest.mark.parametrize("active", [False, None])
def test_unavailable_product(client, customer_headers, make_product, active):
    product_id = make_product(is_active=False).id if active is False else 9999
    r = _order(client, customer_headers, [{"product_id": product_id, "quantity": 1}])
    assert r.status_code == 400
    assert r.json()["detail"] == f"Product {product_id} not found or inactive"

@pytest.mark.parametrize("payload", [
    {"items": [], "address": ADDRESS},
    {"items": [{"product_id": 1, "quantity": 0}], "address": ADDRESS},
    {"items": [{"product_id": 1, "quantity": 101}], "address": ADDRESS},
    {"items": [{"product_id": 1, "quantity": 1}], "address": "short"},
    {"items": [{"product_id": 1, "quantity": 1}], "address": "          x"},
])
def test_payload_validation(client, customer_headers, payload):
    assert client.post("/orders/v1/orders", json=payload, headers=customer_headers).status_code == 422

def test_requires_authentication(client, make_product):
    p = make_product()
    r = client.post("/orders/v1/orders", json={"items": [{"product_id": p.id, "quantity": 1}], "address": ADDRESS})
    assert r.status_code == 401

def test_checkout_clears_cart(client, db, customer, customer_headers, make_product):
    p = make_product(stock=5)
    assert client.post("/cart/v1/cart/items", json={"product_id": p.id, "quantity": 1}, headers=customer_headers).status_code == 201
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 1}])
    assert r.status_code == 201
    assert client.get("/cart/v1/cart", headers=customer_headers).json()["items"] == []

def test_failed_checkout_keeps_cart(client, customer_headers, make_product):
    p = make_product(stock=1)
    client.post("/cart/v1/cart/items", json={"product_id": p.id, "quantity": 1}, headers=customer_headers)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 5}])
    assert r.status_code == 400
    assert len(client.get("/cart/v1/cart", headers=customer_headers).json()["items"]) == 1

def test_same_payload_twice_creates_two_orders(client, db, customer_headers, make_product):
    p = make_product(stock=5)
    items = [{"product_id": p.id, "quantity": 1}]
    a = _order(client, customer_headers, items).json()
    b = _order(client, customer_headers, items).json()
    assert a["id"] != b["id"]
    assert a["order_code"] != b["order_code"]
    db.expire_all()
    assert db.get(models.Product, p.id).stock == 3

def test_cash_on_delivery_order(client, customer_headers, make_product):
    p = make_product()
    r = client.post("/orders/v1/orders/cash-on-delivery",
                    json={"items": [{"product_id": p.id, "quantity": 1}], "address": ADDRESS}, headers=customer_headers)
    assert r.status_code == 201
    assert r.json()["payment_method"] == "CASH_ON_DELIVERY"

def test_expired_deadline_is_a_transaction_fault(client, db, customer_headers, make_product, monkeypatch):
    monkeypatch.setattr(settings, "ORDER_TX_TIMEOUT_SECONDS", -1)
    p = make_product(stock=5)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 1}])
    assert r.status_code == 500
    assert r.json()["code"] == "TRANSACTION_FAILED"
    db.expire_all()
    assert db.query(models.Order).count() == 0
    assert db.get(models.Product, p.id).stock == 5

def test_pool_timeout_is_a_transaction_fault(client, db, customer_headers, make_product, monkeypatch):
    def pool_exhausted(session):
        raise PoolTimeout("QueuePool limit of size 5 overflow 10 reached, connection timed out, timeout 10.00")

    monkeypatch.setattr(order_service, "_apply_statement_timeout", pool_exhausted)
    p = make_product(stock=5)
    r = _order(client, customer_headers, [{"product_id": p.id, "quantity": 1}])
    assert r.status_code == 500
    assert r.json() == {"detail": "Failed to create order", "code": "TRANSACTION_FAILED"}
    _assert_untouched(db, p.id, 5, {})

def test_retries_share_the_deadline(db, customer, make_product, monkeypatch):
    monkeypatch.setattr(settings, "ORDER_TX_TIMEOUT_SECONDS", 5)
    monkeypatch.setattr(order_service.time, "sleep", lambda s: None)
    clock = [1000.0]
    monkeypatch.setattr(order_service.time, "monotonic", lambda: clock[0])
    real_check_stock = order_service.check_stock
    attempts = []

    def slow_conflict_then_ok(session, items):
        attempts.append(1)
        if len(attempts) == 1:
            # the first attempt burns the whole budget before the conflict
            clock[0] += 6
            raise DBAPIError("SELECT ... FOR UPDATE", {}, SerializationFailure())
        return real_check_stock(session, items)

    monkeypatch.setattr(order_service, "check_stock", slow_conflict_then_ok)
    p = make_product(stock=5)
    with pytest.raises(TransactionFault, match="timed out"):
        order_service.place_order(db, customer.id, OrderCreate(items=[{"product_id": p.id, "quantity": 1}], address=ADDRESS))
    assert len(attempts) == 2
    _assert_untouched(db, p.id, 5, {})

def test_order_code_collisions_are_redrawn(db, customer, make_product, make_order, monkeypatch):
    p = make_product(stock=5)
    make_order(customer, p, code="11111111")
    codes = iter(["11111111", "11111111", "22222222"])
    monkeypatch.setattr(order_service, "generate_order_code", lambda: next(codes))
    order = order_service.place_order(db, customer.id, OrderCreate(items=[{"product_id": p.id, "quantity": 1}], address=ADDRESS))
    assert order.order_code == "22222222"

def test_order_code_exhaustion(db, customer, make_product, make_order, monkeypatch):
    p = make_product(stock=5)
    make_order(customer, p, code="11111111")
    monkeypatch.setattr(order_service, "generate_order_code", lambda: "11111111")
    with pytest.raises(TransactionFault):
        order_service.place_order(db, customer.id, OrderCreate(items=[{"product_id": p.id, "quantity": 1}], address=ADDRESS))

def test_generated_codes_are_eight_digits():
    for _ in range(200):
        code = order_service.generate_order_code()
        assert len(code) == 8 and 10_000_000 <= int(code) <= 99_999_999

def test_concurrent_checkouts_for_last_unit(customer, make_product):
    p = make_product(stock=1)
    payload = OrderCreate(items=[{"product_id": p.id, "quantity": 1}], address=ADDRESS)
    barrier = threading.Barrier(2)
    results = []

    def worker():
        s = SessionLocal()
        try:
            barrier.wait()
            results.append(order_service.place_order(s, customer.id, payload).id)
        except InsufficientStock as e:
            results.append(e)
        finally:
            s.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads: t.start()
    for t in threads: t.join(timeout=30)

    assert len(results) == 2
    assert sum(isinstance(r, int) for r in results) == 1
    assert sum(isinstance(r, InsufficientStock) for r in results) == 1
    with SessionLocal() as s:
        assert s.get(models.Product, p.id).stock == 0
        assert s.query(models.Order).count() == 1

def test_order_created_event(client, customer_headers, make_product, monkeypatch):
    sent = []
    monkeypatch.setattr(producer, "send", lambda topic, key, value: sent.append((topic, key, value)) or True)
    p = make_product()
    body = _order(client, customer_headers, [{"product_id": p.id, "quantity": 1}]).json()
    topic, key, value = sent[0]
    assert topic == settings.TOPIC_ORDER_EVENTS
    assert key == str(body["id"])
    assert value["type"] == "order.created"
    assert value["order_code"] == body["order_code"]

def test_broker_failure_does_not_undo_order(client, db, customer_headers, make_product, monkeypatch):
    from kafka.errors import KafkaError

    class BrokenProducer:
        def send(self, *a, **kw): raise KafkaError("broker down")
        def flush(self, *a): pass

    monkeypatch.setattr(settings, "KAFKA_ENABLED", True)
    monkeypatch.setattr(producer, "get_producer", lambda: BrokenProducer())
    p = make_product()
    assert _order(client, customer_headers, [{"product_id": p.id, "quantity": 1}]).status_code == 201
    assert db.query(models.Order).count() == 1

def test_list_orders_stats_pagination_and_sort(client, customer, customer_headers, make_product, make_order):
    p = make_product(price="1000", stock=50)
    make_order(customer, p, quantity=1, code="10000001")
    make_order(customer, p, quantity=3, code="10000002", status=models.OrderStatus.PAID)
    make_order(customer, p, quantity=2, code="10000003", status=models.OrderStatus.PAID)

    body = client.get("/orders/v1/orders", params={"limit": 2, "sort": "total-high"}, headers=customer_headers).json()
    assert body["stats"]["all"] == 3
    assert body["stats"]["PAID"] == 2
    assert body["stats"]["PENDING"] == 1
    assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
    assert [o["order_code"] for o in body["orders"]] == ["10000002", "10000003"]

    paid = client.get("/orders/v1/orders", params={"status": "PAID"}, headers=customer_headers).json()
    assert {o["order_code"] for o in paid["orders"]} == {"10000002", "10000003"}

def test_get_order_is_owner_only(client, customer, make_user, make_product, make_order, auth_for):
    o = make_order(customer, make_product())
    other = make_user(email="other@example.com")
    assert client.get(f"/orders/v1/orders/{o.id}", headers=auth_for(customer)).status_code == 200
    assert client.get(f"/orders/v1/orders/{o.id}", headers=auth_for(other)).status_code == 404

def test_admin_status_transitions(client, customer, customer_headers, admin_headers, make_product, make_order, monkeypatch):
    sent = []
    monkeypatch.setattr(producer, "send", lambda topic, key, value: sent.append(value) or True)
    o = make_order(customer, make_product())
    url = f"/orders/v1/orders/{o.id}/status"

    assert client.patch(url, json={"status": "PAID"}, headers=customer_headers).status_code == 403
    r = client.patch(url, json={"status": "SHIPPED"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATUS_TRANSITION"

    assert client.patch(url, json={"status": "PAID"}, headers=admin_headers).json()["status"] == "PAID"
    assert client.patch(url, json={"status": "SHIPPED"}, headers=admin_headers).json()["status"] == "SHIPPED"
    assert sent[-1] == {"type": "order.status_changed", "order_id": o.id, "order_code": o.order_code,
                        "from": "PAID", "to": "SHIPPED"}
