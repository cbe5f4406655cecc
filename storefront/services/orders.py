"""Checkout: turning requested line items into a committed order.

Everything in ``place_order`` happens inside one database transaction. Product
rows are locked up front (in id order, so concurrent checkouts cannot
deadlock on each other), and every stock decrement is a guarded
``UPDATE ... WHERE stock >= :qty`` so an order can never drive stock
negative even on engines that ignore ``FOR UPDATE``.
"""
import logging, math, secrets, time
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from functools import wraps
from typing import Optional

from sqlalchemy import select, update, delete, func, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from storefront.core.config import settings
from storefront.core.errors import (
    OrderError, ProductUnavailable, InvalidSize, InsufficientStock, InvalidTransition, TransactionFault,
)
from storefront.db.models import (
    Cart, CartItem, Order, OrderItem, OrderStatus, Product, ProductSize, ONE_SIZE,
)
from storefront.services.pricing import raw_unit_price, to_money

log = logging.getLogger(__name__)

# PostgreSQL serialization failure / deadlock
RETRYABLE_SQLSTATES = {"40001", "40P01"}

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED, OrderStatus.RETURNED},
    OrderStatus.COMPLETED: {OrderStatus.RETURNED},
}

SORTS = {
    "newest": Order.created_at.desc(),
    "oldest": Order.created_at.asc(),
    "total-high": Order.total.desc(),
    "total-low": Order.total.asc(),
}

@dataclass
class PricedLine:
    product_id: int
    product_name: str
    quantity: int
    size: Optional[str]
    color: Optional[str]
    price: Decimal

def generate_order_code() -> str:
    return str(10_000_000 + secrets.randbelow(90_000_000))

def real_size(size: Optional[str]) -> Optional[str]:
    """The size to check against ProductSize rows, or None for ONE_SIZE/no size."""
    if not size or size == ONE_SIZE:
        return None
    return size

def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)

def is_retryable(exc: Exception) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    msg = str(exc).lower()
    return "deadlock detected" in msg or "could not serialize access" in msg

def retry_on_conflict(backoff: float = 0.05):
    """Re-run a transactional function when the engine reports a serialization
    conflict or deadlock. The wrapped function must roll back on failure."""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except DBAPIError as e:
                    if attempt >= settings.ORDER_TX_RETRIES or not is_retryable(e):
                        raise
                    log.warning("transaction conflict, retrying (attempt %d): %s", attempt, e.orig)
                    time.sleep(backoff * attempt)
        return wrapper
    return deco

def _apply_statement_timeout(db: Session):
    if db.get_bind().dialect.name == "postgresql":
        ms = int(settings.ORDER_TX_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL statement_timeout = {ms}"))

def _check_deadline(deadline: float):
    if time.monotonic() >= deadline:
        raise TransactionFault("Order transaction timed out")

def check_stock(db: Session, items) -> tuple[list[PricedLine], Decimal]:
    """Lock the referenced products, validate availability and price every line.

    Lines naming the same product (or the same product and size) are checked
    against their combined quantity.
    """
    ids = sorted({it.product_id for it in items})
    stmt = (
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .options(selectinload(Product.sizes))
        .with_for_update(of=Product)
        .execution_options(populate_existing=True)
    )
    products = {p.id: p for p in db.execute(stmt).scalars().all()}

    wanted = defaultdict(int)
    wanted_size = defaultdict(int)
    lines: list[PricedLine] = []
    total = Decimal(0)
    for it in items:
        p = products.get(it.product_id)
        if p is None or not p.is_active:
            raise ProductUnavailable(it.product_id)

        wanted[p.id] += it.quantity
        if p.stock < wanted[p.id]:
            raise InsufficientStock(p.name, p.stock, wanted[p.id])

        size = real_size(it.size)
        if size:
            ps = next((s for s in p.sizes if s.size == size), None)
            if ps is None:
                raise InvalidSize(size, p.name)
            wanted_size[(p.id, size)] += it.quantity
            if ps.stock < wanted_size[(p.id, size)]:
                raise InsufficientStock(p.name, ps.stock, wanted_size[(p.id, size)], size=size)

        unit = raw_unit_price(p.price, p.discount_percent)
        total += unit * it.quantity
        lines.append(PricedLine(
            product_id=p.id, product_name=p.name, quantity=it.quantity,
            size=it.size or None, color=it.color or None, price=to_money(unit),
        ))
    return lines, to_money(total)

def _unique_order_code(db: Session) -> str:
    for _ in range(settings.ORDER_CODE_MAX_ATTEMPTS):
        code = generate_order_code()
        if db.scalar(select(Order.id).where(Order.order_code == code)) is None:
            return code
    raise TransactionFault("Could not allocate a unique order code")

def _decrement_stock(db: Session, line: PricedLine):
    res = db.execute(
        update(Product)
        .where(Product.id == line.product_id, Product.stock >= line.quantity)
        .values(stock=Product.stock - line.quantity, sales_count=Product.sales_count + line.quantity)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        available = db.scalar(select(Product.stock).where(Product.id == line.product_id)) or 0
        raise InsufficientStock(line.product_name, available, line.quantity)

    size = real_size(line.size)
    if size:
        res = db.execute(
            update(ProductSize)
            .where(ProductSize.product_id == line.product_id, ProductSize.size == size,
                   ProductSize.stock >= line.quantity)
            .values(stock=ProductSize.stock - line.quantity)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            available = db.scalar(select(ProductSize.stock).where(
                ProductSize.product_id == line.product_id, ProductSize.size == size)) or 0
            raise InsufficientStock(line.product_name, available, line.quantity, size=size)

def clear_cart(db: Session, user_id: int):
    cart_id = db.scalar(select(Cart.id).where(Cart.user_id == user_id))
    if cart_id is not None:
        db.execute(delete(CartItem).where(CartItem.cart_id == cart_id).execution_options(synchronize_session=False))

@retry_on_conflict()
def _place_order_tx(db: Session, user_id: int, payload, deadline: float) -> int:
    try:
        _apply_statement_timeout(db)
        lines, total = check_stock(db, payload.items)

        order = Order(
            order_code=_unique_order_code(db),
            user_id=user_id,
            total=total,
            address=payload.address,
            status=OrderStatus.PENDING,
            payment_method=payload.payment_method,
        )
        db.add(order)
        db.flush()

        db.add_all([
            OrderItem(order_id=order.id, product_id=l.product_id, quantity=l.quantity,
                      price=l.price, size=l.size, color=l.color)
            for l in lines
        ])
        for l in lines:
            _decrement_stock(db, l)
        clear_cart(db, user_id)

        _check_deadline(deadline)
        order_id = order.id
        db.commit()
    except Exception:
        db.rollback()
        raise
    return order_id

def place_order(db: Session, user_id: int, payload) -> Order:
    """Create an order from ``payload`` (an ``OrderCreate``) for ``user_id``.

    Raises an ``OrderError`` subclass when the order cannot be satisfied and
    ``TransactionFault`` on timeouts or storage failures. In both cases no
    order, stock change or cart change is persisted.
    """
    # retries share one time budget
    deadline = time.monotonic() + settings.ORDER_TX_TIMEOUT_SECONDS
    try:
        order_id = _place_order_tx(db, user_id, payload, deadline)
    except OrderError as e:
        log.warning("order rejected user_id=%s: %s", user_id, e.message)
        raise
    except TransactionFault as e:
        log.error("order transaction aborted user_id=%s: %s", user_id, e.message)
        raise
    except SQLAlchemyError as e:
        log.exception("order transaction failed user_id=%s", user_id)
        raise TransactionFault("Failed to create order") from e

    order = load_order(db, order_id)
    log.info("order created order_id=%s code=%s user_id=%s total=%s items=%d payment_method=%s",
             order.id, order.order_code, user_id, order.total, len(payload.items), order.payment_method.value)
    return order

def _with_details(stmt):
    return stmt.options(
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.sizes),
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.colors),
    ).execution_options(populate_existing=True)

def load_order(db: Session, order_id: int, user_id: Optional[int] = None) -> Optional[Order]:
    stmt = select(Order).where(Order.id == order_id)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    return db.execute(_with_details(stmt)).scalar_one_or_none()

def list_orders(db: Session, user_id: int, status: str = "all", page: int = 1, limit: int = 10, sort: str = "newest") -> dict:
    where = [Order.user_id == user_id]
    if status and status.lower() != "all":
        where.append(Order.status == OrderStatus(status.upper()))

    total = db.scalar(select(func.count(Order.id)).where(*where)) or 0
    stmt = (
        select(Order).where(*where)
        .order_by(SORTS.get(sort, SORTS["newest"]), Order.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )
    orders = db.execute(_with_details(stmt)).scalars().all()

    counts = dict(db.execute(
        select(Order.status, func.count(Order.id)).where(Order.user_id == user_id).group_by(Order.status)
    ).all())
    stats = {"all": total}
    for s in OrderStatus:
        stats[s.value] = counts.get(s, 0)

    return {
        "orders": orders,
        "stats": stats,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }

def change_status(db: Session, order: Order, new_status: OrderStatus) -> str:
    """Move ``order`` to ``new_status``; returns the previous status."""
    previous = order.status
    if new_status not in ALLOWED_TRANSITIONS.get(previous, set()):
        raise InvalidTransition(previous, new_status)
    order.status = new_status
    db.add(order)
    db.commit()
    return previous.value

