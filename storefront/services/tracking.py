from datetime import datetime, timedelta, timezone
from typing import Optional
from storefront.db.models import Order, OrderStatus

STATUS_DETAILS = {
    OrderStatus.PENDING: {"status": "Pending", "description": "Order is awaiting payment", "progress": 25},
    OrderStatus.PAID: {"status": "Paid", "description": "Order is paid and being prepared", "progress": 50},
    OrderStatus.SHIPPED: {"status": "Shipped", "description": "Order has been shipped", "progress": 75},
    OrderStatus.COMPLETED: {"status": "Completed", "description": "Order has been delivered", "progress": 100},
    OrderStatus.CANCELLED: {"status": "Cancelled", "description": "Order was cancelled", "progress": 0},
    OrderStatus.RETURNED: {"status": "Returned", "description": "Order was returned", "progress": 0},
}

def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def status_details(order: Order) -> dict:
    return STATUS_DETAILS.get(order.status, {"status": order.status.value, "description": "Unknown status", "progress": 0})

def order_timeline(order: Order) -> list[dict]:
    placed = order.created_at
    timeline = [{"event": "Order placed", "date": placed, "completed": True,
                 "description": "Your order was placed successfully"}]

    if order.status != OrderStatus.PENDING:
        timeline.append({"event": "Payment confirmed", "date": placed + timedelta(minutes=10), "completed": True,
                         "description": "Your payment was confirmed"})

    if order.status in (OrderStatus.SHIPPED, OrderStatus.COMPLETED):
        desc = f"Shipped with tracking number {order.tracking_number}" if order.tracking_number else "Order shipped"
        timeline.append({"event": "Order shipped", "date": placed + timedelta(days=1), "completed": True,
                         "description": desc})

    if order.status == OrderStatus.COMPLETED:
        timeline.append({"event": "Order delivered", "date": order.estimated_delivery or placed + timedelta(days=3),
                         "completed": True, "description": "Order was delivered"})

    if order.estimated_delivery and order.status == OrderStatus.SHIPPED:
        timeline.append({"event": "Estimated delivery", "date": order.estimated_delivery, "completed": False,
                         "description": "Estimated delivery date"})

    return timeline

def tracking_info(order: Order) -> dict:
    return {
        "id": order.id,
        "order_code": order.order_code,
        "status": order.status.value,
        "total": order.total,
        "created_at": order.created_at,
        "estimated_delivery": order.estimated_delivery,
        "tracking_number": order.tracking_number,
        "shipping_method": order.shipping_method,
        "items": [
            {"product": {"id": it.product.id, "name": it.product.name, "image_url": it.product.image_url},
             "quantity": it.quantity, "size": it.size, "color": it.color}
            for it in order.items
        ],
        "status_details": status_details(order),
        "timeline": order_timeline(order),
    }

_CARRIER_STEPS = ("Order placed", "Prepared", "Handed to carrier", "Delivered to customer")
_CARRIER_OFFSETS = (0, 1, 2, 4)

def _carrier_timeline(placed: datetime, done: int) -> list[dict]:
    return [
        {"event": ev, "date": placed + timedelta(days=off), "completed": i < done}
        for i, (ev, off) in enumerate(zip(_CARRIER_STEPS, _CARRIER_OFFSETS))
    ]

def simulate_carrier_status(order: Order, now: Optional[datetime] = None) -> dict:
    """Carrier progress derived from the order age; there is no carrier integration."""
    now = now or datetime.utcnow()
    days = (now - order.created_at).days
    if order.status == OrderStatus.COMPLETED:
        status, desc, progress, done = "DELIVERED", "Parcel was delivered to the customer", 100, 4
    elif days >= 4:
        status, desc, progress, done = "OUT_FOR_DELIVERY", "Parcel is out for delivery", 75, 3
    elif days >= 2:
        status, desc, progress, done = "IN_TRANSIT", "Parcel is at the distribution center", 50, 3
    else:
        status, desc, progress, done = "PROCESSING", "Parcel is being prepared", 25, 1
    return {"status": status, "description": desc, "progress": progress,
            "timeline": _carrier_timeline(order.created_at, done)}

def shipping_info(order: Order, now: Optional[datetime] = None) -> dict:
    sim = simulate_carrier_status(order, now)
    user = order.user
    return {
        "tracking_number": order.tracking_number,
        "order_code": order.order_code,
        "recipient": f"{user.first_name} {user.last_name}".strip(),
        "address": order.address,
        **sim,
        "items": [{"name": it.product.name, "image_url": it.product.image_url, "quantity": it.quantity}
                  for it in order.items],
        "estimated_delivery": order.estimated_delivery,
        "shipped_at": order.updated_at if order.status == OrderStatus.SHIPPED else None,
        "delivered_at": order.updated_at if order.status == OrderStatus.COMPLETED else None,
    }
