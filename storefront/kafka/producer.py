import json, logging
from kafka import KafkaProducer
from kafka.errors import KafkaError
from storefront.core.config import settings

log = logging.getLogger(__name__)

_producer = None

def get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict) -> bool:
    """Publish one event. Events go out after the database commit, so a broker
    failure is logged and reported to the caller but never raised."""
    if not settings.KAFKA_ENABLED:
        return False
    try:
        p = get_producer()
        p.send(topic, key=key, value=value)
        p.flush(5)
    except KafkaError as e:
        log.warning("failed to publish %s to %s: %s", value.get("type"), topic, e)
        return False
    return True

def emit_order_created(order) -> bool:
    return send(settings.TOPIC_ORDER_EVENTS, key=str(order.id), value={
        "type": "order.created",
        "order_id": order.id,
        "order_code": order.order_code,
        "user_id": order.user_id,
        "total": str(order.total),
        "payment_method": order.payment_method.value,
        "items": [
            {"product_id": it.product_id, "quantity": it.quantity, "price": str(it.price), "size": it.size}
            for it in order.items
        ],
    })

def emit_order_status(order, previous: str) -> bool:
    return send(settings.TOPIC_ORDER_EVENTS, key=str(order.id), value={
        "type": "order.status_changed",
        "order_id": order.id,
        "order_code": order.order_code,
        "from": previous,
        "to": order.status.value,
    })

def emit_payment_succeeded(order) -> bool:
    return send(settings.TOPIC_PAYMENT_EVENTS, key=str(order.id), value={
        "type": "payment.succeeded",
        "order_id": order.id,
        "user_id": order.user_id,
        "amount": str(order.total),
        "currency": settings.CURRENCY,
    })
