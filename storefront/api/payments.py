import logging, secrets
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user
from storefront.core.config import settings
from storefront.db.models import User, Order, OrderStatus, PaymentMethod
from storefront.kafka import producer
from storefront.schemas import OrderRef, IntentResponse, OrderRead
from storefront.services import orders as order_service

log = logging.getLogger(__name__)

router = APIRouter()

def _own_order(db: Session, order_id: int, user: User) -> Order:
    obj = db.query(Order).filter(Order.id == order_id, Order.user_id == user.id).first()
    if not obj:
        raise HTTPException(status_code=404, detail="Order not found")
    return obj

@router.post("/v1/payments/create-intent", response_model=IntentResponse)
def create_intent(payload: OrderRef, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # Mock: a real gateway would create the intent remotely
    order = _own_order(db, payload.order_id, user)
    if order.status != OrderStatus.PENDING:
        raise HTTPException(status_code=409, detail="Order is not awaiting payment")
    secret = f"pi_{order.id}_secret_{secrets.token_hex(8)}"
    return IntentResponse(client_secret=secret, amount=order.total, currency=settings.CURRENCY)

@router.post("/v1/payments/mock", response_model=OrderRead)
def mock_payment(payload: OrderRef, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = _own_order(db, payload.order_id, user)
    if order.status == OrderStatus.PAID:
        raise HTTPException(status_code=409, detail="Order is already paid")
    if order.status == OrderStatus.CANCELLED:
        raise HTTPException(status_code=409, detail="Cannot pay for a cancelled order")
    previous = order_service.change_status(db, order, OrderStatus.PAID)
    log.info("mock payment succeeded order_id=%s amount=%s", order.id, order.total)
    producer.emit_payment_succeeded(order)
    producer.emit_order_status(order, previous)
    return order_service.load_order(db, order.id)

@router.post("/v1/payments/cash-on-delivery", response_model=OrderRead)
def cash_on_delivery(payload: OrderRef, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = _own_order(db, payload.order_id, user)
    if order.status != OrderStatus.PENDING:
        raise HTTPException(status_code=409, detail="Only pending orders can switch to cash on delivery")
    order.payment_method = PaymentMethod.CASH_ON_DELIVERY
    db.add(order); db.commit()
    return order_service.load_order(db, order.id)
