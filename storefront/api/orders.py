from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Literal
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user, require_admin
from storefront.core.ratelimit import rate_limit
from storefront.db.models import User, Order, OrderStatus, PaymentMethod
from storefront.kafka import producer
from storefront.schemas import OrderCreate, OrderRead, OrderList, OrderStatusUpdate, TrackingUpdate
from storefront.services import orders as order_service
from storefront.services.tracking import naive_utc

router = APIRouter()

StatusFilter = Literal["all", "PENDING", "PAID", "SHIPPED", "COMPLETED", "CANCELLED", "RETURNED"]
SortKey = Literal["newest", "oldest", "total-high", "total-low"]

def _checkout(payload: OrderCreate, user: User, db: Session) -> Order:
    order = order_service.place_order(db, user.id, payload)
    producer.emit_order_created(order)
    return order

@router.post("/v1/orders", response_model=OrderRead, status_code=201,
             dependencies=[Depends(rate_limit("orders", "RATE_LIMIT_ORDERS", per_user=True))])
def create_order(payload: OrderCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _checkout(payload, user, db)

@router.post("/v1/orders/cash-on-delivery", response_model=OrderRead, status_code=201,
             dependencies=[Depends(rate_limit("orders", "RATE_LIMIT_ORDERS", per_user=True))])
def create_cash_on_delivery_order(payload: OrderCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payload = payload.model_copy(update={"payment_method": PaymentMethod.CASH_ON_DELIVERY})
    return _checkout(payload, user, db)

@router.get("/v1/orders", response_model=OrderList)
def list_my_orders(
    status: StatusFilter = "all",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort: SortKey = "newest",
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return order_service.list_orders(db, user.id, status=status, page=page, limit=limit, sort=sort)

@router.get("/v1/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = order_service.load_order(db, order_id, user_id=user.id)
    if not obj:
        raise HTTPException(status_code=404, detail="Order not found")
    return obj

@router.patch("/v1/orders/{order_id}/status", response_model=OrderRead)
def update_order_status(order_id: int, payload: OrderStatusUpdate, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    obj = db.get(Order, order_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Order not found")
    previous = order_service.change_status(db, obj, payload.status)
    producer.emit_order_status(obj, previous)
    return order_service.load_order(db, order_id)

@router.put("/v1/orders/{order_id}/tracking", response_model=OrderRead)
def update_tracking(order_id: int, payload: TrackingUpdate, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    obj = db.get(Order, order_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Order not found")
    if obj.status == OrderStatus.CANCELLED:
        raise HTTPException(status_code=409, detail="Cannot set tracking on a cancelled order")
    obj.tracking_number = payload.tracking_number
    obj.shipping_method = payload.shipping_method
    obj.estimated_delivery = naive_utc(payload.estimated_delivery)
    db.add(obj); db.commit()
    return order_service.load_order(db, order_id)
