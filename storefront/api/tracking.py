from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from storefront.api.deps import get_db
from storefront.db.models import Order, OrderItem, OrderStatus
from storefront.services.tracking import tracking_info, shipping_info

router = APIRouter()

@router.get("/orders/v1/tracking/{order_code}")
def track_order(order_code: str, db: Session = Depends(get_db)):
    stmt = (select(Order).where(Order.order_code == order_code)
            .options(selectinload(Order.items).selectinload(OrderItem.product)))
    order = db.execute(stmt).scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return tracking_info(order)

@router.get("/shipping/v1/track/{tracking_number}")
def track_shipment(tracking_number: str, db: Session = Depends(get_db)):
    stmt = (select(Order)
            .where(Order.tracking_number == tracking_number,
                   Order.status.in_([OrderStatus.SHIPPED, OrderStatus.COMPLETED]))
            .options(selectinload(Order.items).selectinload(OrderItem.product), selectinload(Order.user)))
    order = db.execute(stmt).scalars().first()
    if not order:
        raise HTTPException(status_code=404, detail="Tracking number not found")
    return shipping_info(order)
