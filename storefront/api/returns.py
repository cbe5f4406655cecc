import logging, math
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload
from storefront.api.deps import get_db, get_current_user, require_admin
from storefront.db.models import User, Order, OrderStatus, ReturnRequest, ReturnItem, ReturnStatus
from storefront.schemas import ReturnCreate, ReturnRead, ReturnList, ReturnStatusUpdate

log = logging.getLogger(__name__)

router = APIRouter()

def _page(db: Session, where: list, page: int, limit: int) -> dict:
    total = db.scalar(select(func.count(ReturnRequest.id)).where(*where)) or 0
    rows = db.execute(
        select(ReturnRequest).where(*where).options(selectinload(ReturnRequest.items))
        .order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc())
        .offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {"returns": rows,
            "pagination": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)}}

def _get_or_404(db: Session, return_id: int) -> ReturnRequest:
    obj = db.get(ReturnRequest, return_id)
    if not obj: raise HTTPException(status_code=404, detail="Return request not found")
    return obj

@router.post("/v1/returns", response_model=ReturnRead, status_code=201)
def create_return(payload: ReturnCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = (db.query(Order).options(selectinload(Order.items))
             .filter(Order.id == payload.order_id, Order.user_id == user.id).first())
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.status not in (OrderStatus.SHIPPED, OrderStatus.COMPLETED):
        raise HTTPException(status_code=400, detail="Only shipped or completed orders can be returned")
    open_request = (db.query(ReturnRequest)
                    .filter(ReturnRequest.order_id == order.id,
                            ReturnRequest.status.in_([ReturnStatus.PENDING, ReturnStatus.APPROVED])).first())
    if open_request:
        raise HTTPException(status_code=400, detail="A return request for this order is already in progress")

    purchased = {it.id: it for it in order.items}
    for it in payload.items:
        line = purchased.get(it.order_item_id)
        if line is None:
            raise HTTPException(status_code=400, detail=f"Order item {it.order_item_id} does not belong to this order")
        if it.quantity > line.quantity:
            raise HTTPException(status_code=400, detail=f"Return quantity for item {it.order_item_id} exceeds purchased quantity")

    obj = ReturnRequest(order_id=order.id, user_id=user.id, reason=payload.reason, status=ReturnStatus.PENDING)
    obj.items = [ReturnItem(**it.model_dump()) for it in payload.items]
    db.add(obj); db.commit(); db.refresh(obj)
    log.info("return requested return_id=%s order_id=%s user_id=%s", obj.id, order.id, user.id)
    return obj

@router.get("/v1/returns", response_model=ReturnList)
def list_my_returns(status: Optional[ReturnStatus] = None, page: int = Query(default=1, ge=1),
                    limit: int = Query(default=10, ge=1, le=100),
                    user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    where = [ReturnRequest.user_id == user.id]
    if status: where.append(ReturnRequest.status == status)
    return _page(db, where, page, limit)

@router.get("/v1/admin/returns", response_model=ReturnList, dependencies=[Depends(require_admin)])
def list_all_returns(status: Optional[ReturnStatus] = None, page: int = Query(default=1, ge=1),
                     limit: int = Query(default=20, ge=1, le=100), db: Session = Depends(get_db)):
    where = [ReturnRequest.status == status] if status else []
    return _page(db, where, page, limit)

@router.get("/v1/returns/{return_id}", response_model=ReturnRead)
def get_return(return_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = _get_or_404(db, return_id)
    if obj.user_id != user.id and user.role != "admin":
        raise HTTPException(status_code=403, detail="Access denied")
    return obj

@router.patch("/v1/returns/{return_id}/status", response_model=ReturnRead, dependencies=[Depends(require_admin)])
def update_return_status(return_id: int, payload: ReturnStatusUpdate, db: Session = Depends(get_db)):
    obj = _get_or_404(db, return_id)
    obj.status = ReturnStatus(payload.status)
    if payload.admin_notes is not None: obj.admin_notes = payload.admin_notes
    if payload.refund_amount is not None: obj.refund_amount = payload.refund_amount
    db.add(obj); db.commit(); db.refresh(obj)
    log.info("return status updated return_id=%s status=%s", obj.id, obj.status.value)
    return obj

@router.put("/v1/returns/{return_id}/cancel", response_model=ReturnRead)
def cancel_return(return_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = _get_or_404(db, return_id)
    if obj.user_id != user.id:
        raise HTTPException(status_code=404, detail="Return request not found")
    if obj.status != ReturnStatus.PENDING:
        raise HTTPException(status_code=400, detail="Only pending return requests can be cancelled")
    obj.status = ReturnStatus.CANCELLED
    db.add(obj); db.commit(); db.refresh(obj)
    return obj
