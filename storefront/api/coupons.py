import math
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user, require_admin
from storefront.db.models import User, Coupon, UserCoupon
from storefront.schemas import CouponCreate, CouponUpdate, CouponRead, CouponList, CouponValidate, CouponValidation, UserCouponRead
from storefront.security.utils import now_utc
from storefront.services import coupons as coupon_service
from storefront.services.tracking import naive_utc

router = APIRouter()

@router.post("/v1/coupons/validate", response_model=CouponValidation)
def validate_coupon(payload: CouponValidate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return coupon_service.validate(db, user.id, payload.code, payload.cart_total, now_utc())

@router.get("/v1/coupons/mine", response_model=List[UserCouponRead])
def my_coupons(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (db.query(UserCoupon).join(Coupon)
            .filter(UserCoupon.user_id == user.id, UserCoupon.used.is_(False), Coupon.is_active.is_(True))
            .order_by(UserCoupon.id).all())

@router.get("/v1/coupons", response_model=CouponList, dependencies=[Depends(require_admin)])
def list_coupons(page: int = Query(default=1, ge=1), limit: int = Query(default=10, ge=1, le=100),
                 active_only: bool = False, db: Session = Depends(get_db)):
    q = db.query(Coupon)
    if active_only: q = q.filter(Coupon.is_active.is_(True))
    total = q.count()
    coupons = q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"coupons": coupons,
            "pagination": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)}}

@router.post("/v1/coupons", response_model=CouponRead, status_code=201, dependencies=[Depends(require_admin)])
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)):
    if db.query(Coupon).filter(Coupon.code == payload.code).first():
        raise HTTPException(status_code=409, detail="Coupon code already exists")
    data = payload.model_dump()
    data["expires_at"] = naive_utc(data["expires_at"])
    obj = Coupon(**data)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

def _coupon_or_404(db: Session, coupon_id: int) -> Coupon:
    obj = db.get(Coupon, coupon_id)
    if not obj: raise HTTPException(status_code=404, detail="Coupon not found")
    return obj

@router.patch("/v1/coupons/{coupon_id}", response_model=CouponRead, dependencies=[Depends(require_admin)])
def update_coupon(coupon_id: int, payload: CouponUpdate, db: Session = Depends(get_db)):
    obj = _coupon_or_404(db, coupon_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("code") and changes["code"] != obj.code:
        if db.query(Coupon).filter(Coupon.code == changes["code"]).first():
            raise HTTPException(status_code=409, detail="Coupon code already exists")
    if "expires_at" in changes:
        changes["expires_at"] = naive_utc(changes["expires_at"])
    for k, v in changes.items():
        if v is None and k in ("code", "discount_type", "value", "is_active"):
            continue
        setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete("/v1/coupons/{coupon_id}", dependencies=[Depends(require_admin)])
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    obj = _coupon_or_404(db, coupon_id)
    db.query(UserCoupon).filter(UserCoupon.coupon_id == coupon_id).delete(synchronize_session=False)
    db.delete(obj); db.commit()
    return {"message": "Coupon deleted"}
