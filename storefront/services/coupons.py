import logging
from decimal import Decimal
from fastapi import HTTPException
from sqlalchemy.orm import Session
from storefront.db.models import Coupon, UserCoupon, DiscountType
from storefront.services.pricing import to_money

log = logging.getLogger(__name__)

def discount_for(coupon: Coupon, cart_total: Decimal) -> Decimal:
    """Discount ``coupon`` grants on ``cart_total``, never more than the total."""
    if coupon.discount_type == DiscountType.PERCENTAGE:
        amount = cart_total * coupon.value / 100
        if coupon.max_discount is not None and amount > coupon.max_discount:
            amount = coupon.max_discount
    else:
        amount = coupon.value
    return to_money(min(amount, cart_total))

def validate(db: Session, user_id: int, code: str, cart_total: Decimal, now) -> dict:
    coupon = db.query(Coupon).filter(Coupon.code == code).first()
    if not coupon:
        raise HTTPException(status_code=400, detail="Invalid coupon code")
    if not coupon.is_active:
        raise HTTPException(status_code=400, detail="Coupon is not active")
    if coupon.expires_at and now > coupon.expires_at:
        raise HTTPException(status_code=400, detail="Coupon has expired")
    if coupon.min_order is not None and cart_total < coupon.min_order:
        raise HTTPException(status_code=400, detail=f"Minimum order amount for this coupon is {coupon.min_order}")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise HTTPException(status_code=400, detail="Coupon usage limit reached")
    used = db.query(UserCoupon).filter(UserCoupon.user_id == user_id, UserCoupon.coupon_id == coupon.id,
                                       UserCoupon.used.is_(True)).first()
    if used:
        raise HTTPException(status_code=400, detail="You have already used this coupon")

    discount = discount_for(coupon, cart_total)
    log.info("coupon validated code=%s user_id=%s discount=%s", code, user_id, discount)
    return {
        "coupon": coupon,
        "discount_amount": discount,
        "final_amount": to_money(cart_total - discount),
        "original_amount": to_money(cart_total),
    }
