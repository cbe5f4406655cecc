import logging
import math
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user
from storefront.db.models import User, Product, Wishlist, WishlistItem
from storefront.schemas import WishlistAdd, WishlistItemRead, WishlistList

log = logging.getLogger(__name__)

router = APIRouter()

def _wishlist(db: Session, user_id: int) -> Wishlist:
    wl = db.scalar(select(Wishlist).where(Wishlist.user_id == user_id))
    if wl is None:
        wl = Wishlist(user_id=user_id)
        db.add(wl); db.flush()
    return wl

@router.get("/v1/wishlist", response_model=WishlistList)
def get_wishlist(page: int = Query(default=1, ge=1), limit: int = Query(default=20, ge=1, le=100),
                 user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    base = select(WishlistItem).join(Wishlist).where(Wishlist.user_id == user.id)
    total = db.scalar(select(func.count()).select_from(base.subquery()))
    items = db.scalars(base.order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
                       .offset((page - 1) * limit).limit(limit)).all()
    return {"items": items,
            "pagination": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)}}

@router.post("/v1/wishlist", response_model=WishlistItemRead, status_code=201)
def add_to_wishlist(payload: WishlistAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    product = db.get(Product, payload.product_id)
    if not product or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    wl = _wishlist(db, user.id)
    exists = db.scalar(select(WishlistItem.id).where(
        WishlistItem.wishlist_id == wl.id, WishlistItem.product_id == product.id))
    if exists:
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    item = WishlistItem(wishlist_id=wl.id, product_id=product.id)
    db.add(item); db.commit(); db.refresh(item)
    log.info("wishlist add user_id=%s product_id=%s", user.id, product.id)
    return item

@router.delete("/v1/wishlist/{product_id}")
def remove_from_wishlist(product_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    item = db.scalar(select(WishlistItem).join(Wishlist).where(
        Wishlist.user_id == user.id, WishlistItem.product_id == product_id))
    if not item:
        raise HTTPException(status_code=404, detail="Product not found in wishlist")
    db.delete(item); db.commit()
    return {"message": "Product removed from wishlist"}
