from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user
from storefront.db.models import User
from storefront.schemas import CartItemAdd, CartItemUpdate, CartRead
from storefront.services import cart as cart_service

router = APIRouter()

@router.get("/v1/cart", response_model=CartRead)
def get_my_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.get_or_create_cart(db, user.id)

@router.post("/v1/cart/items", response_model=CartRead, status_code=201)
def add_item(payload: CartItemAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.add_item(db, user.id, payload.product_id, payload.quantity, payload.size, payload.color)

@router.patch("/v1/cart/items/{item_id}", response_model=CartRead)
def update_item(item_id: int, payload: CartItemUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.update_item(db, user.id, item_id, payload.quantity)

@router.delete("/v1/cart/items/{item_id}", response_model=CartRead)
def remove_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.remove_item(db, user.id, item_id)

@router.post("/v1/cart/clear", response_model=CartRead)
def clear(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_service.clear(db, user.id)
