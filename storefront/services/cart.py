import logging
from typing import Optional
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from storefront.db.models import Cart, CartItem, Product
from storefront.services.orders import real_size

log = logging.getLogger(__name__)

def _with_items(stmt):
    return stmt.options(
        selectinload(Cart.items).selectinload(CartItem.product).selectinload(Product.sizes),
        selectinload(Cart.items).selectinload(CartItem.product).selectinload(Product.colors),
    ).execution_options(populate_existing=True)

def get_or_create_cart(db: Session, user_id: int) -> Cart:
    cart = db.execute(_with_items(select(Cart).where(Cart.user_id == user_id))).scalar_one_or_none()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.add(cart); db.commit()
        cart = db.execute(_with_items(select(Cart).where(Cart.user_id == user_id))).scalar_one()
    return cart

def check_availability(product: Product, quantity: int, size: Optional[str]):
    """Same stock rules as checkout, without reserving anything."""
    if product.stock < quantity:
        raise HTTPException(status_code=400, detail=f"Insufficient stock. Only {product.stock} items available")
    size = real_size(size)
    if size:
        ps = next((s for s in product.sizes if s.size == size), None)
        if ps is None:
            raise HTTPException(status_code=400, detail=f"Size {size} is not available for this product")
        if ps.stock < quantity:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for size {size}. Only {ps.stock} available")

def check_color(product: Product, color: Optional[str]):
    if color:
        if not any(c.color == color for c in product.colors):
            raise HTTPException(status_code=400, detail=f"Color {color} is not available for this product")
    elif product.colors:
        raise HTTPException(status_code=400, detail="Color selection is required for this product")

def add_item(db: Session, user_id: int, product_id: int, quantity: int, size: Optional[str], color: Optional[str]) -> Cart:
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if not product.is_active:
        raise HTTPException(status_code=400, detail="Product is not available")
    check_availability(product, quantity, size)
    check_color(product, color)

    cart = get_or_create_cart(db, user_id)
    size, color = size or None, color or None
    existing = next((i for i in cart.items
                     if i.product_id == product_id and i.size == size and i.color == color), None)
    if existing:
        new_qty = existing.quantity + quantity
        check_availability(product, new_qty, size)
        existing.quantity = new_qty
        db.add(existing)
    else:
        db.add(CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity, size=size, color=color))
    db.commit()
    log.info("cart item added user_id=%s product_id=%s quantity=%s size=%s color=%s",
             user_id, product_id, quantity, size, color)
    return get_or_create_cart(db, user_id)

def _own_item(cart: Cart, item_id: int) -> CartItem:
    item = next((i for i in cart.items if i.id == item_id), None)
    if item is None:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item

def update_item(db: Session, user_id: int, item_id: int, quantity: int) -> Cart:
    cart = get_or_create_cart(db, user_id)
    item = _own_item(cart, item_id)
    if quantity == 0:
        db.delete(item)
    else:
        check_availability(item.product, quantity, item.size)
        item.quantity = quantity
        db.add(item)
    db.commit()
    return get_or_create_cart(db, user_id)

def remove_item(db: Session, user_id: int, item_id: int) -> Cart:
    cart = get_or_create_cart(db, user_id)
    db.delete(_own_item(cart, item_id))
    db.commit()
    return get_or_create_cart(db, user_id)

def clear(db: Session, user_id: int) -> Cart:
    cart = get_or_create_cart(db, user_id)
    for item in list(cart.items):
        db.delete(item)
    db.commit()
    return get_or_create_cart(db, user_id)
