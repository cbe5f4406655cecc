import logging
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, delete
from storefront.api.deps import get_db, require_admin
from storefront.db import models
from storefront.schemas import ProductCreate, ProductUpdate, ProductRead
from storefront.services.storage import upload_bytes

log = logging.getLogger(__name__)

router = APIRouter()

def _get_or_404(db: Session, product_id: int) -> models.Product:
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail="Product not found")
    return obj

def _check_category(db: Session, category_id: Optional[int]):
    if category_id is not None and not db.get(models.Category, category_id):
        raise HTTPException(status_code=400, detail="Category not found")

def _sync_variants(current: list, wanted: list, key: str, model):
    # (product_id, key) is unique, so matching rows are updated in place
    by_key = {getattr(v, key): v for v in current}
    keep = set()
    for w in wanted:
        data = w.model_dump()
        row = by_key.get(data[key])
        if row is None:
            current.append(model(**data))
        else:
            for k, v in data.items(): setattr(row, k, v)
        keep.add(data[key])
    for v in [v for v in current if getattr(v, key) not in keep]:
        current.remove(v)

@router.get("/", response_model=List[ProductRead])
def list_products(db: Session = Depends(get_db), q: Optional[str] = None, limit: int = 50, offset: int = 0, category_id: Optional[int] = None, active: Optional[bool] = None):
    stmt = select(models.Product)
    if q:
        q_like = f"%{q.lower()}%"
        stmt = stmt.where(models.Product.name.ilike(q_like))
    if category_id is not None: stmt = stmt.where(models.Product.category_id == category_id)
    if active is not None: stmt = stmt.where(models.Product.is_active == active)
    stmt = stmt.order_by(models.Product.id).offset(offset).limit(limit)
    return db.execute(stmt).scalars().unique().all()

@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, product_id)

@router.post("/", response_model=ProductRead, status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    _check_category(db, payload.category_id)
    data = payload.model_dump(exclude={"sizes", "colors"})
    obj = models.Product(**data)
    obj.sizes = [models.ProductSize(**s.model_dump()) for s in payload.sizes]
    obj.colors = [models.ProductColor(**c.model_dump()) for c in payload.colors]
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch("/{product_id}", response_model=ProductRead, dependencies=[Depends(require_admin)])
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    obj = _get_or_404(db, product_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"sizes", "colors"})
    if "category_id" in changes: _check_category(db, changes["category_id"])
    for k, v in changes.items(): setattr(obj, k, v)
    if payload.sizes is not None:
        _sync_variants(obj.sizes, payload.sizes, "size", models.ProductSize)
    if payload.colors is not None:
        _sync_variants(obj.colors, payload.colors, "color", models.ProductColor)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: int, db: Session = Depends(get_db)):
    obj = _get_or_404(db, product_id)
    ordered = db.scalar(select(models.OrderItem.id).where(models.OrderItem.product_id == product_id).limit(1))
    if ordered is not None:
        # order lines keep pointing at the product
        obj.is_active = False
        db.add(obj); db.commit()
        log.info("product deactivated product_id=%s", product_id)
        return {"message": "Product deactivated", "deleted": False}
    db.execute(delete(models.CartItem).where(models.CartItem.product_id == product_id))
    db.execute(delete(models.WishlistItem).where(models.WishlistItem.product_id == product_id))
    db.delete(obj); db.commit()
    log.info("product deleted product_id=%s", product_id)
    return {"message": "Product deleted", "deleted": True}

@router.post("/{product_id}/images", response_model=ProductRead, dependencies=[Depends(require_admin)])
async def upload_product_image(product_id: int, file: UploadFile = File(...), db: Session = Depends(get_db)):
    obj = _get_or_404(db, product_id)
    content = await file.read(); ext = "." + file.filename.rsplit(".", 1)[-1].lower() if "." in (file.filename or "") else ""
    key, url = upload_bytes(content, file.content_type or "application/octet-stream", ext=ext)
    img = models.ProductImage(product=obj, object_key=key, url=url)
    if not obj.image_url:
        obj.image_url = url
    db.add(img); db.commit(); db.refresh(obj)
    return obj
