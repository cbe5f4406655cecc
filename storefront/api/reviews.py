import logging, math
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user, require_admin
from storefront.db.models import User, Order, OrderItem, OrderStatus, Product, Review
from storefront.schemas import ReviewCreate, ReviewUpdate, ReviewRead, ReviewList

log = logging.getLogger(__name__)

router = APIRouter()

def _has_purchased(db: Session, user_id: int, product_id: int) -> bool:
    stmt = (
        select(OrderItem.id).join(Order)
        .where(Order.user_id == user_id, OrderItem.product_id == product_id,
               Order.status.in_([OrderStatus.SHIPPED, OrderStatus.COMPLETED]))
        .limit(1)
    )
    return db.scalar(stmt) is not None

def _own_review(db: Session, review_id: int, user: User) -> Review:
    obj = db.query(Review).filter(Review.id == review_id, Review.user_id == user.id).first()
    if not obj: raise HTTPException(status_code=404, detail="Review not found")
    return obj

@router.post("/v1/reviews", response_model=ReviewRead, status_code=201)
def create_review(payload: ReviewCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not db.get(Product, payload.product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    if not _has_purchased(db, user.id, payload.product_id):
        raise HTTPException(status_code=400, detail="Only customers who purchased this product can submit reviews")
    if db.query(Review).filter(Review.user_id == user.id, Review.product_id == payload.product_id).first():
        raise HTTPException(status_code=400, detail="You have already reviewed this product")
    obj = Review(user_id=user.id, product_id=payload.product_id, rating=payload.rating,
                 text=payload.text or "", is_approved=False)
    db.add(obj); db.commit(); db.refresh(obj)
    log.info("review submitted review_id=%s product_id=%s user_id=%s", obj.id, obj.product_id, user.id)
    return obj

@router.get("/v1/products/{product_id}/reviews", response_model=ReviewList)
def list_product_reviews(product_id: int, page: int = Query(default=1, ge=1),
                         limit: int = Query(default=10, ge=1, le=100), db: Session = Depends(get_db)):
    where = [Review.product_id == product_id, Review.is_approved.is_(True)]
    total = db.scalar(select(func.count(Review.id)).where(*where)) or 0
    avg = db.scalar(select(func.avg(Review.rating)).where(*where))
    reviews = db.execute(
        select(Review).where(*where).order_by(Review.created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {
        "reviews": reviews,
        "average_rating": round(float(avg), 2) if avg is not None else None,
        "pagination": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)},
    }

@router.patch("/v1/reviews/{review_id}", response_model=ReviewRead)
def update_review(review_id: int, payload: ReviewUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = _own_review(db, review_id, user)
    for k, v in payload.model_dump(exclude_unset=True, exclude_none=True).items(): setattr(obj, k, v)
    # edited reviews go back to moderation
    obj.is_approved = False
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete("/v1/reviews/{review_id}")
def delete_review(review_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    db.delete(_own_review(db, review_id, user)); db.commit()
    return {"message": "Review deleted successfully"}

@router.post("/v1/reviews/{review_id}/helpful", response_model=ReviewRead)
def mark_helpful(review_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    res = db.execute(update(Review).where(Review.id == review_id)
                     .values(helpful_count=Review.helpful_count + 1).execution_options(synchronize_session=False))
    if res.rowcount != 1:
        raise HTTPException(status_code=404, detail="Review not found")
    db.commit()
    return db.get(Review, review_id)

@router.post("/v1/reviews/{review_id}/approve", response_model=ReviewRead, dependencies=[Depends(require_admin)])
def approve_review(review_id: int, db: Session = Depends(get_db)):
    obj = db.get(Review, review_id)
    if not obj: raise HTTPException(status_code=404, detail="Review not found")
    obj.is_approved = True
    db.add(obj); db.commit(); db.refresh(obj)
    return obj
