import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import update
from sqlalchemy.orm import Session
from storefront.api.deps import get_db, get_current_user
from storefront.db.models import User, Address, RefreshToken
from storefront.schemas import ProfileRead, ProfileUpdate, PasswordChange, AddressIn, AddressUpdate, AddressRead
from storefront.security.utils import hash_password, verify_password

log = logging.getLogger(__name__)

router = APIRouter()

@router.get("/v1/profile", response_model=ProfileRead)
def get_profile(user: User = Depends(get_current_user)):
    return user

@router.patch("/v1/profile", response_model=ProfileRead)
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True)
    for k in ("first_name", "last_name"):
        if k in changes and changes[k] is None: changes[k] = ""
    for k, v in changes.items(): setattr(user, k, v)
    db.add(user); db.commit(); db.refresh(user)
    log.info("profile updated user_id=%s", user.id)
    return user

@router.put("/v1/profile/password")
def change_password(payload: PasswordChange, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = hash_password(payload.new_password)
    # sessions opened with the old password end here
    db.execute(update(RefreshToken).where(RefreshToken.user_id == user.id).values(revoked=True))
    db.add(user); db.commit()
    log.info("password changed user_id=%s", user.id)
    return {"status": "ok"}

# --- address book ---

def _own_address(db: Session, user_id: int, address_id: int) -> Address:
    obj = db.get(Address, address_id)
    if not obj or obj.user_id != user_id:
        raise HTTPException(status_code=404, detail="Address not found")
    return obj

def _clear_default(db: Session, user_id: int, keep_id: int | None = None):
    stmt = update(Address).where(Address.user_id == user_id)
    if keep_id is not None:
        stmt = stmt.where(Address.id != keep_id)
    db.execute(stmt.values(is_default=False))

@router.get("/v1/addresses", response_model=List[AddressRead])
def list_addresses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (db.query(Address).filter(Address.user_id == user.id)
            .order_by(Address.is_default.desc(), Address.id).all())

@router.post("/v1/addresses", response_model=AddressRead, status_code=201)
def create_address(payload: AddressIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if payload.is_default:
        _clear_default(db, user.id)
    obj = Address(user_id=user.id, **payload.model_dump())
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch("/v1/addresses/{address_id}", response_model=AddressRead)
def update_address(address_id: int, payload: AddressUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = _own_address(db, user.id, address_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("is_default"):
        _clear_default(db, user.id, keep_id=obj.id)
    for k, v in changes.items(): setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete("/v1/addresses/{address_id}")
def delete_address(address_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    obj = _own_address(db, user.id, address_id)
    db.delete(obj); db.commit()
    return {"message": "Address deleted"}
