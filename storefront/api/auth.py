import logging
from fastapi import APIRouter, Depends, HTTPException, status
from jwt import PyJWTError
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_current_user
from storefront.core.ratelimit import rate_limit
from storefront.db.models import User, RefreshToken
from storefront.schemas import RegisterPayload, LoginPayload, TokenPair, RefreshRequest, UserRead
from storefront.security.utils import (
    hash_password,
    verify_password,
    create_access_token,
    create_refresh_token,
    token_sha256,
    now_utc,
    decode_token,
)

log = logging.getLogger(__name__)

router = APIRouter()  # main.py mounts at /auth

auth_limit = Depends(rate_limit("auth", "RATE_LIMIT_AUTH"))

def _issue_pair(db: Session, user: User) -> TokenPair:
    access, _ = create_access_token(user.email, user.role, user.id)
    refresh, jti, exp = create_refresh_token(user.email)
    db.add(RefreshToken(user_id=user.id, jti=jti, token_hash=token_sha256(refresh),
                        expires_at=exp, revoked=False, created_at=now_utc()))
    db.commit()
    return TokenPair(access_token=access, refresh_token=refresh)

def _refresh_claims(token: str) -> dict:
    try:
        claims = decode_token(token)
    except PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if claims.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type")
    if not claims.get("jti") or not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return claims

@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED, dependencies=[auth_limit])
def register(payload: RegisterPayload, db: Session = Depends(get_db)):
    email = str(payload.email).lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role="customer",
    )
    db.add(user); db.commit(); db.refresh(user)
    log.info("user registered user_id=%s", user.id)
    return user

@router.post("/login", response_model=TokenPair, dependencies=[auth_limit])
def login(payload: LoginPayload, db: Session = Depends(get_db)) -> TokenPair:
    user = db.query(User).filter(User.email == str(payload.email).lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        log.warning("failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _issue_pair(db, user)

@router.post("/refresh", response_model=TokenPair)
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)) -> TokenPair:
    claims = _refresh_claims(payload.refresh_token)
    rt = (
        db.query(RefreshToken)
        .join(User)
        .filter(RefreshToken.jti == claims["jti"], User.email == claims["sub"])
        .first()
    )
    if (not rt or rt.revoked or rt.expires_at < now_utc()
            or rt.token_hash != token_sha256(payload.refresh_token)):
        raise HTTPException(status_code=401, detail="Refresh token not valid")

    # rotation: the presented token is spent
    rt.revoked = True
    db.add(rt)
    return _issue_pair(db, rt.user)

@router.post("/logout")
def logout(payload: RefreshRequest, db: Session = Depends(get_db)) -> dict:
    claims = _refresh_claims(payload.refresh_token)
    rt = db.query(RefreshToken).filter(RefreshToken.jti == claims["jti"]).first()
    if rt and not rt.revoked:
        rt.revoked = True
        db.add(rt); db.commit()
    return {"status": "ok"}

@router.get("/me", response_model=UserRead)
def me(user: User = Depends(get_current_user)):
    return user
