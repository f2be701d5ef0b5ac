# foresight/routers/auth.py
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from foresight.core.security import (
    create_access,
    create_refresh,
    decode_token,
    get_current_user,
    hash_password,
    verify_password,
)
from foresight.db.session import get_db
from foresight.models.user import User
from foresight.schemas.auth import LoginIn, RefreshIn, SignupIn, TokenPair, UserOut

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _find_user(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(func.lower(User.email) == email.lower())).scalars().first()


def _issue(email: str) -> TokenPair:
    return TokenPair(access_token=create_access(email), refresh_token=create_refresh(email))


@router.post("/login", response_model=TokenPair)
def login(body: LoginIn, db: Session = Depends(get_db)):
    user = _find_user(db, body.email)
    if not user or not user.is_active or not verify_password(body.password, user.password_hash):
        # Same answer for unknown, inactive and wrong-password so accounts cannot be probed
        logger.info("auth.login_failed", known_user=user is not None)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    logger.info("auth.login", user_id=user.id, organization_id=user.organization_id)
    return _issue(user.email)


@router.post("/signup", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
def signup(body: SignupIn, db: Session = Depends(get_db)):
    if _find_user(db, body.email) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    # Organization membership is assigned by an administrator afterwards
    user = User(
        email=body.email,
        name=(body.name or "").strip() or None,
        password_hash=hash_password(body.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("auth.signup", user_id=user.id)
    return _issue(user.email)


@router.post("/refresh", response_model=TokenPair)
def refresh(body: RefreshIn, db: Session = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
        if payload.get("typ") != "refresh":
            raise ValueError("Not a refresh token")
        email = payload.get("sub")
        if not email:
            raise ValueError("Missing subject")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user = _find_user(db, email)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return _issue(user.email)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    out = UserOut.model_validate(user)
    if user.organization is not None:
        out.organization_name = user.organization.name
    return out
