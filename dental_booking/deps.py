from datetime import datetime

from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.security import decode_access_token
from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.models.user import User
from dental_booking.services.actor import Actor
from dental_booking.services.audit import AuditContext
from dental_booking.services.captcha import CaptchaStore
from dental_booking.services.clock import clinic_now
from dental_booking.services.users import resolve_actor

captcha_store = CaptchaStore(ttl_seconds=settings.captcha_ttl_seconds)


def get_current_user(
    db: Session = Depends(get_db), authorization: str | None = Header(default=None)
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_access_token(token, secret=settings.secret_key, alg=settings.jwt_alg)
        sub = payload.get("sub")
        if not sub:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        user_id = int(sub)
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def get_actor(db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> Actor:
    return resolve_actor(db, user)


def get_now() -> datetime:
    return clinic_now()


def get_captcha_store() -> CaptchaStore:
    return captcha_store


def get_audit_context(
    request: Request, request_id: str | None = Header(default=None, alias="x-request-id")
) -> AuditContext:
    return AuditContext(
        request_id=request_id,
        ip_address=request.client.host if request.client else None,
    )
