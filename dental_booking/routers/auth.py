from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from dental_booking.core.security import create_access_token
from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.schemas.auth import LoginRequest, Token
from dental_booking.services.rate_limit import SimpleRateLimiter
from dental_booking.services.users import authenticate, get_user_by_email

router = APIRouter(prefix="/auth", tags=["auth"])

LOGIN_LIMITER = SimpleRateLimiter(max_events=10, window_seconds=60)
LOGIN_IP_LIMITER = SimpleRateLimiter(max_events=20, window_seconds=60)


@router.post("/login", response_model=Token)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    ip_address = request.client.host if request.client else "unknown"
    rate_key = f"{ip_address}:{payload.email.lower().strip()}"
    if not LOGIN_LIMITER.allow(rate_key) or not LOGIN_IP_LIMITER.allow(ip_address):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many login attempts")

    existing = get_user_by_email(db, payload.email)
    if existing and not existing.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    user = authenticate(db, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    token = create_access_token(
        subject=str(user.id),
        secret=settings.secret_key,
        alg=settings.jwt_alg,
        expires_minutes=settings.access_token_expire_minutes,
        extra={"role": user.role.value, "email": user.email},
    )
    return Token(access_token=token, role=user.role)
