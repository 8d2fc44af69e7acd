"""
NyayaSetu - Authentication Router
Account registration, login and session management.

Victims self-register. Officer and admin accounts need the invite code
configured in OFFICER_INVITE_CODE.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nyayasetu.core.config import get_settings
from nyayasetu.core.database import get_db
from nyayasetu.core.errors import ConflictError, PermissionDeniedError
from nyayasetu.core.rate_limit import LOGIN_LIMIT, limiter
from nyayasetu.core.security import (
    SESSION_COOKIE,
    create_session,
    hash_password,
    invalidate_session,
    require_user,
    security_bearer,
    verify_password,
)
from nyayasetu.core.user_context import UserContext, UserRole
from nyayasetu.models.models import User
from nyayasetu.models.schemas import CamelModel, envelope, user_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# =============================================================================
# Request Models
# =============================================================================

class RegisterRequest(CamelModel):
    full_name: str = Field(..., min_length=2, max_length=150)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = None
    role: UserRole = UserRole.VICTIM
    district: Optional[str] = None
    state: Optional[str] = "Maharashtra"
    invite_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v


class LoginRequest(CamelModel):
    email: str
    password: str


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/register", status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    settings = get_settings()

    if body.role != UserRole.VICTIM:
        expected = settings.officer_invite_code
        if not expected or not hmac.compare_digest(body.invite_code or "", expected):
            raise PermissionDeniedError("A valid invite code is required for officer accounts")

    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("An account with this email already exists")

    user = User(
        full_name=body.full_name.strip(),
        email=body.email,
        phone=body.phone,
        password_hash=hash_password(body.password),
        role=body.role.value,
        district=body.district,
        state=body.state,
    )
    db.add(user)
    await db.flush()

    token = await create_session(db, user)
    logger.info("Registered %s account %s", user.role, user.id)
    return envelope({"user": user_to_dict(user), "token": token}, "Registration successful")


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == body.email.strip().lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    settings = get_settings()
    token = await create_session(db, user, settings)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=not settings.debug and settings.backend_url.startswith("https"),
    )
    logger.info("User %s logged in", user.id)
    return envelope({"user": user_to_dict(user), "token": token}, "Login successful")


@router.get("/me")
async def me(user: UserContext = Depends(require_user)):
    return envelope(user.to_dict())


@router.post("/logout")
async def logout(
    response: Response,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if token:
        await invalidate_session(db, token)
    response.delete_cookie(SESSION_COOKIE)
    logger.info("User %s logged out", user.user_id)
    return envelope(message="Logged out")
