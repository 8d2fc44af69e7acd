"""
NyayaSetu - Security Module
Password hashing, session tokens and the FastAPI auth dependencies.

Sessions:
- Login issues a random bearer token; only its SHA-256 is stored
- Tokens arrive as "Authorization: Bearer <token>" or the
  nyayasetu_session cookie
- Expired sessions are treated as absent
"""

import hashlib
import hmac
import logging
import re
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nyayasetu.core.config import Settings, get_settings
from nyayasetu.core.database import get_db
from nyayasetu.core.user_context import UserContext, UserRole
from nyayasetu.core.utc import utc_now, to_utc

logger = logging.getLogger("nyayasetu.security")

SESSION_COOKIE = "nyayasetu_session"
PASSWORD_SCHEME = "pbkdf2_sha256"


# =============================================================================
# Passwords & Tokens
# =============================================================================

def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """Salted PBKDF2-SHA256 in "scheme$iterations$salt$hash" form."""
    iterations = iterations or get_settings().password_iterations
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"{PASSWORD_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if scheme != PASSWORD_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def create_session(db: AsyncSession, user, settings: Optional[Settings] = None) -> str:
    """Persist a session for user and return the raw bearer token."""
    from nyayasetu.models.models import Session as SessionModel

    settings = settings or get_settings()
    token = generate_token()
    now = utc_now()
    db.add(SessionModel(
        token_hash=hash_token(token),
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(hours=settings.session_ttl_hours),
    ))
    user.last_login = now
    await db.flush()
    return token


async def invalidate_session(db: AsyncSession, token: str) -> bool:
    from nyayasetu.models.models import Session as SessionModel

    result = await db.execute(select(SessionModel).where(SessionModel.token_hash == hash_token(token)))
    session = result.scalar_one_or_none()
    if session is None:
        return False
    await db.delete(session)
    return True


# =============================================================================
# Input Sanitization
# =============================================================================

def sanitize_filename(filename: str) -> str:
    """
    Strip directory components, control characters and reserved
    characters from a filename.
    """
    if not filename:
        return ""
    filename = str(filename).replace("\\", "/").split("/")[-1]
    filename = re.sub(r"[\x00-\x1f\x7f]", "", filename)
    filename = re.sub(r'[<>:"|?*]', "", filename)
    if filename in (".", ".."):
        return ""
    return filename[:200]


# =============================================================================
# FastAPI Dependencies
# =============================================================================

security_bearer = HTTPBearer(auto_error=False)


def _token_from_request(
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_token: Optional[str],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return cookie_token


async def get_current_user(
    nyayasetu_session: Optional[str] = Cookie(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    db: AsyncSession = Depends(get_db),
) -> Optional[UserContext]:
    """
    Resolve the session token to a UserContext.
    Returns None for anonymous or expired sessions.
    """
    from nyayasetu.models.models import Session as SessionModel, User

    token = _token_from_request(credentials, nyayasetu_session)
    if not token:
        return None

    result = await db.execute(
        select(SessionModel, User)
        .join(User, SessionModel.user_id == User.id)
        .where(SessionModel.token_hash == hash_token(token))
    )
    row = result.first()
    if row is None:
        return None

    session, user = row
    if to_utc(session.expires_at) <= utc_now():
        logger.info("Expired session for user %s", user.id)
        return None
    if not user.is_active:
        return None

    return UserContext(
        user_id=user.id,
        role=UserRole(user.role),
        full_name=user.full_name,
        email=user.email,
        district=user.district,
        session_id=session.id,
        authenticated_at=to_utc(session.created_at),
    )


async def require_user(
    user: Optional[UserContext] = Depends(get_current_user),
) -> UserContext:
    """Require an authenticated user."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(*roles: UserRole):
    """
    Dependency factory: require specific role(s).

    Usage:
        @router.post("/atrocity", status_code=201)
        async def file(user: UserContext = Depends(require_role(UserRole.VICTIM))):
            ...
    """
    async def check_role(user: UserContext = Depends(require_user)) -> UserContext:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires one of these roles: {[r.value for r in roles]}",
            )
        return user

    return check_role


def require_permission(*permissions: str):
    """
    Dependency factory: require specific permission(s).

    Usage:
        @router.delete("/{document_id}")
        async def delete(user: UserContext = Depends(require_permission("document_delete"))):
            ...
    """
    async def check_permission(user: UserContext = Depends(require_user)) -> UserContext:
        if not user.can(*permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required permissions: {sorted(permissions)}",
            )
        return user

    return check_permission


require_victim = require_role(UserRole.VICTIM)
