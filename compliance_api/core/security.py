"""
core/security.py
----------------
Password hashing and JWT token utilities.

Design decisions:
  - bcrypt work factor 12 (good balance of security vs latency)
  - JWT payload carries sub (user_id), tenant_id and role. tenant_id must
    match the tenant resolved from the request host, so a token issued on
    one operator's host is useless on another's.
  - Tokens are signed with HS256; swap to RS256 for multi-service setups.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from compliance_api.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


def create_access_token(
    subject: str,
    tenant_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a JWT access token bound to one tenant.

    Args:
        subject: User UUID (stored in 'sub' claim).
        tenant_id: Tenant UUID the user belongs to.
        role: 'admin' | 'staff' | 'customer'
        expires_delta: Optional custom expiry; defaults to settings value.
    """
    issued_at = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "tenant_id": tenant_id,
        "role": role,
        "iat": issued_at,
        "exp": issued_at
        + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
