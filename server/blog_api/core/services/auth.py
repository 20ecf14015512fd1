"""Bearer token helpers. Tokens are issued by the external auth service; this side only verifies them."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from ...config import get_settings
from ..models.auth import TokenPayload, UserRole


def create_access_token(
    user_id: str,
    email: str,
    role: UserRole,
    name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token (local tooling and tests)."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))

    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": expire,
        "type": "access"
    }
    if name:
        payload["name"] = name

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate a JWT token."""
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
        return TokenPayload(
            sub=payload["sub"],
            email=payload["email"],
            role=payload["role"],
            exp=payload["exp"],
            name=payload.get("name"),
        )
    except (JWTError, KeyError, TypeError, ValueError):
        return None
