"""
Identity token utilities.

Identity assertions are HS256 JWTs issued by the upstream auth provider and
signed with IDENTITY_JWT_SECRET. This module only verifies them (and mints
them for internal tooling and tests); it never stores credentials.

SECURITY REQUIREMENTS:
- IDENTITY_JWT_SECRET must be set via environment variable
- IDENTITY_JWT_SECRET must be cryptographically secure (32+ characters)
- IDENTITY_JWT_SECRET must NEVER be committed to source control
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from jose import JWTError, jwt
from core.config import settings

SECRET_KEY = settings.IDENTITY_JWT_SECRET

if len(SECRET_KEY) < 32:
    raise ValueError(
        "IDENTITY_JWT_SECRET must be at least 32 characters. "
        "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

ALGORITHM = settings.IDENTITY_JWT_ALGORITHM


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed identity token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    if settings.IDENTITY_JWT_AUDIENCE and "aud" not in to_encode:
        to_encode["aud"] = settings.IDENTITY_JWT_AUDIENCE
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a token; None when invalid or expired."""
    audience = settings.IDENTITY_JWT_AUDIENCE
    try:
        return jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=audience,
            options={"verify_aud": bool(audience)},
        )
    except JWTError:
        return None


def get_subject_from_token(payload: Dict) -> Optional[str]:
    """Subject claim, accepting the `id`/`user_id` aliases some providers use."""
    for key in ("sub", "user_id", "id"):
        value = payload.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None
