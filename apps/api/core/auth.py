"""
Authentication and authorization dependencies.

Provides FastAPI dependencies for:
- Resolving the caller identity (verified user or device)
- Requiring a signed-in user for paid features
- Admin token checks
"""
import hmac
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import ServiceUnavailableError, UnauthorizedError
from core.security import decode_access_token, get_subject_from_token
from services.identity import Identity, resolve_identity

# Use auto_error=False so device-only requests are allowed through
security = HTTPBearer(auto_error=False)

SIGNED_USER_REQUIRED = "Sign up or sign in is required for paid features."


def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_device_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Identity:
    """
    Resolve the caller identity.

    An invalid or expired token is ignored and resolution falls back to the
    device id; with neither, the request is rejected with 401.
    """
    subject = None
    email = None
    if credentials:
        payload = decode_access_token(credentials.credentials)
        if payload:
            subject = get_subject_from_token(payload)
            email = payload.get("email")

    return resolve_identity(db, subject=subject, email=email, device_id_header=x_device_id)


def get_signed_identity(identity: Identity = Depends(get_identity)) -> Identity:
    """Paid features require a real account, not an anonymous device."""
    if not identity.is_signed_in:
        raise UnauthorizedError(SIGNED_USER_REQUIRED)
    return identity


def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> str:
    """
    Admin endpoints are authenticated by a shared token header.

    Returns the audit actor name for the request.
    """
    expected = settings.ADMIN_DASH_TOKEN
    if not expected:
        raise ServiceUnavailableError("Admin token not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedError("Unauthorized")
    return "admin_token"
