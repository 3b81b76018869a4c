"""
Custom exception classes and error handling.

Provides consistent error responses across the API.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any

# SQLSTATE codes for undefined_table / undefined_column.
MISSING_SCHEMA_PGCODES = {"42P01", "42703"}

MIGRATION_HINT = "Run `alembic upgrade head` against this database."


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error that pydantic cannot express (cross-field rules)."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """Access denied. Quota and entitlement denials carry their message verbatim."""

    def __init__(self, detail: str = "Access denied", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class ServiceUnavailableError(APIException):
    """A required integration (Stripe, OpenAI, admin token) is not configured."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="SERVICE_UNAVAILABLE"
        )


class SchemaOutdatedError(APIException):
    """The database is missing tables/columns a feature needs."""

    def __init__(self, feature: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database not migrated for {feature} yet. {MIGRATION_HINT}",
            error_code="SCHEMA_OUTDATED"
        )


def is_missing_schema_error(exc: BaseException) -> bool:
    """
    Detect "table/column does not exist" errors from the driver.

    psycopg2 exposes the SQLSTATE as `pgcode`; sqlite3 only has the message.
    """
    orig = getattr(exc, "orig", exc)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in MISSING_SCHEMA_PGCODES:
        return True
    message = str(orig).lower()
    return "no such table" in message or "no such column" in message
