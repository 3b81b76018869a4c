"""
Data Export API Endpoints

Premium-only download of the caller's own data.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.clock import utc_now
from core.database import get_db
from core.exceptions import ForbiddenError
from services.data_export import ExportFormat, build_user_export, entries_to_csv
from services.entitlements import get_entitlements
from services.identity import Identity


router = APIRouter(prefix="/v1", tags=["Data Export"])

EXPORT_PREMIUM_ONLY = "Data export is available on Premium only."


@router.get("/export")
def export_my_data(
    format: ExportFormat = Query(default=ExportFormat.JSON),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    ent = get_entitlements(db, identity.user_id)
    if not ent.limits.can_export:
        raise ForbiddenError(EXPORT_PREMIUM_ONLY, error_code="export_premium_only")

    if format == ExportFormat.CSV:
        return Response(
            content=entries_to_csv(db, identity.user_id),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="food_entries.csv"'},
        )
    return build_user_export(db, identity.user_id, now=utc_now())
