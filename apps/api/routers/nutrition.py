"""
Nutrition Parsing API Endpoints

Natural-language food text -> calorie/macro estimate. Each parse is an AI
action and counts against the daily AI quota when it is attempted.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.auth import get_signed_identity
from core.clock import civil_today
from core.database import get_db
from core.exceptions import ForbiddenError
from schemas import NutritionParseRequest
from services import nutrition_parser
from services.identity import Identity
from services.usage_limits import enforce_ai_action_limit

router = APIRouter(prefix="/v1/nutrition", tags=["nutrition"])

PARSE_ACTION = "nutrition_parse"


@router.get("/parse/available")
def nutrition_parse_available():
    """
    Capability check for NL nutrition parsing.

    No auth required: UI uses this to decide whether to render the NL input.
    """
    return {"available": nutrition_parser.parser_available()}


@router.post("/parse")
def parse_nutrition(
    payload: NutritionParseRequest,
    identity: Identity = Depends(get_signed_identity),
    db: Session = Depends(get_db),
):
    """
    Parse natural-language nutrition text into an entry draft.

    Nothing is logged; the client posts the (possibly edited) draft to /v1/entries.
    """
    text = payload.text.strip()
    if not text:
        raise HTTPException(status_code=422, detail="text is required")

    gate = enforce_ai_action_limit(db, identity.user_id, civil_today(), PARSE_ACTION)
    if not gate.ok:
        raise ForbiddenError(gate.message, error_code=gate.reason)
    # Quota is consumed even if the provider call below fails.
    db.commit()

    try:
        parsed = nutrition_parser.parse_nutrition_text(text)
    except (RuntimeError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Nutrition parsing unavailable: {str(e)}",
        )
    return {"draft": parsed}
