"""
Nutrition Natural-Language Parsing

Converts free-form food text into an approximate calorie/macro estimate that
the client can review before logging it as a food entry.

Design goals:
- Keep the endpoint lightweight and resilient
- Return a best-effort structured estimate (not medical-grade accuracy)
- Fail gracefully so manual entry remains the fallback
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from openai import OpenAI

from core.config import settings

logger = logging.getLogger(__name__)

NOTES_MAX_CHARS = 180


def parser_available() -> bool:
    return bool(settings.OPENAI_API_KEY)


def _coerce_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        v = value.strip()
        if v == "":
            return None
        try:
            return float(v)
        except ValueError:
            return None
    return None


def _extract_json_object(text: str) -> Dict[str, Any]:
    """
    Extract first JSON object from model output.
    We keep this deliberately simple and robust.
    """
    if not text:
        raise ValueError("Empty model response")

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    # Fallback: find first {...} block
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in model response")

    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed


def _get_client() -> OpenAI:
    if not settings.OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY not configured")
    return OpenAI(api_key=settings.OPENAI_API_KEY, timeout=float(settings.EXTERNAL_API_TIMEOUT) * 3)


def parse_nutrition_text(text: str) -> Dict[str, Any]:
    """
    Parse nutrition free text using OpenAI.

    Returns:
      dict with keys: food_name, calories, protein_g, carbs_g, fat_g, raw_extraction
    """
    if not text or not text.strip():
        raise ValueError("text is required")

    client = _get_client()

    system = (
        "You are a nutrition logging helper. "
        "Given a short text describing food/drink, estimate calories and macros. "
        "Return ONLY valid JSON. No markdown, no commentary."
    )

    user = f"""Text: {text}

Return a JSON object with these keys:
{{
  "food_name": string,
  "calories": number|null,
  "protein_g": number|null,
  "carbs_g": number|null,
  "fat_g": number|null,
  "confidence": "low"|"medium"|"high",
  "notes": string
}}

Rules:
- Prefer conservative, reasonable estimates if uncertain.
- If the text is too vague, set numbers to null but still return notes.
- notes should be a short canonicalized list of detected items."""

    try:
        response = client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
            max_tokens=400,
        )
        content = response.choices[0].message.content or ""
    except Exception as e:
        logger.error(f"OpenAI nutrition parse failed: {e}")
        raise RuntimeError("OpenAI request failed") from e

    data = _extract_json_object(content)

    calories = _coerce_float(data.get("calories"))
    notes = data.get("notes")
    if not isinstance(notes, str) or not notes.strip():
        notes = text.strip()
    food_name = data.get("food_name")
    if not isinstance(food_name, str) or not food_name.strip():
        food_name = text.strip()
    confidence = data.get("confidence") if data.get("confidence") in ("low", "medium", "high") else "low"

    return {
        "food_name": food_name.strip()[:120],
        "calories": int(round(calories)) if calories is not None else None,
        "protein_g": _coerce_float(data.get("protein_g")),
        "carbs_g": _coerce_float(data.get("carbs_g")),
        "fat_g": _coerce_float(data.get("fat_g")),
        "raw_extraction": {
            "source": "ai_text",
            "confidence": confidence,
            "estimated": True,
            "notes": notes.strip()[:NOTES_MAX_CHARS],
        },
    }
