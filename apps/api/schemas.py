from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import datetime, date
from typing import Optional, List, Literal


def _clip(value: Optional[str], max_len: int) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:max_len]


class RawExtractionMeta(BaseModel):
    """Provenance of an entry; long strings are truncated, not rejected."""
    source: Optional[str] = None
    confidence: Optional[str] = None
    estimated: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("source")
    @classmethod
    def _clip_source(cls, v):
        return _clip(v, 32)

    @field_validator("confidence")
    @classmethod
    def _clip_confidence(cls, v):
        return _clip(v, 16)

    @field_validator("notes")
    @classmethod
    def _clip_notes(cls, v):
        return _clip(v, 180)


class FoodEntryCreate(BaseModel):
    """
    Two input modes:
    - label: calories_per_serving (+ optional macros per serving) x servings_eaten
    - totals: calories (0 < c < 3000) with optional macro totals (0-250 g)
    """
    date: Optional[str] = None  # YYYY-MM-DD civil date; anything else means today
    food_name: Optional[str] = Field(default=None, max_length=120)

    calories_per_serving: Optional[float] = Field(default=None, ge=0)
    servings_eaten: Optional[float] = None
    protein_g_per_serving: Optional[float] = Field(default=None, ge=0)
    carbs_g_per_serving: Optional[float] = Field(default=None, ge=0)
    fat_g_per_serving: Optional[float] = Field(default=None, ge=0)

    calories: Optional[float] = None
    protein_g: Optional[float] = Field(default=None, ge=0, le=250)
    carbs_g: Optional[float] = Field(default=None, ge=0, le=250)
    fat_g: Optional[float] = Field(default=None, ge=0, le=250)

    raw_extraction_meta: Optional[RawExtractionMeta] = None

    @model_validator(mode="after")
    def _check_mode(self):
        if self.calories_per_serving is not None:
            if self.servings_eaten is None or self.servings_eaten <= 0:
                raise ValueError("servings_eaten must be a positive number")
        elif self.calories is not None:
            if not (0 < self.calories < 3000):
                raise ValueError("calories must be between 0 and 3000")
        else:
            raise ValueError(
                "Provide calories_per_serving+servings_eaten (label) OR calories totals (estimate)."
            )
        return self

    @property
    def is_label(self) -> bool:
        return self.calories_per_serving is not None


class FoodEntryResponse(BaseModel):
    id: int
    entry_date: date
    taken_at: datetime
    food_name: Optional[str] = None
    calories: int
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fat_g: Optional[float] = None
    raw_extraction: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


class FoodDayResponse(BaseModel):
    entry_date: date
    entries: List[FoodEntryResponse]
    total_calories: int


class CalorieGoalUpdate(BaseModel):
    daily_calories: float = Field(..., ge=0, le=20000)


class GoalResponse(BaseModel):
    entry_date: date
    daily_calories: Optional[int]
    rollover_enabled: bool
    rollover_cap: int
    rollover_delta: int
    effective_daily_calories: Optional[int]


class NutritionSettings(BaseModel):
    rollover_enabled: bool
    rollover_cap: int


class NutritionSettingsUpdate(BaseModel):
    rollover_enabled: Optional[bool] = None
    rollover_cap: Optional[float] = None


class WeightUpsert(BaseModel):
    entry_date: Optional[date] = None
    weight_lbs: float = Field(..., gt=0, le=1500)
    body_fat_percent: Optional[float] = Field(default=None, gt=0, lt=100)


class WeightResponse(BaseModel):
    entry_date: date
    weight_lbs: float
    body_fat_percent: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileGoalsUpdate(BaseModel):
    goal_weight_lbs: Optional[float] = Field(default=None, gt=0, le=1500)
    goal_date: Optional[date] = None
    goal_body_fat_percent: Optional[float] = Field(default=None, gt=0, lt=100)
    goal_body_fat_date: Optional[date] = None
    current_body_fat_percent: Optional[float] = Field(default=None, gt=0, lt=100)
    current_body_fat_weight_lbs: Optional[float] = Field(default=None, gt=0, le=1500)


class ProfileGoalsResponse(BaseModel):
    goal_weight_lbs: Optional[float] = None
    goal_date: Optional[date] = None
    goal_body_fat_percent: Optional[float] = None
    goal_body_fat_date: Optional[date] = None
    current_body_fat_percent: Optional[float] = None
    current_body_fat_weight_lbs: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class AutopilotSettingsUpdate(BaseModel):
    autopilot_enabled: Optional[bool] = None
    autopilot_mode: Optional[Literal["weight", "bodyfat"]] = None


class AutopilotReviewRequest(BaseModel):
    accept: bool


class NutritionParseRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


class PremiumPassGrant(BaseModel):
    identifier: str = Field(..., min_length=1, description="user_id or email")
    active: bool = True
    expires_at: Optional[datetime] = None
    note: Optional[str] = None


class PlanSettingsUpdate(BaseModel):
    free_food_entries_per_day: Optional[int] = Field(default=None, ge=1)
    free_ai_actions_per_day: Optional[int] = Field(default=None, ge=1)
    free_history_days: Optional[int] = Field(default=None, ge=1)
    monthly_price_usd: Optional[int] = Field(default=None, ge=1)
    yearly_price_usd: Optional[int] = Field(default=None, ge=1)
    monthly_upgrade_url: Optional[str] = None
    yearly_upgrade_url: Optional[str] = None
    manage_subscription_url: Optional[str] = None


class RetentionRunRequest(BaseModel):
    keep_days: Optional[int] = Field(default=None, ge=1, le=3650)
    max_db_size_gb: Optional[float] = Field(default=None, gt=0)
    trim_batch_size: Optional[int] = Field(default=None, ge=1, le=100000)
    trim_pass_limit: Optional[int] = Field(default=None, ge=1, le=1000)


class CheckoutRequest(BaseModel):
    interval: Optional[str] = "monthly"  # monthly | yearly


class DeviceResponse(BaseModel):
    device_id: str
    created_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    is_current: bool


class DeviceListResponse(BaseModel):
    current_device_id: Optional[str] = None
    devices: List[DeviceResponse]
