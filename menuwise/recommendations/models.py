from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..constraints.models import ConstraintSet, RemovedItem
from ..menu.models import MenuInfo
from ..photos.models import PhotoSelection


class CalorieLimit(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_per_person: int | None = Field(default=None, gt=0)


def normalize_calories(value: Any) -> CalorieLimit:
    """
    Accept a number, a numeric or JSON string, a mapping or a ``CalorieLimit``.

    Anything unusable means "no ceiling".
    """
    if isinstance(value, CalorieLimit):
        return value
    if value is None or isinstance(value, bool):
        return CalorieLimit()

    if isinstance(value, str):
        raw = value.strip()
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return CalorieLimit()
    if isinstance(value, dict):
        value = value.get("max_per_person", value.get("maxPerPerson", value.get("max")))

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if math.isfinite(value) and value > 0:
            return CalorieLimit(max_per_person=round(value))
    return CalorieLimit()


class DishPick(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    quantity: int = Field(default=1, ge=1)
    unit_price: float = Field(..., gt=0)
    estimated_calories: float | None = None
    reason: str | None = None

    @computed_field
    @property
    def subtotal(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class FilteredOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    reason: str


class GuardViolation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    reason: str
    phase: Literal["guard", "final"]


class RecommendationPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    budget: float
    currency: str = "$"
    picks: list[DishPick] = Field(default_factory=list)
    filtered_out: list[FilteredOut] = Field(default_factory=list)
    within_budget: bool
    rationale: str
    guard_violations: list[GuardViolation] = Field(default_factory=list)
    degraded: bool = False
    relaxed_hard: bool = False
    calorie_relaxed: bool = False

    @computed_field
    @property
    def total(self) -> float:
        return round(sum(p.subtotal for p in self.picks), 2)

    @computed_field
    @property
    def estimated_total_calories(self) -> float | None:
        known = [p.quantity * p.estimated_calories for p in self.picks if p.estimated_calories is not None]
        return round(sum(known), 1) if known else None


class CacheStatus(str, Enum):
    exact = "exact"
    menu = "menu"
    miss = "miss"


class RecommendationResult(BaseModel):
    menu_info: MenuInfo | None = None
    recommendation: RecommendationPlan | None = None
    cached: bool = False
    cache_status: CacheStatus | None = None
    selection: PhotoSelection | None = None
    constraints: ConstraintSet = Field(default_factory=ConstraintSet)
    removed_by_filter: list[RemovedItem] = Field(default_factory=list)
    tags_applied: list[str] = Field(default_factory=list)
    calories_applied: CalorieLimit = Field(default_factory=CalorieLimit)
    extraction_degraded: str | None = None


# ── HTTP request / response bodies ─────────────────────────────────────────


class CaloriesIn(BaseModel):
    max_per_person: int | None = Field(default=None, gt=0)


class MenuAnalysisRequest(BaseModel):
    image_base64: str = Field(..., description="Menu photo bytes, base64 encoded")
    mime_type: str = Field(default="image/jpeg")
    budget: float
    tags: list[str] | str | None = None
    calories: CaloriesIn | None = None
    user_note: str = Field(default="", max_length=1000)
    user_id: str | None = None


class PhotoIn(BaseModel):
    id: str = Field(..., min_length=1)
    width_px: int = Field(..., gt=0)
    height_px: int = Field(..., gt=0)
    attribution_text: list[str] = Field(default_factory=list)
    ocr_text: str | None = None
    image_base64: str
    mime_type: str = "image/jpeg"


class PhotoSetAnalysisRequest(BaseModel):
    photos: list[PhotoIn] = Field(default_factory=list)
    photo_id: str | None = None
    budget: float
    tags: list[str] | str | None = None
    calories: CaloriesIn | None = None
    user_note: str = Field(default="", max_length=1000)
    user_id: str | None = None


class RebudgetRequest(BaseModel):
    budget: float
    tags: list[str] | str | None = None
    calories: CaloriesIn | None = None
    user_note: str = Field(default="", max_length=1000)
    user_id: str | None = None
