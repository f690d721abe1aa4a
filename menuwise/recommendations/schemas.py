"""Response-shape contracts for the generative ranking and guard calls."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Reply(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RankedPick(_Reply):
    id: str | int | None = None
    name: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)
    reason: str | None = Field(default=None, max_length=240)
    estimated_calories: float | None = Field(default=None, alias="estimatedCalories")


class RankedFilteredOut(_Reply):
    name: str
    reason: str = Field(default="", max_length=160)


class RankedPlan(_Reply):
    filtered_out: list[RankedFilteredOut] = Field(..., alias="filteredOut")
    picks: list[RankedPick]
    est_total: float | None = Field(default=None, alias="estTotal")
    estimated_total_calories: float | None = Field(default=None, alias="estimatedTotalCalories")
    notes: str = ""
    relaxed_hard: bool = Field(default=False, alias="relaxedHard")
    calorie_relaxed: bool = False


class ReportedViolation(_Reply):
    name: str
    reason: str = ""
    constraint: str = ""


class GuardReply(_Reply):
    violations: list[ReportedViolation]


class BackfillReply(_Reply):
    picks: list[RankedPick]
