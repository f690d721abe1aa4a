from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OcrSignal(BaseModel):
    price_hits: int = Field(default=0, ge=0)
    menu_keywords: list[str] = Field(default_factory=list)


class PhotoCandidate(BaseModel):
    id: str = Field(..., min_length=1)
    width_px: int = Field(..., gt=0)
    height_px: int = Field(..., gt=0)
    attribution_text: list[str] = Field(default_factory=list)
    ocr_signal: OcrSignal | None = None


class ScoreComponents(BaseModel):
    base: float = 0.0
    aspect: float = 0.0
    attribution: float = 0.0
    ocr_price: float = 0.0
    ocr_keyword: float = 0.0

    def sum(self) -> float:
        return self.base + self.aspect + self.attribution + self.ocr_price + self.ocr_keyword


class PhotoScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_id: str
    total: float = Field(..., ge=0.0, le=100.0)
    components: ScoreComponents


class ScoredCandidate(BaseModel):
    candidate: PhotoCandidate
    score: PhotoScore


class PhotoJudgement(BaseModel):
    candidate_id: str = ""
    is_menu: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str = ""


class SelectionDecision(str, Enum):
    heuristic = "heuristic"
    ai = "ai"
    undecided = "undecided"
    no_photos = "no_photos"
    manual = "manual"


class PhotoSelection(BaseModel):
    decision: SelectionDecision
    picked: PhotoCandidate | None = None
    picked_confidence: float | None = None
    candidates: list[ScoredCandidate] = Field(default_factory=list)
    judgements: list[PhotoJudgement] = Field(default_factory=list)
    reason: str = ""


class FetchedPhoto(BaseModel):
    data: bytes
    mime_type: str = "image/jpeg"
