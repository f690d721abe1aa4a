from __future__ import annotations

import math
import re

from .models import OcrSignal, PhotoCandidate, PhotoScore, ScoreComponents

ATTRIBUTION_KEYWORDS = ("menu", "food", "dish", "meal", "restaurant", "dining")

OCR_MENU_KEYWORDS = (
    "appetizers",
    "starters",
    "entrees",
    "mains",
    "desserts",
    "beverages",
    "drinks",
    "sides",
    "lunch",
    "dinner",
    "menu",
    "specials",
    "套餐",
    "菜单",
    "主菜",
    "小吃",
    "甜品",
    "饮品",
)

# "$12", "€ 8.50", "12.00", "¥38"
_PRICE_RE = re.compile(
    r"(?:[$€£¥]\s?\d{1,4}(?:[.,]\d{1,2})?|(?<![\d.,])\d{1,4}[.,]\d{2}(?![\d]))"
)

MIN_PRICE_HITS = 3


def smooth01(x: float, steepness: float = 0.1) -> float:
    """Map a 0-100 heuristic score onto (0, 1) with a sigmoid centred at 50."""
    return 1.0 / (1.0 + math.exp(-steepness * (x - 50.0)))


def ocr_signal_from_text(text: str | None) -> OcrSignal:
    """Summarise OCR text from an external engine into price hits and menu keywords."""
    if not text:
        return OcrSignal()
    lower = text.lower()
    keywords = [k for k in OCR_MENU_KEYWORDS if k in lower]
    return OcrSignal(price_hits=len(_PRICE_RE.findall(text)), menu_keywords=keywords)


def _size_bonus(width: int, height: int) -> float:
    area = width * height
    bonus = 0.0
    if area > 1_000_000:
        bonus += 30
    elif area > 500_000:
        bonus += 20
    elif area > 200_000:
        bonus += 10
    # readable dimensions
    if width >= 800 and height >= 600:
        bonus += 10
    return bonus


def _aspect_bonus(width: int, height: int) -> float:
    ratio = width / height
    if ratio < 1.2:
        return 20
    if ratio > 2.0:
        return -10
    return 0


def _attribution_bonus(attribution: list[str]) -> float:
    text = " ".join(attribution).lower()
    if any(keyword in text for keyword in ATTRIBUTION_KEYWORDS):
        return 15
    return 0


def score_photo(photo: PhotoCandidate, ocr_signal: OcrSignal | None = None) -> PhotoScore:
    """
    Score how likely ``photo`` is to be a menu, from metadata alone.

    ``ocr_signal`` overrides any signal already attached to the candidate.
    """
    signal = ocr_signal or photo.ocr_signal
    components = ScoreComponents(
        base=_size_bonus(photo.width_px, photo.height_px),
        aspect=_aspect_bonus(photo.width_px, photo.height_px),
        attribution=_attribution_bonus(photo.attribution_text),
    )
    if signal is not None:
        if signal.price_hits >= MIN_PRICE_HITS:
            components.ocr_price = 10
        if signal.menu_keywords:
            components.ocr_keyword = 5

    total = min(100.0, max(0.0, components.sum()))
    return PhotoScore(candidate_id=photo.id, total=total, components=components)
