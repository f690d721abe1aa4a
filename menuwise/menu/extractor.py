from __future__ import annotations

import logging
import math
import re
from functools import partial
from typing import Any

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import (
    GenerativeEmptyResponse,
    GenerativeParseError,
    GenerativeUnavailable,
    complete_text,
    parse_json_object,
)
from ..outcome import Degraded, Ok, Outcome, chain
from .models import MenuInfo, MenuItem

logger = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 1000
MAX_IMAGE_BYTES = 6 * 1024 * 1024

SYSTEM_PROMPT = (
    "You are a precise OCR and information extraction assistant for restaurant menus. "
    "Extract all dishes with name, description if available, price as a number, "
    "and the currency symbol or code. Return concise, correct data only. "
    "If the image is unclear or doesn't contain menu items, return an empty items array."
)

USER_PROMPT = (
    "From this menu image, extract a JSON object with: "
    '{"currency": string, "items": [{"name": string, "description"?: string, '
    '"price": number, "category"?: string, "estimatedCalories"?: number}]}. '
    "Ensure prices are numeric and do not include currency symbols in the number. "
    "Keep dish names in the language they appear on the menu. "
    'If no menu items are visible, return {"currency": "$", "items": []}.'
)

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")

_FALLBACK_MENU = MenuInfo(
    currency="$",
    items=[
        MenuItem(
            name="Sample Appetizer",
            description="A delicious starter dish",
            price=8.99,
            category="Appetizers",
        ),
        MenuItem(
            name="Sample Main Course",
            description="A satisfying main dish",
            price=16.99,
            category="Mains",
        ),
        MenuItem(
            name="Sample Dessert",
            description="A sweet ending to your meal",
            price=6.99,
            category="Desserts",
        ),
    ],
)


def fallback_menu() -> MenuInfo:
    """The fixed three-item menu substituted whenever extraction yields nothing usable."""
    return _FALLBACK_MENU


def _degrade(reason: str) -> Degraded[MenuInfo]:
    logger.warning("Menu extraction degraded (%s), using fallback menu", reason)
    return Degraded(fallback_menu(), reason)


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return None
        number = float(match.group(0).replace(",", "."))
    else:
        return None
    return number if math.isfinite(number) else None


def normalize_item(raw: Any) -> MenuItem | None:
    """Coerce one extracted record into a ``MenuItem``, or ``None`` if it is invalid."""
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    price = _to_number(raw.get("price"))
    if not name or price is None or price <= 0:
        return None

    calories = _to_number(raw.get("estimatedCalories", raw.get("estimated_calories")))
    return MenuItem(
        name=name,
        description=str(raw.get("description") or "").strip(),
        price=round(price, 2),
        category=str(raw.get("category") or "").strip(),
        estimated_calories=calories if calories is not None and calories >= 0 else None,
    )


def _check_input(data: bytes | None, min_bytes: int, max_bytes: int) -> Outcome:
    if not data:
        return _degrade("empty_image")
    if len(data) < min_bytes:
        return _degrade("image_too_small")
    if len(data) > max_bytes:
        return _degrade("image_too_large")
    return Ok(data)


def _call_model(data: bytes, mime_type: str, config: LLMConfig) -> Outcome:
    try:
        text = complete_text(
            SYSTEM_PROMPT,
            USER_PROMPT,
            image=(data, mime_type),
            config=config,
            temperature=0.2,
        )
    except GenerativeUnavailable:
        return _degrade("generative_unavailable")
    except GenerativeEmptyResponse:
        return _degrade("empty_response")
    except Exception:
        logger.warning("Vision extraction call failed", exc_info=True)
        return _degrade("generative_error")
    return Ok(text)


def _parse(text: str) -> Outcome:
    try:
        parsed = parse_json_object(text)
    except GenerativeParseError:
        return _degrade("unparseable_response")
    if not isinstance(parsed.get("items"), list):
        return _degrade("unexpected_shape")
    return Ok(parsed)


def _validate(parsed: dict[str, Any]) -> Outcome:
    items = [item for item in (normalize_item(raw) for raw in parsed["items"]) if item is not None]
    if not items:
        return _degrade("no_valid_items")
    currency = str(parsed.get("currency") or "$").strip() or "$"
    logger.info("Extracted %d menu items (%d dropped)", len(items), len(parsed["items"]) - len(items))
    return Ok(MenuInfo(currency=currency, items=items))


def extract_menu(
    photo_bytes: bytes | None,
    mime_type: str,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    min_bytes: int = MIN_IMAGE_BYTES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> Outcome:
    """
    Extract a ``MenuInfo`` from a menu photo.

    Never raises: every failure tier yields ``Degraded(fallback_menu(), reason)``.
    """
    return chain(
        photo_bytes,
        partial(_check_input, min_bytes=min_bytes, max_bytes=max_bytes),
        partial(_call_model, mime_type=mime_type, config=config),
        _parse,
        _validate,
    )
