from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Iterable

from ..menu.models import MenuInfo, MenuItem
from .models import ConstraintSet, HardFilterResult, RemovedItem
from .splitter import build_negative_terms
from .vocab import (
    GLUTEN_FREE_INDICATORS,
    GLUTEN_TERMS,
    HALAL_TERMS,
    KOSHER_TERMS,
    MEAT_SEAFOOD_TERMS,
    NON_VEGAN_TERMS,
    VEGAN_INDICATORS,
    VEGETARIAN_INDICATORS,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1024)
def _term_pattern(term: str) -> re.Pattern[str]:
    escaped = re.escape(term.lower())
    if term.isascii():
        # whole word, simple plurals: "tea" must not match "steak"
        return re.compile(rf"(?<!\w){escaped}(?:s|es)?(?!\w)")
    # CJK text has no word boundaries between characters
    return re.compile(escaped)


def find_term(text: str, terms: Iterable[str]) -> str | None:
    """Return the first term found in ``text`` on word boundaries, or ``None``."""
    for term in terms:
        if _term_pattern(term).search(text):
            return term
    return None


def _check_negative_keys(text: str, negative_terms: dict[str, tuple[str, ...]]) -> RemovedItem | None:
    for key, terms in negative_terms.items():
        matched = find_term(text, terms)
        if matched:
            return RemovedItem(name="", reason="dynamic_exclude", tag=f"no:{key}", matched=matched)
    return None


def _check_core(text: str, hard_core: tuple[str, ...]) -> RemovedItem | None:
    if "vegan" in hard_core and not find_term(text, VEGAN_INDICATORS):
        matched = find_term(text, NON_VEGAN_TERMS)
        if matched:
            return RemovedItem(name="", reason="Contains non-vegan ingredients", tag="vegan", matched=matched)

    if "vegetarian" in hard_core and not find_term(text, VEGETARIAN_INDICATORS):
        matched = find_term(text, MEAT_SEAFOOD_TERMS)
        if matched:
            return RemovedItem(name="", reason="Contains meat or seafood", tag="vegetarian", matched=matched)

    if "glutenfree" in hard_core and not find_term(text, GLUTEN_FREE_INDICATORS):
        matched = find_term(text, GLUTEN_TERMS)
        if matched:
            return RemovedItem(name="", reason="Contains gluten", tag="glutenfree", matched=matched)

    if "halal" in hard_core:
        matched = find_term(text, HALAL_TERMS)
        if matched:
            return RemovedItem(name="", reason="Contains pork or alcohol", tag="halal", matched=matched)

    if "kosher" in hard_core:
        matched = find_term(text, KOSHER_TERMS)
        if matched:
            return RemovedItem(name="", reason="Contains pork or shellfish", tag="kosher", matched=matched)

    return None


def violation_for(item: MenuItem, constraints: ConstraintSet) -> RemovedItem | None:
    """First hard-constraint violation for ``item``, checked in fixed order."""
    text = item.text
    negative_terms = build_negative_terms(constraints.negative_keys)
    found = _check_negative_keys(text, negative_terms) or _check_core(text, constraints.hard_core)
    if found is None:
        return None
    return found.model_copy(update={"name": item.name})


def apply_hard_filter(menu_info: MenuInfo, constraints: ConstraintSet) -> HardFilterResult:
    """
    Deterministically remove items that violate hard constraints.

    Checks run in order: dynamic negative keys, vegan, vegetarian, gluten-free,
    halal, kosher. The first violation found removes the item.
    """
    allowed: list[MenuItem] = []
    removed: list[RemovedItem] = []
    for item in menu_info.items:
        violation = violation_for(item, constraints)
        if violation is None:
            allowed.append(item)
        else:
            removed.append(violation)

    if removed:
        logger.info("Hard filter removed %d of %d items", len(removed), len(menu_info.items))
    return HardFilterResult(allowed=allowed, removed=removed)
