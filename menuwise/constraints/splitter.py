from __future__ import annotations

import hashlib
import re
from typing import Iterable

from .models import ConstraintSet, HardCoreTag, NegativeKeyTag, SoftTag, TagClass
from .vocab import HARD_CORE_ALIASES, INGREDIENT_SYNONYMS

_NEGATIVE_PREFIXES = (
    "no-", "no:", "no ",
    "avoid-", "avoid:", "avoid ",
    "exclude-", "exclude:", "exclude ",
    "without ",
)
_NEGATIVE_SUFFIXES = ("-free", " free")
_BARE_PREFIXES = ("no", "avoid")

# "noMushroom" / "avoidChicken" -> "no-Mushroom" before lowercasing
_CAMEL_NEGATIVE_RE = re.compile(r"^(no|avoid|exclude)(?=[A-Z])")
_DISALLOWED_RE = re.compile(r"[^\w:\- ]")
_KEY_CLEAN_RE = re.compile(r"[^\w ]")
_WS_RE = re.compile(r"\s+")


def _clean_tag(raw: str) -> str:
    tag = _CAMEL_NEGATIVE_RE.sub(r"\1-", raw.strip())
    tag = tag.lower().replace("_", "-")
    tag = _DISALLOWED_RE.sub("", tag)
    return _WS_RE.sub(" ", tag).strip()


def _split_phrase(part: str) -> list[str]:
    lower = part.lower()
    if lower.startswith(("no ", "avoid ", "exclude ", "without ")) or lower.endswith((" free", "-free")):
        return [part]
    return part.split()


def normalize_tags(tags: str | Iterable[str] | None) -> list[str]:
    """
    Normalize raw tag input into a deduplicated, ordered list.

    A string is split on commas, then on whitespace, except that negative
    phrases ("no mushroom", "dairy free") stay whole.
    """
    if not tags:
        return []
    if isinstance(tags, str):
        raw: list[str] = []
        for part in tags.split(","):
            part = part.strip()
            if part:
                raw.extend(_split_phrase(part))
    else:
        raw = [str(t) for t in tags]

    seen: dict[str, None] = {}
    for tag in raw:
        cleaned = _clean_tag(tag)
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def canonical_key(key: str) -> str:
    """Map an ingredient key onto the synonym table, folding simple plurals."""
    key = _WS_RE.sub(" ", _KEY_CLEAN_RE.sub("", key)).strip()
    if key in INGREDIENT_SYNONYMS:
        return key
    for suffix in ("es", "s"):
        if key.endswith(suffix) and key[: -len(suffix)] in INGREDIENT_SYNONYMS:
            return key[: -len(suffix)]
    return key


def parse_negative_key(tag: str) -> str | None:
    """Return the ingredient key a negative tag excludes, or ``None``."""
    for prefix in _NEGATIVE_PREFIXES:
        if tag.startswith(prefix):
            key = canonical_key(tag[len(prefix):])
            return key or None
    for suffix in _NEGATIVE_SUFFIXES:
        if tag.endswith(suffix):
            key = canonical_key(tag[: -len(suffix)])
            return key or None
    # lowercase "nomushroom" only counts for known ingredients ("noodles" does not)
    for prefix in _BARE_PREFIXES:
        if tag.startswith(prefix) and len(tag) > len(prefix):
            key = canonical_key(tag[len(prefix):])
            if key in INGREDIENT_SYNONYMS:
                return key
    return None


def classify_tag(tag: str) -> TagClass:
    core = HARD_CORE_ALIASES.get(tag)
    if core is not None:
        return HardCoreTag(core)
    key = parse_negative_key(tag)
    if key is not None:
        return NegativeKeyTag(key)
    return SoftTag(tag)


def split_tags(tags: str | Iterable[str] | None) -> ConstraintSet:
    """Partition tags into hard-core constraints, negative ingredient keys and soft preferences."""
    hard: dict[str, None] = {}
    negative: dict[str, None] = {}
    soft: dict[str, None] = {}

    for tag in normalize_tags(tags):
        kind = classify_tag(tag)
        if isinstance(kind, HardCoreTag):
            hard.setdefault(kind.name, None)
        elif isinstance(kind, NegativeKeyTag):
            negative.setdefault(kind.key, None)
        else:
            soft.setdefault(kind.text, None)

    return ConstraintSet(hard_core=tuple(hard), negative_keys=tuple(negative), soft=tuple(soft))


def build_negative_terms(keys: Iterable[str]) -> dict[str, tuple[str, ...]]:
    """Expand each negative key into its synonym terms; unknown keys match themselves."""
    terms: dict[str, tuple[str, ...]] = {}
    for key in keys:
        synonyms = INGREDIENT_SYNONYMS.get(key, (key,))
        terms[key] = tuple(dict.fromkeys(s.lower() for s in synonyms))
    return terms


def tags_signature(tags: Iterable[str]) -> str:
    joined = ",".join(sorted(tags))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()
