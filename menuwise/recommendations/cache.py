from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..menu.models import MenuInfo
from .models import CacheStatus, CalorieLimit, RecommendationPlan

logger = logging.getLogger(__name__)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def calories_signature(calories: CalorieLimit) -> str:
    if calories.max_per_person is None:
        return ""
    return hashlib.sha1(f"maxPerPerson:{calories.max_per_person}".encode()).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    image_signature: str
    menu_info: MenuInfo
    recommendation: RecommendationPlan
    budget: float
    tags_signature: str
    calories_signature: str
    created_at: float
    extraction_degraded: str | None = None


class RecommendationCache:
    """
    Single-slot "last recommendation" cache.

    Holds at most one entry. A store for a different image supersedes the
    previous entry entirely. Construct one per process and pass it to the
    pipeline; ``hasher`` and ``clock`` are injectable for tests.
    """

    def __init__(
        self,
        hasher: Callable[[bytes], str] = sha256_hex,
        clock: Callable[[], float] = time.time,
        ttl_seconds: float | None = None,
    ) -> None:
        self._hasher = hasher
        self._clock = clock
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._entry: CacheEntry | None = None
        self._hits = 0
        self._menu_reuses = 0
        self._misses = 0

    def image_signature(self, data: bytes) -> str:
        return self._hasher(data)

    def _expired(self, entry: CacheEntry) -> bool:
        return self._ttl is not None and self._clock() - entry.created_at >= self._ttl

    def lookup(
        self,
        image_signature: str,
        budget: float,
        tags_signature: str,
        calories_signature: str,
    ) -> tuple[CacheStatus, CacheEntry | None]:
        with self._lock:
            entry = self._entry
            if entry is not None and self._expired(entry):
                logger.debug("Cache entry expired")
                self._entry = entry = None

            if entry is None or entry.image_signature != image_signature:
                self._misses += 1
                return CacheStatus.miss, None

            if (
                entry.budget == budget
                and entry.tags_signature == tags_signature
                and entry.calories_signature == calories_signature
            ):
                self._hits += 1
                return CacheStatus.exact, entry

            self._menu_reuses += 1
            return CacheStatus.menu, entry

    def store(
        self,
        image_signature: str,
        menu_info: MenuInfo,
        recommendation: RecommendationPlan,
        budget: float,
        tags_signature: str,
        calories_signature: str,
        extraction_degraded: str | None = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            image_signature=image_signature,
            menu_info=menu_info,
            recommendation=recommendation,
            budget=budget,
            tags_signature=tags_signature,
            calories_signature=calories_signature,
            created_at=self._clock(),
            extraction_degraded=extraction_degraded,
        )
        with self._lock:
            self._entry = entry
        return entry

    def last(self) -> CacheEntry | None:
        with self._lock:
            if self._entry is not None and self._expired(self._entry):
                self._entry = None
            return self._entry

    def clear(self) -> None:
        with self._lock:
            self._entry = None
            self._hits = 0
            self._menu_reuses = 0
            self._misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._menu_reuses + self._misses
            return {
                "size": 0 if self._entry is None else 1,
                "hits": self._hits,
                "menu_reuses": self._menu_reuses,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }
