from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterable

from pydantic import BaseModel, Field

from ..analytics.history import record_history
from ..analytics.store import record_event
from ..constraints.hard_filter import apply_hard_filter
from ..constraints.splitter import normalize_tags, split_tags, tags_signature
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..menu.extractor import extract_menu
from ..menu.models import MenuInfo
from ..photos.models import PhotoSelection, SelectionDecision
from ..photos.selection import judge_photo, select_menu_photo
from ..photos.source import PhotoSource
from .cache import RecommendationCache, calories_signature
from .config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from .guard import run_guarded_selection
from .models import CacheStatus, CalorieLimit, RecommendationPlan, RecommendationResult, normalize_calories

logger = logging.getLogger(__name__)


class InputError(Exception):
    """Caller-side problem with a request. The only error ``recommend`` raises."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class PhotoUpload:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(frozen=True)
class PhotoSetRequest:
    source: PhotoSource
    photo_id: str | None = None


class HistoryRecord(BaseModel):
    user_id: str | None = None
    image_signature: str
    budget: float
    tags: list[str] = Field(default_factory=list)
    max_calories: int | None = None
    cache_status: CacheStatus
    total: float
    pick_names: list[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)


HistorySink = Callable[[HistoryRecord], None]


def _check_budget(budget: Any) -> float:
    if isinstance(budget, bool) or not isinstance(budget, (int, float)):
        raise InputError("invalid_budget", "Budget must be a number")
    if not math.isfinite(budget) or budget <= 0:
        raise InputError("invalid_budget", "Budget must be a positive, finite amount")
    return float(budget)


def _resolve_photo(
    photo: PhotoUpload | PhotoSetRequest,
    llm_config: LLMConfig,
    config: PipelineConfig,
) -> tuple[PhotoUpload | None, PhotoSelection | None]:
    """Turn the request's photo input into menu bytes, selecting from a photo set if needed."""
    if isinstance(photo, PhotoUpload):
        if not photo.data:
            raise InputError("missing_photo", "Menu photo is empty")
        return photo, None

    candidates = photo.source.candidates()
    if photo.photo_id is not None:
        chosen = next((c for c in candidates if c.id == photo.photo_id), None)
        if chosen is None:
            raise InputError("unknown_photo_id", f"No photo with id {photo.photo_id!r}")
        selection = PhotoSelection(
            decision=SelectionDecision.manual,
            picked=chosen,
            picked_confidence=1.0,
            reason="Chosen by user",
        )
    else:
        if not candidates:
            raise InputError("no_photos", "No photos available to select a menu from")
        judge = partial(judge_photo, config=llm_config) if llm_config.available else None
        selection = select_menu_photo(
            candidates,
            fetch_thumb=lambda c: photo.source.fetch(c, max_width_px=config.selection.thumb_width_px),
            judge=judge,
            config=config.selection,
        )

    if selection.picked is None:
        return None, selection

    try:
        fetched = photo.source.fetch(selection.picked)
    except LookupError as exc:
        raise InputError("unknown_photo_id", str(exc)) from exc
    if not fetched.data:
        raise InputError("missing_photo", f"Photo {selection.picked.id!r} has no content")
    return PhotoUpload(data=fetched.data, mime_type=fetched.mime_type), selection


def _emit_history(sink: HistorySink, record: HistoryRecord) -> None:
    try:
        sink(record)
    except Exception:
        logger.warning("History sink failed", exc_info=True)


def _select_and_record(
    *,
    cache: RecommendationCache,
    status: CacheStatus,
    image_sig: str,
    menu_info: MenuInfo,
    plan: RecommendationPlan | None,
    extraction_degraded: str | None,
    fresh_extraction: bool,
    budget: float,
    tags_applied: list[str],
    calorie_limit: CalorieLimit,
    user_note: str,
    selection: PhotoSelection | None,
    start_time: float,
    user_id: str | None,
    history_sink: HistorySink | None,
    llm_config: LLMConfig,
    config: PipelineConfig,
) -> RecommendationResult:
    constraints = split_tags(tags_applied)
    filtered = apply_hard_filter(menu_info, constraints)
    tags_sig = tags_signature(tags_applied)
    calories_sig = calories_signature(calorie_limit)

    if plan is None:
        plan = run_guarded_selection(
            filtered.allowed,
            budget,
            constraints,
            calorie_limit,
            currency=menu_info.currency,
            user_note=user_note,
            llm_config=llm_config,
            config=config,
        )
        cache.store(
            image_sig,
            menu_info,
            plan,
            budget,
            tags_sig,
            calories_sig,
            extraction_degraded=extraction_degraded,
        )

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    record_event("recommendation", {
        "cache_status": status.value,
        "selection_decision": selection.decision.value if selection else None,
        "tags": tags_applied,
        "max_calories": calorie_limit.max_per_person,
        # Only a fresh extraction counts towards the fallback rate.
        "extraction_degraded": extraction_degraded if fresh_extraction else None,
        "ranking_degraded": plan.degraded,
        "filter_removed": len(filtered.removed),
        "guard_removed": sum(1 for v in plan.guard_violations if v.phase == "guard"),
        "final_removed": sum(1 for v in plan.guard_violations if v.phase == "final"),
        "picks": len(plan.picks),
        "response_time_ms": elapsed_ms,
    })
    logger.info(
        "Recommendation ready: %d pick(s), total %.2f of %.2f, cache %s, %.0f ms",
        len(plan.picks), plan.total, budget, status.value, elapsed_ms,
    )

    if user_id is not None or history_sink is not None:
        _emit_history(
            history_sink or record_history,
            HistoryRecord(
                user_id=user_id,
                image_signature=image_sig,
                budget=budget,
                tags=tags_applied,
                max_calories=calorie_limit.max_per_person,
                cache_status=status,
                total=plan.total,
                pick_names=[p.name for p in plan.picks],
            ),
        )

    return RecommendationResult(
        menu_info=menu_info,
        recommendation=plan,
        cached=status is CacheStatus.exact,
        cache_status=status,
        selection=selection,
        constraints=constraints,
        removed_by_filter=filtered.removed,
        tags_applied=tags_applied,
        calories_applied=calorie_limit,
        extraction_degraded=extraction_degraded,
    )


def recommend(
    photo: PhotoUpload | PhotoSetRequest,
    budget: float,
    tags: str | Iterable[str] | None = None,
    calories: Any = None,
    user_note: str = "",
    *,
    cache: RecommendationCache,
    user_id: str | None = None,
    history_sink: HistorySink | None = None,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> RecommendationResult:
    """
    Run the menu recommendation pipeline for one request.

    Photo selection -> extraction -> constraint split -> hard filter ->
    guarded selection, read-through and write-through ``cache``. Raises
    ``InputError`` for bad input; every other failure degrades to a
    fallback value.
    """
    start_time = time.time()
    budget = _check_budget(budget)

    upload, selection = _resolve_photo(photo, llm_config, config)
    tags_applied = normalize_tags(tags)
    calorie_limit = normalize_calories(calories)

    if upload is None:
        logger.info("Photo selection undecided across %d candidates", len(selection.candidates))
        return RecommendationResult(
            selection=selection,
            constraints=split_tags(tags_applied),
            tags_applied=tags_applied,
            calories_applied=calorie_limit,
        )

    image_sig = cache.image_signature(upload.data)
    status, entry = cache.lookup(
        image_sig, budget, tags_signature(tags_applied), calories_signature(calorie_limit)
    )

    plan: RecommendationPlan | None = None
    if status is CacheStatus.miss:
        extracted = extract_menu(
            upload.data,
            upload.mime_type,
            config=llm_config,
            min_bytes=config.min_image_bytes,
            max_bytes=config.max_image_bytes,
        )
        menu_info, extraction_degraded = extracted.value, extracted.reason
    else:
        menu_info, extraction_degraded = entry.menu_info, entry.extraction_degraded
        if status is CacheStatus.exact:
            plan = entry.recommendation
        else:
            logger.info("Reusing cached menu for image %s", image_sig[:12])

    return _select_and_record(
        cache=cache,
        status=status,
        image_sig=image_sig,
        menu_info=menu_info,
        plan=plan,
        extraction_degraded=extraction_degraded,
        fresh_extraction=status is CacheStatus.miss,
        budget=budget,
        tags_applied=tags_applied,
        calorie_limit=calorie_limit,
        user_note=user_note,
        selection=selection,
        start_time=start_time,
        user_id=user_id,
        history_sink=history_sink,
        llm_config=llm_config,
        config=config,
    )


def recommend_from_cache(
    budget: float,
    tags: str | Iterable[str] | None = None,
    calories: Any = None,
    user_note: str = "",
    *,
    cache: RecommendationCache,
    user_id: str | None = None,
    history_sink: HistorySink | None = None,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> RecommendationResult:
    """Re-run selection for new budget, tags or calories against the last cached menu."""
    start_time = time.time()
    budget = _check_budget(budget)

    last = cache.last()
    if last is None:
        raise InputError("no_cache", "No analysed menu to recalculate; upload a menu photo first")

    tags_applied = normalize_tags(tags)
    calorie_limit = normalize_calories(calories)
    status, entry = cache.lookup(
        last.image_signature, budget, tags_signature(tags_applied), calories_signature(calorie_limit)
    )
    if entry is None:
        # Expired or replaced between the two reads.
        raise InputError("no_cache", "No analysed menu to recalculate; upload a menu photo first")

    return _select_and_record(
        cache=cache,
        status=status,
        image_sig=entry.image_signature,
        menu_info=entry.menu_info,
        plan=entry.recommendation if status is CacheStatus.exact else None,
        extraction_degraded=entry.extraction_degraded,
        fresh_extraction=False,
        budget=budget,
        tags_applied=tags_applied,
        calorie_limit=calorie_limit,
        user_note=user_note,
        selection=None,
        start_time=start_time,
        user_id=user_id,
        history_sink=history_sink,
        llm_config=llm_config,
        config=config,
    )
