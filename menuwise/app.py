from __future__ import annotations

import base64
import binascii
import logging

from fastapi import FastAPI, HTTPException

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .photos.models import FetchedPhoto, PhotoCandidate
from .photos.scorer import ocr_signal_from_text
from .photos.source import StaticPhotoSource
from .recommendations.cache import RecommendationCache
from .recommendations.models import (
    MenuAnalysisRequest,
    PhotoSetAnalysisRequest,
    RebudgetRequest,
    RecommendationResult,
)
from .recommendations.pipeline import (
    InputError,
    PhotoSetRequest,
    PhotoUpload,
    recommend,
    recommend_from_cache,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Menu Recommendation API", version="1.0.0")

cache = RecommendationCache()


def _decode_image(encoded: str, field: str = "image_base64") -> bytes:
    # Accept data URLs as well as bare base64.
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} is not valid base64") from None


def _input_error(exc: InputError) -> HTTPException:
    status_code = 404 if exc.code == "no_cache" else 400
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/menu-analysis", response_model=RecommendationResult)
def menu_analysis(body: MenuAnalysisRequest) -> RecommendationResult:
    photo = PhotoUpload(data=_decode_image(body.image_base64), mime_type=body.mime_type)
    try:
        return recommend(
            photo,
            body.budget,
            body.tags,
            body.calories.model_dump() if body.calories else None,
            body.user_note,
            cache=cache,
            user_id=body.user_id,
        )
    except InputError as exc:
        raise _input_error(exc) from exc


@app.post("/menu-analysis/photo-set", response_model=RecommendationResult)
def menu_analysis_photo_set(body: PhotoSetAnalysisRequest) -> RecommendationResult:
    source = StaticPhotoSource([
        (
            PhotoCandidate(
                id=p.id,
                width_px=p.width_px,
                height_px=p.height_px,
                attribution_text=p.attribution_text,
                ocr_signal=ocr_signal_from_text(p.ocr_text) if p.ocr_text else None,
            ),
            FetchedPhoto(data=_decode_image(p.image_base64, f"photos[{p.id}]"), mime_type=p.mime_type),
        )
        for p in body.photos
    ])
    try:
        return recommend(
            PhotoSetRequest(source=source, photo_id=body.photo_id),
            body.budget,
            body.tags,
            body.calories.model_dump() if body.calories else None,
            body.user_note,
            cache=cache,
            user_id=body.user_id,
        )
    except InputError as exc:
        raise _input_error(exc) from exc


@app.get("/menu-analysis/last")
def last_analysis() -> dict:
    entry = cache.last()
    if entry is None:
        raise HTTPException(status_code=404, detail="No recommendation yet")
    return {
        "menu_info": entry.menu_info.model_dump(mode="json"),
        "recommendation": entry.recommendation.model_dump(mode="json"),
        "budget": entry.budget,
        "created_at": entry.created_at,
    }


@app.post("/menu-analysis/rebudget", response_model=RecommendationResult)
def rebudget_analysis(body: RebudgetRequest) -> RecommendationResult:
    try:
        return recommend_from_cache(
            body.budget,
            body.tags,
            body.calories.model_dump() if body.calories else None,
            body.user_note,
            cache=cache,
            user_id=body.user_id,
        )
    except InputError as exc:
        raise _input_error(exc) from exc


@app.delete("/menu-analysis/cache")
def clear_analysis_cache() -> dict[str, str]:
    cache.clear()
    logger.info("Recommendation cache cleared")
    return {"status": "cleared"}


# ── Operational endpoints ────────────────────────────────────────────────


@app.get("/cache/stats")
def cache_stats() -> dict:
    return cache.stats()


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())
