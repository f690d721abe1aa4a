from __future__ import annotations

import logging
from typing import Callable

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_json
from .config import DEFAULT_SELECTION_CONFIG, SelectionConfig
from .models import (
    FetchedPhoto,
    PhotoCandidate,
    PhotoJudgement,
    PhotoSelection,
    ScoredCandidate,
    SelectionDecision,
)
from .scorer import score_photo, smooth01

logger = logging.getLogger(__name__)

JUDGE_SYSTEM_PROMPT = (
    "You classify restaurant photos. "
    "Return ONLY JSON with keys isMenu (boolean), confidence (number 0..1) "
    "and reason (short string)."
)
JUDGE_USER_PROMPT = "Is this a photo of a RESTAURANT MENU with dishes and prices? Reply with valid JSON only."

ThumbFetcher = Callable[[PhotoCandidate], FetchedPhoto]
PhotoJudge = Callable[[bytes, str], PhotoJudgement]


def judge_photo(
    data: bytes,
    mime_type: str,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> PhotoJudgement:
    """Ask the vision model whether an image is a menu. Raises on service failure."""
    parsed = complete_json(
        JUDGE_SYSTEM_PROMPT,
        JUDGE_USER_PROMPT,
        image=(data, mime_type),
        config=config,
        max_tokens=128,
    )
    try:
        confidence = float(parsed.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    return PhotoJudgement(
        is_menu=bool(parsed.get("isMenu", False)),
        confidence=min(1.0, max(0.0, confidence)),
        reason=str(parsed.get("reason") or "no_reason_provided"),
    )


def rank_candidates(candidates: list[PhotoCandidate]) -> list[ScoredCandidate]:
    """Score every candidate and sort best first. Ties keep source order."""
    scored = [ScoredCandidate(candidate=c, score=score_photo(c)) for c in candidates]
    scored.sort(key=lambda s: s.score.total, reverse=True)
    return scored


def _undecided(
    ranked: list[ScoredCandidate],
    judgements: list[PhotoJudgement],
    reason: str,
    config: SelectionConfig,
) -> PhotoSelection:
    return PhotoSelection(
        decision=SelectionDecision.undecided,
        candidates=ranked[: config.candidate_limit],
        judgements=judgements,
        reason=reason,
    )


def select_menu_photo(
    candidates: list[PhotoCandidate],
    fetch_thumb: ThumbFetcher | None = None,
    judge: PhotoJudge | None = None,
    config: SelectionConfig = DEFAULT_SELECTION_CONFIG,
) -> PhotoSelection:
    """
    Two-stage menu photo selection.

    Stage 1 accepts the best heuristic score when it clears the threshold.
    Stage 2 sends the top-K candidates, one at a time, to ``judge`` and
    accepts the first confident menu verdict. Otherwise the ranked
    candidates are returned for the caller to disambiguate.
    """
    if not candidates:
        return PhotoSelection(decision=SelectionDecision.no_photos, reason="No photos available")

    ranked = rank_candidates(candidates)
    top = ranked[0]

    if top.score.total >= config.heuristic_threshold:
        logger.info("Menu photo %s accepted on heuristic score %.0f", top.candidate.id, top.score.total)
        return PhotoSelection(
            decision=SelectionDecision.heuristic,
            picked=top.candidate,
            picked_confidence=smooth01(top.score.total),
            reason=f"Heuristic score {top.score.total:.0f} >= threshold {config.heuristic_threshold:.0f}",
        )

    if judge is None or fetch_thumb is None:
        return _undecided(ranked, [], "AI judge not available", config)

    judgements: list[PhotoJudgement] = []
    for scored in ranked[: config.top_k]:
        photo_id = scored.candidate.id
        try:
            thumb = fetch_thumb(scored.candidate)
            verdict = judge(thumb.data, thumb.mime_type)
        except Exception as exc:
            logger.warning("AI judge failed for photo %s", photo_id, exc_info=True)
            judgements.append(
                PhotoJudgement(candidate_id=photo_id, confidence=0.0, reason=f"ai_error: {exc}")
            )
            continue

        verdict = verdict.model_copy(update={"candidate_id": photo_id})
        judgements.append(verdict)
        if verdict.is_menu and verdict.confidence >= config.ai_threshold:
            logger.info("Menu photo %s accepted by AI judge (%.2f)", photo_id, verdict.confidence)
            return PhotoSelection(
                decision=SelectionDecision.ai,
                picked=scored.candidate,
                picked_confidence=verdict.confidence,
                judgements=judgements,
                reason=f"AI confident menu ({verdict.confidence:.2f} >= {config.ai_threshold})",
            )

    return _undecided(ranked, judgements, "No confident AI decision", config)
