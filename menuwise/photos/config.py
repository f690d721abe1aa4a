from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SelectionConfig:
    heuristic_threshold: float = 70.0
    ai_threshold: float = 0.6
    top_k: int = 5
    candidate_limit: int = 6
    thumb_width_px: int = 512


DEFAULT_SELECTION_CONFIG = SelectionConfig()
