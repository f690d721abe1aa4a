from __future__ import annotations

from dataclasses import dataclass, field

from ..photos.config import DEFAULT_SELECTION_CONFIG, SelectionConfig


@dataclass(frozen=True)
class PipelineConfig:
    min_image_bytes: int = 1000
    max_image_bytes: int = 6 * 1024 * 1024
    batch_size: int = 50
    batch_workers: int = 4
    max_final_candidates: int = 30
    backfill_max_picks: int = 5
    max_quantity_per_pick: int = 10
    description_limit: int = 120
    selection: SelectionConfig = field(default_factory=lambda: DEFAULT_SELECTION_CONFIG)


DEFAULT_PIPELINE_CONFIG = PipelineConfig()
