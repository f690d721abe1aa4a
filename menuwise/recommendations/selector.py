from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from pydantic import ValidationError

from ..constraints.models import ConstraintSet
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_json
from ..menu.models import MenuItem
from .config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from .models import CalorieLimit, DishPick
from .schemas import RankedPick, RankedPlan

logger = logging.getLogger(__name__)

_EPSILON = 1e-9

RANK_SYSTEM_PROMPT = """\
You are a precise menu planner. Return ONLY the specified JSON fields.

HARD CONSTRAINTS (MUST NOT VIOLATE):
- {hard}
- If strictly impossible under budget/calories, return the closest feasible plan and set relaxedHard=true.

SOFT PREFERENCES (influence ranking but can be relaxed):
- {soft}

Rules:
1. NEVER violate hard constraints.
2. Keep total <= budget{calorie_rule}.
3. Prefer variety (appetizer/main/drink/dessert if applicable) and the soft preferences.
4. Only pick items from the provided list; refer to them by id and exact name.
5. For filteredOut: list items you skipped because they violate hard constraints.
6. For each pick: include quantity (>= 1), a short reason and estimatedCalories.
7. If the calorie limit is impossible, set calorie_relaxed=true and return the closest plan under budget.

Output JSON:
{{"filteredOut": [{{"name": str, "reason": str}}], "picks": [{{"id": str, "name": str, \
"quantity": int, "reason": str, "estimatedCalories": number}}], "estTotal": number, \
"estimatedTotalCalories": number, "notes": str, "relaxedHard": bool, "calorie_relaxed": bool}}"""


class RankingError(Exception):
    """The generative ranking call failed or broke its response contract."""


def slim_items(items: Sequence[MenuItem], description_limit: int = 120) -> list[dict[str, Any]]:
    """Reduce menu items to the fields the ranking prompt needs."""
    return [
        {
            "id": str(index),
            "name": item.name,
            "price": item.price,
            "desc": item.description[:description_limit],
            "estKcal": item.estimated_calories,
        }
        for index, item in enumerate(items)
    ]


def _user_prompt(
    items: Sequence[MenuItem],
    budget: float,
    constraints: ConstraintSet,
    calories: CalorieLimit,
    user_note: str,
    description_limit: int,
) -> str:
    lines = [f"Budget: {budget:g}"]
    if calories.max_per_person:
        lines.append(f"Calorie limit per person: {calories.max_per_person}")
    lines.append(f"Hard constraints: {', '.join(constraints.hard_constraints) or 'none'}")
    lines.append(f"Soft preferences: {', '.join(constraints.soft) or 'none'}")
    if user_note:
        lines.append(f"Diner note: {user_note}")
    lines.append("\nMenu items (JSON):")
    lines.append(json.dumps(slim_items(items, description_limit), ensure_ascii=False))
    return "\n".join(lines)


def rank_batch(
    items: Sequence[MenuItem],
    budget: float,
    constraints: ConstraintSet,
    calories: CalorieLimit = CalorieLimit(),
    user_note: str = "",
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> RankedPlan:
    """One generative ranking call. Raises ``RankingError`` on any failure."""
    system_prompt = RANK_SYSTEM_PROMPT.format(
        hard=", ".join(constraints.hard_constraints) or "none",
        soft=", ".join(constraints.soft) or "none",
        calorie_rule=(
            f" and total estimated calories <= {calories.max_per_person}"
            if calories.max_per_person
            else ""
        ),
    )
    try:
        parsed = complete_json(
            system_prompt,
            _user_prompt(items, budget, constraints, calories, user_note, config.description_limit),
            config=llm_config,
        )
        plan = RankedPlan.model_validate(parsed)
    except ValidationError as exc:
        raise RankingError(f"ranking response violates schema: {exc.error_count()} errors") from exc
    except Exception as exc:
        raise RankingError(str(exc) or type(exc).__name__) from exc

    if plan.est_total is not None and plan.est_total > budget:
        logger.info("Ranking estimate %.2f exceeds budget %.2f; totals are recomputed", plan.est_total, budget)
    return plan


def resolve_picks(
    picks: Sequence[RankedPick],
    items: Sequence[MenuItem],
    max_quantity: int = 10,
) -> list[DishPick]:
    """
    Map ranked picks back onto menu items, by id first and then by name.

    Prices always come from the menu. Unknown picks and repeats are dropped.
    """
    by_name = {item.name.strip().lower(): item for item in items}
    resolved: list[DishPick] = []
    seen: set[str] = set()

    for pick in picks:
        item: MenuItem | None = None
        if pick.id is not None:
            try:
                index = int(pick.id)
            except (TypeError, ValueError):
                index = -1
            if 0 <= index < len(items) and items[index].name.strip().lower() == pick.name.strip().lower():
                item = items[index]
        if item is None:
            item = by_name.get(pick.name.strip().lower())
        if item is None:
            logger.debug("Dropping pick %r: not on the candidate list", pick.name)
            continue
        if item.name in seen:
            continue
        seen.add(item.name)

        calories = item.estimated_calories if item.estimated_calories is not None else pick.estimated_calories
        resolved.append(
            DishPick(
                name=item.name,
                quantity=min(pick.quantity, max_quantity),
                unit_price=item.price,
                estimated_calories=calories,
                reason=pick.reason,
            )
        )
    return resolved


def _chunks(items: Sequence[MenuItem], size: int) -> list[list[MenuItem]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def rank_items(
    items: Sequence[MenuItem],
    budget: float,
    constraints: ConstraintSet,
    calories: CalorieLimit = CalorieLimit(),
    user_note: str = "",
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> tuple[RankedPlan, list[MenuItem]]:
    """
    Rank ``items`` and return the plan together with the item list it refers to.

    Menus larger than ``config.batch_size`` are ranked in concurrent batches;
    the union of batch picks (capped) is re-ranked in a final pass.
    """
    items = list(items)
    if len(items) <= config.batch_size:
        return rank_batch(items, budget, constraints, calories, user_note, llm_config, config), items

    batches = _chunks(items, config.batch_size)
    logger.info("Ranking %d items in %d batches", len(items), len(batches))

    finalists: list[MenuItem] = []
    with ThreadPoolExecutor(max_workers=config.batch_workers) as pool:
        futures = [
            pool.submit(rank_batch, batch, budget, constraints, calories, user_note, llm_config, config)
            for batch in batches
        ]
        for batch, future in zip(batches, futures):
            try:
                plan = future.result()
            except RankingError:
                logger.warning("Ranking batch of %d items failed", len(batch), exc_info=True)
                continue
            for pick in resolve_picks(plan.picks, batch):
                finalists.append(next(item for item in batch if item.name == pick.name))

    if not finalists:
        raise RankingError("every ranking batch failed or picked nothing")

    finalists = list({item.name: item for item in finalists}.values())[: config.max_final_candidates]
    return rank_batch(finalists, budget, constraints, calories, user_note, llm_config, config), finalists


def greedy_select(
    items: Sequence[MenuItem],
    budget: float,
    max_calories: int | None = None,
) -> list[DishPick]:
    """
    Deterministic fallback: take items in menu order while the running
    subtotal stays within budget and running calories within the ceiling.
    """
    picks: list[DishPick] = []
    running = 0.0
    running_kcal = 0.0
    for item in items:
        if running + item.price > budget + _EPSILON:
            continue
        kcal = item.estimated_calories or 0.0
        if max_calories is not None and running_kcal + kcal > max_calories + _EPSILON:
            continue
        picks.append(
            DishPick(
                name=item.name,
                quantity=1,
                unit_price=item.price,
                estimated_calories=item.estimated_calories,
            )
        )
        running += item.price
        running_kcal += kcal
    return picks
