"""
Two-pass guard with backfill.

The guard runs as a small state machine over frozen ``PlanSnapshot`` values:

    PENDING -> GUARD_CHECKED -> RANKED -> FINAL_VALIDATED -> [BACKFILLED] -> COMPLETE

Transitions are pure functions. The generative verdicts they consume
(guard violations, ranked picks, backfill picks) are computed outside and
passed in, so each transition can be exercised on its own.
"""
from __future__ import annotations

import json
import logging
import math
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from ..constraints.models import ConstraintSet
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_json
from ..menu.models import MenuItem
from ..outcome import Degraded, Ok, Outcome, attempt
from .config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from .models import CalorieLimit, DishPick, FilteredOut, GuardViolation, RecommendationPlan
from .schemas import BackfillReply, GuardReply, ReportedViolation
from .selector import greedy_select, rank_items, resolve_picks

logger = logging.getLogger(__name__)

_EPSILON = 1e-9

GUARD_SYSTEM_PROMPT = """\
You are a strict dietary compliance checker.
Hard constraints: {hard}
("no:X" means the dish must not contain X or anything made from X.)

For every dish in the list decide whether it clearly violates a hard constraint,
judging from its name and description. Report only clear violations.

Output JSON:
{{"violations": [{{"name": str, "reason": str, "constraint": str}}]}}"""

BACKFILL_SYSTEM_PROMPT = """\
You are a menu planner topping up an order.
Hard constraints (MUST NOT VIOLATE): {hard}
Soft preferences: {soft}

Pick at most {max_picks} additional dishes from the list whose combined price
stays within the remaining budget of {remaining:.2f}{calorie_rule}.
Only use dishes from the list, by id and exact name.

Output JSON:
{{"picks": [{{"id": str, "name": str, "quantity": int, "reason": str, "estimatedCalories": number}}]}}"""


class Stage(str, Enum):
    PENDING = "pending"
    GUARD_CHECKED = "guard_checked"
    RANKED = "ranked"
    FINAL_VALIDATED = "final_validated"
    BACKFILLED = "backfilled"
    COMPLETE = "complete"


class PlanSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage = Stage.PENDING
    budget: float
    currency: str = "$"
    calories: CalorieLimit = CalorieLimit()
    pool: tuple[MenuItem, ...] = ()
    picks: tuple[DishPick, ...] = ()
    filtered_out: tuple[FilteredOut, ...] = ()
    violations: tuple[GuardViolation, ...] = ()
    rationale: str = ""
    degraded: bool = False
    relaxed_hard: bool = False
    calorie_relaxed: bool = False

    @property
    def total(self) -> float:
        return round(sum(p.subtotal for p in self.picks), 2)

    @property
    def flagged_names(self) -> set[str]:
        return {v.name.lower() for v in self.violations}


def _require(snapshot: PlanSnapshot, *stages: Stage) -> None:
    if snapshot.stage not in stages:
        expected = " or ".join(s.value for s in stages)
        raise ValueError(f"invalid transition from {snapshot.stage.value}; expected {expected}")


# ── Pure transitions ───────────────────────────────────────────────────────


def start(
    candidates: Sequence[MenuItem],
    budget: float,
    currency: str = "$",
    calories: CalorieLimit = CalorieLimit(),
) -> PlanSnapshot:
    return PlanSnapshot(budget=budget, currency=currency, calories=calories, pool=tuple(candidates))


def apply_guard(snapshot: PlanSnapshot, violations: Sequence[ReportedViolation]) -> PlanSnapshot:
    """Drop flagged candidates from the pool and record them with phase ``guard``."""
    _require(snapshot, Stage.PENDING)
    reported = {v.name.strip().lower(): v for v in violations}

    kept: list[MenuItem] = []
    recorded: list[GuardViolation] = []
    for item in snapshot.pool:
        hit = reported.get(item.name.strip().lower())
        if hit is None:
            kept.append(item)
            continue
        recorded.append(GuardViolation(name=item.name, reason=hit.reason or hit.constraint or "guard", phase="guard"))

    return snapshot.model_copy(
        update={
            "stage": Stage.GUARD_CHECKED,
            "pool": tuple(kept),
            "violations": snapshot.violations + tuple(recorded),
        }
    )


def apply_ranking(
    snapshot: PlanSnapshot,
    picks: Sequence[DishPick],
    filtered_out: Sequence[FilteredOut] = (),
    rationale: str = "",
    degraded: bool = False,
    relaxed_hard: bool = False,
    calorie_relaxed: bool = False,
) -> PlanSnapshot:
    """Accept ranked picks, keeping only those drawn from the guarded pool."""
    _require(snapshot, Stage.GUARD_CHECKED)
    pool_names = {item.name for item in snapshot.pool}
    accepted = tuple(p for p in picks if p.name in pool_names)
    return snapshot.model_copy(
        update={
            "stage": Stage.RANKED,
            "picks": accepted,
            "filtered_out": tuple(filtered_out),
            "rationale": rationale,
            "degraded": degraded,
            "relaxed_hard": relaxed_hard,
            "calorie_relaxed": calorie_relaxed,
        }
    )


def apply_final_validation(snapshot: PlanSnapshot, violations: Sequence[ReportedViolation]) -> PlanSnapshot:
    """Remove flagged picks and record them with phase ``final``."""
    _require(snapshot, Stage.RANKED)
    reported = {v.name.strip().lower(): v for v in violations}

    kept: list[DishPick] = []
    recorded: list[GuardViolation] = []
    for pick in snapshot.picks:
        hit = reported.get(pick.name.strip().lower())
        if hit is None:
            kept.append(pick)
            continue
        recorded.append(GuardViolation(name=pick.name, reason=hit.reason or hit.constraint or "final", phase="final"))

    return snapshot.model_copy(
        update={
            "stage": Stage.FINAL_VALIDATED,
            "picks": tuple(kept),
            "violations": snapshot.violations + tuple(recorded),
        }
    )


def needs_backfill(snapshot: PlanSnapshot) -> bool:
    return snapshot.stage == Stage.FINAL_VALIDATED and any(v.phase == "final" for v in snapshot.violations)


def remaining_budget(snapshot: PlanSnapshot) -> float:
    return max(0.0, round(snapshot.budget - snapshot.total, 2))


def remaining_calories(snapshot: PlanSnapshot) -> int | None:
    ceiling = snapshot.calories.max_per_person
    if ceiling is None:
        return None
    used = sum(p.quantity * (p.estimated_calories or 0.0) for p in snapshot.picks)
    return max(0, int(ceiling - used))


def backfill_pool(snapshot: PlanSnapshot) -> list[MenuItem]:
    """Items that are not picked, not flagged in either phase, and still affordable."""
    picked = {p.name for p in snapshot.picks}
    flagged = snapshot.flagged_names
    remaining = remaining_budget(snapshot)
    return [
        item
        for item in snapshot.pool
        if item.name not in picked and item.name.lower() not in flagged and item.price <= remaining + _EPSILON
    ]


def apply_backfill(snapshot: PlanSnapshot, additions: Sequence[DishPick], degraded: bool = False) -> PlanSnapshot:
    _require(snapshot, Stage.FINAL_VALIDATED)
    eligible = {item.name for item in backfill_pool(snapshot)}
    added: list[DishPick] = []
    for pick in additions:
        if pick.name in eligible:
            added.append(pick)
            eligible.discard(pick.name)
    return snapshot.model_copy(
        update={
            "stage": Stage.BACKFILLED,
            "picks": snapshot.picks + tuple(added),
            "degraded": snapshot.degraded or degraded,
        }
    )


def complete(snapshot: PlanSnapshot) -> PlanSnapshot:
    """
    Re-price every pick from the pool and trim quantities so the running
    total never exceeds the budget. Unless the plan is marked calorie-relaxed,
    quantities are also trimmed to the calorie ceiling, counting picks without
    an estimate as 0 kcal. Picks left with no unit are dropped.
    """
    _require(snapshot, Stage.FINAL_VALIDATED, Stage.BACKFILLED)
    prices = {item.name: item.price for item in snapshot.pool}
    ceiling = None if snapshot.calorie_relaxed else snapshot.calories.max_per_person

    final: list[DishPick] = []
    running = 0.0
    running_kcal = 0.0
    for pick in snapshot.picks:
        price = prices.get(pick.name)
        if price is None:
            logger.debug("Dropping pick %r: not in the candidate pool", pick.name)
            continue
        affordable = math.floor((snapshot.budget - running + _EPSILON) / price)
        quantity = min(pick.quantity, affordable)
        kcal = pick.estimated_calories or 0.0
        if ceiling is not None and kcal > 0:
            quantity = min(quantity, math.floor((ceiling - running_kcal + _EPSILON) / kcal))
        if quantity < 1:
            continue
        if quantity != pick.quantity or price != pick.unit_price:
            pick = pick.model_copy(update={"quantity": quantity, "unit_price": price})
        final.append(pick)
        running += quantity * price
        running_kcal += quantity * kcal

    return snapshot.model_copy(update={"stage": Stage.COMPLETE, "picks": tuple(final)})


def to_plan(snapshot: PlanSnapshot) -> RecommendationPlan:
    _require(snapshot, Stage.COMPLETE)
    total = snapshot.total
    return RecommendationPlan(
        budget=snapshot.budget,
        currency=snapshot.currency,
        picks=list(snapshot.picks),
        filtered_out=list(snapshot.filtered_out),
        within_budget=total <= snapshot.budget + _EPSILON,
        rationale=snapshot.rationale or _default_rationale(snapshot),
        guard_violations=list(snapshot.violations),
        degraded=snapshot.degraded,
        relaxed_hard=snapshot.relaxed_hard,
        calorie_relaxed=snapshot.calorie_relaxed,
    )


def _default_rationale(snapshot: PlanSnapshot) -> str:
    if not snapshot.picks:
        return "No dish could be recommended after the constraint checks."
    return f"{len(snapshot.picks)} dish(es) totalling {snapshot.currency}{snapshot.total:.2f} within {snapshot.currency}{snapshot.budget:.2f}."


# ── Generative checks ──────────────────────────────────────────────────────


def _dish_list(items: Sequence[MenuItem]) -> str:
    return json.dumps(
        [{"name": item.name, "desc": item.description} for item in items],
        ensure_ascii=False,
    )


def _guard_call(items: Sequence[MenuItem], constraints: ConstraintSet, llm_config: LLMConfig) -> list[ReportedViolation]:
    parsed = complete_json(
        GUARD_SYSTEM_PROMPT.format(hard=", ".join(constraints.hard_constraints)),
        f"Dishes (JSON):\n{_dish_list(items)}",
        config=llm_config,
        max_tokens=512,
    )
    return GuardReply.model_validate(parsed).violations


def check_candidates(
    items: Sequence[MenuItem],
    constraints: ConstraintSet,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> list[ReportedViolation]:
    """Pre-ranking guard. A failed call counts as no violations."""
    if not items or not constraints.hard_constraints:
        return []
    return attempt(lambda: _guard_call(items, constraints, llm_config), lambda _: [], "guard check").value


def validate_picks(
    picks: Sequence[DishPick],
    pool: Sequence[MenuItem],
    constraints: ConstraintSet,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> list[ReportedViolation]:
    """Post-ranking guard over the picks only. A failed call counts as no violations."""
    if not picks or not constraints.hard_constraints:
        return []
    picked = {p.name for p in picks}
    items = [item for item in pool if item.name in picked]
    return attempt(lambda: _guard_call(items, constraints, llm_config), lambda _: [], "final validation").value


def backfill_picks(
    pool: Sequence[MenuItem],
    remaining: float,
    constraints: ConstraintSet,
    max_calories: int | None = None,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> Outcome:
    """
    Choose replacement dishes from ``pool`` within ``remaining``.

    Falls back to greedy selection over the same pool if the call fails.
    """
    if not pool or remaining <= 0:
        return Ok([])

    def _call() -> list[DishPick]:
        parsed = complete_json(
            BACKFILL_SYSTEM_PROMPT.format(
                hard=", ".join(constraints.hard_constraints) or "none",
                soft=", ".join(constraints.soft) or "none",
                max_picks=config.backfill_max_picks,
                remaining=remaining,
                calorie_rule=f" and {max_calories} kcal" if max_calories is not None else "",
            ),
            "Dishes (JSON):\n"
            + json.dumps(
                [{"id": str(i), "name": it.name, "price": it.price} for i, it in enumerate(pool)],
                ensure_ascii=False,
            ),
            config=llm_config,
            max_tokens=512,
        )
        reply = BackfillReply.model_validate(parsed)
        return resolve_picks(reply.picks, pool, config.max_quantity_per_pick)[: config.backfill_max_picks]

    def _greedy(_: str) -> list[DishPick]:
        return greedy_select(pool, remaining, max_calories)[: config.backfill_max_picks]

    return attempt(_call, _greedy, "backfill")


# ── Orchestration ──────────────────────────────────────────────────────────


def _empty_plan(budget: float, currency: str, rationale: str) -> RecommendationPlan:
    return RecommendationPlan(budget=budget, currency=currency, within_budget=False, rationale=rationale)


def _rank(
    snapshot: PlanSnapshot,
    constraints: ConstraintSet,
    user_note: str,
    llm_config: LLMConfig,
    config: PipelineConfig,
) -> PlanSnapshot:
    pool = list(snapshot.pool)
    ceiling = snapshot.calories.max_per_person

    def _greedy(reason: str) -> list[DishPick]:
        return greedy_select(pool, snapshot.budget, ceiling)

    outcome = attempt(
        lambda: rank_items(pool, snapshot.budget, constraints, snapshot.calories, user_note, llm_config, config),
        _greedy,
        "ranking",
    )
    if isinstance(outcome, Degraded):
        return apply_ranking(
            snapshot,
            outcome.value,
            rationale="Picked in menu order within budget; ranking was unavailable.",
            degraded=True,
        )

    plan, ranked_items = outcome.value
    picks = resolve_picks(plan.picks, ranked_items, config.max_quantity_per_pick)
    if not picks:
        logger.warning("Ranking returned no usable picks; using greedy selection")
        return apply_ranking(
            snapshot,
            greedy_select(pool, snapshot.budget, ceiling),
            rationale="Picked in menu order within budget; ranking returned no usable picks.",
            degraded=True,
        )
    return apply_ranking(
        snapshot,
        picks,
        filtered_out=[FilteredOut(name=f.name, reason=f.reason) for f in plan.filtered_out],
        rationale=plan.notes,
        relaxed_hard=plan.relaxed_hard,
        calorie_relaxed=plan.calorie_relaxed,
    )


def run_guarded_selection(
    candidates: Sequence[MenuItem],
    budget: float,
    constraints: ConstraintSet,
    calories: CalorieLimit = CalorieLimit(),
    currency: str = "$",
    user_note: str = "",
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> RecommendationPlan:
    """Guard, rank, validate, backfill and complete a plan for ``candidates``."""
    if not candidates:
        return _empty_plan(budget, currency, "Every dish on the menu was excluded by your dietary constraints.")

    cheapest = min(item.price for item in candidates)
    if cheapest > budget + _EPSILON:
        return _empty_plan(
            budget,
            currency,
            f"The cheapest eligible dish costs {currency}{cheapest:.2f}, "
            f"which is over the budget of {currency}{budget:.2f}.",
        )

    snapshot = start(candidates, budget, currency, calories)
    snapshot = apply_guard(snapshot, check_candidates(candidates, constraints, llm_config))
    logger.debug("Guard check left %d of %d candidates", len(snapshot.pool), len(candidates))

    if snapshot.pool:
        snapshot = _rank(snapshot, constraints, user_note, llm_config, config)
    else:
        snapshot = apply_ranking(snapshot, [], rationale="Every remaining dish was flagged by the guard check.")

    snapshot = apply_final_validation(
        snapshot, validate_picks(snapshot.picks, snapshot.pool, constraints, llm_config)
    )

    if needs_backfill(snapshot):
        before = len(snapshot.picks)
        additions = backfill_picks(
            backfill_pool(snapshot),
            remaining_budget(snapshot),
            constraints,
            remaining_calories(snapshot),
            llm_config,
            config,
        )
        snapshot = apply_backfill(snapshot, additions.value, degraded=isinstance(additions, Degraded))
        logger.info("Backfill added %d pick(s) after final validation", len(snapshot.picks) - before)

    return to_plan(complete(snapshot))
