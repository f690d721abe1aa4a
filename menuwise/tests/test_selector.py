import json
from unittest.mock import MagicMock, patch

import pytest

from menuwise.constraints.models import ConstraintSet
from menuwise.llm.config import LLMConfig
from menuwise.menu.models import MenuItem
from menuwise.recommendations.config import PipelineConfig
from menuwise.recommendations.models import CalorieLimit
from menuwise.recommendations.schemas import RankedPick
from menuwise.recommendations.selector import (
    RankingError,
    greedy_select,
    rank_batch,
    rank_items,
    resolve_picks,
    slim_items,
)

ENABLED_CONFIG = LLMConfig(api_key="test-key", enabled=True)
DISABLED_CONFIG = LLMConfig(api_key="test-key", enabled=False)

ITEMS = [
    MenuItem(name="Spring Rolls", price=6.50, estimated_calories=300),
    MenuItem(name="Fried Rice", price=11.00, estimated_calories=650),
    MenuItem(name="Kung Pao Chicken", price=13.50, estimated_calories=700),
    MenuItem(name="Tea", price=3.00),
]


def _mock_groq_response(content):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def _plan(*picks, **extra):
    return json.dumps({"filteredOut": [], "picks": list(picks), "estTotal": 0, "notes": "ok", **extra})


def test_greedy_select_in_menu_order_within_budget():
    picks = greedy_select(ITEMS, 20)

    assert [p.name for p in picks] == ["Spring Rolls", "Fried Rice"]
    assert sum(p.subtotal for p in picks) == 17.5


def test_greedy_select_respects_calorie_ceiling():
    picks = greedy_select(ITEMS, 40, max_calories=1000)

    # 300 + 650 fits, chicken would reach 1650, tea has no estimate
    assert [p.name for p in picks] == ["Spring Rolls", "Fried Rice", "Tea"]


@pytest.mark.parametrize("budget", [2, 3, 6.5, 9.5, 17.5, 20, 30, 34])
def test_greedy_select_never_exceeds_budget(budget):
    picks = greedy_select(ITEMS, budget)

    assert sum(p.subtotal for p in picks) <= budget


def test_greedy_select_nothing_affordable():
    assert greedy_select(ITEMS, 2) == []


def test_slim_items_truncates_descriptions():
    items = [MenuItem(name="Soup", price=5, description="x" * 300, estimated_calories=120)]

    slim = slim_items(items, description_limit=120)

    assert slim == [{"id": "0", "name": "Soup", "price": 5.0, "desc": "x" * 120, "estKcal": 120}]


def test_resolve_picks_uses_menu_prices():
    picks = [
        RankedPick(id="1", name="Fried Rice", quantity=2, reason="filling"),
        RankedPick(id="9", name="tea"),
        RankedPick(name="Lobster"),
        RankedPick(id="1", name="Fried Rice"),
    ]

    resolved = resolve_picks(picks, ITEMS)

    assert [p.name for p in resolved] == ["Fried Rice", "Tea"]
    assert resolved[0].unit_price == 11.0
    assert resolved[0].subtotal == 22.0
    assert resolved[0].estimated_calories == 650
    assert resolved[0].reason == "filling"


def test_resolve_picks_caps_quantity():
    resolved = resolve_picks([RankedPick(name="Tea", quantity=50)], ITEMS, max_quantity=10)

    assert resolved[0].quantity == 10


def test_resolve_picks_prefers_name_when_id_disagrees():
    resolved = resolve_picks([RankedPick(id="0", name="Tea")], ITEMS)

    assert resolved[0].name == "Tea"


@patch("menuwise.llm.groq_client.Groq")
def test_rank_batch_parses_plan(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(_plan(
        {"id": "0", "name": "Spring Rolls", "quantity": 1, "reason": "starter", "estimatedCalories": 300},
        {"id": "1", "name": "Fried Rice", "quantity": 1},
        relaxedHard=False,
    ))

    plan = rank_batch(ITEMS, 20, ConstraintSet(), CalorieLimit(), llm_config=ENABLED_CONFIG)

    assert [p.name for p in plan.picks] == ["Spring Rolls", "Fried Rice"]
    assert plan.picks[0].estimated_calories == 300
    assert plan.notes == "ok"


@patch("menuwise.llm.groq_client.Groq")
def test_rank_batch_prompt_restates_constraints(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create
    create.return_value = _mock_groq_response(_plan())
    constraints = ConstraintSet(hard_core=("vegetarian",), negative_keys=("mushroom",), soft=("spicy",))

    rank_batch(ITEMS, 20, constraints, CalorieLimit(max_per_person=900), llm_config=ENABLED_CONFIG)

    system = create.call_args.kwargs["messages"][0]["content"]
    user = create.call_args.kwargs["messages"][1]["content"]
    assert "vegetarian, no:mushroom" in system
    assert "spicy" in system
    assert "900" in system
    assert "Calorie limit per person: 900" in user


@patch("menuwise.llm.groq_client.Groq")
def test_rank_batch_schema_violation_raises(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(
        '{"picks": [{"name": "Tea"}]}'
    )

    with pytest.raises(RankingError):
        rank_batch(ITEMS, 20, ConstraintSet(), llm_config=ENABLED_CONFIG)


def test_rank_batch_unavailable_raises():
    with pytest.raises(RankingError):
        rank_batch(ITEMS, 20, ConstraintSet(), llm_config=DISABLED_CONFIG)


@patch("menuwise.llm.groq_client.Groq")
def test_rank_items_batches_large_menus(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create
    create.return_value = _mock_groq_response(_plan(
        {"id": "0", "name": "Dish 0"},
        {"name": "Dish 60"},
        {"name": "Dish 110"},
    ))
    items = [MenuItem(name=f"Dish {i}", price=5 + i) for i in range(120)]

    plan, ranked = rank_items(items, 500, ConstraintSet(), llm_config=ENABLED_CONFIG, config=PipelineConfig(batch_size=50))

    # three batches plus the final pass
    assert create.call_count == 4
    assert [item.name for item in ranked] == ["Dish 0", "Dish 60", "Dish 110"]
    assert [p.name for p in plan.picks] == ["Dish 0", "Dish 60", "Dish 110"]


@patch("menuwise.llm.groq_client.Groq")
def test_rank_items_small_menu_single_call(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create
    create.return_value = _mock_groq_response(_plan({"name": "Tea"}))

    plan, ranked = rank_items(ITEMS, 20, ConstraintSet(), llm_config=ENABLED_CONFIG)

    assert create.call_count == 1
    assert ranked == ITEMS


@patch("menuwise.llm.groq_client.Groq")
def test_rank_items_all_batches_failing_raises(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = Exception("API timeout")
    items = [MenuItem(name=f"Dish {i}", price=5 + i) for i in range(120)]

    with pytest.raises(RankingError):
        rank_items(items, 500, ConstraintSet(), llm_config=ENABLED_CONFIG, config=PipelineConfig(batch_size=50))
