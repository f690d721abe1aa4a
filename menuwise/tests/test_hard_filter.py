from menuwise.constraints.hard_filter import apply_hard_filter, find_term, violation_for
from menuwise.constraints.models import ConstraintSet
from menuwise.constraints.splitter import split_tags
from menuwise.menu.models import MenuInfo, MenuItem

MENU = MenuInfo(items=[
    MenuItem(name="Spring Rolls", price=6.50),
    MenuItem(name="Fried Rice", price=11.00),
    MenuItem(name="Kung Pao Chicken", price=13.50),
    MenuItem(name="Tea", price=3.00),
])


def _names(items):
    return [item.name for item in items]


def test_vegetarian_removes_chicken_before_selection():
    result = apply_hard_filter(MENU, split_tags(["vegetarian"]))

    assert _names(result.allowed) == ["Spring Rolls", "Fried Rice", "Tea"]
    assert len(result.removed) == 1
    removed = result.removed[0]
    assert removed.name == "Kung Pao Chicken"
    assert removed.tag == "vegetarian"
    assert removed.matched == "chicken"


def test_no_constraints_keeps_everything():
    result = apply_hard_filter(MENU, ConstraintSet())

    assert _names(result.allowed) == _names(MENU.items)
    assert result.removed == []


def test_negative_key_matches_whole_words_only():
    menu = MenuInfo(items=[
        MenuItem(name="Green Tea", price=3.0),
        MenuItem(name="Steak Frites", price=24.0),
    ])

    result = apply_hard_filter(menu, split_tags(["no-tea"]))

    assert _names(result.allowed) == ["Steak Frites"]
    assert result.removed[0].reason == "dynamic_exclude"
    assert result.removed[0].tag == "no:tea"


def test_negative_key_expands_synonyms():
    menu = MenuInfo(items=[
        MenuItem(name="Shiitake Noodle Soup", price=12.0),
        MenuItem(name="香菇鸡饭", price=10.0),
        MenuItem(name="Plain Rice", price=2.0),
    ])

    result = apply_hard_filter(menu, split_tags("no mushroom"))

    assert _names(result.allowed) == ["Plain Rice"]
    assert [r.matched for r in result.removed] == ["shiitake", "香菇"]


def test_negative_key_checks_description():
    menu = MenuInfo(items=[MenuItem(name="House Salad", description="with parmesan and croutons", price=9.0)])

    result = apply_hard_filter(menu, split_tags(["no cheese"]))

    assert result.allowed == []
    assert result.removed[0].matched == "parmesan"


def test_vegan_indicator_keeps_labelled_dish():
    menu = MenuInfo(items=[
        MenuItem(name="Vegan Cheese Pizza", price=14.0),
        MenuItem(name="Cheese Pizza", price=12.0),
    ])

    result = apply_hard_filter(menu, split_tags(["vegan"]))

    assert _names(result.allowed) == ["Vegan Cheese Pizza"]
    assert result.removed[0].tag == "vegan"


def test_gluten_free():
    menu = MenuInfo(items=[
        MenuItem(name="Beef Noodles", price=12.0),
        MenuItem(name="Gluten-free Pasta", price=15.0),
        MenuItem(name="Grilled Fish", price=18.0),
    ])

    result = apply_hard_filter(menu, split_tags(["gluten-free"]))

    assert _names(result.allowed) == ["Gluten-free Pasta", "Grilled Fish"]
    assert result.removed[0].tag == "glutenfree"


def test_halal_and_kosher():
    menu = MenuInfo(items=[
        MenuItem(name="Bacon Burger", price=12.0),
        MenuItem(name="Garlic Shrimp", price=16.0),
        MenuItem(name="Lamb Kebab", price=14.0),
    ])

    halal = apply_hard_filter(menu, split_tags(["halal"]))
    kosher = apply_hard_filter(menu, split_tags(["kosher"]))

    assert _names(halal.allowed) == ["Garlic Shrimp", "Lamb Kebab"]
    assert _names(kosher.allowed) == ["Lamb Kebab"]


def test_negative_keys_checked_before_core_tags():
    item = MenuItem(name="Mushroom Chicken", price=12.0)

    violation = violation_for(item, split_tags(["vegetarian", "no-mushroom"]))

    assert violation.tag == "no:mushroom"
    assert violation.name == "Mushroom Chicken"


def test_find_term_plurals():
    assert find_term("crispy spring rolls", ["roll"]) == "roll"
    assert find_term("tomatoes on toast", ["tomato"]) == "tomato"
    assert find_term("steak", ["tea"]) is None
