from __future__ import annotations

import datetime as dt

import pytest

from campus_dining.filters import clean, is_ingredient_category, is_ingredient_item
from campus_dining.normalizer import (
    extract_categories,
    normalize_categories,
    normalize_menu_payload,
    parse_nutrients,
    parse_number,
)

from conftest import load_json_fixture

DATE = dt.date(2025, 11, 4)


def test_filter_lookups_ignore_case_and_whitespace():
    assert is_ingredient_category("  Salad Bar 1 ")
    assert is_ingredient_category("SALAD BAR 1")
    assert not is_ingredient_category("Comfort")
    assert is_ingredient_item("Tomato")
    assert is_ingredient_item(" butter\t")
    assert not is_ingredient_item("Pancakes")
    assert not is_ingredient_item(None)
    assert clean("  Mixed Melon ") == "mixed melon"


def test_sargent_sample_scenario_yields_only_pancakes():
    payload = load_json_fixture("sargent_lunch.json")

    menu = normalize_menu_payload(payload, location="Sargent", meal="Lunch", date=DATE)

    assert [item.name for item in menu.items] == ["Pancakes"]
    assert [name.name for name in menu.unique_names] == ["Pancakes"]
    pancakes = menu.items[0]
    assert pancakes.station == "Comfort"
    assert pancakes.location == "Sargent"
    assert pancakes.meal == "Lunch"
    assert pancakes.portion == "2 each"
    assert pancakes.description == "Fluffy buttermilk pancakes"
    assert not menu.closed


def test_nutrients_populate_numeric_fields():
    payload = load_json_fixture("sargent_lunch.json")
    pancakes = normalize_menu_payload(payload, location="Sargent", meal="Lunch", date=DATE).items[0]

    assert pancakes.calories == 350
    assert pancakes.protein == 8
    assert pancakes.carbs == 60
    # "less than 1 gram" is not a number.
    assert pancakes.fat is None


def test_parse_nutrients_skips_derived_labels():
    facts = parse_nutrients(
        [
            {"name": "Calories From Fat", "value": "90"},
            {"name": "Calories", "value": 120},
            {"name": "Carbohydrates", "value": "-"},
        ]
    )
    assert facts == {"calories": 120.0, "protein": None, "carbs": None, "fat": None}


@pytest.mark.parametrize(
    "raw, expected",
    [("12g", 12.0), ("4.5", 4.5), (7, 7.0), ("-", None), ("", None), (None, None), (True, None)],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def test_whole_category_excluded_regardless_of_items():
    categories = [
        {"name": "Flame 1", "items": [{"name": "Grilled Chicken"}, {"name": "Veggie Burger"}]},
        {"name": "Comfort", "items": [{"name": "Meatloaf"}]},
    ]
    menu = normalize_categories(categories, location="Allison", meal="Dinner", date=DATE)
    assert [item.name for item in menu.items] == ["Meatloaf"]


def test_filtering_is_idempotent_and_order_independent():
    categories = [
        {"name": "Comfort", "items": [{"name": "Pancakes"}, {"name": "Butter"}, {"name": "Waffles"}]},
        {"name": "Salad Bar 1", "items": [{"name": "Tomato"}]},
        {"name": "Rooted", "items": [{"name": "Tofu Scramble"}]},
    ]
    first = normalize_categories(categories, location="Elder", meal="Breakfast", date=DATE)
    again = normalize_categories(
        [{"name": item.station, "items": [{"name": item.name}]} for item in first.items],
        location="Elder",
        meal="Breakfast",
        date=DATE,
    )
    reversed_menu = normalize_categories(list(reversed(categories)), location="Elder", meal="Breakfast", date=DATE)

    names = sorted(item.name for item in first.items)
    assert names == ["Pancakes", "Tofu Scramble", "Waffles"]
    assert sorted(item.name for item in again.items) == names
    assert sorted(item.name for item in reversed_menu.items) == names


def test_blank_names_are_dropped():
    categories = [{"name": "Comfort", "items": [{"name": "   "}, {"name": None}, "not-a-dict", {"name": "Soup"}]}]
    menu = normalize_categories(categories, location="Elder", meal="Lunch", date=DATE)
    assert [item.name for item in menu.items] == ["Soup"]


def test_explicit_closed_flag_empties_service():
    payload = load_json_fixture("sargent_lunch.json")
    payload["closed"] = True
    menu = normalize_menu_payload(payload, location="Sargent", meal="Lunch", date=DATE)
    assert menu.closed
    assert menu.items == []


def test_zero_items_counts_as_closed():
    menu = normalize_menu_payload({"period": {"categories": []}}, location="Elder", meal="Dinner", date=DATE)
    assert menu.closed


def test_extract_categories_handles_both_payload_shapes():
    nested = {"menu": {"periods": {"categories": [{"name": "A"}]}}}
    flat = {"period": {"categories": [{"name": "B"}]}}
    assert extract_categories(nested) == [{"name": "A"}]
    assert extract_categories(flat) == [{"name": "B"}]
    assert extract_categories({}) == []
    with pytest.raises(ValueError):
        extract_categories(["not", "a", "mapping"])  # type: ignore[arg-type]


def test_non_list_items_or_nutrients_are_malformed():
    with pytest.raises(ValueError, match="must be a list"):
        normalize_categories([{"name": "Comfort", "items": 5}], location="Allison", meal="Lunch", date=DATE)
    with pytest.raises(ValueError, match="nutrients"):
        parse_nutrients(5)  # type: ignore[arg-type]
    assert parse_nutrients(None)["calories"] is None
