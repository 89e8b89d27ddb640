"""Static tables of stations and items that are ingredients rather than dishes."""

from __future__ import annotations

from typing import FrozenSet

# Stations that only hold build-your-own ingredients; nothing in them is saved.
INGREDIENT_CATEGORIES: FrozenSet[str] = frozenset(
    {
        # Allison
        "pantry 1",
        "gluten free pantry",
        "beverage",
        "salad bar 1",
        "salad bar 2",
        "flame 1",
        "flame 2",
        # Sargent
        "planet eats (hot)",
        "planet eats (cold)",
        "planet eats toppings",
        "made to order deli",
        # Elder
        "deli",
        "salad bar",
        "my pantry",
    }
)

INGREDIENT_ITEMS: FrozenSet[str] = frozenset(
    {
        "shredded cheddar cheese",
        "crushed red pepper",
        "grated parmesan cheese",
        "lettuce leaf",
        "sliced red onion",
        "sliced dill pickles",
        "american cheese slice",
        "hamburger patty",
        "turkey burger (no bun)",
        "egg whites",
        "butter",
        "light cream cheese",
        "2% greek plain yogurt",
        "low fat strawberry yogurt",
        "low fat vanilla yogurt",
        "diced onions",
        "chopped spinach",
        "chopped broccoli",
        "chopped green bell pepper",
        "sliced mushrooms",
        "chopped tomatoes",
        "diced bacon",
        "turkey sausage link",
        "diced smoked ham",
        "oats 'n honey granola",
        "raisins",
        "sunflower spread",
        "grape jelly",
        "sliced green onions",
        "dried oregano",
        "chopped romaine lettuce",
        "spring mix",
        "chopped cilantro",
        "fresh orange & fennel",
        "charred tomato and green bean",
        "cucumber",
        "tomato",
        "parsley",
        "kale",
        "butternut squash",
        "mixed melon",
        "roasted sweet potatoes",
        "zucchini",
        "cherry tomatoes",
        "mushrooms",
        "spinach",
        "broccoli",
        "green beans",
        "carrots",
        "okra",
        "bell peppers",
        "onions",
        "garlic",
        "fresh herbs",
        "lemons",
        "eggs",
        "crumbled feta cheese",
        "yogurt",
        "sour cream",
        "chopped bacon",
        "meatless black bean burger",
        "long grain wild rice blend",
        "steamed rice",
        "wild rice",
        "avoiding gluten barilla penne",
        "granola",
        "soy sauce",
        "everything bagel seasoning",
        "sesame seed mix",
        "pomodoro sauce",
        "salsa verde",
        "salsa rojas",
        "guacamole",
        "pico de gallo",
        "olive oil",
        "sriracha aquafaba aioli",
        "white hamburger bun",
    }
)


def clean(value: str | None) -> str:
    """Lower-case and trim a name for table lookups."""
    return (value or "").strip().lower()


def is_ingredient_category(name: str | None) -> bool:
    return clean(name) in INGREDIENT_CATEGORIES


def is_ingredient_item(name: str | None) -> bool:
    return clean(name) in INGREDIENT_ITEMS
