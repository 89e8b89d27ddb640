from __future__ import annotations

from campus_dining.dedup import merge_new_names
from campus_dining.models import UniqueItemName


def names(*values: str):
    return [UniqueItemName(name=value) for value in values]


def test_only_unknown_names_are_returned():
    fresh = merge_new_names(names("Pancakes", "Waffles", "Soup"), {"Waffles"})
    assert [item.name for item in fresh] == ["Pancakes", "Soup"]


def test_empty_store_is_valid_input():
    assert [item.name for item in merge_new_names(names("Pancakes"), set())] == ["Pancakes"]
    assert [item.name for item in merge_new_names(names("Pancakes"), None)] == ["Pancakes"]


def test_repeated_candidates_are_returned_once():
    fresh = merge_new_names(names("Soup", "Soup", "Salad", "Soup"))
    assert [item.name for item in fresh] == ["Soup", "Salad"]


def test_merge_is_idempotent():
    known = {"Pancakes"}
    first = merge_new_names(names("Pancakes", "Omelette"), known)
    known |= {item.name for item in first}
    assert merge_new_names(names("Pancakes", "Omelette"), known) == []


def test_names_match_exactly():
    fresh = merge_new_names(names("pancakes", "Pancakes "), {"Pancakes"})
    assert [item.name for item in fresh] == ["pancakes", "Pancakes "]
