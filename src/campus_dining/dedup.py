from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional, Set

from .models import UniqueItemName


def merge_new_names(
    candidates: Iterable[UniqueItemName],
    known: Optional[AbstractSet[str]] = None,
) -> List[UniqueItemName]:
    """
    Return the candidates whose name is not already known, in first-seen order.

    ``known`` may be empty or None (an empty store is a valid input). Names are
    compared exactly; a name repeated within ``candidates`` is returned once.
    """

    seen: Set[str] = set(known or ())
    fresh: List[UniqueItemName] = []
    for candidate in candidates:
        if candidate.name in seen:
            continue
        seen.add(candidate.name)
        fresh.append(candidate)
    return fresh
