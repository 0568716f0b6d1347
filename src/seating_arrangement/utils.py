"""Small helpers shared by the allocator and the reporter."""
from __future__ import annotations

import re
from itertools import combinations
from typing import FrozenSet, Iterable, List, Set, Tuple

from .models import Table

# Diet pairs that cannot be served from one table menu.
DIETARY_EXCLUSIONS: FrozenSet[FrozenSet[str]] = frozenset(
    frozenset(pair)
    for pair in (
        ("vegan", "keto"),
        ("vegan", "paleo"),
        ("vegan", "carnivore"),
        ("vegetarian", "paleo"),
        ("vegetarian", "carnivore"),
    )
)


def table_number(name: str) -> int | None:
    """Return the first integer in a table name (``"Table 12"`` -> 12)."""
    m = re.search(r"(\d+)", str(name))
    return int(m.group(1)) if m else None


def table_sort_key(table: Table) -> Tuple[float, str, str]:
    num = table_number(table.name)
    return (num if num is not None else float("inf"), table.name, table.id)


def sort_tables(tables: Iterable[Table]) -> List[Table]:
    return sorted(tables, key=table_sort_key)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def incompatible_diets(restrictions: Iterable[Set[str]]) -> List[Tuple[str, str]]:
    """Pairs of mutually exclusive diets present across the given sets."""
    seen: Set[str] = set()
    for r in restrictions:
        seen |= r
    clashes = []
    for a, b in combinations(sorted(seen), 2):
        if frozenset((a, b)) in DIETARY_EXCLUSIONS:
            clashes.append((a, b))
    return clashes
