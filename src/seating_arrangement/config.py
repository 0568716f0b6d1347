"""Arrangement constraints and score weights."""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidConstraintsError


@dataclass(frozen=True)
class ArrangementConstraints:
    """Knobs for one arrangement run.

    ``max_guests_per_table`` caps the usable seats of every table (``None``
    leaves table capacity alone). ``min_guests_per_table`` is advisory and only
    produces warnings. ``preferred_table_distance`` matters only when
    ``optimize_venue_proximity`` is set.
    """

    respect_relationships: bool = True
    balance_bride_groom_sides: bool = True
    consider_dietary_restrictions: bool = False
    keep_families_together: bool = True
    optimize_venue_proximity: bool = False
    max_guests_per_table: Optional[int] = 8
    min_guests_per_table: int = 2
    preferred_table_distance: float = 100.0

    def __post_init__(self) -> None:
        if self.max_guests_per_table is not None and self.max_guests_per_table < 1:
            raise InvalidConstraintsError("max_guests_per_table must be at least 1")
        if self.min_guests_per_table < 0:
            raise InvalidConstraintsError("min_guests_per_table cannot be negative")
        if self.preferred_table_distance < 0:
            raise InvalidConstraintsError("preferred_table_distance cannot be negative")

    def effective_capacity(self, capacity: int) -> int:
        if self.max_guests_per_table is None:
            return capacity
        return min(capacity, self.max_guests_per_table)


@dataclass(frozen=True)
class ScoreWeights:
    purity: float = 0.5
    fill: float = 0.3
    conflict_free: float = 0.2


_BOOL_FIELDS = {
    "respect_relationships",
    "balance_bride_groom_sides",
    "consider_dietary_restrictions",
    "keep_families_together",
    "optimize_venue_proximity",
}

# camelCase names accepted from API payloads
_ALIASES = {
    "respectRelationships": "respect_relationships",
    "balanceBrideGroomSides": "balance_bride_groom_sides",
    "considerDietaryRestrictions": "consider_dietary_restrictions",
    "keepFamiliesTogether": "keep_families_together",
    "optimizeVenueProximity": "optimize_venue_proximity",
    "maxGuestsPerTable": "max_guests_per_table",
    "minGuestsPerTable": "min_guests_per_table",
    "preferredTableDistance": "preferred_table_distance",
}


def constraints_from_mapping(
    data: Mapping[str, Any], base: ArrangementConstraints | None = None
) -> ArrangementConstraints:
    """Build constraints from a plain mapping, rejecting unknown or mistyped keys."""
    known = {f.name for f in fields(ArrangementConstraints)}
    values: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _ALIASES.get(raw_key, raw_key)
        if key not in known:
            raise InvalidConstraintsError(f"Unknown constraint: {raw_key}")
        if key in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise InvalidConstraintsError(f"{raw_key} must be a boolean")
        elif key == "max_guests_per_table":
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise InvalidConstraintsError(f"{raw_key} must be an integer or null")
        elif key == "min_guests_per_table":
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConstraintsError(f"{raw_key} must be an integer")
        elif key == "preferred_table_distance":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConstraintsError(f"{raw_key} must be a number")
            value = float(value)
        values[key] = value
    return replace(base or ArrangementConstraints(), **values)


def load_constraints(path: Path | str) -> ArrangementConstraints:
    """Read constraints from a JSON object file."""
    try:
        data = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise InvalidConstraintsError(f"Constraints file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConstraintsError("Constraints file must contain a JSON object")
    return constraints_from_mapping(data)
