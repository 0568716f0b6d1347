"""
Conflict and score reporting.

Arrangement score, clamped to [0, 1]:
    0.5 * purity       share of occupied tables seating a single relationship group
    0.3 * fill         placed seat demand over eligible seat demand
    0.2 * (1 - over)   share of tables not named in an error conflict
Per table grades follow the share of the table's largest group:
    A >= 1.0, B >= 0.75, C >= 0.5, D >= 0.25, F below.
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from .config import ScoreWeights
from .grouping import group_label
from .models import Conflict, ConflictKind, Guest, Severity, Side, Table, TableReport
from .utils import clamp, incompatible_diets, sort_tables


def seated_guests(table: Table, guests_by_id: Mapping[str, Guest]) -> List[Guest]:
    return [guests_by_id[gid] for gid in table.assigned_guests if gid in guests_by_id]


def compute_table_stats(table: Table, guests_by_id: Mapping[str, Guest]) -> Dict[str, object]:
    """Seats, group mix and side mix for one table."""
    members = seated_guests(table, guests_by_id)
    seats = sum(g.seat_demand for g in members)
    groups = Counter(g.group_key for g in members)
    sides = Counter(g.side for g in members)
    if groups:
        # most seats first, then label for a stable pick
        key, count = min(groups.items(), key=lambda kv: (-kv[1], group_label(kv[0])))
        dominant, share = group_label(key), count / len(members)
    else:
        dominant, share = "", 0.0
    return {
        "table_id": table.id,
        "name": table.name,
        "capacity": table.capacity,
        "seats": seats,
        "guests": len(members),
        "group_count": len(groups),
        "dominant_group": dominant,
        "dominant_share": share,
        "sides": f"{sides[Side.BRIDE]} bride / {sides[Side.GROOM]} groom",
        "locked": table.is_locked,
    }


def grade_tables(stats: List[Dict[str, object]]) -> List[TableReport]:
    """Assign A to F based on how much of a table its largest group fills."""
    graded = []
    for s in stats:
        m = float(s["dominant_share"])
        if not s["guests"]:
            g = "-"
        elif m >= 1.0:
            g = "A"
        elif m >= 0.75:
            g = "B"
        elif m >= 0.5:
            g = "C"
        elif m >= 0.25:
            g = "D"
        else:
            g = "F"
        graded.append(
            TableReport(
                table_id=str(s["table_id"]),
                name=str(s["name"]),
                capacity=int(s["capacity"]),
                seats=int(s["seats"]),
                guests=int(s["guests"]),
                dominant_group=str(s["dominant_group"]),
                dominant_share=m,
                sides=str(s["sides"]),
                grade=g,
                locked=bool(s["locked"]),
            )
        )
    return graded


def capacity_conflicts(tables: Iterable[Table], guests_by_id: Mapping[str, Guest]) -> List[Conflict]:
    conflicts = []
    for table in tables:
        seats = sum(g.seat_demand for g in seated_guests(table, guests_by_id))
        if seats > table.capacity:
            conflicts.append(
                Conflict(
                    severity=Severity.ERROR,
                    kind=ConflictKind.CAPACITY,
                    message=f'Table "{table.name}" is over capacity: {seats}/{table.capacity} seats',
                    affected_guests=list(table.assigned_guests),
                    affected_tables=[table.id],
                )
            )
    return conflicts


def dietary_conflicts(tables: Iterable[Table], guests_by_id: Mapping[str, Guest]) -> List[Conflict]:
    conflicts = []
    for table in tables:
        members = seated_guests(table, guests_by_id)
        clashes = incompatible_diets(g.dietary_restrictions for g in members)
        if not clashes:
            continue
        diets = {d for pair in clashes for d in pair}
        pairs = ", ".join(f"{a}/{b}" for a, b in clashes)
        conflicts.append(
            Conflict(
                severity=Severity.WARNING,
                kind=ConflictKind.DIETARY,
                message=f'Table "{table.name}" mixes incompatible dietary restrictions: {pairs}',
                affected_guests=[g.id for g in members if g.dietary_restrictions & diets],
                affected_tables=[table.id],
            )
        )
    return conflicts


def score_arrangement(
    tables: Sequence[Table],
    guests_by_id: Mapping[str, Guest],
    eligible: Iterable[Guest],
    conflicts: Iterable[Conflict],
    weights: ScoreWeights | None = None,
) -> float:
    w = weights or ScoreWeights()
    occupied = [t for t in tables if seated_guests(t, guests_by_id)]
    if occupied:
        pure = sum(1 for t in occupied if len({g.group_key for g in seated_guests(t, guests_by_id)}) == 1)
        purity = pure / len(occupied)
    else:
        purity = 1.0

    seated: Set[str] = {gid for t in tables for gid in t.assigned_guests}
    eligible = list(eligible)
    demand = sum(g.seat_demand for g in eligible)
    placed = sum(g.seat_demand for g in eligible if g.id in seated)
    fill = placed / demand if demand else 1.0

    flagged = {tid for c in conflicts if c.is_error for tid in c.affected_tables}
    over = len(flagged) / len(tables) if tables else 0.0

    return clamp(w.purity * purity + w.fill * fill + w.conflict_free * (1.0 - over))


def report(
    tables: Sequence[Table],
    guests: Sequence[Guest],
    eligible: Sequence[Guest],
    allocation_conflicts: Sequence[Conflict],
    consider_dietary: bool = False,
    weights: ScoreWeights | None = None,
) -> Tuple[float, List[Conflict], List[TableReport]]:
    """Score the final mapping and collect every conflict."""
    guests_by_id = {g.id: g for g in guests}
    ordered = sort_tables(tables)
    conflicts = list(allocation_conflicts)
    conflicts += capacity_conflicts(ordered, guests_by_id)
    if consider_dietary:
        conflicts += dietary_conflicts(ordered, guests_by_id)
    score = score_arrangement(ordered, guests_by_id, eligible, conflicts, weights)
    reports = grade_tables([compute_table_stats(t, guests_by_id) for t in ordered])
    return score, conflicts, reports
