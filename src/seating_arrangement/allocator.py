"""
Relationship aware table allocator.

Placement order for a relationship run:
    1. enhanced mode only: Bride, Groom and Parent groups try the head table
       (lowest ordered unlocked table) first; once they sit there, other
       groups only get the head table when nothing else fits
    2. every group is placed whole where it fits; with venue proximity on,
       tables near members of the same group win, otherwise best fit. In
       enhanced mode best-fit ties go to low table numbers for close family
       and to high table numbers for guests below cousin priority
    3. a group that fits nowhere whole is split by guest (plus-ones never
       split) when families are kept together, else placed guest by guest
    4. a guest that fits nowhere stays unseated with an error conflict

With relationships off and side balancing on, groups are ignored and guests
are drawn alternately from the bride and groom side.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .config import ArrangementConstraints
from .errors import ArrangementTimeoutError
from .grouping import GroupKey, RelationshipGroup, group_guests
from .models import (
    RELATIONSHIP_PRIORITIES,
    VIP_TYPES,
    Conflict,
    ConflictKind,
    Guest,
    Position,
    Severity,
    Side,
    Table,
)
from .utils import sort_tables

logger = logging.getLogger(__name__)


@dataclass
class Allocation:
    """Outcome of ``TableAllocator.solve``."""

    assignments: Dict[str, str] = field(default_factory=dict)
    occupied: Dict[str, int] = field(default_factory=dict)
    conflicts: List[Conflict] = field(default_factory=list)
    unplaced: List[Guest] = field(default_factory=list)
    venue_capacity: int = 0
    locked_seats: int = 0

    def members_by_table(self) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for guest_id, table_id in self.assignments.items():
            out.setdefault(table_id, []).append(guest_id)
        return out


class TableAllocator:
    """Deterministic first-fit / best-fit hybrid with relationship affinity."""

    def __init__(
        self,
        constraints: ArrangementConstraints | None = None,
        enhanced: bool = False,
        deadline: float | None = None,
    ) -> None:
        self.constraints = constraints or ArrangementConstraints()
        self.enhanced = enhanced
        self.deadline = deadline
        # Inputs
        self.guests: List[Guest] = []
        self.tables: List[Table] = []
        self.locked_tables: List[Table] = []
        # Working state
        self.capacity: Dict[str, int] = {}
        self.occupied: Dict[str, int] = {}
        self.order: Dict[str, int] = {}
        self.table_groups: Dict[str, Set[GroupKey]] = {}
        self.side_seats: Dict[str, Dict[Side, int]] = {}
        self.anchor_positions: Dict[GroupKey, List[Position]] = {}
        self.head_id: Optional[str] = None
        self._result = Allocation()

    def build(
        self,
        guests: Sequence[Guest],
        tables: Iterable[Table],
        locked_tables: Iterable[Table] = (),
        frozen_guests: Mapping[str, Guest] | None = None,
    ) -> None:
        """Store the eligible guests and the writable table pool.

        ``locked_tables`` never receive guests. Their occupants (looked up in
        ``frozen_guests``) count against venue capacity and anchor their group
        for proximity placement.
        """
        self.guests = list(guests)
        self.tables = sort_tables(t for t in tables if not t.is_locked)
        self.locked_tables = sort_tables(locked_tables)
        self.order = {t.id: i for i, t in enumerate(self.tables)}
        self.capacity = {t.id: self.constraints.effective_capacity(t.capacity) for t in self.tables}
        self.occupied = {t.id: 0 for t in self.tables}
        self.table_groups = {t.id: set() for t in self.tables}
        self.side_seats = {t.id: {Side.BRIDE: 0, Side.GROOM: 0} for t in self.tables}
        self.anchor_positions = {}
        self.head_id = None
        self._result = Allocation(
            venue_capacity=sum(self.capacity.values()),
        )

        frozen_guests = frozen_guests or {}
        for table in self.locked_tables:
            for guest_id in table.assigned_guests:
                guest = frozen_guests.get(guest_id)
                if guest is None:
                    continue
                self._result.locked_seats += guest.seat_demand
                self.anchor_positions.setdefault(guest.group_key, []).append(table.position)

    # ----------------------------- internals -----------------------------
    def _check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise ArrangementTimeoutError("arrangement exceeded its time budget")

    def _remaining(self, table_id: str) -> int:
        return self.capacity[table_id] - self.occupied[table_id]

    def _fitting(self, seats: int) -> List[Table]:
        """Tables with room for ``seats``; the head table only when nothing else fits."""
        fitting = [t for t in self.tables if self._remaining(t.id) >= seats]
        if self.head_id is not None:
            others = [t for t in fitting if t.id != self.head_id]
            if others:
                return others
        return fitting

    def _preference(self, table: Table, priority: int | None) -> int:
        """Enhanced mode: close family nearest the head table, acquaintances furthest."""
        order = self.order[table.id]
        if self.enhanced and priority is not None and priority < 40:
            return -order
        return order

    def _place(self, guest: Guest, table: Table) -> None:
        self._result.assignments[guest.id] = table.id
        self.occupied[table.id] += guest.seat_demand
        self.side_seats[table.id][guest.side] += guest.seat_demand
        if guest.group_key not in self.table_groups[table.id]:
            self.table_groups[table.id].add(guest.group_key)
            self.anchor_positions.setdefault(guest.group_key, []).append(table.position)

    def _unplaced(self, guest: Guest) -> None:
        logger.warning("no table can seat %s (%d seats)", guest.name, guest.seat_demand)
        self._result.unplaced.append(guest)
        self._result.conflicts.append(
            Conflict(
                severity=Severity.ERROR,
                kind=ConflictKind.CAPACITY,
                message=f"insufficient venue capacity for {guest.name} ({guest.seat_demand} seats)",
                affected_guests=[guest.id],
            )
        )

    def _best_fit(self, seats: int, priority: int | None = None) -> Optional[Table]:
        """Smallest remaining capacity that still fits, then table order."""
        candidates = self._fitting(seats)
        if not candidates:
            return None
        return min(candidates, key=lambda t: (self._remaining(t.id), self._preference(t, priority)))

    def _near_group(self, group: RelationshipGroup, seats: int) -> Optional[Table]:
        """Fitting table closest to members of the same group, within range."""
        if not self.constraints.optimize_venue_proximity:
            return None
        anchors = self.anchor_positions.get(group.key)
        if not anchors:
            return None
        limit = self.constraints.preferred_table_distance
        best = None
        best_key = None
        for table in self._fitting(seats):
            dist = min(table.position.distance_to(a) for a in anchors)
            if dist > limit:
                continue
            key = (dist, self._remaining(table.id), self.order[table.id])
            if best_key is None or key < best_key:
                best, best_key = table, key
        return best

    def _check_distance(self, group: RelationshipGroup, table: Table) -> None:
        """Warn when a group lands out of range of every table its relatives use."""
        if not self.constraints.optimize_venue_proximity:
            return
        anchors = self.anchor_positions.get(group.key)
        if not anchors:
            return
        dist = min(table.position.distance_to(a) for a in anchors)
        if dist <= self.constraints.preferred_table_distance:
            return
        self._result.conflicts.append(
            Conflict(
                severity=Severity.WARNING,
                kind=ConflictKind.PROXIMITY,
                message=(
                    f"relationship group {group.label} seated at {table.name}, {dist:.0f} from "
                    f"its relatives (preferred {self.constraints.preferred_table_distance:.0f})"
                ),
                affected_guests=[g.id for g in group.members],
                affected_tables=[table.id],
            )
        )

    def _place_whole(self, group: RelationshipGroup) -> bool:
        seats = group.total_seats
        table = self._near_group(group, seats) or self._best_fit(seats, group.priority)
        if table is None:
            return False
        self._check_distance(group, table)
        for guest in group.units():
            self._place(guest, table)
        logger.debug("group %s (%d seats) -> %s", group.label, seats, table.name)
        return True

    def _split(self, group: RelationshipGroup) -> None:
        """Pour guest units into the roomiest tables, never splitting a guest."""
        ranking = sorted(
            self.tables, key=lambda t: (t.id == self.head_id, -self._remaining(t.id), self.order[t.id])
        )
        used: List[str] = []
        for guest in group.units():
            table = next((t for t in ranking if self._remaining(t.id) >= guest.seat_demand), None)
            if table is None:
                self._unplaced(guest)
                continue
            self._place(guest, table)
            if table.id not in used:
                used.append(table.id)
        if len(used) > 1:
            self._result.conflicts.append(
                Conflict(
                    severity=Severity.WARNING,
                    kind=ConflictKind.RELATIONSHIP,
                    message=f"relationship group {group.label} split across {len(used)} tables",
                    affected_guests=[g.id for g in group.members],
                    affected_tables=used,
                )
            )

    def _place_units(self, units: Iterable[Guest]) -> None:
        for guest in units:
            self._check_deadline()
            table = self._best_fit(guest.seat_demand, RELATIONSHIP_PRIORITIES[guest.relationship_type])
            if table is None:
                self._unplaced(guest)
            else:
                self._place(guest, table)

    def _seat_head_table(self, groups: List[RelationshipGroup]) -> Set[GroupKey]:
        """Enhanced mode: Bride, Groom and Parent groups go to the head table first."""
        if not self.tables:
            return set()
        head = self.tables[0]
        vip = [g for g in groups if g.relationship_type in VIP_TYPES]
        vip.sort(key=lambda g: -g.priority)  # stable, keeps group order within a tier
        seated: Set[GroupKey] = set()
        for group in vip:
            if self._remaining(head.id) >= group.total_seats:
                for guest in group.units():
                    self._place(guest, head)
                seated.add(group.key)
                logger.debug("head table %s takes %s", head.name, group.label)
        if seated:
            self.head_id = head.id
        return seated

    def _solve_by_relationship(self) -> None:
        groups = list(group_guests(self.guests).values())
        done = self._seat_head_table(groups) if self.enhanced else set()
        for group in groups:
            if group.key in done:
                continue
            self._check_deadline()
            if self._place_whole(group):
                continue
            if self.constraints.keep_families_together:
                self._split(group)
            else:
                self._place_units(group.units())

    def _solve_by_side_balance(self) -> None:
        queues = {
            side: sorted((g for g in self.guests if g.side is side), key=lambda g: (-g.seat_demand, g.id))
            for side in (Side.BRIDE, Side.GROOM)
        }
        drawn = {Side.BRIDE: 0, Side.GROOM: 0}
        while queues[Side.BRIDE] or queues[Side.GROOM]:
            self._check_deadline()
            side = Side.BRIDE if drawn[Side.BRIDE] <= drawn[Side.GROOM] else Side.GROOM
            if not queues[side]:
                side = Side.GROOM if side is Side.BRIDE else Side.BRIDE
            other = Side.GROOM if side is Side.BRIDE else Side.BRIDE
            guest = queues[side].pop(0)
            drawn[side] += guest.seat_demand
            candidates = self._fitting(guest.seat_demand)
            if not candidates:
                self._unplaced(guest)
                continue
            table = min(
                candidates,
                key=lambda t: (self.side_seats[t.id][side] - self.side_seats[t.id][other], self.order[t.id]),
            )
            self._place(guest, table)

    def _flag_underfilled(self) -> None:
        for table in self.tables:
            # a full table is never underfilled
            minimum = min(self.constraints.min_guests_per_table, self.capacity[table.id])
            seats = self.occupied[table.id]
            if 0 < seats < minimum:
                self._result.conflicts.append(
                    Conflict(
                        severity=Severity.WARNING,
                        kind=ConflictKind.CAPACITY,
                        message=f"underfilled table {table.name}: {seats} of minimum {minimum} seats",
                        affected_tables=[table.id],
                    )
                )

    # ----------------------------- main solve -----------------------------
    def solve(self) -> Allocation:
        """Place every eligible guest or record why it could not be placed."""
        c = self.constraints
        if c.respect_relationships:
            self._solve_by_relationship()
        elif c.balance_bride_groom_sides:
            self._solve_by_side_balance()
        else:
            self._place_units(sorted(self.guests, key=lambda g: (-g.seat_demand, g.id)))
        self._flag_underfilled()
        self._result.occupied = dict(self.occupied)
        logger.info(
            "allocated %d of %d guests over %d tables (%d seats free, %d held by locked tables)",
            len(self._result.assignments),
            len(self.guests),
            sum(1 for v in self.occupied.values() if v),
            self._result.venue_capacity - sum(self.occupied.values()),
            self._result.locked_seats,
        )
        return self._result
