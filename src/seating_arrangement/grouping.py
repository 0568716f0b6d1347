"""Relationship grouping of eligible guests."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Dict, Iterable, List, Tuple

from .models import (
    RELATIONSHIP_PRIORITIES,
    Guest,
    RelationshipType,
    RsvpStatus,
    Side,
)

GroupKey = Tuple[Side, RelationshipType]


@dataclass
class RelationshipGroup:
    """Guests sharing one (side, relationship type) pair."""

    side: Side
    relationship_type: RelationshipType
    members: List[Guest] = field(default_factory=list)

    @property
    def key(self) -> GroupKey:
        return (self.side, self.relationship_type)

    @property
    def label(self) -> str:
        return group_label(self.key)

    @property
    def total_seats(self) -> int:
        return sum(g.seat_demand for g in self.members)

    @property
    def priority(self) -> int:
        return RELATIONSHIP_PRIORITIES[self.relationship_type]

    def units(self) -> List[Guest]:
        """Atomic placement units, largest seat demand first."""
        return sorted(self.members, key=lambda g: (-g.seat_demand, g.id))


def group_label(key: GroupKey) -> str:
    side, rel = key
    return f"{side.value}/{rel.value}"


def eligible_guests(
    guests: Iterable[Guest],
    include_pending: bool = False,
    frozen: Collection[str] = (),
) -> List[Guest]:
    """Guests the allocator may place.

    Accepted guests only, unless ``include_pending``. Ids in ``frozen`` (guests
    seated at locked tables) are left out.
    """
    statuses = {RsvpStatus.ACCEPTED}
    if include_pending:
        statuses.add(RsvpStatus.PENDING)
    return [g for g in guests if g.rsvp_status in statuses and g.id not in frozen]


def _sort_key(group: RelationshipGroup) -> tuple:
    return (-group.total_seats, group.side.value, group.relationship_type.value)


def group_guests(guests: Iterable[Guest]) -> Dict[GroupKey, RelationshipGroup]:
    """Partition guests by (side, relationship type).

    The returned dict iterates in placement order: total seats descending,
    ties by side then relationship type.
    """
    groups: Dict[GroupKey, RelationshipGroup] = {}
    for g in sorted(guests, key=lambda g: g.id):
        groups.setdefault(g.group_key, RelationshipGroup(g.side, g.relationship_type)).members.append(g)
    return {grp.key: grp for grp in sorted(groups.values(), key=_sort_key)}


def sorted_groups(guests: Iterable[Guest]) -> List[RelationshipGroup]:
    return list(group_guests(guests).values())
