"""Data models for the seating arrangement engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
import math


def parse_pipe_list(value: object) -> List[str]:
    """Split a pipe separated string into a list.

    Empty values such as ``""`` or ``None`` return an empty list.
    ``pandas`` often provides ``float('nan')`` for missing values which is
    also treated as empty.
    """
    if value is None:
        return []
    if isinstance(value, float) and math.isnan(value):
        return []
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return []
    return [part.strip() for part in text.split("|") if part.strip()]


def parse_bool(value: object) -> bool:
    """Parse common truthy strings into bool."""
    return str(value).strip().lower() in {"true", "1", "yes", "y"}


class RelationshipType(str, Enum):
    BRIDE = "Bride"
    GROOM = "Groom"
    PARENT = "Parent"
    SIBLING = "Sibling"
    GRANDPARENT = "Grandparent"
    UNCLE = "Uncle"
    AUNT = "Aunt"
    COUSIN = "Cousin"
    FRIEND = "Friend"
    COLLEAGUE = "Colleague"
    OTHER = "Other"


class Side(str, Enum):
    BRIDE = "bride"
    GROOM = "groom"


class RsvpStatus(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PENDING = "pending"
    NOT_INVITED = "not_invited"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ConflictKind(str, Enum):
    CAPACITY = "capacity"
    DIETARY = "dietary"
    RELATIONSHIP = "relationship"
    PROXIMITY = "proximity"


class RunState(Enum):
    """Lifecycle of a single arrangement run."""

    IDLE = "idle"
    GROUPING = "grouping"
    ALLOCATING = "allocating"
    SYNCHRONIZING = "synchronizing"
    SCORING = "scoring"
    COMPLETE = "complete"
    FAILED = "failed"


# Higher numbers sit closer to the head table in enhanced mode.
RELATIONSHIP_PRIORITIES: Dict[RelationshipType, int] = {
    RelationshipType.BRIDE: 100,
    RelationshipType.GROOM: 100,
    RelationshipType.PARENT: 90,
    RelationshipType.SIBLING: 80,
    RelationshipType.GRANDPARENT: 70,
    RelationshipType.UNCLE: 50,
    RelationshipType.AUNT: 50,
    RelationshipType.COUSIN: 40,
    RelationshipType.FRIEND: 30,
    RelationshipType.COLLEAGUE: 20,
    RelationshipType.OTHER: 10,
}

VIP_TYPES = (RelationshipType.BRIDE, RelationshipType.GROOM, RelationshipType.PARENT)


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    def distance_to(self, other: "Position") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass
class Guest:
    """An invited guest and their back-reference to a table."""

    id: str
    name: str
    relationship_type: RelationshipType = RelationshipType.OTHER
    side: Side = Side.BRIDE
    rsvp_status: RsvpStatus = RsvpStatus.PENDING
    additional_guest_count: int = 0
    dietary_restrictions: Set[str] = field(default_factory=set)
    table_assignment: Optional[str] = None

    def __post_init__(self) -> None:
        self.relationship_type = RelationshipType(self.relationship_type)
        self.side = Side(self.side)
        self.rsvp_status = RsvpStatus(self.rsvp_status)
        if self.additional_guest_count < 0:
            raise ValueError(f"Guest {self.id} has a negative additional guest count")
        self.dietary_restrictions = {d.strip().lower() for d in self.dietary_restrictions if d.strip()}

    @property
    def seat_demand(self) -> int:
        """Seats this guest occupies, plus-ones included."""
        return 1 + self.additional_guest_count

    @property
    def group_key(self) -> Tuple[Side, RelationshipType]:
        return (self.side, self.relationship_type)


@dataclass
class Table:
    """Dinner table. Owns the authoritative membership list."""

    id: str
    name: str
    capacity: int
    is_locked: bool = False
    position: Position = field(default_factory=Position)
    assigned_guests: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError(f"Table {self.name} must have a positive capacity")
        # duplicates are kept so validate() can report them
        self.assigned_guests = list(self.assigned_guests)


@dataclass
class Conflict:
    """A detected issue in an arrangement."""

    severity: Severity
    kind: ConflictKind
    message: str
    affected_guests: List[str] = field(default_factory=list)
    affected_tables: List[str] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass
class TableReport:
    """Per table summary produced after scoring."""

    table_id: str
    name: str
    capacity: int
    seats: int
    guests: int
    dominant_group: str
    dominant_share: float
    sides: str
    grade: str
    locked: bool = False


@dataclass
class ArrangementResult:
    success: bool
    message: str
    arranged_guests: int = 0
    score: float = 0.0
    conflicts: List[Conflict] = field(default_factory=list)
    assignments: Dict[str, List[str]] = field(default_factory=dict)
    state: RunState = RunState.IDLE
    attempted: int = 0
    synchronized: int = 0
    table_reports: List[TableReport] = field(default_factory=list)

    @property
    def errors(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.severity is Severity.WARNING]


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TableCapacity:
    table_id: str
    name: str
    capacity: int
    occupied: int
    available: int
    is_over_capacity: bool
    is_locked: bool = False


@dataclass
class RepairReport:
    """Counts of fixes applied by ``ArrangementEngine.repair``."""

    removed_unknown: int = 0
    removed_duplicates: int = 0
    restored_back_references: int = 0
    cleared_back_references: int = 0

    @property
    def total(self) -> int:
        return (
            self.removed_unknown
            + self.removed_duplicates
            + self.restored_back_references
            + self.cleared_back_references
        )
