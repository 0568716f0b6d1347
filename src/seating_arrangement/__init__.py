"""Seating arrangement engine package."""
from .models import (
    ArrangementResult,
    Conflict,
    ConflictKind,
    Guest,
    Position,
    RelationshipType,
    RsvpStatus,
    RunState,
    Severity,
    Side,
    Table,
    ValidationResult,
)
from .config import ArrangementConstraints, ScoreWeights, constraints_from_mapping, load_constraints
from .directory import GuestDirectory, InMemoryDirectory, TableDirectory
from .grouping import RelationshipGroup, group_guests
from .allocator import TableAllocator
from .synchronizer import ConsistencySynchronizer
from .engine import ArrangementEngine
from .csv_loader import load_all, load_guests, load_tables
from .errors import (
    ArrangementInProgressError,
    CapacityExceededError,
    DataAccessError,
    InvalidConstraintsError,
    SeatingError,
    UnknownEventError,
)

__all__ = [
    "ArrangementConstraints",
    "ArrangementEngine",
    "ArrangementInProgressError",
    "ArrangementResult",
    "CapacityExceededError",
    "Conflict",
    "ConflictKind",
    "ConsistencySynchronizer",
    "DataAccessError",
    "Guest",
    "GuestDirectory",
    "InMemoryDirectory",
    "InvalidConstraintsError",
    "Position",
    "RelationshipGroup",
    "RelationshipType",
    "RsvpStatus",
    "RunState",
    "ScoreWeights",
    "SeatingError",
    "Severity",
    "Side",
    "Table",
    "TableAllocator",
    "TableDirectory",
    "UnknownEventError",
    "ValidationResult",
    "constraints_from_mapping",
    "group_guests",
    "load_all",
    "load_constraints",
    "load_guests",
    "load_tables",
]
