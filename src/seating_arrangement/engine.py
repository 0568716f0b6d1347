"""Arrangement engine: the entry point tying grouping, allocation, sync and scoring together."""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Tuple

from .allocator import TableAllocator
from .config import ArrangementConstraints, ScoreWeights, constraints_from_mapping
from .directory import GuestDirectory, TableDirectory
from .errors import (
    ArrangementInProgressError,
    ArrangementTimeoutError,
    CapacityExceededError,
    DataAccessError,
    InvalidConstraintsError,
    SeatingError,
    SynchronizationError,
    UnknownEventError,
    UnknownGuestError,
    UnknownTableError,
)
from .grouping import eligible_guests
from .models import (
    ArrangementResult,
    Guest,
    RepairReport,
    RsvpStatus,
    RunState,
    Table,
    TableCapacity,
    ValidationResult,
)
from .scoring import report
from .synchronizer import ConsistencySynchronizer, frozen_guest_ids, plan_moves
from .utils import sort_tables

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    RunState.IDLE: {RunState.GROUPING, RunState.FAILED},
    RunState.GROUPING: {RunState.ALLOCATING, RunState.FAILED},
    RunState.ALLOCATING: {RunState.SYNCHRONIZING, RunState.FAILED},
    RunState.SYNCHRONIZING: {RunState.SCORING, RunState.FAILED},
    RunState.SCORING: {RunState.COMPLETE, RunState.FAILED},
    RunState.COMPLETE: set(),
    RunState.FAILED: set(),
}

BUSY_POLICIES = ("reject", "wait")


class ArrangementRun:
    """State machine for one arrangement run."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def advance(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal run transition {self.state.value} -> {state.value}")
        logger.debug("event %s: %s -> %s", self.event_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)


class EventLocks:
    """One mutex per event id, dropped once no caller holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, event_id: str, wait: bool) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(event_id, threading.Lock())
            self._users[event_id] = self._users.get(event_id, 0) + 1
        try:
            if not lock.acquire(blocking=wait):
                raise ArrangementInProgressError(event_id)
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._users[event_id] -= 1
                if not self._users[event_id]:
                    del self._users[event_id]
                    del self._locks[event_id]

    def is_busy(self, event_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(event_id)
        return lock is not None and lock.locked()


class ArrangementEngine:
    """Seats an event's guests and keeps guest/table links consistent.

    ``on_busy`` decides what happens when an event is already being modified:
    ``"reject"`` raises ``ArrangementInProgressError``, ``"wait"`` blocks until
    the running call finishes. ``max_run_seconds`` bounds the allocation phase;
    ``None`` disables the bound.
    """

    def __init__(
        self,
        guest_directory: GuestDirectory,
        table_directory: TableDirectory | None = None,
        *,
        include_pending: bool = False,
        on_busy: str = "reject",
        max_run_seconds: float | None = 30.0,
        score_weights: ScoreWeights | None = None,
    ) -> None:
        if on_busy not in BUSY_POLICIES:
            raise ValueError(f"on_busy must be one of {BUSY_POLICIES}, got {on_busy!r}")
        self.guest_directory = guest_directory
        self.table_directory = table_directory or guest_directory  # type: ignore[assignment]
        self.include_pending = include_pending
        self.on_busy = on_busy
        self.max_run_seconds = max_run_seconds
        self.score_weights = score_weights or ScoreWeights()
        self.locks = EventLocks()

    # ----------------------------- helpers -----------------------------
    def _exclusive(self, event_id: str):
        return self.locks.hold(event_id, wait=self.on_busy == "wait")

    def is_busy(self, event_id: str) -> bool:
        return self.locks.is_busy(event_id)

    def _read(self, event_id: str) -> Tuple[List[Guest], List[Table]]:
        """Snapshot both directories. Input errors pass through untouched."""
        try:
            guests = self.guest_directory.list_guests(event_id)
            tables = self.table_directory.list_tables(event_id)
        except SeatingError:
            raise
        except Exception as exc:
            raise DataAccessError(f"could not read event {event_id}: {exc}") from exc
        return guests, tables

    def _synchronizer(self, event_id: str, guests: List[Guest], tables: List[Table]) -> ConsistencySynchronizer:
        return ConsistencySynchronizer(self.guest_directory, self.table_directory, event_id, guests, tables)

    @staticmethod
    def _constraints(
        constraints: ArrangementConstraints | Mapping[str, object] | None,
    ) -> ArrangementConstraints:
        if constraints is None:
            return ArrangementConstraints()
        if isinstance(constraints, ArrangementConstraints):
            return constraints
        if isinstance(constraints, Mapping):
            return constraints_from_mapping(constraints)
        raise InvalidConstraintsError(f"Unsupported constraints value: {type(constraints).__name__}")

    # ----------------------------- arrange -----------------------------
    def arrange(
        self,
        event_id: str,
        constraints: ArrangementConstraints | Mapping[str, object] | None = None,
        enhanced: bool = False,
    ) -> ArrangementResult:
        """Recompute seating for every guest outside locked tables."""
        resolved = self._constraints(constraints)
        with self._exclusive(event_id):
            return self._run(event_id, resolved, enhanced)

    def _run(self, event_id: str, constraints: ArrangementConstraints, enhanced: bool) -> ArrangementResult:
        run = ArrangementRun(event_id)
        deadline = time.monotonic() + self.max_run_seconds if self.max_run_seconds is not None else None
        try:
            guests, tables = self._read(event_id)
        except DataAccessError as exc:
            run.advance(RunState.FAILED)
            return ArrangementResult(success=False, message=str(exc), state=run.state)

        run.advance(RunState.GROUPING)
        frozen = frozen_guest_ids(guests, tables)
        eligible = eligible_guests(guests, self.include_pending, frozen)
        guests_by_id = {g.id: g for g in guests}
        logger.info(
            "arranging event %s: %d eligible guests, %d tables (%d locked)",
            event_id, len(eligible), len(tables), sum(1 for t in tables if t.is_locked),
        )

        run.advance(RunState.ALLOCATING)
        allocator = TableAllocator(constraints, enhanced=enhanced, deadline=deadline)
        allocator.build(
            eligible,
            [t for t in tables if not t.is_locked],
            [t for t in tables if t.is_locked],
            guests_by_id,
        )
        try:
            allocation = allocator.solve()
        except ArrangementTimeoutError as exc:
            run.advance(RunState.FAILED)
            logger.error("event %s: %s", event_id, exc)
            return ArrangementResult(success=False, message=str(exc), state=run.state)

        run.advance(RunState.SYNCHRONIZING)
        sync = self._synchronizer(event_id, guests, tables)
        moves = plan_moves(guests, tables, allocation.assignments)
        try:
            sync_report = sync.apply(moves)
            sync.sweep(allocation.members_by_table(), sync_report)
        except SynchronizationError as exc:
            run.advance(RunState.FAILED)
            return ArrangementResult(
                success=False,
                message=(
                    f"Auto-arrangement failed after synchronizing {exc.synchronized} "
                    f"of {exc.attempted} attempted guests: {exc}"
                ),
                arranged_guests=sum(1 for g in sync.guests.values() if g.table_assignment),
                state=run.state,
                attempted=exc.attempted,
                synchronized=exc.synchronized,
            )

        run.advance(RunState.SCORING)
        final_tables = sort_tables(sync.tables.values())
        final_guests = list(sync.guests.values())
        score, conflicts, table_reports = report(
            final_tables,
            final_guests,
            eligible,
            allocation.conflicts,
            consider_dietary=constraints.consider_dietary_restrictions,
            weights=self.score_weights,
        )
        run.advance(RunState.COMPLETE)

        placed = len(allocation.assignments)
        used = len(allocation.members_by_table())
        if not eligible:
            message = "No guests with accepted RSVP status to arrange"
        else:
            message = f"Arranged {placed} guests across {used} tables"
            if allocation.unplaced:
                message += f"; {len(allocation.unplaced)} could not be seated"
        logger.info("event %s: %s (score %.2f, %d conflicts)", event_id, message, score, len(conflicts))
        return ArrangementResult(
            success=True,
            message=message,
            arranged_guests=sum(1 for g in final_guests if g.table_assignment),
            score=score,
            conflicts=conflicts,
            assignments={t.id: list(t.assigned_guests) for t in final_tables if t.assigned_guests},
            state=run.state,
            attempted=sync_report.attempted,
            synchronized=sync_report.synchronized,
            table_reports=table_reports,
        )

    # ----------------------------- validate -----------------------------
    def validate(self, event_id: str) -> ValidationResult:
        """Read-only consistency check of the guest <-> table links.

        Only directory read failures raise, always as ``DataAccessError``.
        """
        try:
            guests, tables = self._read(event_id)
        except UnknownEventError as exc:
            raise DataAccessError(str(exc)) from exc
        guests_by_id = {g.id: g for g in guests}
        tables_by_id = {t.id: t for t in tables}
        errors: List[str] = []
        warnings: List[str] = []

        listings: Dict[str, List[Table]] = {}
        for table in sort_tables(tables):
            seen = set()
            seats = 0
            for gid in table.assigned_guests:
                if gid in seen:
                    errors.append(f'Table "{table.name}" lists guest {gid} more than once')
                    continue
                seen.add(gid)
                listings.setdefault(gid, []).append(table)
                guest = guests_by_id.get(gid)
                if guest is None:
                    errors.append(f'Table "{table.name}" lists unknown guest {gid}')
                    continue
                seats += guest.seat_demand
                if guest.table_assignment != table.id:
                    errors.append(
                        f'Guest "{guest.name}" is listed at table "{table.name}" '
                        f"but assigned to {guest.table_assignment or 'no table'}"
                    )
            if seats > table.capacity:
                errors.append(f'Table "{table.name}" is over capacity: {seats}/{table.capacity} seats')

        for gid, listed in listings.items():
            if len(listed) > 1:
                names = ", ".join(f'"{t.name}"' for t in listed)
                errors.append(f"Guest {gid} appears in {len(listed)} tables: {names}")

        for guest in guests:
            if guest.table_assignment is None:
                continue
            table = tables_by_id.get(guest.table_assignment)
            if table is None:
                errors.append(f'Guest "{guest.name}" is assigned to missing table {guest.table_assignment}')
            elif guest.id not in table.assigned_guests:
                errors.append(f'Guest "{guest.name}" is assigned to table "{table.name}" but not listed there')
            if guest.rsvp_status in (RsvpStatus.DECLINED, RsvpStatus.NOT_INVITED):
                warnings.append(f'Guest "{guest.name}" is seated but RSVP is {guest.rsvp_status.value}')

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    # ----------------------------- manual edits -----------------------------
    def assign_guest(self, event_id: str, guest_id: str, table_id: str) -> None:
        """Move one guest to ``table_id``, refusing to overfill it."""
        with self._exclusive(event_id):
            guests, tables = self._read(event_id)
            guests_by_id = {g.id: g for g in guests}
            guest = guests_by_id.get(guest_id)
            if guest is None:
                raise UnknownGuestError(guest_id)
            table = next((t for t in tables if t.id == table_id), None)
            if table is None:
                raise UnknownTableError(table_id)
            current = sum(
                guests_by_id[gid].seat_demand
                for gid in table.assigned_guests
                if gid in guests_by_id and gid != guest_id
            )
            if current + guest.seat_demand > table.capacity:
                raise CapacityExceededError(
                    f"Table would exceed capacity. Current: {current}/{table.capacity}, "
                    f"Adding: {guest.seat_demand} seats"
                )
            self._synchronizer(event_id, guests, tables).move(guest_id, table_id)
            logger.info("assigned %s to %s", guest.name, table.name)

    def unassign_guest(self, event_id: str, guest_id: str) -> None:
        with self._exclusive(event_id):
            guests, tables = self._read(event_id)
            self._synchronizer(event_id, guests, tables).move(guest_id, None)
            logger.info("unassigned guest %s", guest_id)

    # ----------------------------- maintenance -----------------------------
    def capacity_summary(self, event_id: str) -> List[TableCapacity]:
        guests, tables = self._read(event_id)
        demand = {g.id: g.seat_demand for g in guests}
        out = []
        for table in sort_tables(tables):
            occupied = sum(demand.get(gid, 1) for gid in table.assigned_guests)
            out.append(
                TableCapacity(
                    table_id=table.id,
                    name=table.name,
                    capacity=table.capacity,
                    occupied=occupied,
                    available=table.capacity - occupied,
                    is_over_capacity=occupied > table.capacity,
                    is_locked=table.is_locked,
                )
            )
        return out

    def repair(self, event_id: str) -> RepairReport:
        """Fix drifted guest/table links in place."""
        with self._exclusive(event_id):
            guests, tables = self._read(event_id)
            return self._synchronizer(event_id, guests, tables).repair()
