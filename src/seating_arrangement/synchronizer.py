"""Invariant preserving writes of guest <-> table membership.

Tables own membership. A guest's ``table_assignment`` is only a back-reference
and is written here and nowhere else, always after the table side:

    1. remove the guest from every table listing it (other than the target)
    2. add the guest to the target table
    3. point the guest at the target table

If a write fails half way through one guest, the writes already made for that
guest are undone before the error propagates, so a single guest is never left
half moved. Guests moved earlier in the same run keep their new seats.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .directory import GuestDirectory, TableDirectory
from .errors import DataAccessError, SynchronizationError, UnknownGuestError, UnknownTableError
from .models import Guest, RepairReport, Table
from .utils import sort_tables

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    attempted: int = 0
    synchronized: int = 0
    swept_tables: int = 0


def frozen_guest_ids(guests: Iterable[Guest], tables: Iterable[Table]) -> Set[str]:
    """Guests seated at a locked table, by either side of the link."""
    locked = {t.id: t for t in tables if t.is_locked}
    frozen = {gid for t in locked.values() for gid in t.assigned_guests}
    frozen |= {g.id for g in guests if g.table_assignment in locked}
    return frozen


def plan_moves(
    guests: Sequence[Guest],
    tables: Sequence[Table],
    assignments: Mapping[str, str],
) -> List[Tuple[str, Optional[str]]]:
    """Moves turning the current state into ``assignments``.

    Every guest outside locked tables ends up where ``assignments`` says, or
    unseated. Unseating moves come first, so the run clears before it assigns.
    """
    frozen = frozen_guest_ids(guests, tables)
    listed: Dict[str, List[str]] = {}
    for t in tables:
        if not t.is_locked:
            for gid in t.assigned_guests:
                listed.setdefault(gid, []).append(t.id)

    clears: List[Tuple[str, Optional[str]]] = []
    seats: List[Tuple[str, Optional[str]]] = []
    for guest in guests:
        if guest.id in frozen:
            continue
        target = assignments.get(guest.id)
        holders = listed.get(guest.id, [])
        if guest.table_assignment == target and holders == ([target] if target else []):
            continue
        (seats if target else clears).append((guest.id, target))
    order = {gid: i for i, gid in enumerate(assignments)}
    seats.sort(key=lambda m: order[m[0]])
    return clears + seats


class ConsistencySynchronizer:
    """Single writer for one event's guest/table links."""

    def __init__(
        self,
        guest_directory: GuestDirectory,
        table_directory: TableDirectory,
        event_id: str,
        guests: Iterable[Guest],
        tables: Iterable[Table],
    ) -> None:
        self.guest_directory = guest_directory
        self.table_directory = table_directory
        self.event_id = event_id
        self.guests: Dict[str, Guest] = {g.id: g for g in guests}
        self.tables: Dict[str, Table] = {t.id: t for t in tables}

    # ----------------------------- writes -----------------------------
    def _write_members(self, table: Table, members: List[str]) -> None:
        try:
            self.table_directory.set_assigned_guests(self.event_id, table.id, members)
        except Exception as exc:
            raise DataAccessError(f"could not update members of table {table.name}: {exc}") from exc
        table.assigned_guests = members

    def _write_back_reference(self, guest: Guest, table_id: Optional[str]) -> None:
        try:
            self.guest_directory.set_table_assignment(self.event_id, guest.id, table_id)
        except Exception as exc:
            raise DataAccessError(f"could not update table of guest {guest.name}: {exc}") from exc
        guest.table_assignment = table_id

    def move(self, guest_id: str, table_id: Optional[str]) -> None:
        """Unassign then assign one guest. ``None`` leaves the guest unseated."""
        guest = self.guests.get(guest_id)
        if guest is None:
            raise UnknownGuestError(guest_id)
        target = None
        if table_id is not None:
            target = self.tables.get(table_id)
            if target is None:
                raise UnknownTableError(table_id)

        undo: List[Callable[[], None]] = []
        try:
            for table in self.tables.values():
                if table is target or guest_id not in table.assigned_guests:
                    continue
                before = list(table.assigned_guests)
                self._write_members(table, [gid for gid in before if gid != guest_id])
                undo.append(lambda t=table, b=before: self._write_members(t, b))
            if target is not None and guest_id not in target.assigned_guests:
                before = list(target.assigned_guests)
                self._write_members(target, before + [guest_id])
                undo.append(lambda t=target, b=before: self._write_members(t, b))
            if guest.table_assignment != table_id:
                prior = guest.table_assignment
                self._write_back_reference(guest, table_id)
                undo.append(lambda p=prior: self._write_back_reference(guest, p))
        except DataAccessError:
            self._compensate(guest, undo)
            raise
        logger.debug("moved %s -> %s", guest.name, target.name if target else None)

    def _compensate(self, guest: Guest, undo: List[Callable[[], None]]) -> None:
        for step in reversed(undo):
            try:
                step()
            except DataAccessError:
                logger.exception("could not restore state of guest %s", guest.name)
                return

    # ----------------------------- runs -----------------------------
    def apply(self, moves: Sequence[Tuple[str, Optional[str]]]) -> SyncReport:
        """Apply planned moves in order, stopping at the first failed write."""
        report = SyncReport()
        for guest_id, table_id in moves:
            report.attempted += 1
            try:
                self.move(guest_id, table_id)
            except DataAccessError as exc:
                logger.exception("synchronization stopped at guest %s", guest_id)
                raise SynchronizationError(str(exc), report.attempted, report.synchronized) from exc
            report.synchronized += 1
        return report

    def sweep(self, expected: Mapping[str, List[str]], report: SyncReport) -> None:
        """Drop ids, and repeats, from unlocked tables that ``expected`` does not seat there."""
        for table in self.tables.values():
            if table.is_locked:
                continue
            keep = set(expected.get(table.id, []))
            members = list(dict.fromkeys(gid for gid in table.assigned_guests if gid in keep))
            if members == table.assigned_guests:
                continue
            try:
                self._write_members(table, members)
            except DataAccessError as exc:
                raise SynchronizationError(str(exc), report.attempted, report.synchronized) from exc
            report.swept_tables += 1
            logger.debug("swept table %s", table.name)

    # ----------------------------- repair -----------------------------
    def repair(self) -> RepairReport:
        """Reconcile drifted links without moving anybody to a new table.

        Unknown and repeated ids are dropped from tables. A guest listed at
        several tables stays at the one its back-reference names (else the
        first in table order). Back-references are then rebuilt from membership, and a
        back-reference to a missing table is cleared.
        """
        report = RepairReport()
        ordered = sort_tables(self.tables.values())

        for table in ordered:
            known = [gid for gid in table.assigned_guests if gid in self.guests]
            members = list(dict.fromkeys(known))
            if members != table.assigned_guests:
                report.removed_unknown += len(table.assigned_guests) - len(known)
                report.removed_duplicates += len(known) - len(members)
                self._write_members(table, members)

        holders: Dict[str, List[Table]] = {}
        for table in ordered:
            for gid in table.assigned_guests:
                holders.setdefault(gid, []).append(table)
        for gid, listed in holders.items():
            if len(listed) < 2:
                continue
            named = self.guests[gid].table_assignment
            keep = next((t for t in listed if t.id == named), listed[0])
            for table in listed:
                if table is not keep:
                    self._write_members(table, [x for x in table.assigned_guests if x != gid])
                    report.removed_duplicates += 1
            holders[gid] = [keep]

        for guest in self.guests.values():
            listed = holders.get(guest.id, [])
            if listed:
                if guest.table_assignment != listed[0].id:
                    self._write_back_reference(guest, listed[0].id)
                    report.restored_back_references += 1
            elif guest.table_assignment is not None:
                table = self.tables.get(guest.table_assignment)
                if table is None:
                    self._write_back_reference(guest, None)
                    report.cleared_back_references += 1
                else:
                    self._write_members(table, table.assigned_guests + [guest.id])
                    report.restored_back_references += 1
        logger.info("repaired %d link(s) for event %s", report.total, self.event_id)
        return report
