"""Read/write contracts for the guest and table stores.

The engine never touches storage directly. It reads snapshots through
``list_guests`` / ``list_tables`` and writes one guest or one table at a time.
``InMemoryDirectory`` implements both contracts and is what the CLI and the
tests use.
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import UnknownEventError, UnknownGuestError, UnknownTableError
from .models import Guest, Table

logger = logging.getLogger(__name__)


class GuestDirectory(Protocol):
    def list_guests(self, event_id: str) -> List[Guest]:
        ...

    def set_table_assignment(self, event_id: str, guest_id: str, table_id: Optional[str]) -> None:
        ...


class TableDirectory(Protocol):
    def list_tables(self, event_id: str) -> List[Table]:
        ...

    def set_assigned_guests(self, event_id: str, table_id: str, guest_ids: Sequence[str]) -> None:
        ...


class InMemoryDirectory:
    """Dict backed guest and table store keyed by event id."""

    def __init__(self) -> None:
        self._guests: Dict[str, Dict[str, Guest]] = {}
        self._tables: Dict[str, Dict[str, Table]] = {}
        self._mutex = threading.Lock()

    # ----------------------------- setup -----------------------------
    def add_event(
        self, event_id: str, guests: Iterable[Guest] = (), tables: Iterable[Table] = ()
    ) -> None:
        with self._mutex:
            self._guests.setdefault(event_id, {})
            self._tables.setdefault(event_id, {})
            for g in guests:
                self._guests[event_id][g.id] = copy.deepcopy(g)
            for t in tables:
                self._tables[event_id][t.id] = copy.deepcopy(t)

    def set_table_locked(self, event_id: str, table_id: str, locked: bool) -> None:
        with self._mutex:
            self._table(event_id, table_id).is_locked = locked

    # ----------------------------- reads -----------------------------
    def list_guests(self, event_id: str) -> List[Guest]:
        with self._mutex:
            return [copy.deepcopy(g) for g in self._event_guests(event_id).values()]

    def list_tables(self, event_id: str) -> List[Table]:
        with self._mutex:
            return [copy.deepcopy(t) for t in self._event_tables(event_id).values()]

    def get_guest(self, event_id: str, guest_id: str) -> Guest:
        with self._mutex:
            guest = self._event_guests(event_id).get(guest_id)
            if guest is None:
                raise UnknownGuestError(guest_id)
            return copy.deepcopy(guest)

    def get_table(self, event_id: str, table_id: str) -> Table:
        with self._mutex:
            return copy.deepcopy(self._table(event_id, table_id))

    # ----------------------------- writes -----------------------------
    def set_table_assignment(self, event_id: str, guest_id: str, table_id: Optional[str]) -> None:
        with self._mutex:
            guest = self._event_guests(event_id).get(guest_id)
            if guest is None:
                raise UnknownGuestError(guest_id)
            guest.table_assignment = table_id
        logger.debug("guest %s -> table %s", guest_id, table_id)

    def set_assigned_guests(self, event_id: str, table_id: str, guest_ids: Sequence[str]) -> None:
        with self._mutex:
            self._table(event_id, table_id).assigned_guests = list(dict.fromkeys(guest_ids))
        logger.debug("table %s members=%s", table_id, list(guest_ids))

    # ----------------------------- internals -----------------------------
    def _event_guests(self, event_id: str) -> Dict[str, Guest]:
        if event_id not in self._guests:
            raise UnknownEventError(event_id)
        return self._guests[event_id]

    def _event_tables(self, event_id: str) -> Dict[str, Table]:
        if event_id not in self._tables:
            raise UnknownEventError(event_id)
        return self._tables[event_id]

    def _table(self, event_id: str, table_id: str) -> Table:
        table = self._event_tables(event_id).get(table_id)
        if table is None:
            raise UnknownTableError(table_id)
        return table
