import pathlib
import sys
import threading
from types import SimpleNamespace

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

from seating_arrangement import allocator as allocator_module
from seating_arrangement import engine as engine_module
from seating_arrangement.allocator import TableAllocator
from seating_arrangement.directory import InMemoryDirectory
from seating_arrangement.engine import ArrangementEngine, ArrangementRun
from seating_arrangement.errors import (
    ArrangementInProgressError,
    ArrangementTimeoutError,
    CapacityExceededError,
    DataAccessError,
    InvalidConstraintsError,
    UnknownEventError,
)
from seating_arrangement.models import ConflictKind, Guest, RunState, Table

EVENT = "wedding"


class RecordingDirectory(InMemoryDirectory):
    """Keeps a log of every write."""

    def __init__(self):
        super().__init__()
        self.writes = []

    def set_table_assignment(self, event_id, guest_id, table_id):
        self.writes.append(("guest", guest_id, table_id))
        super().set_table_assignment(event_id, guest_id, table_id)

    def set_assigned_guests(self, event_id, table_id, guest_ids):
        self.writes.append(("table", table_id, list(guest_ids)))
        super().set_assigned_guests(event_id, table_id, guest_ids)


class FlakyDirectory(RecordingDirectory):
    def __init__(self, fail_on_call):
        super().__init__()
        self.fail_on_call = fail_on_call
        self.calls = 0

    def set_table_assignment(self, event_id, guest_id, table_id):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise ConnectionError("guest store unavailable")
        super().set_table_assignment(event_id, guest_id, table_id)


class BlockingDirectory(InMemoryDirectory):
    """Holds every read until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def list_guests(self, event_id):
        self.entered.set()
        self.release.wait(5)
        return super().list_guests(event_id)


def _guest(gid, rel="Friend", side="bride", rsvp="accepted", extra=0, table=None):
    return Guest(
        id=gid,
        name=gid.upper(),
        relationship_type=rel,
        side=side,
        rsvp_status=rsvp,
        additional_guest_count=extra,
        table_assignment=table,
    )


def _table(tid, number, capacity, **kw):
    return Table(id=tid, name=f"Table {number}", capacity=capacity, **kw)


def _engine(guests, tables, directory=None, **kw):
    directory = directory if directory is not None else InMemoryDirectory()
    directory.add_event(EVENT, guests, tables)
    return ArrangementEngine(directory, **kw), directory


def test_distinct_relationships_fill_one_seat_tables():
    rels = ["Bride", "Groom", "Parent", "Sibling", "Friend"]
    engine, directory = _engine(
        [_guest(f"g{i}", rel=r) for i, r in enumerate(rels)],
        [_table(f"t{i}", i, 1) for i in range(1, 6)],
    )
    result = engine.arrange(EVENT, {"maxGuestsPerTable": 1})

    assert result.success
    assert result.state is RunState.COMPLETE
    assert result.arranged_guests == 5
    assert result.conflicts == []
    assert result.score == pytest.approx(1.0)
    assert sorted(len(m) for m in result.assignments.values()) == [1] * 5
    assert engine.validate(EVENT).is_valid


def test_large_group_split_across_tables():
    engine, directory = _engine(
        [_guest(f"c{i:02d}", rel="Cousin", side="groom") for i in range(10)],
        [_table("x", 1, 8), _table("y", 2, 4)],
    )
    result = engine.arrange(EVENT)

    assert result.success
    assert result.message == "Arranged 10 guests across 2 tables"
    assert len(result.assignments["x"]) == 8
    assert len(result.assignments["y"]) == 2
    assert len(result.warnings) == 1
    assert result.warnings[0].kind is ConflictKind.RELATIONSHIP
    assert result.errors == []
    assert engine.validate(EVENT).is_valid


def test_manual_move_keeps_links_consistent():
    engine, directory = _engine(
        [_guest("a"), _guest("b"), _guest("c", rel="Cousin")],
        [_table("t1", 1, 4), _table("t2", 2, 4)],
    )
    engine.arrange(EVENT)
    assert directory.get_guest(EVENT, "a").table_assignment == "t1"

    engine.unassign_guest(EVENT, "a")
    assert "a" not in directory.get_table(EVENT, "t1").assigned_guests
    assert directory.get_guest(EVENT, "a").table_assignment is None

    engine.assign_guest(EVENT, "a", "t2")
    assert directory.get_table(EVENT, "t2").assigned_guests == ["a"]
    assert directory.get_guest(EVENT, "a").table_assignment == "t2"

    validation = engine.validate(EVENT)
    assert validation.is_valid
    assert validation.errors == []
    assert validation.warnings == []


def test_concurrent_arrange_is_rejected():
    directory = BlockingDirectory()
    engine, _ = _engine([_guest("a")], [_table("t1", 1, 4)], directory=directory)
    results = []
    worker = threading.Thread(target=lambda: results.append(engine.arrange(EVENT)))
    worker.start()
    assert directory.entered.wait(5)

    assert engine.is_busy(EVENT)
    with pytest.raises(ArrangementInProgressError):
        engine.arrange(EVENT)

    directory.release.set()
    worker.join(5)
    assert results[0].success
    assert not engine.is_busy(EVENT)
    assert len(engine.locks) == 0


def test_wait_policy_serializes_runs():
    directory = BlockingDirectory()
    engine, _ = _engine([_guest("a"), _guest("b")], [_table("t1", 1, 4)], directory=directory, on_busy="wait")
    results = []
    workers = [threading.Thread(target=lambda: results.append(engine.arrange(EVENT))) for _ in range(2)]
    for w in workers:
        w.start()
    assert directory.entered.wait(5)
    directory.release.set()
    for w in workers:
        w.join(5)

    assert len(results) == 2
    assert all(r.success for r in results)
    assert sorted(r.attempted for r in results) == [0, 2]


def test_unknown_busy_policy():
    with pytest.raises(ValueError):
        ArrangementEngine(InMemoryDirectory(), on_busy="queue")


def test_second_run_changes_nothing():
    guests = [
        _guest("a"),
        _guest("b", side="groom"),
        _guest("c", rel="Cousin", extra=1),
        _guest("d", rel="Aunt", side="groom"),
        _guest("e", rel="Cousin"),
    ]
    engine, directory = _engine(
        guests,
        [_table("t1", 1, 4), _table("t2", 2, 4), _table("t3", 3, 4)],
        directory=RecordingDirectory(),
    )
    first = engine.arrange(EVENT)
    assert first.attempted > 0
    directory.writes.clear()

    second = engine.arrange(EVENT)
    assert second.attempted == 0
    assert second.assignments == first.assignments
    assert second.score == pytest.approx(first.score)
    assert directory.writes == []


def test_locked_table_is_left_alone():
    directory = RecordingDirectory()
    engine, _ = _engine(
        [_guest("g9", rel="Sibling", table="t3"), _guest("a"), _guest("b")],
        [_table("t1", 1, 4), _table("t3", 3, 4, is_locked=True, assigned_guests=["g9"])],
        directory=directory,
    )
    result = engine.arrange(EVENT)

    assert result.success
    assert directory.get_table(EVENT, "t3").assigned_guests == ["g9"]
    assert directory.get_guest(EVENT, "g9").table_assignment == "t3"
    assert not any(w[1] in ("t3", "g9") for w in directory.writes)
    assert result.arranged_guests == 3


def test_failed_write_reports_partial_progress():
    directory = FlakyDirectory(fail_on_call=2)
    engine, _ = _engine([_guest("a"), _guest("b")], [_table("t1", 1, 8)], directory=directory)
    result = engine.arrange(EVENT)

    assert not result.success
    assert result.state is RunState.FAILED
    assert result.attempted == 2
    assert result.synchronized == 1
    assert "after synchronizing 1 of 2 attempted guests" in result.message
    assert result.arranged_guests == 1
    assert engine.validate(EVENT).is_valid


def test_invalid_constraints_write_nothing():
    directory = RecordingDirectory()
    engine, _ = _engine([_guest("a")], [_table("t1", 1, 4)], directory=directory)
    with pytest.raises(InvalidConstraintsError):
        engine.arrange(EVENT, {"maxGuestsPerTable": 0})
    with pytest.raises(InvalidConstraintsError):
        engine.arrange(EVENT, {"seatingStyle": "banquet"})
    assert directory.writes == []


def test_unknown_event():
    engine = ArrangementEngine(InMemoryDirectory())
    with pytest.raises(UnknownEventError):
        engine.arrange("missing")
    with pytest.raises(DataAccessError):
        engine.validate("missing")


def test_timeout_fails_before_writing(monkeypatch):
    def too_slow(self):
        raise ArrangementTimeoutError("arrangement exceeded its time budget")

    monkeypatch.setattr(TableAllocator, "solve", too_slow)
    directory = RecordingDirectory()
    engine, _ = _engine([_guest("a")], [_table("t1", 1, 4)], directory=directory)
    result = engine.arrange(EVENT)

    assert not result.success
    assert result.state is RunState.FAILED
    assert "time budget" in result.message
    assert directory.writes == []


def test_pending_guests_only_seated_when_included():
    guests = [_guest("p", rsvp="pending")]
    tables = [_table("t1", 1, 4)]
    strict, directory = _engine(guests, tables)
    result = strict.arrange(EVENT)
    assert result.success
    assert result.message == "No guests with accepted RSVP status to arrange"
    assert directory.get_guest(EVENT, "p").table_assignment is None

    lenient, directory = _engine(guests, tables, include_pending=True)
    assert lenient.arrange(EVENT).arranged_guests == 1
    assert directory.get_guest(EVENT, "p").table_assignment == "t1"


def test_manual_assign_respects_capacity():
    engine, directory = _engine(
        [_guest("a", extra=1, table="t1"), _guest("b")],
        [_table("t1", 1, 2, assigned_guests=["a"]), _table("t2", 2, 4)],
    )
    with pytest.raises(CapacityExceededError, match="Current: 2/2, Adding: 1 seats"):
        engine.assign_guest(EVENT, "b", "t1")
    assert directory.get_guest(EVENT, "b").table_assignment is None

    summary = {c.table_id: c for c in engine.capacity_summary(EVENT)}
    assert summary["t1"].occupied == 2
    assert summary["t1"].available == 0
    assert not summary["t1"].is_over_capacity
    assert summary["t2"].available == 4


def test_repair_after_drift():
    engine, directory = _engine(
        [_guest("a", table="t1")],
        [_table("t1", 1, 4, assigned_guests=["a"]), _table("t2", 2, 4)],
    )
    directory.set_assigned_guests(EVENT, "t2", ["a", "ghost"])

    broken = engine.validate(EVENT)
    assert not broken.is_valid
    assert len(broken.errors) == 3

    fixes = engine.repair(EVENT)
    assert fixes.removed_unknown == 1
    assert fixes.removed_duplicates == 1
    assert engine.validate(EVENT).is_valid
    assert directory.get_table(EVENT, "t1").assigned_guests == ["a"]


def test_declined_guest_is_unseated_by_arrange():
    engine, directory = _engine(
        [_guest("a", table="t1"), _guest("d", rsvp="declined", table="t1")],
        [_table("t1", 1, 4, assigned_guests=["a", "d"])],
    )
    before = engine.validate(EVENT)
    assert before.is_valid
    assert len(before.warnings) == 1

    engine.arrange(EVENT)
    assert directory.get_table(EVENT, "t1").assigned_guests == ["a"]
    assert directory.get_guest(EVENT, "d").table_assignment is None
    assert engine.validate(EVENT).warnings == []


def test_overfilled_locked_table_is_an_error():
    engine, _ = _engine(
        [_guest(g, table="lock") for g in ("a", "b", "c")],
        [_table("lock", 1, 2, is_locked=True, assigned_guests=["a", "b", "c"]), _table("t2", 2, 4)],
    )
    result = engine.arrange(EVENT)

    assert result.success
    capacity_errors = [c for c in result.errors if c.kind is ConflictKind.CAPACITY]
    assert len(capacity_errors) == 1
    assert "over capacity: 3/2" in capacity_errors[0].message
    assert result.score < 1.0


def test_run_rejects_illegal_transition():
    run = ArrangementRun(EVENT)
    run.advance(RunState.GROUPING)
    with pytest.raises(RuntimeError):
        run.advance(RunState.SCORING)


class LockTogglingDirectory(InMemoryDirectory):
    """Locks a table right after the run has taken its snapshot."""

    def __init__(self, table_id):
        super().__init__()
        self.table_id = table_id

    def list_tables(self, event_id):
        snapshot = super().list_tables(event_id)
        self.set_table_locked(event_id, self.table_id, True)
        return snapshot


def test_lock_toggled_mid_run_is_not_observed():
    directory = LockTogglingDirectory("t1")
    engine, _ = _engine([_guest("a")], [_table("t1", 1, 4)], directory=directory)
    result = engine.arrange(EVENT)

    assert result.success
    assert result.assignments == {"t1": ["a"]}
    table = directory.get_table(EVENT, "t1")
    assert table.is_locked
    assert table.assigned_guests == ["a"]


def test_zero_time_budget_is_enforced(monkeypatch):
    monkeypatch.setattr(engine_module, "time", SimpleNamespace(monotonic=lambda: 100.0))
    monkeypatch.setattr(allocator_module, "time", SimpleNamespace(monotonic=lambda: 101.0))

    strict, directory = _engine([_guest("a")], [_table("t1", 1, 4)], max_run_seconds=0)
    result = strict.arrange(EVENT)
    assert result.state is RunState.FAILED
    assert directory.get_table(EVENT, "t1").assigned_guests == []

    unbounded, _ = _engine([_guest("a")], [_table("t1", 1, 4)], max_run_seconds=None)
    assert unbounded.arrange(EVENT).success


def test_repeated_listing_is_reported_then_cleaned():
    engine, directory = _engine(
        [_guest("a", table="t1")],
        [_table("t1", 1, 4, assigned_guests=["a", "a"])],
    )
    broken = engine.validate(EVENT)
    assert not broken.is_valid
    assert broken.errors == ['Table "Table 1" lists guest a more than once']

    assert engine.arrange(EVENT).success
    assert directory.get_table(EVENT, "t1").assigned_guests == ["a"]
    assert engine.validate(EVENT).is_valid


def test_event_locks_are_released_after_use():
    engine, _ = _engine([_guest("a")], [_table("t1", 1, 4)])
    engine.arrange(EVENT)
    engine.unassign_guest(EVENT, "a")
    engine.repair(EVENT)
    assert len(engine.locks) == 0
    assert not engine.is_busy(EVENT)
