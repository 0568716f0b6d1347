"""Command line interface for the seating arrangement engine."""
from __future__ import annotations

import argparse
import csv
import logging
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from .config import ArrangementConstraints, load_constraints
from .csv_loader import load_all
from .engine import ArrangementEngine
from .errors import SeatingError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Event seating arrangement")
    parser.add_argument("--guests", required=True, help="Path to guests.csv")
    parser.add_argument("--tables", required=True, help="Path to tables.csv")
    parser.add_argument("--event-id", default="default", help="Event id to load the files under.")
    parser.add_argument("--constraints", type=Path,
                        help="JSON file with arrangement constraints; flags below override it.")
    parser.add_argument("--no-relationships", action="store_true",
                        help="Ignore relationship groups when placing guests.")
    parser.add_argument("--no-side-balance", action="store_true",
                        help="Do not alternate bride and groom side guests.")
    parser.add_argument("--split-families", action="store_true",
                        help="Place guests of an oversized group one by one instead of splitting by unit.")
    parser.add_argument("--consider-dietary", action="store_true",
                        help="Warn about tables mixing incompatible diets.")
    parser.add_argument("--optimize-proximity", action="store_true",
                        help="Prefer tables near other members of the same group.")
    parser.add_argument("--max-per-table", type=int, help="Cap on seats used per table.")
    parser.add_argument("--min-per-table", type=int, help="Advisory minimum seats per table.")
    parser.add_argument("--table-distance", type=float, help="Preferred distance between related tables.")
    parser.add_argument("--enhanced", action="store_true",
                        help="Reserve the first table for the couple and their parents.")
    parser.add_argument("--include-pending", action="store_true",
                        help="Also seat guests whose RSVP is still pending.")
    parser.add_argument("--validate", action="store_true",
                        help="Only check guest/table consistency and exit.")
    parser.add_argument("--out-assignments", type=Path,
                        help="Write assignments CSV: guest,table.")
    parser.add_argument("--out-report", type=Path,
                        help="Write per-table report CSV with seats and grades.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def constraints_from_args(args: argparse.Namespace) -> ArrangementConstraints:
    base = load_constraints(args.constraints) if args.constraints else ArrangementConstraints()
    overrides = {}
    if args.no_relationships:
        overrides["respect_relationships"] = False
    if args.no_side_balance:
        overrides["balance_bride_groom_sides"] = False
    if args.split_families:
        overrides["keep_families_together"] = False
    if args.consider_dietary:
        overrides["consider_dietary_restrictions"] = True
    if args.optimize_proximity:
        overrides["optimize_venue_proximity"] = True
    if args.max_per_table is not None:
        overrides["max_guests_per_table"] = args.max_per_table
    if args.min_per_table is not None:
        overrides["min_guests_per_table"] = args.min_per_table
    if args.table_distance is not None:
        overrides["preferred_table_distance"] = args.table_distance
    return replace(base, **overrides)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by ``python -m seating_arrangement.cli``."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        directory = load_all(args.guests, args.tables, args.event_id)
        engine = ArrangementEngine(directory, include_pending=args.include_pending)

        if args.validate:
            check = engine.validate(args.event_id)
            for e in check.errors:
                print(f"[ERROR] {e}")
            for w in check.warnings:
                print(f"[WARNING] {w}")
            print(f"[VALID] {check.is_valid}")
            return 0 if check.is_valid else 1

        result = engine.arrange(args.event_id, constraints_from_args(args), enhanced=args.enhanced)
    except (SeatingError, ValueError) as exc:
        parser.error(str(exc))

    guests = {g.id: g for g in directory.list_guests(args.event_id)}
    tables = {t.id: t for t in directory.list_tables(args.event_id)}

    # Print simple assignments
    rows = sorted(
        (guests[gid].name, tables[tid].name)
        for tid, members in result.assignments.items()
        for gid in members
        if gid in guests
    )
    for guest, table in rows:
        print(f"{guest},{table}")

    if args.out_assignments:
        args.out_assignments.parent.mkdir(parents=True, exist_ok=True)
        with args.out_assignments.open("w", newline="") as f:
            w = csv.writer(f)
            w.writerow(["guest", "table"])
            w.writerows(rows)

    for s in result.table_reports:
        if not s.guests:
            continue
        print(f"[REPORT] {s.name} grade={s.grade} seats={s.seats}/{s.capacity} "
              f"group={s.dominant_group} share={s.dominant_share:.2f} sides={s.sides}")
    for c in result.conflicts:
        print(f"[{c.severity.value.upper()}] {c.message}")
    print(f"[SCORE] {result.score:.3f} arranged={result.arranged_guests} {result.message}")

    if args.out_report:
        args.out_report.parent.mkdir(parents=True, exist_ok=True)
        with args.out_report.open("w", newline="") as f:
            w = csv.DictWriter(f, fieldnames=[
                "table", "grade", "seats", "capacity", "guests",
                "dominant_group", "dominant_share", "sides", "locked",
            ])
            w.writeheader()
            for s in result.table_reports:
                w.writerow({
                    "table": s.name,
                    "grade": s.grade,
                    "seats": s.seats,
                    "capacity": s.capacity,
                    "guests": s.guests,
                    "dominant_group": s.dominant_group,
                    "dominant_share": f"{s.dominant_share:.4f}",
                    "sides": s.sides,
                    "locked": s.locked,
                })

    return 0 if result.success else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
