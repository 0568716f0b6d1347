"""CSV loading utilities."""
from __future__ import annotations

from pathlib import Path
from typing import IO, Any, List

import pandas as pd

from .directory import InMemoryDirectory
from .models import Guest, Position, Table, parse_bool, parse_pipe_list


def _text(value: object, default: str = "") -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    text = str(value).strip()
    return text or default


def _int(value: object, default: int = 0) -> int:
    if value is None or (isinstance(value, float) and pd.isna(value)) or str(value).strip() == "":
        return default
    return int(float(value))


def _float(value: object, default: float = 0.0) -> float:
    if value is None or (isinstance(value, float) and pd.isna(value)) or str(value).strip() == "":
        return default
    return float(value)


def load_guests(path: Path | str | IO[Any]) -> List[Guest]:
    """Load guests from ``guests.csv``.

    Required columns: ``id``, ``name``, ``relationship_type``, ``side``.
    ``dietary_restrictions`` is pipe separated. ``table_assignment`` is optional.
    """
    df = pd.read_csv(path, dtype={"id": str, "table_assignment": str})
    missing = [c for c in ("id", "name", "relationship_type", "side") if c not in df.columns]
    if missing:
        raise ValueError(f"guests.csv is missing columns: {', '.join(missing)}")
    guests: List[Guest] = []
    for _, row in df.iterrows():
        table = _text(row.get("table_assignment"))
        guests.append(
            Guest(
                id=_text(row["id"]),
                name=_text(row["name"]),
                relationship_type=_text(row["relationship_type"], "Other").capitalize(),
                side=_text(row["side"]).lower(),
                rsvp_status=_text(row.get("rsvp_status"), "pending").lower(),
                additional_guest_count=_int(row.get("additional_guest_count")),
                dietary_restrictions=set(parse_pipe_list(row.get("dietary_restrictions", ""))),
                table_assignment=table or None,
            )
        )
    ids = [g.id for g in guests]
    if len(ids) != len(set(ids)):
        raise ValueError("guests.csv contains duplicate guest ids")
    return guests


def load_tables(path: Path | str | IO[Any]) -> List[Table]:
    """Load table definitions from ``tables.csv``."""
    df = pd.read_csv(path, dtype={"id": str})
    missing = [c for c in ("id", "name", "capacity") if c not in df.columns]
    if missing:
        raise ValueError(f"tables.csv is missing columns: {', '.join(missing)}")
    tables: List[Table] = []
    for _, row in df.iterrows():
        tables.append(
            Table(
                id=_text(row["id"]),
                name=_text(row["name"]),
                capacity=_int(row["capacity"]),
                is_locked=parse_bool(row.get("is_locked", "false")),
                position=Position(_float(row.get("x")), _float(row.get("y"))),
                assigned_guests=parse_pipe_list(row.get("assigned_guests", "")),
            )
        )
    return tables


def load_all(
    guests_path: Path | str | IO[Any],
    tables_path: Path | str | IO[Any],
    event_id: str = "default",
) -> InMemoryDirectory:
    """Load both files into a fresh directory under ``event_id``.

    Table membership may only reference known guests.
    """
    guests = load_guests(guests_path)
    tables = load_tables(tables_path)
    guest_ids = {g.id for g in guests}
    for t in tables:
        for gid in t.assigned_guests:
            if gid not in guest_ids:
                raise ValueError(f"Table {t.name} references unknown guest: {gid}")
    directory = InMemoryDirectory()
    directory.add_event(event_id, guests, tables)
    return directory
