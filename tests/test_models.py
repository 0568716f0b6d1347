import pathlib
import sys

import pytest

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

from seating_arrangement.models import (
    Guest,
    Position,
    RelationshipType,
    RsvpStatus,
    Side,
    Table,
    parse_bool,
    parse_pipe_list,
)


def test_guest_instantiation():
    guest = Guest(
        id="g1",
        name="Alex",
        relationship_type="Cousin",
        side="groom",
        rsvp_status="accepted",
        additional_guest_count=2,
        dietary_restrictions={" Vegan ", ""},
    )
    assert guest.relationship_type is RelationshipType.COUSIN
    assert guest.side is Side.GROOM
    assert guest.rsvp_status is RsvpStatus.ACCEPTED
    assert guest.seat_demand == 3
    assert guest.dietary_restrictions == {"vegan"}
    assert guest.group_key == (Side.GROOM, RelationshipType.COUSIN)


def test_guest_rejects_negative_plus_ones():
    with pytest.raises(ValueError):
        Guest(id="g1", name="Alex", additional_guest_count=-1)


def test_guest_rejects_unknown_relationship():
    with pytest.raises(ValueError):
        Guest(id="g1", name="Alex", relationship_type="Neighbour")


def test_table_keeps_listing_as_given_and_capacity_positive():
    table = Table(id="t1", name="Table 1", capacity=4, assigned_guests=["a", "b", "a"])
    assert table.assigned_guests == ["a", "b", "a"]
    with pytest.raises(ValueError):
        Table(id="t2", name="Table 2", capacity=0)


def test_position_distance():
    assert Position(0, 0).distance_to(Position(3, 4)) == 5


def test_parse_helpers():
    assert parse_pipe_list("vegan| keto |") == ["vegan", "keto"]
    assert parse_pipe_list(float("nan")) == []
    assert parse_pipe_list(None) == []
    assert parse_bool("TRUE") is True
    assert parse_bool("no") is False
