"""Tests for command parsing, geometry policy and the interpreter."""

import math

import pytest

from swimflow.commands import (
    AddConnection,
    AddShape,
    CommandInterpreter,
    CreateLane,
    command_from_dict,
    parse_number,
)
from swimflow.models import BASELINE_POOL_ID, Diagram
from swimflow.validation import ValidationError


def _interpreter() -> CommandInterpreter:
    return CommandInterpreter(Diagram(name="test"))


def _lane(lane_id: str = "Lane_A", **extra) -> dict:
    cmd = {"command": "createLane", "id": lane_id, "label": "Sales",
           "x": 190, "y": 80, "width": 970, "height": 200}
    cmd.update(extra)
    return cmd


def _shape(shape_id: str, parent: str = "Lane_A", **extra) -> dict:
    cmd = {"command": "addShape", "id": shape_id, "type": "bpmn:UserTask",
           "label": shape_id, "parent": parent, "x": 250, "y": 120,
           "width": 100, "height": 80}
    cmd.update(extra)
    return cmd


class TestParseNumber:

    def test_numbers_pass_through(self) -> None:
        assert parse_number(12) == 12.0
        assert parse_number(-3.5) == -3.5

    def test_numeric_prefix_of_string(self) -> None:
        assert parse_number("120px") == 120.0
        assert parse_number(" 1e3") == 1000.0

    def test_infinity_strings(self) -> None:
        assert parse_number("Infinity") == math.inf
        assert parse_number("-Infinity") == -math.inf

    def test_everything_else_is_nan(self) -> None:
        for value in ("abc", None, True, [], {}):
            assert math.isnan(parse_number(value))

    def test_oversized_integer_is_infinite(self) -> None:
        assert parse_number(10 ** 400) == math.inf
        assert parse_number(-(10 ** 400)) == -math.inf


class TestCommandFromDict:

    def test_create_lane(self) -> None:
        cmd = command_from_dict(_lane())
        assert cmd == CreateLane("Lane_A", "Sales", 190.0, 80.0, 970.0, 200.0)

    def test_add_shape_defaults(self) -> None:
        cmd = command_from_dict({"command": "addShape", "x": 1, "y": 2})
        assert isinstance(cmd, AddShape)
        assert cmd.type == "bpmn:Task"
        assert cmd.id is None
        assert cmd.parent_id is None
        assert cmd.label == ""
        assert math.isnan(cmd.width)

    def test_step_number(self) -> None:
        assert command_from_dict(_shape("T1", stepNumber="3")).step_number == 3
        assert command_from_dict(_shape("T1", stepNumber="n/a")).step_number is None

    def test_add_connection(self) -> None:
        cmd = command_from_dict({"command": "addConnection", "sourceId": "A", "targetId": "B"})
        assert cmd == AddConnection(None, "A", "B")

    def test_unknown_command(self) -> None:
        with pytest.raises(ValidationError, match="Unknown command"):
            command_from_dict({"command": "deleteShape"})

    def test_connection_requires_endpoints(self) -> None:
        with pytest.raises(ValidationError, match="targetId"):
            command_from_dict({"command": "addConnection", "sourceId": "A"})


class TestCreateLane:

    def test_valid_lane(self) -> None:
        it = _interpreter()
        assert it.execute(_lane())
        lane = it.diagram.lanes["Lane_A"]
        assert lane.label == "Sales"
        assert lane.parent == BASELINE_POOL_ID
        assert (lane.bounds.x, lane.bounds.y, lane.bounds.width, lane.bounds.height) == (190, 80, 970, 200)

    def test_minimum_size(self) -> None:
        it = _interpreter()
        it.execute(_lane(width=100, height=20))
        lane = it.diagram.lanes["Lane_A"]
        assert (lane.bounds.width, lane.bounds.height) == (300, 100)

    def test_non_finite_size_defaulted(self) -> None:
        it = _interpreter()
        it.execute(_lane(width="wide", height=None))
        lane = it.diagram.lanes["Lane_A"]
        assert (lane.bounds.width, lane.bounds.height) == (600, 100)

    def test_non_finite_position_rejected(self) -> None:
        it = _interpreter()
        assert not it.execute(_lane(x="Infinity"))
        assert not it.execute(_lane(y="left"))
        assert it.diagram.lanes == {}
        assert it.skipped == 2

    def test_duplicate_id_skipped(self) -> None:
        it = _interpreter()
        assert it.execute(_lane())
        assert not it.execute(_lane(label="Other"))
        assert it.diagram.lanes["Lane_A"].label == "Sales"

    def test_generated_id(self) -> None:
        it = _interpreter()
        it.execute(_lane(lane_id=None))
        assert list(it.diagram.lanes) == ["Lane_1"]


class TestAddShape:

    def test_placed_in_lane(self) -> None:
        it = _interpreter()
        it.execute(_lane())
        assert it.execute(_shape("T1", stepNumber=1))
        node = it.diagram.nodes["T1"]
        assert node.parent == "Lane_A"
        assert node.step_number == 1
        assert node.type == "bpmn:UserTask"

    def test_missing_lane_falls_back_to_pool(self, caplog) -> None:
        it = _interpreter()
        with caplog.at_level("WARNING"):
            assert it.execute(_shape("T1", parent="Lane_Missing"))
        assert it.diagram.nodes["T1"].parent == BASELINE_POOL_ID
        assert "Lane_Missing" in caplog.text

    def test_lane_created_later_does_not_reparent(self) -> None:
        it = _interpreter()
        it.execute(_shape("T1", parent="Lane_A"))
        it.execute(_lane())
        assert it.diagram.nodes["T1"].parent == BASELINE_POOL_ID

    def test_family_default_sizes(self) -> None:
        it = _interpreter()
        it.execute(_lane())
        it.execute(_shape("E1", type="bpmn:StartEvent", width=None, height=0))
        it.execute(_shape("G1", type="bpmn:ExclusiveGateway", width="x", height=-4))
        it.execute(_shape("T1", type="bpmn:Task", width=None, height=None))
        sizes = {nid: (n.bounds.width, n.bounds.height) for nid, n in it.diagram.nodes.items()}
        assert sizes == {"E1": (36, 36), "G1": (50, 50), "T1": (100, 80)}

    def test_size_floor_and_rounding(self) -> None:
        it = _interpreter()
        it.execute(_lane())
        it.execute(_shape("T1", width=5, height=100.5))
        node = it.diagram.nodes["T1"]
        assert (node.bounds.width, node.bounds.height) == (10, 101)

    def test_non_finite_position_rejected(self) -> None:
        it = _interpreter()
        it.execute(_lane())
        assert not it.execute(_shape("T1", x=None))
        assert "T1" not in it.diagram.nodes

    def test_oversized_position_rejected(self) -> None:
        it = _interpreter()
        it.execute(_lane())
        assert not it.execute(_shape("T1", x=10 ** 400))
        assert it.execute(_shape("T2"))
        assert list(it.diagram.nodes) == ["T2"]

    def test_arithmetic_strings_not_evaluated_here(self) -> None:
        # Expressions are resolved by the sanitizer before interpretation.
        it = _interpreter()
        it.execute(_lane())
        it.execute(_shape("T1", x="250 + 50"))
        assert it.diagram.nodes["T1"].bounds.x == 250


class TestAddConnection:

    def _with_nodes(self) -> CommandInterpreter:
        it = _interpreter()
        it.execute(_lane())
        it.execute(_shape("A"))
        it.execute(_shape("B", x=600))
        return it

    def test_connects_existing_nodes(self) -> None:
        it = self._with_nodes()
        assert it.execute({"command": "addConnection", "id": "Flow_AB", "sourceId": "A", "targetId": "B"})
        conn = it.diagram.connections["Flow_AB"]
        assert (conn.source, conn.target) == ("A", "B")
        assert len(conn.waypoints) >= 2

    def test_unknown_target_is_noop(self) -> None:
        it = self._with_nodes()
        before = dict(it.diagram.connections)
        assert not it.execute({"command": "addConnection", "sourceId": "A", "targetId": "Ghost"})
        assert it.diagram.connections == before

    def test_taken_id_replaced(self) -> None:
        it = self._with_nodes()
        it.execute({"command": "addConnection", "id": "A", "sourceId": "A", "targetId": "B"})
        (cid,) = it.diagram.connections
        assert cid.startswith("Flow_")


def test_unknown_command_is_skipped() -> None:
    it = _interpreter()
    assert not it.execute({"command": "explode"})
    assert it.skipped == 1
    assert it.applied == 0


def test_every_node_parent_resolves() -> None:
    it = _interpreter()
    commands = [
        _shape("S0", parent="Lane_B"),
        _lane("Lane_A"),
        _shape("S1", parent="Lane_A"),
        _shape("S2", parent=None),
        _lane("Lane_B", y=280),
        _shape("S3", parent="Lane_B"),
        _shape("S4", parent="Lane_C"),
    ]
    for cmd in commands:
        it.execute(cmd)
    d = it.diagram
    for node in d.nodes.values():
        assert node.parent in d.lanes or node.parent == d.pool.id
    assert d.nodes["S0"].parent == BASELINE_POOL_ID
    assert d.nodes["S3"].parent == "Lane_B"
