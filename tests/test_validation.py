"""Tests for tool-parameter and command-envelope validation."""

import math

import pytest

from swimflow.validation import (
    ValidationError,
    validate_action,
    validate_bounds_dict,
    validate_chunks,
    validate_command_dict,
    validate_dict,
    validate_list,
    validate_non_empty_string,
    validate_number,
    validate_string,
    _CONSTRUCT_ACTIONS,
    _SESSION_ACTIONS,
)


class TestPrimitives:

    def test_non_empty_string(self) -> None:
        assert validate_non_empty_string("  demo ", "name") == "demo"
        with pytest.raises(ValidationError, match="'name' must be a non-empty string"):
            validate_non_empty_string("   ", "name")
        with pytest.raises(ValidationError):
            validate_non_empty_string(None, "name")

    def test_string(self) -> None:
        assert validate_string("", "label") == ""
        with pytest.raises(ValidationError, match="must not be empty"):
            validate_string(" ", "label", allow_empty=False)
        with pytest.raises(ValidationError, match="got int"):
            validate_string(3, "label")

    def test_number(self) -> None:
        assert validate_number(3, "dx") == 3.0
        assert validate_number(-2.5, "dx") == -2.5
        with pytest.raises(ValidationError, match="got bool"):
            validate_number(True, "dx")
        with pytest.raises(ValidationError, match="NaN"):
            validate_number(math.nan, "dx")
        with pytest.raises(ValidationError, match="finite"):
            validate_number(math.inf, "dx")
        with pytest.raises(ValidationError, match="finite"):
            validate_number(-math.inf, "dx")
        with pytest.raises(ValidationError, match=">= 1"):
            validate_number(0, "width", min_val=1)
        with pytest.raises(ValidationError, match="<= 10"):
            validate_number(11, "width", max_val=10)

    def test_list_and_dict(self) -> None:
        assert validate_list([1], "items", min_length=1) == [1]
        with pytest.raises(ValidationError, match="at least 1"):
            validate_list([], "items", min_length=1)
        with pytest.raises(ValidationError, match="must be a list"):
            validate_list("abc", "items")
        with pytest.raises(ValidationError, match="dict/object"):
            validate_dict([], "payload")


class TestAction:

    def test_normalised(self) -> None:
        assert validate_action(" Create ", "session", _SESSION_ACTIONS) == "create"
        assert validate_action("GET_XML", "session", _SESSION_ACTIONS) == "get_xml"

    def test_missing(self) -> None:
        with pytest.raises(ValidationError, match="requires an 'action'"):
            validate_action("", "construct", _CONSTRUCT_ACTIONS)

    def test_unknown_lists_choices(self) -> None:
        with pytest.raises(ValidationError, match="begin, feed, finish, run"):
            validate_action("stream", "construct", _CONSTRUCT_ACTIONS)


class TestChunks:

    def test_valid(self) -> None:
        assert validate_chunks(["{", "}"]) == ["{", "}"]

    def test_empty(self) -> None:
        with pytest.raises(ValidationError):
            validate_chunks([])
        with pytest.raises(ValidationError):
            validate_chunks(None)

    def test_non_string_chunk(self) -> None:
        with pytest.raises(ValidationError, match="index 1"):
            validate_chunks(["a", 2])


class TestCommandDict:

    def test_names(self) -> None:
        assert validate_command_dict({"command": "createLane"}) == "createLane"
        assert validate_command_dict({"command": "addShape", "id": 7}) == "addShape"

    def test_not_a_dict(self) -> None:
        with pytest.raises(ValidationError):
            validate_command_dict(["createLane"])

    def test_unknown_name(self) -> None:
        with pytest.raises(ValidationError, match="Unknown command"):
            validate_command_dict({"command": "CreateLane"})
        with pytest.raises(ValidationError):
            validate_command_dict({"type": "bpmn:Task"})

    def test_bad_reference_type(self) -> None:
        with pytest.raises(ValidationError, match="'parent' must be a string"):
            validate_command_dict({"command": "addShape", "parent": {"id": "Lane_1"}})

    def test_connection_endpoints(self) -> None:
        assert validate_command_dict(
            {"command": "addConnection", "sourceId": "A", "targetId": "B"}
        ) == "addConnection"
        with pytest.raises(ValidationError, match="sourceId"):
            validate_command_dict({"command": "addConnection", "sourceId": "", "targetId": "B"})


class TestBoundsDict:

    def test_valid(self) -> None:
        assert validate_bounds_dict({"x": 1, "y": 2, "width": 3, "height": 4}) == {
            "x": 1.0, "y": 2.0, "width": 3.0, "height": 4.0,
        }

    def test_missing_key(self) -> None:
        with pytest.raises(ValidationError, match="missing required key 'height'"):
            validate_bounds_dict({"x": 1, "y": 2, "width": 3})

    def test_zero_size(self) -> None:
        with pytest.raises(ValidationError, match="bounds.width"):
            validate_bounds_dict({"x": 1, "y": 2, "width": 0, "height": 4})

    def test_infinite_coordinate(self) -> None:
        with pytest.raises(ValidationError, match="bounds.y"):
            validate_bounds_dict({"x": 1, "y": math.inf, "width": 3, "height": 4})
