"""
Input validation for swimflow MCP tool parameters and command payloads.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers or UI hosts.
"""

from __future__ import annotations

import math
from typing import Any


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    """Ensure *value* is a string (optionally non-empty)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if val != val:
        raise ValidationError(f"'{field_name}' must not be NaN.")
    if not math.isfinite(val):
        raise ValidationError(f"'{field_name}' must be finite, got {val}.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_SESSION_ACTIONS = {"CREATE", "LIST", "GET_XML", "START_ANALYSIS", "DELETE"}
_CONSTRUCT_ACTIONS = {"BEGIN", "FEED", "FINISH", "RUN"}
_LAYOUT_ACTIONS = {"ADJUST", "REROUTE"}
_EDIT_ACTIONS = {"MOVE", "RESIZE", "SELECT"}
_LEARN_ACTIONS = {"NOW", "GET", "HINTS", "CLEAR"}
_INSPECT_ACTIONS = {"CELLS", "COLUMNS", "STEPS", "OVERLAPS", "INFO"}

COMMAND_NAMES = {"createLane", "addShape", "addConnection"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_chunks(value: Any) -> list[str]:
    """Validate a list of raw stream chunks."""
    chunks = validate_list(value, "chunks", min_length=1)
    for i, chunk in enumerate(chunks):
        if not isinstance(chunk, str):
            raise ValidationError(
                f"Chunk at index {i} must be a string, got {type(chunk).__name__}."
            )
    return chunks


def validate_command_dict(payload: Any) -> str:
    """Validate the envelope of a construction command and return its name.

    Only the envelope is checked; field values are coerced leniently by the
    interpreter, which owns the geometry fallback policy.
    """
    validate_dict(payload, "command")
    name = payload.get("command")
    if not isinstance(name, str) or name not in COMMAND_NAMES:
        choices = ", ".join(sorted(COMMAND_NAMES))
        raise ValidationError(f"Unknown command {name!r}. Expected one of: {choices}.")
    for key in ("id", "parent", "sourceId", "targetId"):
        if key in payload and payload[key] is not None and not isinstance(payload[key], (str, int)):
            raise ValidationError(
                f"Command '{name}': '{key}' must be a string, got {type(payload[key]).__name__}."
            )
    if name == "addConnection":
        for key in ("sourceId", "targetId"):
            if payload.get(key) in (None, ""):
                raise ValidationError(f"Command 'addConnection' missing required key '{key}'.")
    return name


def validate_bounds_dict(value: Any, field_name: str = "bounds") -> dict[str, float]:
    """Validate an ``{x, y, width, height}`` dict for edit actions."""
    validate_dict(value, field_name)
    result: dict[str, float] = {}
    for key in ("x", "y", "width", "height"):
        if key not in value:
            raise ValidationError(f"'{field_name}' missing required key '{key}'.")
        min_val = 1 if key in ("width", "height") else None
        result[key] = validate_number(value[key], f"{field_name}.{key}", min_val=min_val)
    return result
