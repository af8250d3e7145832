"""
Construction commands and the interpreter that applies them to a diagram.

Three commands build a process map: ``createLane``, ``addShape`` and
``addConnection``. The interpreter applies each command as exactly one
mutation of the :class:`~swimflow.models.Diagram` or logs a warning and
does nothing. It never reorders commands: a shape whose lane has not been
created yet falls back to the pool, and a connection to an unknown node is
dropped.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from swimflow.geometry import Bounds, round_half_up
from swimflow.models import Diagram, NodeFamily
from swimflow.validation import ValidationError, validate_command_dict

logger = logging.getLogger(__name__)


# Lane geometry policy
LANE_DEFAULT_WIDTH = 600
LANE_DEFAULT_HEIGHT = 100
LANE_MIN_WIDTH = 300
LANE_MIN_HEIGHT = 100

# Node geometry policy
NODE_MIN_SIZE = 10
DEFAULT_NODE_SIZES: dict[NodeFamily, tuple[float, float]] = {
    NodeFamily.TASK: (100, 80),
    NodeFamily.EVENT: (36, 36),
    NodeFamily.GATEWAY: (50, 50),
}
DEFAULT_NODE_TYPE = "bpmn:Task"

_NUMBER_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# ---------------------------------------------------------------------------
# Command types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreateLane:
    id: Optional[str]
    label: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class AddShape:
    id: Optional[str]
    type: str
    label: str
    step_number: Optional[int]
    parent_id: Optional[str]
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class AddConnection:
    id: Optional[str]
    source_id: str
    target_id: str


DiagramCommand = Union[CreateLane, AddShape, AddConnection]


# ---------------------------------------------------------------------------
# Payload coercion
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> float:
    """Coerce a payload value to float the way a lenient JSON consumer would.

    Numbers pass through (an int too large for a float becomes inf), strings
    contribute their leading numeric prefix (``"120px"`` -> 120.0,
    ``"Infinity"`` -> inf) and anything else is NaN.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, float):
        return value
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return -math.inf if value < 0 else math.inf
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("+-").startswith("Infinity"):
            return -math.inf if text.startswith("-") else math.inf
        match = _NUMBER_PREFIX_RE.match(text)
        if match:
            return float(match.group(0))
    return math.nan


def _optional_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _step_number(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(number) if math.isfinite(number) else None


def command_from_dict(payload: Any) -> DiagramCommand:
    """Build a typed command from a parsed stream object.

    Raises:
        ValidationError: unknown command name or malformed reference keys.
    """
    name = validate_command_dict(payload)
    label = payload.get("label")
    label = "" if label is None else str(label)
    if name == "createLane":
        return CreateLane(
            id=_optional_id(payload.get("id")),
            label=label,
            x=parse_number(payload.get("x")),
            y=parse_number(payload.get("y")),
            width=parse_number(payload.get("width")),
            height=parse_number(payload.get("height")),
        )
    if name == "addShape":
        node_type = payload.get("type")
        return AddShape(
            id=_optional_id(payload.get("id")),
            type=str(node_type) if node_type else DEFAULT_NODE_TYPE,
            label=label,
            step_number=_step_number(payload.get("stepNumber")),
            parent_id=_optional_id(payload.get("parent")),
            x=parse_number(payload.get("x")),
            y=parse_number(payload.get("y")),
            width=parse_number(payload.get("width")),
            height=parse_number(payload.get("height")),
        )
    return AddConnection(
        id=_optional_id(payload.get("id")),
        source_id=str(payload["sourceId"]),
        target_id=str(payload["targetId"]),
    )


# ---------------------------------------------------------------------------
# Geometry policy
# ---------------------------------------------------------------------------

def lane_bounds(command: CreateLane) -> Optional[Bounds]:
    """Clamped lane geometry, or None when the position is not finite."""
    if not (math.isfinite(command.x) and math.isfinite(command.y)):
        return None
    width = command.width if math.isfinite(command.width) else LANE_DEFAULT_WIDTH
    height = command.height if math.isfinite(command.height) else LANE_DEFAULT_HEIGHT
    return Bounds(command.x, command.y, max(width, LANE_MIN_WIDTH), max(height, LANE_MIN_HEIGHT))


def shape_bounds(command: AddShape) -> Optional[Bounds]:
    """Node geometry with family defaults, or None when the position is not finite."""
    if not (math.isfinite(command.x) and math.isfinite(command.y)):
        return None
    default_w, default_h = DEFAULT_NODE_SIZES[NodeFamily.of(command.type)]
    width = command.width
    height = command.height
    if not math.isfinite(width) or width <= 0:
        width = default_w
    if not math.isfinite(height) or height <= 0:
        height = default_h
    return Bounds(
        command.x, command.y,
        round_half_up(max(width, NODE_MIN_SIZE)), round_half_up(max(height, NODE_MIN_SIZE)),
    )


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------

class CommandInterpreter:
    """Apply construction commands to one diagram, one mutation at a time."""

    def __init__(self, diagram: Diagram) -> None:
        self.diagram = diagram
        self.applied = 0
        self.skipped = 0

    def execute(self, command: Union[DiagramCommand, dict[str, Any]]) -> bool:
        """Apply *command*; return True if the diagram changed."""
        if isinstance(command, dict):
            try:
                command = command_from_dict(command)
            except ValidationError as exc:
                return self._skip("Unknown or malformed command: %s", exc.message)
        if self.diagram.pool is None:
            return self._skip("Pool not found; cannot apply %r", command)

        if isinstance(command, CreateLane):
            done = self._create_lane(command)
        elif isinstance(command, AddShape):
            done = self._add_shape(command)
        else:
            done = self._add_connection(command)
        if done:
            self.applied += 1
        return done

    def _skip(self, msg: str, *args: Any) -> bool:
        logger.warning(msg, *args)
        self.skipped += 1
        return False

    def _create_lane(self, command: CreateLane) -> bool:
        bounds = lane_bounds(command)
        if bounds is None:
            return self._skip("Skipping lane with invalid coordinates: %r", command)
        try:
            self.diagram.create_lane(command.label, bounds, lane_id=command.id)
        except ValueError as exc:
            return self._skip("Skipping lane %r: %s", command.id, exc)
        return True

    def _add_shape(self, command: AddShape) -> bool:
        diagram = self.diagram
        parent = command.parent_id
        if parent not in diagram.lanes:
            logger.warning(
                "Lane %r not found for shape %r; placing it in pool %r",
                parent, command.id, diagram.pool.id,
            )
            parent = diagram.pool.id
        bounds = shape_bounds(command)
        if bounds is None:
            return self._skip("Skipping shape with invalid coordinates: %r", command)
        try:
            diagram.create_node(
                command.type, command.label, bounds, parent,
                node_id=command.id, step_number=command.step_number,
            )
        except ValueError as exc:
            return self._skip("Skipping shape %r: %s", command.id, exc)
        return True

    def _add_connection(self, command: AddConnection) -> bool:
        nodes = self.diagram.nodes
        if command.source_id not in nodes or command.target_id not in nodes:
            return self._skip(
                "Could not create connection from %r to %r. One or both elements not found.",
                command.source_id, command.target_id,
            )
        self.diagram.connect(command.source_id, command.target_id, connection_id=command.id)
        return True
