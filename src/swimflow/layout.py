"""
Swimlane layout engine for process maps.

A single deterministic pass over the whole diagram:

1. cluster the flow nodes into columns by horizontal centre;
2. size every lane to fit its tallest column stack, then give all lanes
   the same height and stack them inside the pool;
3. sweep the columns left to right, centring each column's nodes
   vertically in their lane and horizontally in the column;
4. resize the pool, re-route all connections and fit the view.

Running the pass twice without edits moves nothing the second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from swimflow.geometry import Bounds
from swimflow.models import Diagram, Lane, Node

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class LayoutConfig:
    """Spacing constants of the swimlane layout.

    Spacing is sized to exceed typical node extents (tasks 100x80, events
    and gateways at most 50x50) and the grouping threshold is well under
    the column spacing, so laid-out columns never merge on a later pass.
    """
    pool_header_width: float = 30
    padding_x: float = 200          # Lane edge to first/last column
    padding_y: float = 180          # Lane edge to tallest column stack
    node_spacing: float = 200       # Vertical gap between nodes of one column in one lane
    column_spacing: float = 450     # Horizontal gap between adjacent columns
    min_lane_height: float = 400
    column_threshold: float = 75    # Max centre distance to join a column
    move_tolerance: float = 1       # Smaller deltas are not applied


# ---------------------------------------------------------------------------
# Column clustering
# ---------------------------------------------------------------------------

@dataclass
class Column:
    """A transient cluster of nodes sharing roughly the same horizontal centre."""
    nodes: list[Node] = field(default_factory=list)

    @property
    def center(self) -> float:
        return sum(n.bounds.cx for n in self.nodes) / len(self.nodes)

    @property
    def width(self) -> float:
        return max(n.bounds.width for n in self.nodes)

    def in_lane(self, lane_id: str) -> list[Node]:
        return [n for n in self.nodes if n.parent == lane_id]


def sort_by_center(nodes: Iterable[Node]) -> list[Node]:
    return sorted(nodes, key=lambda n: n.bounds.cx)


def cluster(sorted_nodes: Sequence[Node], threshold: float) -> list[Column]:
    """Greedily group nodes (sorted by centre) into columns.

    A node joins the last column when its centre lies strictly within
    *threshold* of that column's running average centre; otherwise it
    starts a new column.
    """
    columns: list[Column] = []
    for node in sorted_nodes:
        if columns and abs(node.bounds.cx - columns[-1].center) < threshold:
            columns[-1].nodes.append(node)
        else:
            columns.append(Column([node]))
    return columns


def stack_height(nodes: Sequence[Node], spacing: float) -> float:
    """Height of *nodes* stacked vertically with *spacing* between them."""
    if not nodes:
        return 0.0
    return sum(n.bounds.height for n in nodes) + (len(nodes) - 1) * spacing


# ---------------------------------------------------------------------------
# Layout pass
# ---------------------------------------------------------------------------

@dataclass
class LayoutResult:
    """Summary of one layout pass."""
    columns: int = 0
    lanes: int = 0
    lane_height: float = 0
    lane_width: float = 0
    moved: int = 0
    rerouted: int = 0
    aborted: Optional[str] = None


def adjust_layout(diagram: Diagram, config: Optional[LayoutConfig] = None) -> LayoutResult:
    """Lay out the whole diagram in place and return a summary."""
    cfg = config or LayoutConfig()
    result = LayoutResult()

    pool = diagram.pool
    if pool is None or not pool.bounds.is_finite():
        logger.warning("Layout aborted: valid pool not found.")
        result.aborted = "no pool"
        return result

    lanes = diagram.lanes_of(pool.id, finite_only=True)
    if not lanes:
        diagram.fit_view()
        result.aborted = "no lanes"
        return result

    lane_ids = {lane.id for lane in lanes}
    nodes = diagram.nodes_in(lane_ids, finite_only=True)
    if not nodes:
        diagram.fit_view()
        result.aborted = "no nodes"
        return result

    columns = cluster(sort_by_center(nodes), cfg.column_threshold)

    # Lane heights: every lane takes the largest required height.
    lane_height = max(
        max(cfg.min_lane_height, _required_height(lane, columns, cfg) + 2 * cfg.padding_y)
        for lane in lanes
    )
    content_width = (
        sum(col.width for col in columns)
        + max(0, len(columns) - 1) * cfg.column_spacing
    )
    lane_width = content_width + 2 * cfg.padding_x

    ordered = sorted(lanes, key=lambda lane: (lane.bounds.y, lane.order))
    lane_x = pool.bounds.x + cfg.pool_header_width
    lane_y = pool.bounds.y
    for lane in ordered:
        diagram.resize(lane.id, Bounds(lane_x, lane_y, lane_width, lane_height))
        lane_y += lane_height

    cursor = pool.bounds.x + cfg.pool_header_width + cfg.padding_x
    for col in columns:
        col_width = col.width
        for lane in ordered:
            members = sorted(col.in_lane(lane.id), key=lambda n: n.bounds.y)
            if not members:
                continue
            node_y = lane.bounds.y + (lane.bounds.height - stack_height(members, cfg.node_spacing)) / 2
            for node in members:
                node_x = cursor + (col_width - node.bounds.width) / 2
                dx = node_x - node.bounds.x
                dy = node_y - node.bounds.y
                if abs(dx) > cfg.move_tolerance or abs(dy) > cfg.move_tolerance:
                    diagram.move(node.id, dx, dy)
                    result.moved += 1
                node_y += node.bounds.height + cfg.node_spacing
        cursor += col_width + cfg.column_spacing

    diagram.resize(pool.id, Bounds(
        pool.bounds.x, pool.bounds.y,
        lane_width + cfg.pool_header_width,
        max(cfg.min_lane_height, len(ordered) * lane_height),
    ))

    if diagram.connections:
        result.rerouted = diagram.layout_connections()
    diagram.fit_view()

    result.columns = len(columns)
    result.lanes = len(ordered)
    result.lane_height = lane_height
    result.lane_width = lane_width
    logger.debug(
        "Layout: %d columns, %d lanes at %.0fx%.0f, %d nodes moved",
        result.columns, result.lanes, lane_width, lane_height, result.moved,
    )
    return result


def _required_height(lane: Lane, columns: list[Column], cfg: LayoutConfig) -> float:
    return max(
        (stack_height(col.in_lane(lane.id), cfg.node_spacing) for col in columns),
        default=0.0,
    )


def find_overlapping_nodes(diagram: Diagram, margin: float = 0) -> list[tuple[str, str]]:
    """Return pairs of node ids whose bounding boxes overlap."""
    nodes = [n for n in diagram.nodes.values() if n.bounds.is_finite()]
    overlaps: list[tuple[str, str]] = []
    for i, a in enumerate(nodes):
        for b in nodes[i + 1:]:
            if a.bounds.intersects(b.bounds, margin):
                overlaps.append((a.id, b.id))
    return overlaps
