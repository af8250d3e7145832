"""
Diagram model for swimlane process maps.

The model is an arena of pool, lane, node and connection entities keyed by
id. Parent links and connection endpoints are stored as ids, never as
object references, so a diagram can be inspected, copied and serialised
without walking cycles. All coordinates are absolute canvas positions.

The model exposes the primitives the construction and layout passes rely
on (create, resize, move, connect, label, id lookup and reassignment,
filtered enumeration, automatic connection routing, fit-to-view) and
renders a draw.io XML snapshot for rendering collaborators.
"""

from __future__ import annotations

import html as _html
import uuid
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from swimflow.geometry import Bounds, Point, _fmt, route_orthogonal, union_bounds
from swimflow.styles import BpmnStyle, EdgeStylePreset, node_style


BASELINE_POOL_ID = "Participant_1"
BASELINE_POOL_LABEL = "Process"
BASELINE_POOL_BOUNDS = (160.0, 80.0, 1000.0, 400.0)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class NodeFamily(Enum):
    """Geometry family of a flow node; decides its default size."""
    TASK = "task"
    EVENT = "event"
    GATEWAY = "gateway"

    @classmethod
    def of(cls, node_type: str) -> NodeFamily:
        if "Event" in node_type:
            return cls.EVENT
        if "Gateway" in node_type:
            return cls.GATEWAY
        return cls.TASK


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Pool:
    """The single top-level container of a process map."""
    id: str
    label: str
    bounds: Bounds


@dataclass
class Lane:
    """A horizontal band of the pool for one actor, role or system."""
    id: str
    label: str
    bounds: Bounds
    parent: str
    # Creation index; breaks ties between lanes sharing the same y.
    order: int = 0


@dataclass
class Node:
    """A task, event or gateway placed in a lane."""
    id: str
    type: str
    label: str
    bounds: Bounds
    parent: str
    step_number: Optional[int] = None

    @property
    def family(self) -> NodeFamily:
        return NodeFamily.of(self.type)


@dataclass
class Connection:
    """A directed sequence flow between two nodes."""
    id: str
    source: str
    target: str
    waypoints: list[Point] = field(default_factory=list)


Element = Union[Pool, Lane, Node, Connection]
SelectionListener = Callable[[list[str]], None]


# ---------------------------------------------------------------------------
# Diagram
# ---------------------------------------------------------------------------

@dataclass
class Diagram:
    """Mutable process-map graph with exactly one pool."""
    name: str = "Process Map"
    pool: Optional[Pool] = None
    lanes: dict[str, Lane] = field(default_factory=dict)
    nodes: dict[str, Node] = field(default_factory=dict)
    connections: dict[str, Connection] = field(default_factory=dict)
    viewport: Optional[Bounds] = None
    selection: list[str] = field(default_factory=list)

    _next_id: int = field(default=1, init=False, repr=False)
    _next_order: int = field(default=0, init=False, repr=False)
    _listeners: list[SelectionListener] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.pool is None:
            self.reset()

    def reset(self) -> None:
        """Return to the empty baseline: one pool, no lanes, nodes or connections."""
        x, y, w, h = BASELINE_POOL_BOUNDS
        self.pool = Pool(BASELINE_POOL_ID, BASELINE_POOL_LABEL, Bounds(x, y, w, h))
        self.lanes.clear()
        self.nodes.clear()
        self.connections.clear()
        self.viewport = None
        self._next_id = 1
        self._next_order = 0
        if self.selection:
            self.select([])

    def next_id(self, prefix: str) -> str:
        """Generate an unused id such as ``Flow_3``."""
        while True:
            cid = f"{prefix}_{self._next_id}"
            self._next_id += 1
            if not self.has_id(cid):
                return cid

    # ----- lookup -----

    def get(self, element_id: str) -> Optional[Element]:
        if self.pool is not None and self.pool.id == element_id:
            return self.pool
        return (
            self.lanes.get(element_id)
            or self.nodes.get(element_id)
            or self.connections.get(element_id)
        )

    def has_id(self, element_id: str) -> bool:
        return self.get(element_id) is not None

    def lanes_of(self, pool_id: Optional[str] = None, finite_only: bool = False) -> list[Lane]:
        """Lanes of a pool (the diagram's pool by default) in creation order."""
        owner = pool_id or (self.pool.id if self.pool else "")
        lanes = [lane for lane in self.lanes.values() if lane.parent == owner]
        if finite_only:
            lanes = [lane for lane in lanes if lane.bounds.is_finite()]
        return sorted(lanes, key=lambda lane: lane.order)

    def nodes_in(self, parent_ids: set[str], finite_only: bool = False) -> list[Node]:
        nodes = [n for n in self.nodes.values() if n.parent in parent_ids]
        if finite_only:
            nodes = [n for n in nodes if n.bounds.is_finite()]
        return nodes

    def steps(self) -> list[Node]:
        """Nodes ordered by step number; unnumbered nodes come last."""
        return sorted(
            self.nodes.values(),
            key=lambda n: (n.step_number is None, n.step_number or 0, n.id),
        )

    # ----- creation -----

    def create_lane(self, label: str, bounds: Bounds, lane_id: Optional[str] = None) -> Lane:
        """Add a horizontal lane to the pool."""
        if self.pool is None:
            raise LookupError("diagram has no pool")
        lid = lane_id or self.next_id("Lane")
        if self.has_id(lid):
            raise ValueError(f"element id '{lid}' already in use")
        lane = Lane(lid, label, bounds.copy(), self.pool.id, self._next_order)
        self._next_order += 1
        self.lanes[lid] = lane
        return lane

    def create_node(
        self,
        node_type: str,
        label: str,
        bounds: Bounds,
        parent: str,
        node_id: Optional[str] = None,
        step_number: Optional[int] = None,
    ) -> Node:
        """Add a flow node under a lane or the pool."""
        if parent not in self.lanes and (self.pool is None or parent != self.pool.id):
            raise LookupError(f"parent '{parent}' is neither a lane nor the pool")
        nid = node_id or self.next_id("Activity")
        if self.has_id(nid):
            raise ValueError(f"element id '{nid}' already in use")
        node = Node(nid, node_type, label, bounds.copy(), parent, step_number)
        self.nodes[nid] = node
        return node

    def connect(self, source: str, target: str, connection_id: Optional[str] = None) -> Connection:
        """Add a directed connection between two existing nodes and route it."""
        if source not in self.nodes or target not in self.nodes:
            raise LookupError(f"cannot connect '{source}' -> '{target}'")
        cid = connection_id
        if not cid or self.has_id(cid):
            cid = self.next_id("Flow")
        conn = Connection(cid, source, target)
        self.connections[cid] = conn
        self.layout_connection(cid)
        return conn

    # ----- mutation -----

    def update_label(self, element_id: str, label: str) -> None:
        element = self.get(element_id)
        if element is None or isinstance(element, Connection):
            raise KeyError(element_id)
        element.label = label

    def update_id(self, element_id: str, new_id: str) -> None:
        """Reassign an element id, rewriting every reference to it."""
        element = self.get(element_id)
        if element is None:
            raise KeyError(element_id)
        if new_id == element_id:
            return
        if self.has_id(new_id):
            raise ValueError(f"element id '{new_id}' already in use")
        element.id = new_id
        if isinstance(element, Lane):
            self.lanes[new_id] = self.lanes.pop(element_id)
        elif isinstance(element, Node):
            self.nodes[new_id] = self.nodes.pop(element_id)
        elif isinstance(element, Connection):
            self.connections[new_id] = self.connections.pop(element_id)
        for lane in self.lanes.values():
            if lane.parent == element_id:
                lane.parent = new_id
        for node in self.nodes.values():
            if node.parent == element_id:
                node.parent = new_id
        for conn in self.connections.values():
            if conn.source == element_id:
                conn.source = new_id
            if conn.target == element_id:
                conn.target = new_id
        self.selection = [new_id if s == element_id else s for s in self.selection]

    def resize(self, element_id: str, bounds: Bounds) -> None:
        element = self.get(element_id)
        if element is None or isinstance(element, Connection):
            raise KeyError(element_id)
        element.bounds = bounds.copy()

    def move(self, element_id: str, dx: float, dy: float) -> None:
        element = self.get(element_id)
        if element is None or isinstance(element, Connection):
            raise KeyError(element_id)
        element.bounds.x += dx
        element.bounds.y += dy

    # ----- routing / view -----

    def layout_connection(self, connection_id: str, margin: float = 20) -> None:
        """Re-route one connection orthogonally around the other nodes."""
        conn = self.connections[connection_id]
        src = self.nodes[conn.source].bounds
        tgt = self.nodes[conn.target].bounds
        if not (src.is_finite() and tgt.is_finite()):
            conn.waypoints = []
            return
        obstacles = [
            n.bounds for n in self.nodes.values()
            if n.id not in (conn.source, conn.target) and n.bounds.is_finite()
        ]
        conn.waypoints = route_orthogonal(src, tgt, obstacles, margin)

    def layout_connections(self, connection_ids: Optional[list[str]] = None) -> int:
        ids = list(self.connections) if connection_ids is None else connection_ids
        for cid in ids:
            self.layout_connection(cid)
        return len(ids)

    def fit_view(self, margin: float = 40) -> Optional[Bounds]:
        """Fit the viewport around all finite element bounds."""
        boxes: list[Bounds] = []
        if self.pool is not None:
            boxes.append(self.pool.bounds)
        boxes.extend(lane.bounds for lane in self.lanes.values())
        boxes.extend(node.bounds for node in self.nodes.values())
        content = union_bounds(boxes)
        self.viewport = content.expanded(margin) if content else None
        return self.viewport

    # ----- selection -----

    def subscribe(self, listener: SelectionListener) -> None:
        """Register a callback fired with the new selection on every change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: SelectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def select(self, element_ids: list[str]) -> None:
        self.selection = [eid for eid in element_ids if self.has_id(eid)]
        for listener in list(self._listeners):
            listener(list(self.selection))

    # ----- serialisation -----

    def to_element(self) -> ET.Element:
        model = ET.Element("mxGraphModel", attrib={
            "grid": "1", "gridSize": "10", "guides": "1", "connect": "1",
            "arrows": "1", "fold": "1", "page": "0", "math": "0", "shadow": "0",
        })
        root = ET.SubElement(model, "root")
        ET.SubElement(root, "mxCell", attrib={"id": "0"})
        ET.SubElement(root, "mxCell", attrib={"id": "1", "parent": "0"})
        if self.pool is not None:
            root.append(_vertex_cell(self.pool.id, self.pool.label, BpmnStyle.POOL,
                                     "1", self.pool.bounds, None))
        for lane in self.lanes_of():
            origin = self.pool.bounds if self.pool else None
            root.append(_vertex_cell(lane.id, lane.label, BpmnStyle.LANE,
                                     lane.parent, lane.bounds, origin))
        for node in self.steps():
            owner = self.get(node.parent)
            origin = owner.bounds if isinstance(owner, (Pool, Lane)) else None
            root.append(_vertex_cell(node.id, node.label, node_style(node.type),
                                     node.parent, node.bounds, origin))
        for conn in self.connections.values():
            el = ET.SubElement(root, "mxCell", attrib={
                "id": conn.id, "style": EdgeStylePreset.SEQUENCE_FLOW, "parent": "1",
                "edge": "1", "source": conn.source, "target": conn.target,
            })
            geom = ET.SubElement(el, "mxGeometry", attrib={"relative": "1", "as": "geometry"})
            # Docking points are implied by source/target; only bends are stored.
            bends = conn.waypoints[1:-1]
            if bends:
                arr = ET.SubElement(geom, "Array", attrib={"as": "points"})
                for pt in bends:
                    arr.append(pt.to_element())

        diagram = ET.Element("diagram", attrib={"name": self.name, "id": _uid()})
        diagram.append(model)
        return diagram

    def to_xml(self, pretty: bool = True) -> str:
        mxfile = ET.Element("mxfile", attrib={
            "host": "swimflow", "agent": "swimflow/1.0", "type": "device",
            "compressed": "false",
        })
        mxfile.append(self.to_element())
        if pretty:
            ET.indent(mxfile, space="  ")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(
            mxfile, encoding="unicode"
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _uid() -> str:
    return uuid.uuid4().hex[:12]


def _vertex_cell(
    cell_id: str,
    label: str,
    style: str,
    parent: str,
    bounds: Bounds,
    origin: Optional[Bounds],
) -> ET.Element:
    """Build a vertex mxCell; draw.io stores child geometry relative to its container."""
    ox, oy = (origin.x, origin.y) if origin is not None else (0.0, 0.0)
    attrib = {"id": cell_id, "style": style, "parent": parent, "vertex": "1"}
    if label:
        attrib["value"] = _html.unescape(label)
    el = ET.Element("mxCell", attrib=attrib)
    ET.SubElement(el, "mxGeometry", attrib={
        "x": _fmt(bounds.x - ox), "y": _fmt(bounds.y - oy),
        "width": _fmt(bounds.width), "height": _fmt(bounds.height),
        "as": "geometry",
    })
    return el
