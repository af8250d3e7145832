"""
Geometry primitives and orthogonal connection routing.

Bounds are absolute canvas coordinates (x to the right, y downwards).
Routing produces the full waypoint list of a connection, docking points
included, using a channel in the gap between source and target and
detouring around obstacles when the straight channel is blocked.
"""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def to_element(self, role: Optional[str] = None) -> ET.Element:
        el = ET.Element("mxPoint", attrib={"x": _fmt(self.x), "y": _fmt(self.y)})
        if role:
            el.set("as", role)
        return el


@dataclass
class Bounds:
    """Axis-aligned bounding box of a diagram element."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height))

    def copy(self) -> Bounds:
        return Bounds(self.x, self.y, self.width, self.height)

    def expanded(self, margin: float) -> Bounds:
        return Bounds(
            self.x - margin, self.y - margin,
            self.width + 2 * margin, self.height + 2 * margin,
        )

    def intersects(self, other: Bounds, margin: float = 0) -> bool:
        """Check if two bounding boxes overlap (touching edges do not count)."""
        return not (
            self.right + margin <= other.x
            or other.right + margin <= self.x
            or self.bottom + margin <= other.y
            or other.bottom + margin <= self.y
        )

    def contains(self, other: Bounds) -> bool:
        return (
            self.x <= other.x and self.y <= other.y
            and other.right <= self.right and other.bottom <= self.bottom
        )

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def union_bounds(boxes: Iterable[Bounds]) -> Optional[Bounds]:
    """Smallest box enclosing every finite box, or None when there are none."""
    finite = [b for b in boxes if b.is_finite()]
    if not finite:
        return None
    min_x = min(b.x for b in finite)
    min_y = min(b.y for b in finite)
    max_x = max(b.right for b in finite)
    max_y = max(b.bottom for b in finite)
    return Bounds(min_x, min_y, max_x - min_x, max_y - min_y)


# ---------------------------------------------------------------------------
# Orthogonal routing
# ---------------------------------------------------------------------------

def docking_sides(src: Bounds, tgt: Bounds) -> tuple[str, str]:
    """Pick the (exit, entry) sides for a connection between two shapes.

    Process maps flow left to right, so a connection prefers horizontal
    docking unless the target sits mostly above or below the source.
    """
    dx = tgt.cx - src.cx
    dy = tgt.cy - src.cy
    if abs(dy) > abs(dx) * 1.2 and abs(dx) < (src.width + tgt.width) / 2:
        return ("bottom", "top") if dy >= 0 else ("top", "bottom")
    return ("right", "left") if dx >= 0 else ("left", "right")


def _dock(bounds: Bounds, side: str) -> Point:
    return {
        "top": Point(bounds.cx, bounds.y),
        "bottom": Point(bounds.cx, bounds.bottom),
        "left": Point(bounds.x, bounds.cy),
        "right": Point(bounds.right, bounds.cy),
    }[side]


def route_orthogonal(
    src: Bounds,
    tgt: Bounds,
    obstacles: Iterable[Bounds] = (),
    margin: float = 20,
) -> list[Point]:
    """Compute the waypoints of an orthogonal path from *src* to *tgt*.

    The path leaves *src* and enters *tgt* at the centre of the chosen
    sides. Aligned shapes get a straight segment; otherwise the path bends
    through the midpoint channel between them. If that channel crosses an
    obstacle the path detours above/below (or left/right of) all blocking
    shapes.
    """
    exit_side, entry_side = docking_sides(src, tgt)
    start = _dock(src, exit_side)
    end = _dock(tgt, entry_side)
    horizontal = exit_side in ("left", "right")

    if horizontal and abs(start.y - end.y) < 1:
        return [start, end]
    if not horizontal and abs(start.x - end.x) < 1:
        return [start, end]

    if horizontal:
        mid_x = (start.x + end.x) / 2
        bends = [Point(mid_x, start.y), Point(mid_x, end.y)]
    else:
        mid_y = (start.y + end.y) / 2
        bends = [Point(start.x, mid_y), Point(end.x, mid_y)]

    path = [start, *bends, end]
    blockers = [o for o in obstacles if _path_crossings(path, [o], margin)]
    if blockers:
        path = [start, *_detour(start, end, blockers, horizontal, margin), end]
    return path


def _path_crossings(path: list[Point], obstacles: list[Bounds], margin: float) -> int:
    count = 0
    for a, b in zip(path, path[1:]):
        for obs in obstacles:
            if _segment_intersects_rect(a.x, a.y, b.x, b.y, obs.expanded(margin)):
                count += 1
    return count


def _segment_intersects_rect(
    x1: float, y1: float,
    x2: float, y2: float,
    rect: Bounds,
) -> bool:
    """Check if an axis-parallel segment passes through a rectangle."""
    if abs(x1 - x2) < 0.1:
        min_y, max_y = min(y1, y2), max(y1, y2)
        return rect.x < x1 < rect.right and max_y > rect.y and min_y < rect.bottom
    if abs(y1 - y2) < 0.1:
        min_x, max_x = min(x1, x2), max(x1, x2)
        return rect.y < y1 < rect.bottom and max_x > rect.x and min_x < rect.right
    return False


def _detour(
    start: Point,
    end: Point,
    blockers: list[Bounds],
    horizontal: bool,
    margin: float,
) -> list[Point]:
    """Bend points of a path that clears every blocking shape."""
    if horizontal:
        above = min(b.y for b in blockers) - margin
        below = max(b.bottom for b in blockers) + margin
        mid_y = (start.y + end.y) / 2
        channel = above if abs(above - mid_y) <= abs(below - mid_y) else below
        out_x = start.x + margin if end.x >= start.x else start.x - margin
        in_x = end.x - margin if end.x >= start.x else end.x + margin
        return [
            Point(out_x, start.y), Point(out_x, channel),
            Point(in_x, channel), Point(in_x, end.y),
        ]
    left = min(b.x for b in blockers) - margin
    right = max(b.right for b in blockers) + margin
    mid_x = (start.x + end.x) / 2
    channel = left if abs(left - mid_x) <= abs(right - mid_x) else right
    out_y = start.y + margin if end.y >= start.y else start.y - margin
    in_y = end.y - margin if end.y >= start.y else end.y + margin
    return [
        Point(start.x, out_y), Point(channel, out_y),
        Point(channel, in_y), Point(end.x, in_y),
    ]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return math.floor(value + 0.5)


def _fmt(value: float) -> str:
    """Render a coordinate the way draw.io writes it (no trailing .0)."""
    if math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return str(value)
