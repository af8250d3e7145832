"""
Learn layout preferences from a hand-edited process map.

After the user drags or resizes elements, :func:`learn_layout_parameters`
reconstructs the columns of the edited diagram and measures the spacing the
user settled on. The result travels with the next construction request so
the generator places elements the way the user prefers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from swimflow.geometry import round_half_up
from swimflow.layout import cluster, sort_by_center
from swimflow.models import Diagram

logger = logging.getLogger(__name__)


@dataclass
class LearnerConfig:
    """Tuning of the preference learner."""
    # Tighter than the layout threshold: hand placement is less uniform.
    column_threshold: float = 40
    default_horizontal_spacing: float = 220
    default_vertical_padding: float = 70
    debounce_seconds: float = 2.0


@dataclass
class LayoutParameters:
    """Spacing preferences learned from the user's edits."""
    horizontal_spacing: float
    vertical_padding: float

    def to_request(self) -> dict[str, int]:
        """Rounded values in the shape the request builder expects."""
        return {
            "hSpacing": round_half_up(self.horizontal_spacing),
            "vPadding": round_half_up(self.vertical_padding),
        }


def learn_layout_parameters(
    diagram: Diagram,
    config: Optional[LearnerConfig] = None,
) -> Optional[LayoutParameters]:
    """Measure column spacing and lane padding of *diagram*.

    Only finite nodes inside a lane with finite geometry count. Returns None
    when fewer than two such nodes exist.
    """
    cfg = config or LearnerConfig()
    lanes = {lid: lane for lid, lane in diagram.lanes.items() if lane.bounds.is_finite()}
    nodes = [
        n for n in diagram.nodes.values()
        if n.parent in lanes and n.bounds.is_finite()
    ]
    if len(nodes) < 2:
        return None

    columns = cluster(sort_by_center(nodes), cfg.column_threshold)
    gaps = [b.center - a.center for a, b in zip(columns, columns[1:])]
    horizontal = sum(gaps) / len(gaps) if gaps else cfg.default_horizontal_spacing

    paddings: list[float] = []
    for lane in lanes.values():
        members = [n for n in nodes if n.parent == lane.id]
        if not members:
            continue
        top = min(n.bounds.y for n in members)
        bottom = max(n.bounds.bottom for n in members)
        paddings.append(top - lane.bounds.y)
        paddings.append(lane.bounds.bottom - bottom)
    vertical = sum(paddings) / len(paddings) if paddings else cfg.default_vertical_padding

    logger.debug(
        "Learned layout preferences from %d nodes in %d columns: h=%.1f v=%.1f",
        len(nodes), len(columns), horizontal, vertical,
    )
    return LayoutParameters(horizontal, vertical)


class Debouncer:
    """Run *callback* once edits have been quiet for *delay* seconds.

    Each :meth:`schedule` cancels the pending run and starts the quiet
    period again, so only the most recent call fires. Timing uses the
    running asyncio loop.
    """

    def __init__(self, callback: Callable[[], Any], delay: float = 2.0) -> None:
        self.callback = callback
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """(Re)start the quiet period.

        Raises:
            RuntimeError: called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()
