"""
Construction sessions: stream in, diagram out, preferences back.

A :class:`ConstructionSession` owns one diagram and drives a construction
phase end to end:

    session.begin()                 # reset to the baseline pool
    for chunk in stream:
        session.feed(chunk)         # extract, interpret, log commands
    result = session.finish()       # lay out once; fail if nothing parsed

Between phases the session collects the user's edits, learns layout
preferences from them after a quiet period, and hands the learned
parameters to whoever builds the next construction request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Iterable, Optional

from swimflow.commands import CommandInterpreter
from swimflow.geometry import Bounds
from swimflow.layout import LayoutConfig, LayoutResult, adjust_layout
from swimflow.learning import Debouncer, LayoutParameters, LearnerConfig, learn_layout_parameters
from swimflow.models import Diagram, Lane
from swimflow.stream import StreamObjectExtractor

logger = logging.getLogger(__name__)


class ConstructionError(Exception):
    """Raised when a construction stream yields no usable command."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass
class ConstructionResult:
    """Outcome of one construction phase."""
    commands: list[dict[str, Any]] = field(default_factory=list)
    applied: int = 0
    skipped: int = 0
    discarded: int = 0
    layout: LayoutResult = field(default_factory=LayoutResult)


class ConstructionSession:
    """One diagram plus the state carried between construction phases."""

    def __init__(
        self,
        diagram: Optional[Diagram] = None,
        layout_config: Optional[LayoutConfig] = None,
        learner_config: Optional[LearnerConfig] = None,
    ) -> None:
        self.diagram = diagram or Diagram()
        self.layout_config = layout_config or LayoutConfig()
        self.learner_config = learner_config or LearnerConfig()
        self.commands: list[dict[str, Any]] = []
        self.learned_parameters: Optional[LayoutParameters] = None
        self.last_result: Optional[ConstructionResult] = None
        self._extractor = StreamObjectExtractor()
        self._interpreter = CommandInterpreter(self.diagram)
        self._debouncer = Debouncer(self.learn_now, self.learner_config.debounce_seconds)
        self._streaming = False

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def pending_chars(self) -> int:
        """Length of streamed text not yet consumed as a command."""
        return len(self._extractor.pending)

    # ----- construction phase -----

    def begin(self) -> None:
        """Start a construction phase from an empty baseline diagram."""
        self._debouncer.cancel()
        self.diagram.reset()
        self.commands = []
        self._extractor = StreamObjectExtractor()
        self._interpreter = CommandInterpreter(self.diagram)
        self._streaming = True

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """Consume one text chunk; return the commands it completed."""
        if not self._streaming:
            self.begin()
        completed = self._extractor.feed(chunk)
        for command in completed:
            self.commands.append(command)
            self._interpreter.execute(command)
        return completed

    def finish(self) -> ConstructionResult:
        """End the stream and lay out the diagram.

        Raises:
            ConstructionError: no command could be parsed from the stream.
        """
        self._extractor.close()
        self._streaming = False
        if not self.commands:
            raise ConstructionError("Diagram construction failed; no commands were generated.")
        layout = adjust_layout(self.diagram, self.layout_config)
        self.last_result = ConstructionResult(
            commands=list(self.commands),
            applied=self._interpreter.applied,
            skipped=self._interpreter.skipped,
            discarded=self._extractor.discarded,
            layout=layout,
        )
        logger.info(
            "Construction finished: %d commands, %d applied, %d skipped, %d unparseable",
            len(self.commands), self._interpreter.applied,
            self._interpreter.skipped, self._extractor.discarded,
        )
        return self.last_result

    def construct(self, chunks: Iterable[str]) -> ConstructionResult:
        """Run a whole construction phase over a chunk iterable."""
        self.begin()
        for chunk in chunks:
            self.feed(chunk)
        return self.finish()

    async def aconstruct(self, chunks: AsyncIterable[str]) -> ConstructionResult:
        """Run a whole construction phase over an async chunk stream."""
        self.begin()
        async for chunk in chunks:
            self.feed(chunk)
        return self.finish()

    # ----- user edits -----

    def move(self, element_id: str, dx: float, dy: float) -> None:
        """Drag an element; a lane carries its nodes along.

        Raises:
            KeyError: no lane or node has *element_id*.
        """
        diagram = self.diagram
        if element_id not in diagram.lanes and element_id not in diagram.nodes:
            raise KeyError(element_id)
        moved = {element_id}
        diagram.move(element_id, dx, dy)
        if element_id in diagram.lanes:
            for node in diagram.nodes_in({element_id}):
                diagram.move(node.id, dx, dy)
                moved.add(node.id)
        self._reroute_touching(moved)
        self.notify_edit()

    def resize(self, element_id: str, bounds: Bounds) -> None:
        """Resize a lane or node to *bounds*.

        Raises:
            KeyError: no lane or node has *element_id*.
        """
        if element_id not in self.diagram.lanes and element_id not in self.diagram.nodes:
            raise KeyError(element_id)
        self.diagram.resize(element_id, bounds)
        self._reroute_touching({element_id})
        self.notify_edit()

    def _reroute_touching(self, node_ids: set[str]) -> None:
        ids = [
            c.id for c in self.diagram.connections.values()
            if c.source in node_ids or c.target in node_ids
        ]
        if ids:
            self.diagram.layout_connections(ids)

    # ----- layout preferences -----

    def notify_edit(self) -> None:
        """Record a user edit; learning runs once edits go quiet.

        Outside an event loop there is no quiet period to wait for, so
        learning runs immediately.
        """
        try:
            self._debouncer.schedule()
        except RuntimeError:
            logger.debug("No running event loop; learning from edit immediately")
            self.learn_now()

    @property
    def learning_pending(self) -> bool:
        return self._debouncer.pending

    def learn_now(self) -> Optional[LayoutParameters]:
        """Learn preferences from the current diagram and keep them."""
        if self._streaming:
            logger.debug("Construction in progress; skipping preference learning")
            return None
        params = learn_layout_parameters(self.diagram, self.learner_config)
        if params is not None:
            self.learned_parameters = params
            logger.info(
                "Learned layout preferences: hSpacing=%.0f vPadding=%.0f",
                params.horizontal_spacing, params.vertical_padding,
            )
        return params

    def start_analysis(self) -> None:
        """Forget learned preferences when a new analysis begins."""
        self._debouncer.cancel()
        self.learned_parameters = None

    def request_hints(self) -> Optional[dict[str, int]]:
        """Layout preferences to thread into the next construction request."""
        if self.learned_parameters is None:
            return None
        return self.learned_parameters.to_request()

    # ----- downstream views -----

    def steps(self) -> list[dict[str, Any]]:
        """Process steps in step order, for phases that cite step ids."""
        rows: list[dict[str, Any]] = []
        for node in self.diagram.steps():
            owner = self.diagram.get(node.parent)
            rows.append({
                "stepNumber": node.step_number,
                "stepID": node.id,
                "stepName": node.label,
                "stepType": node.type,
                "laneName": owner.label if isinstance(owner, Lane) else "",
            })
        return rows
