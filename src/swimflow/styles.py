"""
Style presets for rendering process-map elements as draw.io cells.

Maps BPMN element types (``bpmn:UserTask``, ``bpmn:ExclusiveGateway`` ...)
onto semicolon-delimited mxGraph style strings.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Style builder
# ---------------------------------------------------------------------------

class StyleBuilder:
    """Fluent builder for semicolon-delimited draw.io style strings."""

    def __init__(self, base: str = "") -> None:
        self._parts: dict[str, str] = {}
        self._prefix: str = ""
        if base:
            self._parse(base)

    def _parse(self, raw: str) -> None:
        tokens = [t.strip() for t in raw.split(";") if t.strip()]
        for tok in tokens:
            if "=" in tok:
                k, v = tok.split("=", 1)
                self._parts[k] = v
            else:
                # Shape name prefix like "ellipse", "rhombus", etc.
                self._prefix = tok

    def fill_color(self, color: str) -> StyleBuilder:
        self._parts["fillColor"] = color
        return self

    def stroke_color(self, color: str) -> StyleBuilder:
        self._parts["strokeColor"] = color
        return self

    def stroke_width(self, width: float) -> StyleBuilder:
        self._parts["strokeWidth"] = str(width)
        return self

    def build(self) -> str:
        parts: list[str] = []
        if self._prefix:
            parts.append(self._prefix)
        for k, v in self._parts.items():
            parts.append(f"{k}={v}")
        return ";".join(parts) + ";"


# ---------------------------------------------------------------------------
# BPMN presets
# ---------------------------------------------------------------------------

def _colored(base: str, fill: str, stroke: str) -> str:
    return StyleBuilder(base).fill_color(fill).stroke_color(stroke).build()


class BpmnStyle:
    """Vertex styles for pools, lanes and flow nodes."""

    # Pool and lanes carry their label in a vertical header band on the left.
    POOL = "swimlane;horizontal=0;startSize=30;fontStyle=1;html=1;container=1;collapsible=0;"
    LANE = "swimlane;horizontal=0;startSize=30;html=1;container=1;collapsible=0;swimlaneLine=1;"

    TASK = "rounded=1;whiteSpace=wrap;html=1;"
    USER_TASK = _colored(TASK, "#dae8fc", "#6c8ebf")
    SERVICE_TASK = _colored(TASK, "#d5e8d4", "#82b366")
    MANUAL_TASK = _colored(TASK, "#fff2cc", "#d6b656")
    SEND_TASK = _colored(TASK, "#e1d5e7", "#9673a6")
    RECEIVE_TASK = _colored(TASK + "dashed=1;", "#e1d5e7", "#9673a6")
    SCRIPT_TASK = _colored(TASK, "#f5f5f5", "#666666")
    BUSINESS_RULE_TASK = _colored(TASK, "#ffe6cc", "#d79b00")

    EVENT = "ellipse;whiteSpace=wrap;html=1;aspect=fixed;"
    START_EVENT = _colored(EVENT, "#dae8fc", "#6c8ebf")
    END_EVENT = StyleBuilder(_colored(EVENT, "#f8cecc", "#b85450")).stroke_width(3).build()
    INTERMEDIATE_EVENT = StyleBuilder(EVENT).stroke_width(2).build()

    GATEWAY = _colored("rhombus;whiteSpace=wrap;html=1;aspect=fixed;", "#fff2cc", "#d6b656")


class EdgeStylePreset:
    SEQUENCE_FLOW = "edgeStyle=orthogonalEdgeStyle;rounded=0;orthogonalLoop=1;jettySize=auto;html=1;endArrow=classic;"


_TASK_STYLES: dict[str, str] = {
    "UserTask": BpmnStyle.USER_TASK,
    "ServiceTask": BpmnStyle.SERVICE_TASK,
    "ManualTask": BpmnStyle.MANUAL_TASK,
    "SendTask": BpmnStyle.SEND_TASK,
    "ReceiveTask": BpmnStyle.RECEIVE_TASK,
    "ScriptTask": BpmnStyle.SCRIPT_TASK,
    "BusinessRuleTask": BpmnStyle.BUSINESS_RULE_TASK,
}


def node_style(node_type: str) -> str:
    """Resolve the vertex style for a BPMN node type such as ``bpmn:UserTask``."""
    local = node_type.split(":", 1)[-1]
    if "Gateway" in local:
        return BpmnStyle.GATEWAY
    if "Event" in local:
        if local.startswith("Start"):
            return BpmnStyle.START_EVENT
        if local.startswith("End"):
            return BpmnStyle.END_EVENT
        return BpmnStyle.INTERMEDIATE_EVENT
    return _TASK_STYLES.get(local, BpmnStyle.TASK)
