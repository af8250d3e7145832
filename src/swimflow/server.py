"""
Swimflow MCP Server — stream-built swimlane process maps via Model Context Protocol.

Exposes 6 tools that let an LLM agent or UI host drive construction
sessions: stream construction commands in, lay the map out, apply user
edits and read back the layout preferences learned from them.

Tools:
  1. session    — lifecycle: create, list, get_xml, start_analysis, delete
  2. construct  — streaming: begin, feed, finish, run
  3. layout     — positioning: adjust, reroute
  4. edit       — user edits: move, resize, select (schedule learning)
  5. learn      — preferences: now, get, hints, clear
  6. inspect    — read-only: cells, columns, steps, overlaps, info
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from mcp.server.fastmcp import FastMCP

from swimflow.geometry import Bounds
from swimflow.layout import LayoutResult, adjust_layout, cluster, find_overlapping_nodes, sort_by_center
from swimflow.models import Lane, Node, Pool
from swimflow.session import ConstructionError, ConstructionResult, ConstructionSession
from swimflow.validation import (
    ValidationError,
    validate_action,
    validate_bounds_dict,
    validate_chunks,
    validate_list,
    validate_non_empty_string,
    validate_number,
    validate_string,
    _CONSTRUCT_ACTIONS,
    _EDIT_ACTIONS,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
    _LEARN_ACTIONS,
    _SESSION_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging: FastMCP logs routine requests at INFO on stderr, which hosts
# show as warnings.
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("swimflow-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "swimflow-mcp",
    instructions=(
        "MCP server that builds BPMN swimlane process maps from streamed\n"
        "construction commands and learns layout preferences from edits.\n\n"
        "=== 6 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. session(action, ...) — create, list, get_xml, start_analysis, delete.\n"
        "2. construct(action, ...) — begin, feed, finish, run.\n"
        "3. layout(action, ...) — adjust, reroute.\n"
        "4. edit(action, ...) — move, resize, select.\n"
        "5. learn(action, ...) — now, get, hints, clear.\n"
        "6. inspect(action, ...) — cells, columns, steps, overlaps, info.\n\n"
        "=== COMMAND FORMAT (one JSON object per command, any chunking) ===\n"
        '{"command":"createLane","id":"Lane_1","label":"Sales","x":190,"y":80,"width":970,"height":200}\n'
        '{"command":"addShape","id":"Activity_1","type":"bpmn:UserTask","label":"Review",\n'
        ' "stepNumber":1,"parent":"Lane_1","x":300,"y":140,"width":100,"height":80}\n'
        '{"command":"addConnection","id":"Flow_1","sourceId":"Activity_1","targetId":"Activity_2"}\n\n'
        "=== RULES ===\n"
        "- Create lanes before the shapes placed in them.\n"
        "- Create both endpoints before a connection.\n"
        "- Coordinates are absolute; x/y/width/height may be arithmetic like 190+45.\n"
        "- construct(action='finish') lays the map out once; it fails only when\n"
        "  no command could be parsed at all.\n"
        "- After edits, learn(action='hints') returns {hSpacing, vPadding} to\n"
        "  include in the next construction request.\n"
    ),
)

# In-memory session registry: name -> ConstructionSession
# Guarded by _sessions_lock for thread-safety.
_sessions: dict[str, ConstructionSession] = {}
_sessions_lock = threading.Lock()


# ===================================================================
# TOOL 1: session (lifecycle)
# ===================================================================

@mcp.tool()
def session(action: str, name: str = "") -> str:
    """Construction session lifecycle.

    Actions:
      create         — Create a session with an empty baseline diagram. Params: name.
      list           — List all sessions. No params needed.
      get_xml        — Get the draw.io XML snapshot of the diagram. Params: name.
      start_analysis — Forget learned layout preferences. Params: name.
      delete         — Drop a session. Params: name.

    Args:
        action: One of: create, list, get_xml, start_analysis, delete.
        name: Session name (key in memory).

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "session", _SESSION_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        with _sessions_lock:
            items = list(_sessions.items())
        result = [
            {
                "name": n,
                "lanes": len(s.diagram.lanes),
                "nodes": len(s.diagram.nodes),
                "connections": len(s.diagram.connections),
                "streaming": s.streaming,
                "has_preferences": s.learned_parameters is not None,
            }
            for n, s in items
        ]
        return json.dumps(result, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        s = ConstructionSession()
        s.diagram.name = name
        with _sessions_lock:
            _sessions[name] = s
        return f"Session '{name}' created."

    s = _sessions.get(name)
    if not s:
        return f"Error: session '{name}' not found."

    if action == "get_xml":
        return s.diagram.to_xml()

    elif action == "start_analysis":
        s.start_analysis()
        return f"Session '{name}': learned preferences cleared."

    elif action == "delete":
        s.start_analysis()
        with _sessions_lock:
            _sessions.pop(name, None)
        return f"Session '{name}' deleted."

    else:
        return f"Error: unknown session action '{action}'. Use: create, list, get_xml, start_analysis, delete."


# ===================================================================
# TOOL 2: construct (streaming construction)
# ===================================================================

@mcp.tool()
def construct(
    action: str,
    session_name: str = "",
    chunks: list[str] | None = None,
) -> str:
    """Stream construction commands into a session.

    Actions:
      begin  — Reset the diagram to the baseline pool. Params: session_name.
      feed   — Feed raw text chunks; complete commands apply immediately.
               Params: session_name, chunks.
      finish — End the stream and lay out the diagram. Params: session_name.
      run    — begin + feed + finish in one call. Params: session_name, chunks.

    Args:
        action: One of: begin, feed, finish, run.
        session_name: Target session name.
        chunks: Raw text chunks as they arrive from the generator; a
                command may be split across chunks.

    Returns:
        JSON results or confirmation message.
    """
    try:
        action = validate_action(action, "construct", _CONSTRUCT_ACTIONS)
        validate_non_empty_string(session_name, "session_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    s = _sessions.get(session_name)
    if not s:
        return f"Error: session '{session_name}' not found."

    if action == "begin":
        s.begin()
        return f"Session '{session_name}': construction started."

    elif action == "feed":
        try:
            parts = validate_chunks(chunks)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        completed: list[dict[str, Any]] = []
        for chunk in parts:
            completed.extend(s.feed(chunk))
        return json.dumps({
            "commands": len(completed),
            "total_commands": len(s.commands),
            "pending_chars": s.pending_chars,
        }, indent=2)

    elif action == "finish":
        if not s.streaming:
            return f"Error: session '{session_name}' has no construction in progress."
        try:
            result = s.finish()
        except ConstructionError as exc:
            return f"Error: {exc.message}"
        return json.dumps(_result_summary(result), indent=2)

    elif action == "run":
        try:
            parts = validate_chunks(chunks)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        try:
            result = s.construct(parts)
        except ConstructionError as exc:
            return f"Error: {exc.message}"
        return json.dumps(_result_summary(result), indent=2)

    else:
        return f"Error: unknown construct action '{action}'. Use: begin, feed, finish, run."


# ===================================================================
# TOOL 3: layout (positioning)
# ===================================================================

@mcp.tool()
def layout(action: str, session_name: str = "") -> str:
    """Layout operations on a session's diagram.

    Actions:
      adjust  — Re-run the swimlane layout pass. Params: session_name.
      reroute — Re-route every connection. Params: session_name.

    Returns:
        JSON results.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        validate_non_empty_string(session_name, "session_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    s = _sessions.get(session_name)
    if not s:
        return f"Error: session '{session_name}' not found."
    if s.streaming:
        return f"Error: session '{session_name}' is still constructing; call construct(action='finish') first."

    if action == "adjust":
        result = adjust_layout(s.diagram, s.layout_config)
        return json.dumps(_layout_summary(result), indent=2)

    elif action == "reroute":
        count = s.diagram.layout_connections()
        return json.dumps({"rerouted": count}, indent=2)

    else:
        return f"Error: unknown layout action '{action}'. Use: adjust, reroute."


# ===================================================================
# TOOL 4: edit (user edits)
# ===================================================================

@mcp.tool()
async def edit(
    action: str,
    session_name: str = "",
    element_id: str = "",
    dx: float = 0,
    dy: float = 0,
    bounds: dict[str, float] | None = None,
    element_ids: list[str] | None = None,
) -> str:
    """Apply a user edit; layout preferences are re-learned once edits go quiet.

    Actions:
      move   — Drag a lane or node by (dx, dy). A lane carries its nodes.
               Params: session_name, element_id, dx, dy.
      resize — Set a lane or node to absolute bounds.
               Params: session_name, element_id, bounds ({x, y, width, height}).
      select — Replace the selection. Params: session_name, element_ids.

    Returns:
        Confirmation message.
    """
    try:
        action = validate_action(action, "edit", _EDIT_ACTIONS)
        validate_non_empty_string(session_name, "session_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    s = _sessions.get(session_name)
    if not s:
        return f"Error: session '{session_name}' not found."

    if action == "select":
        try:
            ids = validate_list(element_ids or [], "element_ids")
            for i, eid in enumerate(ids):
                validate_string(eid, f"element_ids[{i}]")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        s.diagram.select(ids)
        return json.dumps({"selection": s.diagram.selection})

    try:
        element_id = validate_non_empty_string(element_id, "element_id")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    if s.streaming:
        return f"Error: session '{session_name}' is still constructing; call construct(action='finish') first."

    if action == "move":
        try:
            dx = validate_number(dx, "dx")
            dy = validate_number(dy, "dy")
            s.move(element_id, dx, dy)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        except KeyError:
            return f"Error: lane or node '{element_id}' not found."
        return f"Moved '{element_id}' by ({dx:g}, {dy:g})."

    elif action == "resize":
        try:
            b = validate_bounds_dict(bounds, "bounds")
            s.resize(element_id, Bounds(b["x"], b["y"], b["width"], b["height"]))
        except ValidationError as exc:
            return f"Error: {exc.message}"
        except KeyError:
            return f"Error: lane or node '{element_id}' not found."
        return f"Resized '{element_id}'."

    else:
        return f"Error: unknown edit action '{action}'. Use: move, resize, select."


# ===================================================================
# TOOL 5: learn (layout preferences)
# ===================================================================

@mcp.tool()
def learn(action: str, session_name: str = "") -> str:
    """Learned layout preferences.

    Actions:
      now   — Learn from the current diagram immediately. Params: session_name.
      get   — Return the stored preferences (unrounded). Params: session_name.
      hints — Return {hSpacing, vPadding} for the next construction request,
              or null. Params: session_name.
      clear — Forget stored preferences. Params: session_name.

    Returns:
        JSON data.
    """
    try:
        action = validate_action(action, "learn", _LEARN_ACTIONS)
        validate_non_empty_string(session_name, "session_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    s = _sessions.get(session_name)
    if not s:
        return f"Error: session '{session_name}' not found."

    if action == "now":
        if s.streaming:
            return f"Error: session '{session_name}' is still constructing; call construct(action='finish') first."
        params = s.learn_now()
        if params is None:
            return "Not enough nodes in lanes to learn from (need at least 2)."
        return json.dumps(params.to_request(), indent=2)

    elif action == "get":
        params = s.learned_parameters
        if params is None:
            return json.dumps(None)
        return json.dumps({
            "horizontal_spacing": params.horizontal_spacing,
            "vertical_padding": params.vertical_padding,
            "pending": s.learning_pending,
        }, indent=2)

    elif action == "hints":
        return json.dumps(s.request_hints())

    elif action == "clear":
        s.start_analysis()
        return f"Session '{session_name}': learned preferences cleared."

    else:
        return f"Error: unknown learn action '{action}'. Use: now, get, hints, clear."


# ===================================================================
# TOOL 6: inspect (read-only)
# ===================================================================

@mcp.tool()
def inspect(action: str, session_name: str = "", margin: float = 0) -> str:
    """Read-only inspection of a session's diagram.

    Actions:
      cells    — List pool, lanes, nodes and connections with positions.
      columns  — Show the columns the layout pass would build.
      steps    — List process steps by step number with their lane.
      overlaps — Check for overlapping nodes. Params: margin.
      info     — Summary counts and session state.

    Args:
        action: One of: cells, columns, steps, overlaps, info.
        session_name: Target session name.
        margin: Minimum gap for overlap checks.

    Returns:
        JSON data or formatted text.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        validate_non_empty_string(session_name, "session_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    s = _sessions.get(session_name)
    if not s:
        return f"Error: session '{session_name}' not found."
    d = s.diagram

    if action == "cells":
        cells: list[dict[str, Any]] = []
        if d.pool is not None:
            cells.append(_cell_info(d.pool))
        cells.extend(_cell_info(lane) for lane in d.lanes_of())
        cells.extend(_cell_info(node) for node in d.nodes.values())
        for conn in d.connections.values():
            cells.append({
                "id": conn.id, "type": "connection",
                "source": conn.source, "target": conn.target,
                "waypoints": [{"x": p.x, "y": p.y} for p in conn.waypoints],
            })
        return json.dumps(cells, indent=2)

    elif action == "columns":
        lane_ids = {lane.id for lane in d.lanes_of(finite_only=True)}
        nodes = d.nodes_in(lane_ids, finite_only=True)
        columns = cluster(sort_by_center(nodes), s.layout_config.column_threshold)
        report = [
            {"index": i, "center": col.center, "width": col.width,
             "nodes": [n.id for n in col.nodes]}
            for i, col in enumerate(columns)
        ]
        return json.dumps(report, indent=2)

    elif action == "steps":
        return json.dumps(s.steps(), indent=2)

    elif action == "overlaps":
        overlaps = find_overlapping_nodes(d, margin=margin)
        if not overlaps:
            return "No overlaps found. Diagram is clean!"
        report = [{"node_a": a, "label_a": d.nodes[a].label,
                   "node_b": b, "label_b": d.nodes[b].label}
                  for a, b in overlaps]
        return json.dumps(report, indent=2)

    elif action == "info":
        return json.dumps({
            "name": session_name,
            "pool": d.pool.id if d.pool else None,
            "lanes": len(d.lanes),
            "nodes": len(d.nodes),
            "connections": len(d.connections),
            "commands": len(s.commands),
            "streaming": s.streaming,
            "learning_pending": s.learning_pending,
            "viewport": d.viewport.as_dict() if d.viewport else None,
        }, indent=2)

    else:
        return f"Error: unknown inspect action '{action}'. Use: cells, columns, steps, overlaps, info."


# ===================================================================
# Internal helpers
# ===================================================================

def _cell_info(element: Pool | Lane | Node) -> dict[str, Any]:
    info: dict[str, Any] = {"id": element.id}
    if isinstance(element, Pool):
        info["type"] = "pool"
    elif isinstance(element, Lane):
        info["type"] = "lane"
        info["parent"] = element.parent
    else:
        info["type"] = element.type
        info["parent"] = element.parent
        if element.step_number is not None:
            info["stepNumber"] = element.step_number
    if element.label:
        info["label"] = element.label
    info["position"] = element.bounds.as_dict()
    return info


def _layout_summary(result: LayoutResult) -> dict[str, Any]:
    return {
        "columns": result.columns,
        "lanes": result.lanes,
        "lane_height": result.lane_height,
        "lane_width": result.lane_width,
        "moved": result.moved,
        "rerouted": result.rerouted,
        "aborted": result.aborted,
    }


def _result_summary(result: ConstructionResult) -> dict[str, Any]:
    return {
        "commands": len(result.commands),
        "applied": result.applied,
        "skipped": result.skipped,
        "unparseable": result.discarded,
        "layout": _layout_summary(result.layout),
    }


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
