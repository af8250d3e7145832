"""
Repair raw command fragments into parseable JSON.

Upstream generators occasionally wrap output in Markdown code fences, write
unevaluated arithmetic into coordinate fields (``"y": 230 + 120``), leave
trailing commas, or stop mid-object. :func:`parse_fragment` undoes each of
these in turn before giving up.
"""

from __future__ import annotations

import ast
import json
import logging
import math
import operator
import re
from typing import Any

logger = logging.getLogger(__name__)


class SanitizeError(Exception):
    """Raised when a fragment cannot be repaired into JSON."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)
_GEOMETRY_FIELD_RE = re.compile(r'"(x|y|width|height)"\s*:\s*([^,}\]]+)')
_EXPRESSION_RE = re.compile(r"^[0-9\s.+\-*/]+$")
# An operator preceded by an operand; a lone leading sign is a literal.
_BINARY_OP_RE = re.compile(r"[0-9.]\s*[+\-*/]")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


# ---------------------------------------------------------------------------
# Individual repair steps
# ---------------------------------------------------------------------------

def strip_code_fence(text: str) -> str:
    """Remove one Markdown code fence wrapping the whole text, if present."""
    content = text.strip()
    match = _FENCE_RE.match(content)
    if match and match.group(1):
        return match.group(1).strip()
    return content


def evaluate_arithmetic(expression: str) -> float:
    """Evaluate ``+ - * /`` arithmetic over numeric literals.

    Raises:
        ValueError: the expression uses anything else or does not parse.
        ZeroDivisionError: the expression divides by zero.
        OverflowError: the result does not fit a float.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"not an arithmetic expression: {expression!r}") from exc
    return float(_eval_node(tree.body))


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"unsupported syntax: {ast.dump(node)}")


def _format_number(value: float) -> str:
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def evaluate_geometry_expressions(text: str) -> str:
    """Replace arithmetic in ``x``/``y``/``width``/``height`` values by its result."""

    def _substitute(match: re.Match) -> str:
        key, raw = match.group(1), match.group(2)
        expression = raw.strip()
        if not (_BINARY_OP_RE.search(expression) and _EXPRESSION_RE.match(expression)):
            return match.group(0)
        try:
            result = evaluate_arithmetic(expression)
        except (ValueError, ZeroDivisionError, OverflowError) as exc:
            logger.warning("Could not evaluate expression for key %r: %s (%s)", key, expression, exc)
            return match.group(0)
        if not math.isfinite(result):
            return match.group(0)
        return f'"{key}": {_format_number(result)}'

    return _GEOMETRY_FIELD_RE.sub(_substitute, text)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def sanitize(text: str) -> str:
    """Apply the textual repairs (fence, arithmetic, trailing commas)."""
    return strip_trailing_commas(evaluate_geometry_expressions(strip_code_fence(text)))


def recover_truncated(text: str) -> Any:
    """Parse the longest bracket-balanced prefix of *text* that is valid JSON.

    Walks backwards over every ``}``/``]``; a prefix ending there is tried
    only when its ``{}`` and ``[]`` counts balance.

    Raises:
        SanitizeError: no balanced prefix parses.
    """
    for i in range(len(text) - 1, -1, -1):
        if text[i] not in "}]":
            continue
        prefix = text[: i + 1]
        if prefix.count("{") != prefix.count("}") or prefix.count("[") != prefix.count("]"):
            continue
        try:
            value = json.loads(prefix)
        except ValueError:
            continue
        logger.warning("Recovered a truncated JSON fragment (%d of %d chars)", i + 1, len(text))
        return value
    raise SanitizeError("no balanced prefix of the fragment is valid JSON")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_fragment(text: str) -> Any:
    """Sanitize and parse one command fragment.

    Raises:
        SanitizeError: parsing failed even after truncation recovery.
    """
    fixed = sanitize(text)
    try:
        return json.loads(fixed)
    except ValueError as exc:
        logger.debug("Cleaned fragment failed to parse (%s): %s", exc, fixed)
        try:
            return recover_truncated(fixed)
        except SanitizeError as recovery_exc:
            raise SanitizeError(
                f"JSON parsing failed even after cleaning and truncation recovery: {exc}"
            ) from recovery_exc
