"""
Incremental extraction of JSON command objects from a text stream.

A generator streams its commands as a run of JSON objects, possibly split
at arbitrary points between chunks and possibly interleaved with prose or
code fences. The extractor accumulates chunks in a buffer and cuts off each
top-level ``{...}`` as soon as its braces balance.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from swimflow.sanitizer import SanitizeError, parse_fragment

logger = logging.getLogger(__name__)


def scan_braces(buffer: str, start: int = 0, depth: int = 0) -> tuple[int, int]:
    """Scan *buffer* from *start* for the brace closing an object.

    *depth* is the nesting already open before *start*, so a scan can resume
    where an earlier one ran out of text. Returns the index of the closing
    brace (or -1) and the depth reached.
    """
    for i in range(start, len(buffer)):
        ch = buffer[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i, 0
    return -1, depth


def extract_objects(buffer: str) -> tuple[list[str], str]:
    """Split every complete top-level object off the front of *buffer*.

    Returns the candidate object strings in order and the unconsumed
    remainder. Braces are counted without regard to string literals.
    """
    candidates: list[str] = []
    start = buffer.find("{")
    while start != -1:
        end, _ = scan_braces(buffer, start)
        if end == -1:
            break
        candidates.append(buffer[start:end + 1])
        buffer = buffer[end + 1:]
        start = buffer.find("{")
    return candidates, buffer


class StreamObjectExtractor:
    """Turn text chunks into parsed command objects as soon as they complete.

    Scan state (depth, position) survives between :meth:`feed` calls, so
    each chunk is scanned once. Objects are emitted in arrival order and at
    most once; a candidate that cannot be repaired into a JSON object is
    dropped with a warning.
    """

    def __init__(self) -> None:
        self.reset()
        self.emitted = 0
        self.discarded = 0

    @property
    def pending(self) -> str:
        """Text received but not yet consumed as an object."""
        return self._buffer

    def reset(self) -> None:
        """Forget buffered text and scan state; counters are kept."""
        self._buffer = ""
        self._depth = 0
        self._scan = 0
        self._open = False

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """Append *chunk* and return every object it completed."""
        self._buffer += chunk
        objects: list[dict[str, Any]] = []
        for candidate in self._drain():
            parsed = self._parse(candidate)
            if parsed is not None:
                objects.append(parsed)
        return objects

    def close(self) -> str:
        """End the stream; return and discard whatever incomplete text remains."""
        leftover = self._buffer
        if leftover.strip():
            logger.warning("Discarding incomplete trailing fragment: %.80r", leftover)
        self.reset()
        return leftover

    def _drain(self) -> Iterator[str]:
        while True:
            if not self._open:
                first = self._buffer.find("{")
                if first == -1:
                    # Nothing before the next object matters.
                    self._buffer = ""
                    self._scan = 0
                    return
                self._buffer = self._buffer[first:]
                self._open = True
                self._depth = 0
                self._scan = 0
            buf = self._buffer
            end, self._depth = scan_braces(buf, self._scan, self._depth)
            if end == -1:
                self._scan = len(buf)
                return
            self._buffer = buf[end + 1:]
            self._open = False
            yield buf[:end + 1]

    def _parse(self, candidate: str) -> dict[str, Any] | None:
        try:
            parsed = parse_fragment(candidate)
        except SanitizeError as exc:
            self.discarded += 1
            logger.warning("Skipping malformed JSON chunk in stream: %.120r (%s)", candidate, exc.message)
            return None
        if not isinstance(parsed, dict):
            self.discarded += 1
            logger.warning("Skipping non-object JSON chunk in stream: %.120r", candidate)
            return None
        self.emitted += 1
        return parsed
