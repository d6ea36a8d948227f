"""
Reconciliation of a fetched key set into authorized_keys lines.

Lines ending in the ownership marker belong to keysync: they are
rewritten in place while their key is still published and dropped
once it is not. Every other line is passed through untouched.
Keys nobody has yet are appended at the end, marked.

Known sharp edge: fetched keys are matched by their full raw text,
while file lines are matched by their first two tokens only. A key
host that appends a comment to its lines will therefore never match
an existing entry, and the key is appended again on every cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from . import MARKER
from .errors import MalformedLineError
from .models import ReconcileResult

logger = logging.getLogger("keysync.reconcile")


@dataclass(frozen=True)
class KeyLine:
    """A parsed authorized_keys line.

    Attributes:
        raw: The line as read, without its terminator.
        key: Identity, ``<algorithm> <material>``.
        annotation: Remainder after the first two tokens, if any.
        managed: Whether the annotation is the ownership marker.
    """

    raw: str
    key: str
    annotation: Optional[str]
    managed: bool


def strip_terminator(line: str) -> str:
    """Remove one trailing ``\\n`` or ``\\r\\n``."""
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def split_lines(content: str) -> list[str]:
    """Split file content into lines without terminators.

    Only ``\\n`` separates lines; a final line without a terminator
    is kept like any other.
    """
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [strip_terminator(line + "\n") for line in lines]


def parse_key_line(line: str, lineno: int, marker: str = MARKER) -> KeyLine:
    """Parse one authorized_keys line.

    Args:
        line: Line text, terminator optional.
        lineno: 1-based position, reported on failure.
        marker: Ownership annotation.

    Raises:
        MalformedLineError: If the line has fewer than two tokens.
    """
    raw = strip_terminator(line)
    parts = raw.split(None, 2)
    if len(parts) < 2:
        raise MalformedLineError(lineno)

    annotation = parts[2] if len(parts) > 2 else None
    return KeyLine(
        raw=raw,
        key=f"{parts[0]} {parts[1]}",
        annotation=annotation,
        managed=annotation == marker,
    )


def reconcile(
    new_keys: Iterable[str],
    current_lines: Iterable[str],
    marker: str = MARKER,
) -> ReconcileResult:
    """Merge a fetched key set into the current authorized_keys lines.

    Args:
        new_keys: Raw key lines as fetched, in fetch order.
        current_lines: Current file lines, terminators optional.
        marker: Ownership annotation.

    Returns:
        ReconcileResult with the new lines and what was added or removed.

    Raises:
        MalformedLineError: If any current line cannot be parsed.
            Nothing is returned in that case.
    """
    pending = dict.fromkeys(new_keys)
    emitted: set[str] = set()
    result = ReconcileResult()

    for lineno, line in enumerate(current_lines, start=1):
        parsed = parse_key_line(line, lineno, marker)

        if parsed.managed:
            if parsed.key in pending:
                result.lines.append(f"{parsed.key} {marker}")
                emitted.add(parsed.key)
            elif parsed.key in emitted or parsed.key in result.removed:
                logger.info("dropping duplicate key on line %d: %s", lineno, parsed.key)
            else:
                logger.info("removing key: %s", parsed.key)
                result.removed.append(parsed.key)
        else:
            result.lines.append(parsed.raw)
            emitted.add(parsed.key)

        pending.pop(parsed.key, None)

    for key in pending:
        logger.info("adding key: %s", key)
        result.lines.append(f"{key} {marker}")
        result.added.append(key)

    return result
