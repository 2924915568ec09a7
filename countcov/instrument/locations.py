"""Source locations and coverage keys for syntax nodes."""

import ast
from collections.abc import Sequence

from countcov.errors import InvalidNode
from countcov.instrument.models import EntryKind, Location

_POSITION_FIELDS = ("lineno", "col_offset", "end_lineno", "end_col_offset")

_KIND_PREFIX = {
    EntryKind.STATEMENT: "s",
    EntryKind.BRANCH: "b",
    EntryKind.FUNCTION: "f",
}


def location_of(node: ast.AST) -> Location:
    """
    Get the source range of a node.

    Raises:
        InvalidNode: If any of the four position attributes is missing
    """
    positions = [getattr(node, name, None) for name in _POSITION_FIELDS]
    if any(value is None for value in positions):
        raise InvalidNode(
            f"Node {type(node).__name__} has no source location",
            details={"node_type": type(node).__name__},
        )
    start_line, start_column, end_line, end_column = positions
    return Location(
        start_line=start_line,
        start_column=start_column,
        end_line=end_line,
        end_column=end_column,
    )


def span(nodes: Sequence[ast.AST]) -> Location:
    """Range from the start of the first node to the end of the last."""
    if not nodes:
        raise InvalidNode("Cannot compute the location of an empty block")
    first = location_of(nodes[0])
    last = location_of(nodes[-1])
    return Location(
        start_line=first.start_line,
        start_column=first.start_column,
        end_line=last.end_line,
        end_column=last.end_column,
    )


def key_for(location: Location, kind: EntryKind = EntryKind.STATEMENT) -> str:
    """Coverage key for a location, e.g. ``s3:4-3:10``."""
    return f"{_KIND_PREFIX[kind]}{location}"


def compute_key(node: ast.AST, kind: EntryKind = EntryKind.STATEMENT) -> str:
    """
    Compute the coverage key of a node.

    The key depends only on the node's source range and the entry kind, so
    two nodes with the same range and kind collide.

    Raises:
        InvalidNode: If the node has no source location
    """
    return key_for(location_of(node), kind)
