"""Side table recording which syntax nodes are already instrumented."""

import ast
import weakref


class InstrumentationMarks:
    """
    Set of instrumented nodes, keyed by node identity.

    Nodes are held weakly: a mark disappears together with its tree.
    """

    def __init__(self) -> None:
        self._nodes: weakref.WeakSet[ast.AST] = weakref.WeakSet()

    def mark(self, node: ast.AST) -> None:
        """Record a node as instrumented."""
        self._nodes.add(node)

    def is_marked(self, node: ast.AST) -> bool:
        """Check whether a node was instrumented or injected."""
        return node in self._nodes

    def clear(self) -> None:
        """Forget all marked nodes."""
        self._nodes.clear()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, ast.AST) and self.is_marked(node)


# Shared by default so repeated passes over the same tree are no-ops
DEFAULT_MARKS = InstrumentationMarks()
