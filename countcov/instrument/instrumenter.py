"""
Coverage Instrumenter - Counter injection for Python syntax trees.

Walks a parsed module once, in source order, and rewrites it in place so
that executing it records:
- Statements: a counter call before every statement of every block
- Functions: a counter call on entry to every def, async def and lambda
- Branches: one counter per arm of if chains, ternaries, and/or operands,
  match statements, while/for loops and try statements

Injected nodes copy the location of the code they count, so the rewritten
tree compiles with the original line numbers. Every processed and injected
node is recorded in an InstrumentationMarks table. A later pass with the
same table leaves those nodes alone.
"""

import ast
import logging
import re
from collections.abc import Sequence

from countcov.instrument.config import InstrumenterConfig
from countcov.instrument.locations import key_for, location_of, span
from countcov.instrument.marks import DEFAULT_MARKS, InstrumentationMarks
from countcov.instrument.models import (
    BranchConstruct,
    CoverageEntry,
    EntryKind,
    Location,
    Metadata,
)

logger = logging.getLogger(__name__)

# Never evaluated as branches; postponed annotations are stringified from the tree
_SKIPPED_FIELDS = frozenset({"annotation", "returns"})

_LOCATED_TYPES = (ast.stmt, ast.expr, ast.pattern, ast.excepthandler)


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def _is_future_import(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__"


def _is_irrefutable(pattern: ast.pattern) -> bool:
    """Check whether a match pattern always succeeds (``case _`` or ``case name``)."""
    if isinstance(pattern, ast.MatchAs):
        return pattern.pattern is None or _is_irrefutable(pattern.pattern)
    if isinstance(pattern, ast.MatchOr):
        return any(_is_irrefutable(p) for p in pattern.patterns)
    return False


def _join(start: Location, end: Location) -> Location:
    return Location(
        start_line=start.start_line,
        start_column=start.start_column,
        end_line=end.end_line,
        end_column=end.end_column,
    )


def _excluded_lines(source: str | None, pattern: re.Pattern[str] | None) -> frozenset[int]:
    if source is None or pattern is None:
        return frozenset()
    return frozenset(
        lineno
        for lineno, line in enumerate(source.splitlines(), start=1)
        if pattern.search(line) is not None
    )


class Instrumenter(ast.NodeTransformer):
    """
    Single-pass coverage instrumenter.

    Usage:
        instrumenter = Instrumenter("app.py")
        tree, metadata = instrumenter.instrument(ast.parse(source))
    """

    def __init__(
        self,
        filename: str,
        config: InstrumenterConfig | None = None,
        marks: InstrumentationMarks | None = None,
        source: str | None = None,
    ):
        """
        Initialize the instrumenter.

        Args:
            filename: Name the counters are recorded under
            config: Instrumentation settings (defaults if None)
            marks: Table of already-instrumented nodes (shared default if None)
            source: Original source text, needed for exclusion comments
        """
        self.filename = filename
        self.config = config or InstrumenterConfig()
        self.marks = marks if marks is not None else DEFAULT_MARKS
        self.metadata = Metadata(filename=filename)
        self._excluded = _excluded_lines(source, self.config.exclude_regex)

    def instrument(self, tree: ast.AST) -> tuple[ast.AST, Metadata]:
        """
        Rewrite a tree in place and collect its metadata.

        Raises:
            InvalidNode: If a visited node has no source location
        """
        self.metadata = Metadata(filename=self.filename)
        # Checked up front so a failure leaves the tree untouched
        self._check_locations(tree)
        tree = self.visit(tree)
        ast.fix_missing_locations(tree)
        logger.debug(
            "Instrumented %s: %d entries, %d branch groups",
            self.filename,
            len(self.metadata.entries),
            len(self.metadata.groups),
        )
        return tree, self.metadata

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _check_locations(self, node: ast.AST) -> None:
        """Raise InvalidNode for any node the pass would need a location for."""
        if node in self.marks:
            return
        if isinstance(node, ast.stmt) and self._is_excluded(node):
            return
        if isinstance(node, _LOCATED_TYPES):
            location_of(node)
        for field, value in ast.iter_fields(node):
            if field in _SKIPPED_FIELDS:
                continue
            children = value if isinstance(value, list) else [value]
            for child in children:
                if isinstance(child, ast.AST):
                    self._check_locations(child)

    def visit(self, node: ast.AST) -> ast.AST:
        if node in self.marks:
            return node
        return super().visit(node)

    def generic_visit(self, node: ast.AST) -> ast.AST:
        for field, value in ast.iter_fields(node):
            if field in _SKIPPED_FIELDS:
                continue
            if isinstance(value, list):
                if value and isinstance(value[0], ast.stmt):
                    setattr(node, field, self._visit_block(value))
                else:
                    value[:] = [
                        self.visit(item) if isinstance(item, ast.AST) else item
                        for item in value
                    ]
            elif isinstance(value, ast.AST):
                setattr(node, field, self.visit(value))
        return node

    def _visit_block(self, body: list[ast.stmt], docstring: bool = False) -> list[ast.stmt]:
        """Visit a statement list, prepending a counter to each statement."""
        block: list[ast.stmt] = []
        for index, stmt in enumerate(body):
            if stmt in self.marks:
                block.append(stmt)
                continue
            if self._is_excluded(stmt):
                logger.debug("Excluded %s at line %s", type(stmt).__name__, stmt.lineno)
                block.append(stmt)
                continue
            if (docstring and index == 0 and _is_docstring(stmt)) or _is_future_import(stmt):
                block.append(stmt)
                continue

            key = None
            if self.config.statements:
                key = self._register(EntryKind.STATEMENT, location_of(stmt))
            new_stmt = self.visit(stmt)
            self.marks.mark(stmt)
            if key is not None:
                block.append(self._counter(key, stmt))
            block.append(new_stmt)
        return block

    def _is_excluded(self, stmt: ast.stmt) -> bool:
        if not self._excluded:
            return False
        lines = [getattr(stmt, "lineno", None)]
        lines.extend(getattr(d, "lineno", None) for d in getattr(stmt, "decorator_list", []))
        return any(line in self._excluded for line in lines)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register(
        self,
        kind: EntryKind,
        location: Location,
        *,
        group_id: int | None = None,
        branch_index: int | None = None,
        name: str | None = None,
    ) -> str | None:
        """Add an entry to the metadata. Returns None on a key collision."""
        key = key_for(location, kind)
        entry = CoverageEntry(
            key=key,
            kind=kind,
            location=location,
            group_id=group_id,
            branch_index=branch_index,
            name=name,
        )
        if not self.metadata.add(entry):
            logger.debug("Key %s already registered in %s, not counting again", key, self.filename)
            return None
        return key

    def _register_group(
        self,
        construct: BranchConstruct,
        node: ast.AST,
        arms: Sequence[Location],
    ) -> list[str | None]:
        """Register a branch group and one entry per arm."""
        if not self.config.branches:
            return [None] * len(arms)
        group = self.metadata.add_group(construct, len(arms), location_of(node))
        return [
            self._register(
                EntryKind.BRANCH,
                location,
                group_id=group.group_id,
                branch_index=index,
            )
            for index, location in enumerate(arms)
        ]

    # ------------------------------------------------------------------
    # Injected code
    # ------------------------------------------------------------------

    def _store_call(self, method: str, keys: Sequence[str], anchor: ast.AST) -> ast.Call:
        call = ast.Call(
            func=ast.Attribute(
                value=ast.Name(id=self.config.global_name, ctx=ast.Load()),
                attr=method,
                ctx=ast.Load(),
            ),
            args=[ast.Constant(value=self.filename)] + [ast.Constant(value=k) for k in keys],
            keywords=[],
        )
        return self._injected(call, anchor)

    def _injected(self, node: ast.AST, anchor: ast.AST) -> ast.AST:
        for child in ast.walk(node):
            ast.copy_location(child, anchor)
            self.marks.mark(child)
        return node

    def _counter(self, key: str, anchor: ast.AST) -> ast.stmt:
        """``__countcov__.hit(filename, key)`` as a statement."""
        return self._injected(ast.Expr(value=self._store_call("hit", [key], anchor)), anchor)

    def _wrap(self, key: str | None, expr: ast.expr) -> ast.expr:
        """``__countcov__.hit(filename, key) or expr``; hit() returns None."""
        if key is None:
            return expr
        wrapper = ast.BoolOp(op=ast.Or(), values=[self._store_call("hit", [key], expr)])
        self._injected(wrapper, expr)
        wrapper.values.append(expr)
        return wrapper

    def _prepend(self, key: str | None, block: list[ast.stmt]) -> list[ast.stmt]:
        if key is None:
            return block
        return [self._counter(key, block[0]), *block]

    # ------------------------------------------------------------------
    # Modules, classes and functions
    # ------------------------------------------------------------------

    def visit_Module(self, node: ast.Module) -> ast.Module:
        node.body = self._visit_block(node.body, docstring=True)
        self.marks.mark(node)
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.ClassDef:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        node.body = self._visit_block(node.body, docstring=True)
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        key = None
        if self.config.functions:
            key = self._register(EntryKind.FUNCTION, location_of(node), name=node.name)

        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self.visit(node.args)
        offset = 1 if _is_docstring(node.body[0]) else 0
        body = self._visit_block(node.body, docstring=True)
        if key is not None:
            anchor = body[offset] if offset < len(body) else body[0]
            body.insert(offset, self._counter(key, anchor))
        node.body = body
        return node

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> ast.Lambda:
        key = None
        if self.config.functions:
            key = self._register(EntryKind.FUNCTION, location_of(node), name="<lambda>")
        node.args = self.visit(node.args)
        node.body = self._wrap(key, self.visit(node.body))
        self.marks.mark(node)
        return node

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def visit_If(self, node: ast.If) -> ast.If:
        # `elif` and `else:` holding a lone `if` both continue the chain
        links = [node]
        while (
            len(links[-1].orelse) == 1
            and isinstance(links[-1].orelse[0], ast.If)
            and links[-1].orelse[0] not in self.marks
            and not self._is_excluded(links[-1].orelse[0])
        ):
            links.append(links[-1].orelse[0])
        last = links[-1]

        arms = [span(link.body) for link in links]
        arms.append(span(last.orelse) if last.orelse else location_of(last.test))
        keys = self._register_group(BranchConstruct.IF, node, arms)

        for link, key in zip(links, keys):
            link.test = self.visit(link.test)
            link.body = self._prepend(key, self._visit_block(link.body))
            self.marks.mark(link)

        if last.orelse:
            last.orelse = self._prepend(keys[-1], self._visit_block(last.orelse))
        elif keys[-1] is not None:
            last.orelse = [self._counter(keys[-1], last.test)]
        return node

    def visit_IfExp(self, node: ast.IfExp) -> ast.IfExp:
        keys = self._register_group(
            BranchConstruct.TERNARY,
            node,
            [location_of(node.body), location_of(node.orelse)],
        )
        node.test = self.visit(node.test)
        node.body = self._wrap(keys[0], self.visit(node.body))
        node.orelse = self._wrap(keys[1], self.visit(node.orelse))
        self.marks.mark(node)
        return node

    def visit_BoolOp(self, node: ast.BoolOp) -> ast.BoolOp:
        keys = self._register_group(
            BranchConstruct.LOGICAL,
            node,
            [location_of(value) for value in node.values],
        )
        node.values = [
            self._wrap(key, self.visit(value)) for key, value in zip(keys, node.values)
        ]
        self.marks.mark(node)
        return node

    def visit_Match(self, node: ast.Match) -> ast.Match:
        last = node.cases[-1]
        has_default = last.guard is None and _is_irrefutable(last.pattern)

        arms = [_join(location_of(case.pattern), span(case.body)) for case in node.cases]
        if not has_default:
            arms.append(location_of(node.subject))
        keys = self._register_group(BranchConstruct.MATCH, node, arms)

        node.subject = self.visit(node.subject)
        for case, key in zip(node.cases, keys):
            if case.guard is not None:
                case.guard = self.visit(case.guard)
            case.body = self._prepend(key, self._visit_block(case.body))
            self.marks.mark(case)

        if not has_default and keys[-1] is not None:
            fallback = ast.match_case(
                pattern=self._injected(ast.MatchAs(pattern=None, name=None), node.subject),
                guard=None,
                body=[self._counter(keys[-1], node.subject)],
            )
            self.marks.mark(fallback)
            node.cases.append(fallback)
        return node

    def _visit_loop(
        self,
        node: ast.While | ast.For | ast.AsyncFor,
        construct: BranchConstruct,
        header: str,
    ) -> None:
        """Arm 0 counts iterations, arm 1 counts exits through the loop's else clause."""
        exit_location = span(node.orelse) if node.orelse else location_of(getattr(node, header))
        keys = self._register_group(construct, node, [span(node.body), exit_location])

        if isinstance(node, ast.While):
            node.test = self.visit(node.test)
        else:
            node.target = self.visit(node.target)
            node.iter = self.visit(node.iter)

        node.body = self._prepend(keys[0], self._visit_block(node.body))
        if node.orelse:
            node.orelse = self._prepend(keys[1], self._visit_block(node.orelse))
        elif keys[1] is not None:
            node.orelse = [self._counter(keys[1], getattr(node, header))]

    def visit_While(self, node: ast.While) -> ast.While:
        self._visit_loop(node, BranchConstruct.WHILE, "test")
        return node

    def visit_For(self, node: ast.For | ast.AsyncFor) -> ast.AST:
        self._visit_loop(node, BranchConstruct.FOR, "iter")
        return node

    visit_AsyncFor = visit_For

    def visit_Try(self, node: ast.Try) -> ast.Try:
        if node.handlers:
            error_location = span(node.handlers)
        elif node.finalbody:
            error_location = span(node.finalbody)
        else:
            error_location = span(node.body)
        ok_key, error_key = self._register_group(
            BranchConstruct.TRY,
            node,
            [span(node.body), error_location],
        )

        body = self._visit_block(node.body)
        for handler in node.handlers:
            if handler.type is not None:
                handler.type = self.visit(handler.type)
            handler.body = self._visit_block(handler.body)
            self.marks.mark(handler)
        if node.orelse:
            node.orelse = self._visit_block(node.orelse)
        if node.finalbody:
            node.finalbody = self._visit_block(node.finalbody)

        if ok_key is not None and error_key is not None:
            guard = ast.With(
                items=[
                    ast.withitem(
                        context_expr=self._store_call("guard", [ok_key, error_key], body[0]),
                        optional_vars=None,
                    )
                ],
                body=[],
            )
            self._injected(guard, body[0])
            guard.body = body
            body = [guard]
        node.body = body
        return node

    visit_TryStar = visit_Try


def instrument(
    tree: ast.AST,
    filename: str,
    *,
    config: InstrumenterConfig | None = None,
    marks: InstrumentationMarks | None = None,
    source: str | None = None,
) -> tuple[ast.AST, Metadata]:
    """
    Instrument a parsed tree for coverage counting.

    Convenience function that creates an Instrumenter and runs one pass.

    Args:
        tree: Parsed module (rewritten in place)
        filename: Name the counters are recorded under
        config: Instrumentation settings
        marks: Table of already-instrumented nodes
        source: Original source text, needed for exclusion comments

    Returns:
        The rewritten tree and its Metadata

    Raises:
        InvalidNode: If a visited node has no source location
    """
    instrumenter = Instrumenter(filename, config=config, marks=marks, source=source)
    return instrumenter.instrument(tree)


def instrument_source(
    source: str,
    filename: str,
    *,
    config: InstrumenterConfig | None = None,
    marks: InstrumentationMarks | None = None,
) -> tuple[ast.Module, Metadata]:
    """Parse source text and instrument it."""
    tree = ast.parse(source, filename=filename)
    return instrument(tree, filename, config=config, marks=marks, source=source)
