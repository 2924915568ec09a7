"""
Coverage Analyzer - Turn raw counters into a coverage report.

Combines one file's instrumentation metadata with the counters recorded
while it ran. Reports three ordered sequences:
- Statements: every counted statement with its execution count
- Branches: every branch arm, grouped by decision point
- Functions: every function with its invocation count
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from countcov.errors import MalformedMetadata
from countcov.instrument.models import (
    BranchConstruct,
    BranchGroup,
    CoverageEntry,
    EntryKind,
    Location,
    Metadata,
)
from countcov.runtime.store import CoverageStore


@dataclass(frozen=True)
class StatementRecord:
    """Execution count of one statement."""

    key: str
    location: Location
    count: int

    @property
    def covered(self) -> bool:
        return self.count > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "location": self.location.model_dump(),
            "count": self.count,
        }


@dataclass(frozen=True)
class BranchRecord(StatementRecord):
    """Execution count of one branch arm."""

    group_id: int = 0
    branch_index: int = 0
    construct: BranchConstruct | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            **super().to_dict(),
            "group_id": self.group_id,
            "branch_index": self.branch_index,
            "construct": self.construct.value if self.construct else None,
        }


@dataclass(frozen=True)
class FunctionRecord(StatementRecord):
    """Invocation count of one function."""

    name: str = "<unknown>"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {**super().to_dict(), "name": self.name}


@dataclass
class KindSummary:
    """Totals for one entry kind."""

    kind: EntryKind
    total: int = 0
    covered: int = 0

    @property
    def coverage_percentage(self) -> float:
        """Coverage percentage (0.0 to 100.0)."""
        if self.total == 0:
            return 100.0
        return (self.covered / self.total) * 100.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "total": self.total,
            "covered": self.covered,
            "coverage_percentage": round(self.coverage_percentage, 2),
        }


@dataclass
class CoverageReport:
    """Coverage of one file."""

    filename: str
    statements: list[StatementRecord] = field(default_factory=list)
    branches: list[BranchRecord] = field(default_factory=list)
    functions: list[FunctionRecord] = field(default_factory=list)

    def summary(self, kind: EntryKind) -> KindSummary:
        """Totals for one kind."""
        records = {
            EntryKind.STATEMENT: self.statements,
            EntryKind.BRANCH: self.branches,
            EntryKind.FUNCTION: self.functions,
        }[kind]
        return KindSummary(
            kind=kind,
            total=len(records),
            covered=sum(1 for r in records if r.covered),
        )

    @property
    def has_gaps(self) -> bool:
        """Check if anything was never executed."""
        return any(not r.covered for r in (*self.statements, *self.branches, *self.functions))

    def branch_groups(self) -> dict[int, list[BranchRecord]]:
        """Branch records keyed by group, arms in branch order."""
        groups: dict[int, list[BranchRecord]] = {}
        for record in self.branches:
            groups.setdefault(record.group_id, []).append(record)
        for arms in groups.values():
            arms.sort(key=lambda r: r.branch_index)
        return groups

    def uncovered(self) -> list[StatementRecord]:
        """Records with a zero count, statements first, then branches, then functions."""
        return [r for r in (*self.statements, *self.branches, *self.functions) if not r.covered]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "filename": self.filename,
            "has_gaps": self.has_gaps,
            "summary": {kind.value: self.summary(kind).to_dict() for kind in EntryKind},
            "statements": [r.to_dict() for r in self.statements],
            "branches": [r.to_dict() for r in self.branches],
            "functions": [r.to_dict() for r in self.functions],
        }


def _branch_record(
    entry: CoverageEntry,
    count: int,
    groups: Mapping[int, BranchGroup],
) -> BranchRecord:
    if entry.group_id is None or entry.branch_index is None:
        msg = f"Branch entry {entry.key} has no group"
        raise MalformedMetadata(msg, details={"key": entry.key})
    group = groups.get(entry.group_id)
    if group is None:
        msg = f"Branch entry {entry.key} refers to unknown group {entry.group_id}"
        raise MalformedMetadata(msg, details={"key": entry.key, "group_id": entry.group_id})
    return BranchRecord(
        key=entry.key,
        location=entry.location,
        count=count,
        group_id=entry.group_id,
        branch_index=entry.branch_index,
        construct=group.construct_type,
    )


def analyze(raw: Mapping[str, int], metadata: Metadata) -> CoverageReport:
    """
    Build a coverage report from one file's counters and metadata.

    Entries keep their metadata order within each kind. Keys missing from
    ``raw`` count as 0.

    Args:
        raw: Counters recorded for the file (key -> count)
        metadata: Metadata produced when the file was instrumented

    Returns:
        CoverageReport for the file

    Raises:
        MalformedMetadata: If an entry has an unknown kind or a branch has no group
    """
    report = CoverageReport(filename=metadata.filename)
    groups = {group.group_id: group for group in metadata.groups}
    for entry in metadata.entries:
        count = raw.get(entry.key, 0)
        if entry.kind == EntryKind.STATEMENT:
            report.statements.append(
                StatementRecord(key=entry.key, location=entry.location, count=count)
            )
        elif entry.kind == EntryKind.BRANCH:
            report.branches.append(_branch_record(entry, count, groups))
        elif entry.kind == EntryKind.FUNCTION:
            report.functions.append(
                FunctionRecord(
                    key=entry.key,
                    location=entry.location,
                    count=count,
                    name=entry.name or "<unknown>",
                )
            )
        else:
            msg = f"Unknown entry kind: {entry.kind!r}"
            raise MalformedMetadata(msg, details={"key": entry.key, "kind": str(entry.kind)})
    return report


def analyze_store(store: CoverageStore, metadata: Metadata) -> CoverageReport:
    """Analyze using a snapshot of the store's counters for ``metadata.filename``."""
    return analyze(store.for_file(metadata.filename), metadata)
