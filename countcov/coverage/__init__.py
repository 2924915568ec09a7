"""
countcov Coverage Analysis.

Turn raw counters into statement, branch and function reports.
"""

from countcov.coverage.analyzer import (
    BranchRecord,
    CoverageReport,
    FunctionRecord,
    KindSummary,
    StatementRecord,
    analyze,
    analyze_store,
)

__all__ = [
    "BranchRecord",
    "CoverageReport",
    "FunctionRecord",
    "KindSummary",
    "StatementRecord",
    "analyze",
    "analyze_store",
]
