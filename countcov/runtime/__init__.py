"""
countcov Runtime.

Counter store shared by instrumented code and the analyzer.
"""

from countcov.runtime.runner import RunResult, execute, run_source
from countcov.runtime.store import CoverageStore, install, installed, uninstall

__all__ = [
    "CoverageStore",
    "RunResult",
    "execute",
    "install",
    "installed",
    "run_source",
    "uninstall",
]
