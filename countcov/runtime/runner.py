"""Compile and execute instrumented trees against a counter store."""

import ast
import logging
from dataclasses import dataclass, field
from typing import Any

from countcov.instrument.config import InstrumenterConfig
from countcov.instrument.instrumenter import instrument_source
from countcov.instrument.marks import InstrumentationMarks
from countcov.instrument.models import Metadata
from countcov.runtime.store import CoverageStore

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of running one instrumented file."""

    metadata: Metadata
    store: CoverageStore
    namespace: dict[str, Any] = field(default_factory=dict)

    @property
    def counts(self) -> dict[str, int]:
        """Counters recorded for the instrumented file."""
        return self.store.for_file(self.metadata.filename)


def execute(
    tree: ast.Module,
    filename: str,
    *,
    store: CoverageStore | None = None,
    namespace: dict[str, Any] | None = None,
    global_name: str | None = None,
) -> CoverageStore:
    """
    Run an instrumented module with a store bound in its globals.

    Errors raised by the program propagate unchanged. Counters recorded
    before the error stay in the store.

    Args:
        tree: Instrumented module
        filename: File name used for compilation and tracebacks
        store: Store to count into (fresh if None)
        namespace: Module globals (fresh ``__main__`` namespace if None)
        global_name: Name the injected code uses (config default if None)

    Returns:
        The store the program counted into
    """
    store = store if store is not None else CoverageStore()
    namespace = namespace if namespace is not None else {}
    namespace.setdefault("__name__", "__main__")
    namespace.setdefault("__file__", filename)
    namespace[global_name or InstrumenterConfig().global_name] = store

    code = compile(tree, filename, "exec")
    logger.debug("Executing instrumented %s", filename)
    exec(code, namespace)
    return store


def run_source(
    source: str,
    filename: str,
    *,
    store: CoverageStore | None = None,
    config: InstrumenterConfig | None = None,
    marks: InstrumentationMarks | None = None,
    namespace: dict[str, Any] | None = None,
) -> RunResult:
    """
    Parse, instrument and execute source text.

    Raises whatever the program raises. Use ``instrument_source`` and
    ``execute`` separately to keep the metadata when the program fails.
    """
    config = config or InstrumenterConfig()
    tree, metadata = instrument_source(source, filename, config=config, marks=marks)
    namespace = namespace if namespace is not None else {}
    store = execute(
        tree,
        filename,
        store=store,
        namespace=namespace,
        global_name=config.global_name,
    )
    return RunResult(metadata=metadata, store=store, namespace=namespace)
