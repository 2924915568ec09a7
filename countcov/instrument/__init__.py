"""
countcov Instrumentation.

Counter injection for Python syntax trees.

Components:
- models: Coverage entries, branch groups and per-file metadata
- locations: Source ranges and coverage keys
- marks: Side table of already-instrumented nodes
- config: Instrumenter configuration and YAML loading
- instrumenter: The single-pass tree rewriter
"""

from countcov.instrument.config import (
    InstrumenterConfig,
    InstrumenterConfigLoader,
)
from countcov.instrument.instrumenter import (
    Instrumenter,
    instrument,
    instrument_source,
)
from countcov.instrument.locations import (
    compute_key,
    key_for,
    location_of,
    span,
)
from countcov.instrument.marks import (
    DEFAULT_MARKS,
    InstrumentationMarks,
)
from countcov.instrument.models import (
    BranchConstruct,
    BranchGroup,
    CoverageEntry,
    EntryKind,
    Location,
    Metadata,
)

__all__ = [
    # Models
    "BranchConstruct",
    "BranchGroup",
    "CoverageEntry",
    "EntryKind",
    "Location",
    "Metadata",
    # Locations
    "compute_key",
    "key_for",
    "location_of",
    "span",
    # Marks
    "DEFAULT_MARKS",
    "InstrumentationMarks",
    # Config
    "InstrumenterConfig",
    "InstrumenterConfigLoader",
    # Instrumenter
    "Instrumenter",
    "instrument",
    "instrument_source",
]
