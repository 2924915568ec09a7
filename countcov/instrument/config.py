"""
Configuration for the instrumenter.

Supports YAML-based configuration files, e.g.::

    global_name: __countcov__
    statements: true
    branches: true
    functions: true
    exclude_pattern: "#\\s*pragma:\\s*no\\s*cover"
"""

import keyword
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from countcov.errors import ConfigurationError

DEFAULT_GLOBAL_NAME = "__countcov__"
DEFAULT_EXCLUDE_PATTERN = r"#\s*pragma:\s*no\s*cover"


def _usable_name(name: Any) -> bool:
    """Check that injected code can refer to ``name`` from any scope."""
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        return False
    # Class bodies mangle __name but not __name__
    return not (name.startswith("__") and not name.endswith("__"))


@dataclass
class InstrumenterConfig:
    """Configuration for an instrumentation pass."""

    # Name the injected code uses to reach the counter store
    global_name: str = DEFAULT_GLOBAL_NAME

    # Per-kind toggles
    statements: bool = True
    branches: bool = True
    functions: bool = True

    # Lines matching this pattern are not instrumented (None disables)
    exclude_pattern: str | None = DEFAULT_EXCLUDE_PATTERN

    def __post_init__(self) -> None:
        if not _usable_name(self.global_name):
            msg = f"Invalid global name: {self.global_name!r}"
            raise ConfigurationError(msg, details={"global_name": self.global_name})
        if self.exclude_pattern is not None:
            try:
                re.compile(self.exclude_pattern)
            except re.error as exc:
                msg = f"Invalid exclude pattern: {exc}"
                raise ConfigurationError(msg, details={"exclude_pattern": self.exclude_pattern}) from exc

    @property
    def exclude_regex(self) -> re.Pattern[str] | None:
        """Compiled exclusion pattern."""
        if self.exclude_pattern is None:
            return None
        return re.compile(self.exclude_pattern)


class InstrumenterConfigLoader:
    """Load and validate instrumenter configurations."""

    @classmethod
    def from_yaml(cls, path: str | Path) -> InstrumenterConfig:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            InstrumenterConfig loaded from file
        """
        path = Path(path)
        if not path.exists():
            msg = f"Configuration file not found: {path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstrumenterConfig:
        """
        Create configuration from a dictionary.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping")

        known = {f.name for f in fields(InstrumenterConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Unknown configuration keys: {', '.join(unknown)}"
            raise ConfigurationError(msg, details={"unknown": unknown})

        for toggle in ("statements", "branches", "functions"):
            if toggle in data and not isinstance(data[toggle], bool):
                raise ConfigurationError(f"'{toggle}' must be a boolean")

        return InstrumenterConfig(**data)

    @classmethod
    def to_yaml(cls, config: InstrumenterConfig) -> str:
        """Serialise a configuration to YAML."""
        data = {f.name: getattr(config, f.name) for f in fields(config)}
        return yaml.dump(data, default_flow_style=False, sort_keys=False)
