"""Exception hierarchy for countcov.

All library errors inherit from CountcovError and accept structured
``details`` alongside the message. Errors raised by instrumented user code
are never wrapped in these types.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "CountcovError",
    "InvalidNode",
    "MalformedMetadata",
    "ConfigurationError",
]


class CountcovError(Exception):
    """Base class for library-specific errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Attach structured error details alongside the message."""
        super().__init__(message)
        self.details: dict[str, Any] | None = details

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return f"{cls}({super().__str__()!r})"


class InvalidNode(CountcovError, TypeError):
    """A syntax node has no resolvable source location."""


class MalformedMetadata(CountcovError, ValueError):
    """Metadata references an entry kind or group the analyzer does not know."""


class ConfigurationError(CountcovError, ValueError):
    """Invalid instrumenter configuration."""
