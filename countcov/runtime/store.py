"""
CoverageStore - Runtime counters for instrumented code.

Instrumented code reaches the store through a global name (``__countcov__``
by default) and increments ``counts[filename][key]``. A store is bound per
execution context by the runner, or published process-wide with
``install()``.
"""

import builtins
import threading
from collections.abc import Mapping
from types import TracebackType
from typing import Any

from countcov.instrument.config import DEFAULT_GLOBAL_NAME


class _TryGuard:
    """Context manager that counts how a try body was left. Never suppresses."""

    __slots__ = ("_store", "_filename", "_ok_key", "_error_key")

    def __init__(self, store: "CoverageStore", filename: str, ok_key: str, error_key: str):
        self._store = store
        self._filename = filename
        self._ok_key = ok_key
        self._error_key = error_key

    def __enter__(self) -> None:
        return None

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        key = self._ok_key if exc_type is None else self._error_key
        self._store.hit(self._filename, key)
        return False


class CoverageStore:
    """
    Per-file execution counters.

    Maps filename -> coverage key -> count. Files are allocated on their
    first increment. Increments are atomic across threads.
    """

    def __init__(self, counts: Mapping[str, Mapping[str, int]] | None = None):
        self._lock = threading.Lock()
        self._counts: dict[str, dict[str, int]] = {
            filename: dict(keys) for filename, keys in (counts or {}).items()
        }

    def hit(self, filename: str, key: str) -> None:
        """Increment one counter. Returns None so it can prefix ``or`` expressions."""
        with self._lock:
            counters = self._counts.get(filename)
            if counters is None:
                counters = self._counts[filename] = {}
            counters[key] = counters.get(key, 0) + 1

    def guard(self, filename: str, ok_key: str, error_key: str) -> _TryGuard:
        """Context manager counting ``ok_key`` on normal exit and ``error_key`` on an exception."""
        return _TryGuard(self, filename, ok_key, error_key)

    def count(self, filename: str, key: str) -> int:
        """Current count for one key (0 if never hit)."""
        with self._lock:
            return self._counts.get(filename, {}).get(key, 0)

    def for_file(self, filename: str) -> dict[str, int]:
        """Snapshot of one file's counters (empty if the file never ran)."""
        with self._lock:
            return dict(self._counts.get(filename, {}))

    def files(self) -> list[str]:
        """Files with at least one counter."""
        with self._lock:
            return sorted(self._counts)

    def merge(self, other: "CoverageStore") -> "CoverageStore":
        """
        Merge counters from another store.

        Creates a new store holding the sums of both.
        """
        merged = CoverageStore(self.to_dict())
        for filename, counters in other.to_dict().items():
            target = merged._counts.setdefault(filename, {})
            for key, value in counters.items():
                target[key] = target.get(key, 0) + value
        return merged

    def reset(self, filename: str | None = None) -> None:
        """Drop the counters of one file, or of every file."""
        with self._lock:
            if filename is None:
                self._counts.clear()
            else:
                self._counts.pop(filename, None)

    def to_dict(self) -> dict[str, dict[str, int]]:
        """Convert to a JSON-ready dictionary."""
        with self._lock:
            return {filename: dict(keys) for filename, keys in self._counts.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CoverageStore":
        """Create a store from ``to_dict()`` output."""
        return cls({filename: {k: int(v) for k, v in keys.items()} for filename, keys in data.items()})

    def __contains__(self, filename: object) -> bool:
        with self._lock:
            return filename in self._counts

    def __repr__(self) -> str:
        return f"CoverageStore(files={self.files()!r})"


def install(store: CoverageStore, name: str = DEFAULT_GLOBAL_NAME) -> CoverageStore:
    """Publish a store as a process-wide builtin for instrumented code."""
    setattr(builtins, name, store)
    return store


def uninstall(name: str = DEFAULT_GLOBAL_NAME) -> CoverageStore | None:
    """Remove a previously installed store and return it."""
    store = getattr(builtins, name, None)
    if store is not None:
        delattr(builtins, name)
    return store


def installed(name: str = DEFAULT_GLOBAL_NAME) -> CoverageStore | None:
    """The store currently published under ``name``, if any."""
    return getattr(builtins, name, None)
