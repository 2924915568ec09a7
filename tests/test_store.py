"""
Tests for the runtime CoverageStore.
"""

import builtins
import threading

import pytest

from countcov.runtime import CoverageStore, install, installed, uninstall


class TestCounters:
    """Test counter allocation and reads."""

    def test_file_allocated_on_first_hit(self) -> None:
        """Test that a file appears only after its first increment."""
        store = CoverageStore()
        assert "app.py" not in store

        store.hit("app.py", "s1:0-1:5")

        assert "app.py" in store
        assert store.files() == ["app.py"]

    def test_unknown_key_counts_zero(self) -> None:
        """Test reading a key that was never hit."""
        store = CoverageStore()
        assert store.count("app.py", "s9:0-9:1") == 0
        assert store.for_file("app.py") == {}

    def test_hit_returns_none(self) -> None:
        """Test that hit() can prefix an ``or`` expression."""
        store = CoverageStore()
        assert (store.hit("app.py", "b1:0-1:1") or "value") == "value"

    def test_snapshot_is_isolated(self) -> None:
        """Test that later hits do not change an earlier snapshot."""
        store = CoverageStore()
        store.hit("app.py", "k")
        snapshot = store.for_file("app.py")

        store.hit("app.py", "k")
        snapshot["k"] = 100

        assert store.count("app.py", "k") == 2

    def test_concurrent_hits_are_not_lost(self) -> None:
        """Test that increments from many threads add up exactly."""
        store = CoverageStore()

        def worker() -> None:
            for _ in range(1000):
                store.hit("app.py", "k")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.count("app.py", "k") == 8000


class TestGuard:
    """Test the try-statement guard."""

    def test_normal_exit_counts_ok(self) -> None:
        """Test that leaving the block normally counts the first key."""
        store = CoverageStore()
        with store.guard("app.py", "ok", "err"):
            pass

        assert store.for_file("app.py") == {"ok": 1}

    def test_exception_counts_error_and_propagates(self) -> None:
        """Test that the guard counts an exception without swallowing it."""
        store = CoverageStore()
        error = ValueError("boom")

        with pytest.raises(ValueError) as exc_info:
            with store.guard("app.py", "ok", "err"):
                raise error

        assert exc_info.value is error
        assert store.for_file("app.py") == {"err": 1}


class TestLifecycle:
    """Test merge, reset and serialization."""

    def test_merge_sums_counts(self) -> None:
        """Test merging two stores into a new one."""
        first = CoverageStore({"a.py": {"k": 1}})
        second = CoverageStore({"a.py": {"k": 2, "j": 1}, "b.py": {"k": 5}})

        merged = first.merge(second)

        assert merged.to_dict() == {"a.py": {"k": 3, "j": 1}, "b.py": {"k": 5}}
        assert first.to_dict() == {"a.py": {"k": 1}}

    def test_reset_one_file(self) -> None:
        """Test dropping the counters of a single file."""
        store = CoverageStore({"a.py": {"k": 1}, "b.py": {"k": 1}})
        store.reset("a.py")

        assert store.files() == ["b.py"]

    def test_reset_all(self) -> None:
        """Test dropping every counter."""
        store = CoverageStore({"a.py": {"k": 1}})
        store.reset()

        assert store.files() == []

    def test_dict_round_trip(self) -> None:
        """Test rebuilding a store from its dictionary form."""
        store = CoverageStore()
        store.hit("a.py", "k")
        store.hit("a.py", "k")

        restored = CoverageStore.from_dict(store.to_dict())

        assert restored.count("a.py", "k") == 2


class TestInstall:
    """Test publishing a store through builtins."""

    def test_install_and_uninstall(self) -> None:
        """Test that an installed store is visible from any module."""
        store = CoverageStore()
        try:
            install(store, "_countcov_test_store")
            assert installed("_countcov_test_store") is store
            assert builtins._countcov_test_store is store
        finally:
            removed = uninstall("_countcov_test_store")

        assert removed is store
        assert installed("_countcov_test_store") is None

    def test_uninstall_missing(self) -> None:
        """Test that removing a store that was never installed returns None."""
        assert uninstall("_countcov_missing_store") is None
