"""
Memoizing caches for expensive read-only git queries.

Objects are referenced many times across a repository's history, so every
read-only query result is kept for the lifetime of the run. Entries are
never evicted: git objects are immutable, so a cached answer can not go stale.

Caches are plain objects handed to the components that use them. Tests build
a fresh instance per case instead of resetting module state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable, Sequence
from typing import Generic, TypeVar

from .runner import CommandRunner

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class MemoCache(Generic[K, V]):
    """
    Thread-safe get-or-compute cache.

    The lock only guards the dictionary. The compute step runs outside of it,
    so two workers missing the same key at once may both compute it; the value
    is deterministic per key, so the second store is harmless. A compute that
    raises stores nothing and the next call for that key tries again.
    """

    def __init__(self) -> None:
        self._entries: dict[K, V] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> V | None:
        """Get a cached value without computing it."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: K, value: V) -> None:
        """Store a value, replacing any previous entry."""
        with self._lock:
            self._entries[key] = value

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        """Return the cached value for key, computing and storing it on a miss."""
        with self._lock:
            if key in self._entries:
                self._hits += 1
                return self._entries[key]
            self._misses += 1

        value = compute()

        with self._lock:
            # Keep the first stored value if another worker won the race
            return self._entries.setdefault(key, value)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        """Get cache statistics."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }


def command_key(command: Sequence[str]) -> str:
    """Build the cache key for a command: name and arguments joined by spaces."""
    return " ".join(command)


class CommandCache:
    """
    Cache of raw stdout for read-only external commands.

    A hit never touches the runner. A miss runs the command once; a failing
    command raises GitCommandError and leaves the cache untouched.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self._cache: MemoCache[str, bytes] = MemoCache()

    def get(self, *command: str, timeout: float | None = None) -> bytes:
        """
        Get the output of a read-only command, running it on a miss.

        Args:
            command: Command name followed by its arguments
            timeout: Seconds allowed for the external invocation on a miss

        Returns:
            Captured stdout bytes

        Raises:
            GitCommandError: If the command fails on a miss
        """
        key = command_key(command)

        def run() -> bytes:
            logger.debug("cache miss: %s", key)
            return self.runner.run(command, timeout=timeout)

        return self._cache.get_or_compute(key, run)

    def seed(self, command: Sequence[str], output: bytes) -> None:
        """Store output for a command without running it."""
        self._cache.put(command_key(command), output)

    def __contains__(self, command: object) -> bool:
        if isinstance(command, str):
            return command in self._cache
        if isinstance(command, (tuple, list)):
            return command_key(command) in self._cache
        return False

    def clear(self) -> None:
        """Clear all cached outputs."""
        self._cache.clear()

    def stats(self) -> dict[str, int]:
        """Get cache statistics."""
        return self._cache.stats()
