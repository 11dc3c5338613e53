"""Shared fixtures: an in-memory stand-in for git."""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterator, Sequence
from typing import BinaryIO

import pytest

from history_scrubber.cache import CommandCache
from history_scrubber.errors import GitCommandError
from history_scrubber.memory import MemoryMonitor, StaticSampler
from history_scrubber.runner import CommandRunner
from history_scrubber.store import HASH_OBJECT, ObjectStore

GIB = 1024 * 1024 * 1024


def git_blob_id(payload: bytes) -> str:
    """Object id git assigns to a blob with this payload."""
    return hashlib.sha1(b"blob %d\0" % len(payload) + payload).hexdigest()


class FakeRunner(CommandRunner):
    """
    Answers git commands from a table instead of spawning processes.

    Unknown commands fail like git does for a bad object. hash-object returns
    the real git blob id of whatever it was fed.
    """

    def __init__(self) -> None:
        self.outputs: dict[tuple[str, ...], bytes] = {}
        self.failing: set[tuple[str, ...]] = set()
        self.calls: list[tuple[str, ...]] = []
        self.timeouts: list[float | None] = []
        self.written: list[bytes] = []
        self._lock = threading.Lock()

    def add_blob(self, object_id: str, content: bytes) -> None:
        self.outputs[("git", "cat-file", "blob", object_id)] = content
        self.outputs[("git", "cat-file", "-s", object_id)] = b"%d\n" % len(content)

    def add_commit(self, commit_id: str, tree_id: str) -> None:
        self.outputs[("git", "cat-file", "commit", commit_id)] = (
            f"tree {tree_id}\n"
            "parent 0000000000000000000000000000000000000000\n"
            "author A U Thor <author@example.com> 1700000000 +0000\n"
            "committer A U Thor <author@example.com> 1700000000 +0000\n"
            "\n"
            "Add config\n"
        ).encode()

    def fail(self, *command: str) -> None:
        self.failing.add(tuple(command))

    def count(self, *command: str) -> int:
        with self._lock:
            return self.calls.count(tuple(command))

    def run(
        self,
        command: Sequence[str],
        *,
        input: bytes | None = None,
        stdin: BinaryIO | None = None,
        timeout: float | None = None,
    ) -> bytes:
        command = tuple(command)
        with self._lock:
            self.calls.append(command)
            self.timeouts.append(timeout)

        if command in self.failing:
            raise GitCommandError(
                command, "exited with status 128", returncode=128, stderr="fatal: bad object"
            )

        if command == HASH_OBJECT:
            payload = input if input is not None else stdin.read()
            with self._lock:
                self.written.append(payload)
            return (git_blob_id(payload) + "\n").encode()

        if command not in self.outputs:
            raise GitCommandError(
                command,
                "exited with status 128",
                returncode=128,
                stderr="mocked command not recognized",
            )
        return self.outputs[command]

    def stream(
        self,
        command: Sequence[str],
        *,
        chunk_size: int,
        timeout: float | None = None,
    ) -> Iterator[bytes]:
        data = self.run(command, timeout=timeout)
        for i in range(0, len(data), chunk_size):
            yield data[i:i + chunk_size]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def store(runner: FakeRunner) -> ObjectStore:
    return ObjectStore(runner, CommandCache(runner))


@pytest.fixture
def low_memory() -> MemoryMonitor:
    """Monitor that always reports plenty of headroom."""
    return MemoryMonitor(StaticSampler(allocated=GIB, obtained=8 * GIB))


@pytest.fixture
def high_memory() -> MemoryMonitor:
    """Monitor that always reports pressure."""
    return MemoryMonitor(StaticSampler(allocated=1, obtained=1))
