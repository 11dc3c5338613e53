"""
Git object database access through plumbing commands.

Read-only queries go through the CommandCache so an object referenced from
many commits is only read once per run. Writes and streamed reads go straight
to the runner: a write is not idempotent from the cache's point of view, and
a streamed payload must not be held in memory.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from .cache import CommandCache
from .errors import ObjectParseError
from .runner import CommandRunner

HASH_OBJECT = ("git", "hash-object", "-w", "--stdin", "--no-filters")


@dataclass(frozen=True)
class TreeEntry:
    """One blob listed by ``git ls-tree -r``."""

    mode: str
    object_type: str
    object_id: str
    path: str


class ObjectStore:
    """Reads and writes git objects via a CommandRunner."""

    def __init__(self, runner: CommandRunner, cache: CommandCache | None = None):
        self.runner = runner
        self.cache = cache if cache is not None else CommandCache(runner)

    def size(self, object_id: str, timeout: float | None = None) -> int:
        """Get the size in bytes of an object (``git cat-file -s``)."""
        command = ("git", "cat-file", "-s", object_id)
        output = self.cache.get(*command, timeout=timeout)
        try:
            return int(output.strip())
        except ValueError:
            raise ObjectParseError(
                command, f"expected a byte count, got {output[:40]!r}"
            ) from None

    def content(self, object_id: str, timeout: float | None = None) -> bytes:
        """Get the raw payload of a blob."""
        return self.cache.get("git", "cat-file", "blob", object_id, timeout=timeout)

    def iter_content(
        self,
        object_id: str,
        chunk_size: int,
        timeout: float | None = None,
    ) -> Iterator[bytes]:
        """Yield the payload of a blob in chunks without caching it."""
        yield from self.runner.stream(
            ("git", "cat-file", "blob", object_id),
            chunk_size=chunk_size,
            timeout=timeout,
        )

    def commit_metadata(self, commit_id: str, timeout: float | None = None) -> bytes:
        """Get the raw header and message of a commit object."""
        return self.cache.get("git", "cat-file", "commit", commit_id, timeout=timeout)

    def write_blob(self, payload: bytes, timeout: float | None = None) -> str:
        """Store a payload as a new blob and return its object id."""
        output = self.runner.run(HASH_OBJECT, input=payload, timeout=timeout)
        return _parse_object_id(output)

    def write_blob_from_file(self, fileobj: BinaryIO, timeout: float | None = None) -> str:
        """Store the contents of a real file as a new blob and return its object id."""
        fileobj.seek(0)
        output = self.runner.run(HASH_OBJECT, stdin=fileobj, timeout=timeout)
        return _parse_object_id(output)

    def list_tree(self, tree_id: str, timeout: float | None = None) -> list[TreeEntry]:
        """List every blob reachable from a tree, recursively."""
        command = ("git", "ls-tree", "-r", "-z", tree_id)
        output = self.cache.get(*command, timeout=timeout)

        entries = []
        for record in output.split(b"\0"):
            if not record:
                continue
            header, sep, path = record.partition(b"\t")
            parts = header.split()
            if not sep or len(parts) != 3:
                raise ObjectParseError(command, f"malformed entry {record[:80]!r}")
            mode, object_type, object_id = (p.decode("ascii") for p in parts)
            if object_type != "blob":
                continue  # submodule commits
            entries.append(TreeEntry(
                mode=mode,
                object_type=object_type,
                object_id=object_id,
                path=path.decode("utf-8", errors="surrogateescape"),
            ))
        return entries


def _parse_object_id(output: bytes) -> str:
    tokens = output.split()
    if len(tokens) != 1:
        raise ObjectParseError(
            HASH_OBJECT, f"expected a single object id, got {output[:80]!r}"
        )
    return tokens[0].decode("ascii", errors="replace")
