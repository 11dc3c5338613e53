"""
Blob rewriting.

Fetches a blob, leaves binary payloads alone, redacts text payloads and
stores the result as a new blob only when something was redacted:

    fetched -> classified -> unchanged            (original id)
                          -> redacted -> stored   (new id)

Both strategies run the same steps. The in-memory strategy reads the payload
through the command cache; the streaming strategy pipes it chunk by chunk
through a StreamRedactor into a temporary file and never holds more than a
chunk plus the longest secret in memory. For the same payload both produce
the same bytes and therefore the same new object id.

The store write is the last step and only happens once redaction has
finished, so a failure never leaves a half-written object behind.
"""

from __future__ import annotations

import logging
import tempfile
import threading
from collections.abc import Iterable
from contextlib import closing
from dataclasses import dataclass, field

import pathspec
from pathspec.patterns import GitWildMatchPattern

from .config import ScrubberConfig, Strategy
from .errors import MemorySamplingError
from .memory import MemoryMonitor
from .redactor import ENCODING_SAMPLE_SIZE, Redactor
from .runner import time_left
from .store import HASH_OBJECT, ObjectStore
from .utils import detect_encoding, is_binary, normalize_path

logger = logging.getLogger(__name__)


@dataclass
class RewriteStats:
    """Counters for a rewrite run; safe to update from worker threads."""

    processed: int = 0
    rewritten: int = 0
    unchanged: int = 0
    binary: int = 0
    excluded: int = 0
    streamed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        with self._lock:
            return {
                "processed": self.processed,
                "rewritten": self.rewritten,
                "unchanged": self.unchanged,
                "binary": self.binary,
                "excluded": self.excluded,
                "streamed": self.streamed,
            }


class BlobRewriter:
    """
    Redacts secrets from blobs and writes changed blobs back to the store.

    One instance serves any number of concurrent workers; the caches, the
    redactor statistics and the counters are the only shared state.
    """

    def __init__(
        self,
        store: ObjectStore,
        redactor: Redactor,
        monitor: MemoryMonitor | None = None,
        config: ScrubberConfig | None = None,
    ):
        """
        Initialize the rewriter.

        Args:
            store: Object store to read blobs from and write blobs to
            redactor: Prepared redactor holding the secret list
            monitor: Memory monitor consulted by rewrite() (psutil-backed by default)
            config: Thresholds, chunk size, timeouts and excluded paths
        """
        self.config = (config or ScrubberConfig()).validate()
        self.store = store
        self.redactor = redactor
        self.monitor = monitor or MemoryMonitor(threshold=self.config.memory_threshold)
        self.stats = RewriteStats()

        self._exclude_spec = (
            pathspec.PathSpec.from_lines(GitWildMatchPattern, self.config.exclude_paths)
            if self.config.exclude_paths
            else None
        )

    @classmethod
    def from_secrets(
        cls,
        store: ObjectStore,
        secrets: Iterable[str],
        monitor: MemoryMonitor | None = None,
        config: ScrubberConfig | None = None,
    ) -> BlobRewriter:
        """Build a rewriter with a redactor for the given secrets."""
        config = config or ScrubberConfig()
        return cls(store, Redactor(secrets, marker=config.marker), monitor, config)

    def is_excluded(self, path: str) -> bool:
        """Check if a path matches the configured exclude patterns."""
        if self._exclude_spec is None or not path:
            return False
        return self._exclude_spec.match_file(normalize_path(path))

    def choose_strategy(self, object_id: str, deadline: float | None = None) -> Strategy:
        """
        Pick how a blob should be processed.

        Blobs at or above the size threshold are streamed. Smaller blobs are
        streamed too while memory is under pressure, or when memory usage can
        not be sampled at all.
        """
        command = ("git", "cat-file", "-s", object_id)
        size = self.store.size(object_id, timeout=self._timeout(command, deadline))

        if size >= self.config.large_blob_threshold:
            logger.debug("%s: %d bytes, streaming", object_id, size)
            return Strategy.STREAMING

        try:
            high = self.monitor.is_high()
        except MemorySamplingError as e:
            logger.warning("Memory sampling failed, streaming %s: %s", object_id, e)
            return Strategy.STREAMING

        if high:
            logger.debug("%s: memory pressure high, streaming", object_id)
            return Strategy.STREAMING
        return Strategy.MEMORY

    def rewrite(self, object_id: str, path: str = "", deadline: float | None = None) -> str:
        """
        Rewrite a blob with the strategy picked by choose_strategy().

        Args:
            object_id: Blob to rewrite
            path: Path of the blob in its tree (for excludes and logging)
            deadline: time.monotonic() value after which no command may run

        Returns:
            The new object id if anything was redacted, else object_id
        """
        if self.is_excluded(path):
            return self._excluded(object_id, path)
        strategy = self.choose_strategy(object_id, deadline)
        return self._rewrite(object_id, path, strategy, deadline)

    def process_blob(self, object_id: str, path: str = "", deadline: float | None = None) -> str:
        """Rewrite a blob, holding its whole payload in memory."""
        return self._rewrite(object_id, path, Strategy.MEMORY, deadline)

    def process_large_blob(
        self, object_id: str, path: str = "", deadline: float | None = None
    ) -> str:
        """Rewrite a blob, streaming its payload in fixed-size chunks."""
        return self._rewrite(object_id, path, Strategy.STREAMING, deadline)

    def _rewrite(
        self,
        object_id: str,
        path: str,
        strategy: Strategy,
        deadline: float | None,
    ) -> str:
        if self.is_excluded(path):
            return self._excluded(object_id, path)

        self.stats.incr("processed")
        if strategy is Strategy.STREAMING:
            self.stats.incr("streamed")
            new_id = self._rewrite_streaming(object_id, deadline)
        else:
            new_id = self._rewrite_in_memory(object_id, deadline)

        if new_id is None:
            return object_id

        self.stats.incr("rewritten")
        logger.info("Redacted %s %s -> %s", path or "<blob>", object_id, new_id)
        return new_id

    def _rewrite_in_memory(self, object_id: str, deadline: float | None) -> str | None:
        command = ("git", "cat-file", "blob", object_id)
        content = self.store.content(object_id, timeout=self._timeout(command, deadline))

        if is_binary(content):
            self.stats.incr("binary")
            return None

        redacted, changed = self.redactor.redact(content)
        if not changed:
            self.stats.incr("unchanged")
            return None

        return self.store.write_blob(redacted, timeout=self._timeout(HASH_OBJECT, deadline))

    def _rewrite_streaming(self, object_id: str, deadline: float | None) -> str | None:
        command = ("git", "cat-file", "blob", object_id)
        chunks = self.store.iter_content(
            object_id,
            chunk_size=self.config.chunk_size,
            timeout=self._timeout(command, deadline),
        )

        with closing(chunks), tempfile.TemporaryFile() as out:
            stream = None
            head = b""

            for chunk in chunks:
                if is_binary(chunk):
                    self.stats.incr("binary")
                    return None

                if stream is None:
                    # Pick the encoding from the same leading sample the
                    # in-memory path uses
                    head += chunk
                    if len(head) < ENCODING_SAMPLE_SIZE:
                        continue
                    stream = self.redactor.stream(detect_encoding(head[:ENCODING_SAMPLE_SIZE]))
                    chunk, head = head, b""

                out.write(stream.feed(chunk))

            if stream is None:
                stream = self.redactor.stream(detect_encoding(head))
                out.write(stream.feed(head))
            out.write(stream.flush())

            if not stream.changed:
                self.stats.incr("unchanged")
                return None

            out.flush()
            return self.store.write_blob_from_file(
                out, timeout=self._timeout(HASH_OBJECT, deadline)
            )

    def _excluded(self, object_id: str, path: str) -> str:
        logger.debug("Skipping excluded path %s", path)
        self.stats.incr("excluded")
        return object_id

    def _timeout(self, command: tuple[str, ...], deadline: float | None) -> float | None:
        return time_left(deadline, command, self.config.command_timeout)
