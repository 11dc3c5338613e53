"""
Configuration models and defaults for history-scrubber.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .errors import ConfigError

# Replacement written in place of every matched secret
DEFAULT_MARKER = "***REMOVED***"

# Blobs at or above this size take the streaming path
DEFAULT_LARGE_BLOB_THRESHOLD = 10 * 1024 * 1024  # 10 MiB

# allocated / obtained ratio above which memory counts as under pressure
DEFAULT_MEMORY_THRESHOLD = 0.8

# Read size for streamed blob content
DEFAULT_CHUNK_SIZE = 64 * 1024

# Seconds before a single git invocation is killed
DEFAULT_COMMAND_TIMEOUT = 60.0


class TieBreak(str, Enum):
    """Ordering of secrets that have the same length."""

    INPUT = "input"  # keep secrets-file order
    LEXICAL = "lexical"


class Strategy(str, Enum):
    """How a blob's content is materialized while it is redacted."""

    MEMORY = "memory"
    STREAMING = "streaming"


@dataclass
class ScrubberConfig:
    """Main configuration for history-scrubber."""

    # Strategy selection
    large_blob_threshold: int = DEFAULT_LARGE_BLOB_THRESHOLD
    memory_threshold: float = DEFAULT_MEMORY_THRESHOLD
    chunk_size: int = DEFAULT_CHUNK_SIZE

    # External invocations
    command_timeout: float | None = DEFAULT_COMMAND_TIMEOUT

    # Redaction
    marker: str = DEFAULT_MARKER
    tie_break: TieBreak = TieBreak.INPUT

    # Gitignore-style patterns for paths that are never rewritten
    exclude_paths: list[str] = field(default_factory=list)

    # Worker threads used by the CLI fan-out (None = executor default)
    max_workers: int | None = None

    def validate(self) -> ScrubberConfig:
        """Check value ranges, raising ConfigError on the first bad field."""
        if self.large_blob_threshold < 0:
            raise ConfigError(
                f"large_blob_threshold must be >= 0, got {self.large_blob_threshold}"
            )
        if not 0.0 < self.memory_threshold <= 1.0:
            raise ConfigError(
                f"memory_threshold must be in (0, 1], got {self.memory_threshold}"
            )
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ConfigError(f"command_timeout must be > 0, got {self.command_timeout}")
        if not self.marker:
            raise ConfigError("marker must not be empty")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        return self
