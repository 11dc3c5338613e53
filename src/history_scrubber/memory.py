"""
Memory pressure monitoring.

The rewriter asks the monitor before materializing a blob in memory. Pressure
is the ratio of memory the process holds to the memory it could obtain; above
the threshold, blobs are streamed instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import psutil

from .config import DEFAULT_MEMORY_THRESHOLD
from .errors import ConfigError, MemorySamplingError


@dataclass(frozen=True)
class MemorySample:
    """Snapshot of process memory, in bytes."""

    allocated: int
    obtained: int

    @property
    def ratio(self) -> float:
        """allocated / obtained; infinite when nothing was obtained."""
        if self.obtained <= 0:
            return float("inf")
        return self.allocated / self.obtained


class MemorySampler(ABC):
    """Source of memory samples."""

    @abstractmethod
    def sample(self) -> MemorySample:
        """
        Take a fresh sample.

        Raises:
            MemorySamplingError: If statistics are unavailable
        """


class PsutilSampler(MemorySampler):
    """
    Samples the current process with psutil.

    allocated is the resident set size; obtained is what the process could
    hold at most right now: its resident set plus the memory the system still
    has available.
    """

    def __init__(self, process: psutil.Process | None = None):
        self._process = process

    def sample(self) -> MemorySample:
        try:
            process = self._process or psutil.Process()
            rss = process.memory_info().rss
            available = psutil.virtual_memory().available
        except (psutil.Error, OSError) as e:
            raise MemorySamplingError(f"Failed to sample memory usage: {e}") from e
        return MemorySample(allocated=rss, obtained=rss + available)


class StaticSampler(MemorySampler):
    """Returns fixed numbers; for tests and for pinning the strategy."""

    def __init__(self, allocated: int, obtained: int):
        self._sample = MemorySample(allocated=allocated, obtained=obtained)

    def sample(self) -> MemorySample:
        return self._sample


class MemoryMonitor:
    """Reports whether memory usage is high."""

    def __init__(
        self,
        sampler: MemorySampler | None = None,
        threshold: float = DEFAULT_MEMORY_THRESHOLD,
    ):
        if not 0.0 < threshold <= 1.0:
            raise ConfigError(f"memory threshold must be in (0, 1], got {threshold}")
        self.sampler = sampler or PsutilSampler()
        self.threshold = threshold

    def is_high(self) -> bool:
        """
        Check whether the allocated/obtained ratio exceeds the threshold.

        Raises:
            MemorySamplingError: If the sampler fails
        """
        return self.sampler.sample().ratio > self.threshold
