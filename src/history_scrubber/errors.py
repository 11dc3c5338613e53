"""
Error types for history-scrubber.

Every failure that crosses a module boundary is one of these, so callers can
tell an external git failure apart from an unreadable secrets file or an
unavailable memory sample.
"""

from __future__ import annotations

from collections.abc import Sequence


class ScrubberError(Exception):
    """Base class for all history-scrubber errors."""

    pass


class GitCommandError(ScrubberError):
    """An external git invocation could not be started or exited non-zero."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"{' '.join(self.command)}: {message}{detail}")


class CommandTimeoutError(GitCommandError):
    """An external invocation ran past its timeout or the caller's deadline."""

    pass


class ObjectParseError(GitCommandError):
    """Output of a git query did not have the expected shape."""

    pass


class SecretsFileError(OSError, ScrubberError):
    """The secrets file could not be opened, read or decoded."""

    def __init__(self, path: object, reason: str):
        self.path = path
        super().__init__(f"Failed to read secrets file {path}: {reason}")

    def __str__(self) -> str:
        return str(self.args[0])


class MemorySamplingError(ScrubberError):
    """Process or system memory statistics are unavailable."""

    pass


class ConfigError(ScrubberError):
    """A configuration value is missing or out of range."""

    pass
