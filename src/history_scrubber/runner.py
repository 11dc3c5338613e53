"""
External command invocation.

All git access goes through a CommandRunner. GitRunner is the real
subprocess-backed implementation; tests pass their own runner instead of
patching module globals.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import BinaryIO

from .errors import CommandTimeoutError, GitCommandError

logger = logging.getLogger(__name__)


class CommandRunner(ABC):
    """Runs external commands and captures their output."""

    @abstractmethod
    def run(
        self,
        command: Sequence[str],
        *,
        input: bytes | None = None,
        stdin: BinaryIO | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """
        Run a command to completion and return its stdout.

        Args:
            command: Command name followed by its arguments
            input: Bytes fed to stdin
            stdin: Real file fed to stdin (mutually exclusive with input)
            timeout: Seconds before the command is killed

        Raises:
            GitCommandError: If the command can not be started or exits non-zero
            CommandTimeoutError: If the command runs past its timeout
        """

    @abstractmethod
    def stream(
        self,
        command: Sequence[str],
        *,
        chunk_size: int,
        timeout: float | None = None,
    ) -> Iterator[bytes]:
        """
        Run a command and yield its stdout in chunks of at most chunk_size.

        Errors are raised from the iterator once the command has exited.
        """


def time_left(
    deadline: float | None,
    command: Sequence[str],
    timeout: float | None = None,
) -> float | None:
    """
    Combine a per-command timeout with an absolute deadline.

    Args:
        deadline: time.monotonic() value after which nothing may run, or None
        command: Command about to run (for the error message)
        timeout: Per-command timeout, or None

    Returns:
        The tighter of the two limits in seconds, or None if neither is set

    Raises:
        CommandTimeoutError: If the deadline has already passed
    """
    if deadline is None:
        return timeout

    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise CommandTimeoutError(command, "deadline exceeded before start")

    return remaining if timeout is None else min(timeout, remaining)


class GitRunner(CommandRunner):
    """
    Runs commands with subprocess inside a repository.

    Commands are passed through as given (including the leading "git"), so
    the cache key and the executed argv are the same tuple.
    """

    def __init__(self, repo_path: Path | str = ".", timeout: float | None = None):
        """
        Initialize the runner.

        Args:
            repo_path: Working directory for every command
            timeout: Default seconds before a command is killed (None = no limit)
        """
        self.repo_path = Path(repo_path)
        self.timeout = timeout

    def run(
        self,
        command: Sequence[str],
        *,
        input: bytes | None = None,
        stdin: BinaryIO | None = None,
        timeout: float | None = None,
    ) -> bytes:
        if input is not None and stdin is not None:
            raise ValueError("input and stdin are mutually exclusive")

        if timeout is None:
            timeout = self.timeout

        argv = list(command)
        kwargs: dict = {"input": input} if input is not None else {"stdin": stdin}

        try:
            result = subprocess.run(
                argv,
                cwd=self.repo_path,
                capture_output=True,
                timeout=timeout,
                **kwargs,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(command, f"timed out after {timeout}s") from e
        except OSError as e:
            raise GitCommandError(command, f"failed to start: {e}") from e

        if result.returncode != 0:
            raise GitCommandError(
                command,
                f"exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr.decode("utf-8", errors="replace"),
            )

        return result.stdout

    def stream(
        self,
        command: Sequence[str],
        *,
        chunk_size: int,
        timeout: float | None = None,
    ) -> Iterator[bytes]:
        if timeout is None:
            timeout = self.timeout

        # stderr goes to a file so a chatty child can not block on a full pipe
        with tempfile.TemporaryFile() as stderr_file:
            try:
                proc = subprocess.Popen(
                    list(command),
                    cwd=self.repo_path,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                )
            except OSError as e:
                raise GitCommandError(command, f"failed to start: {e}") from e

            timed_out = threading.Event()

            def kill() -> None:
                timed_out.set()
                proc.kill()

            timer = threading.Timer(timeout, kill) if timeout is not None else None
            if timer is not None:
                timer.daemon = True
                timer.start()

            try:
                if proc.stdout is None:
                    raise GitCommandError(command, "no stdout pipe")
                while True:
                    chunk = proc.stdout.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
                returncode = proc.wait()
            finally:
                if timer is not None:
                    timer.cancel()
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
                if proc.stdout is not None:
                    proc.stdout.close()

            if timed_out.is_set():
                raise CommandTimeoutError(command, f"timed out after {timeout}s")

            if returncode != 0:
                stderr_file.seek(0)
                raise GitCommandError(
                    command,
                    f"exited with status {returncode}",
                    returncode=returncode,
                    stderr=stderr_file.read().decode("utf-8", errors="replace"),
                )

        logger.debug("streamed %s", " ".join(command))
