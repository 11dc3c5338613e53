"""history-scrubber: remove secrets from git blobs through git plumbing."""

__version__ = "0.1.0"

from .cache import CommandCache, MemoCache
from .config import ScrubberConfig, Strategy, TieBreak
from .errors import (
    CommandTimeoutError,
    ConfigError,
    GitCommandError,
    MemorySamplingError,
    ObjectParseError,
    ScrubberError,
    SecretsFileError,
)
from .memory import MemoryMonitor, MemorySample, PsutilSampler, StaticSampler
from .redactor import Redactor, create_redactor, redact
from .rewriter import BlobRewriter
from .runner import CommandRunner, GitRunner
from .secret_list import load_secrets
from .store import ObjectStore
from .tree import TreeResolver
from .utils import is_binary

__all__ = [
    "__version__",
    "BlobRewriter",
    "CommandCache",
    "CommandRunner",
    "CommandTimeoutError",
    "ConfigError",
    "GitCommandError",
    "GitRunner",
    "MemoCache",
    "MemoryMonitor",
    "MemorySample",
    "MemorySamplingError",
    "ObjectParseError",
    "ObjectStore",
    "PsutilSampler",
    "Redactor",
    "ScrubberConfig",
    "ScrubberError",
    "SecretsFileError",
    "StaticSampler",
    "Strategy",
    "TieBreak",
    "TreeResolver",
    "create_redactor",
    "is_binary",
    "load_secrets",
    "redact",
]
