"""
Secret redaction for blob payloads.

Replaces every occurrence of a configured secret with a fixed marker.

Features:
- Exact substring matching on bytes, no pattern language
- Longest secrets first, one full pass per secret, so a secret that is part of
  a longer one can never leave a fragment of the longer one behind
- Streaming redaction with bounded memory that produces the same bytes as the
  in-memory pass for any chunking
- Secrets re-encoded for blobs that are not UTF-8
- Per-secret match counts that never reveal the secret itself
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .cache import MemoCache
from .config import DEFAULT_MARKER
from .errors import ConfigError
from .utils import detect_encoding

logger = logging.getLogger(__name__)

# Leading bytes inspected to pick the encoding secrets are matched in
ENCODING_SAMPLE_SIZE = 8192

UTF8_ENCODINGS = frozenset({"utf-8", "utf-8-sig"})


@dataclass(frozen=True)
class SecretRule:
    """A single secret in its byte form for one encoding."""

    name: str
    pattern: bytes
    replacement: bytes


def redact(
    content: bytes,
    secrets: Sequence[bytes | str],
    marker: bytes | str = DEFAULT_MARKER,
) -> tuple[bytes, bool]:
    """
    Replace every occurrence of each secret with the marker.

    Secrets are applied in the order given: all occurrences of one secret are
    replaced before the next is considered. Pass them longest first.

    Args:
        content: Text payload (binary payloads must be filtered out before)
        secrets: Secrets in application order; empty entries are ignored
        marker: Replacement text

    Returns:
        Tuple of (content, changed). When nothing matched, content is the
        object that was passed in.
    """
    if isinstance(marker, str):
        marker = marker.encode("utf-8")

    result = content
    for secret in secrets:
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if secret and secret in result:
            result = result.replace(secret, marker)

    if result == content:
        return content, False
    return result, True


def marker_overlap(secret: str, marker: str) -> str | None:
    """
    Describe how a secret could be found in or next to a marker.

    Returns:
        "inside" if the secret occurs within the marker (it would match its own
        replacement), "border" if the secret contains the marker or shares a
        prefix/suffix with it (a match could span a marker and the text beside
        it), or None if the two can never overlap
    """
    if secret in marker:
        return "inside"
    if marker in secret:
        return "border"
    for k in range(1, min(len(secret), len(marker))):
        if marker.endswith(secret[:k]) or marker.startswith(secret[-k:]):
            return "border"
    return None


def prepare_secrets(secrets: Iterable[str], marker: str = DEFAULT_MARKER) -> list[str]:
    """
    Turn a raw secret list into one that is safe to apply in order.

    Drops empty entries and repeats (first occurrence wins), then sorts
    longest first. The sort is stable, so secrets of equal length keep the
    order they were given in.

    Raises:
        ConfigError: If any secret overlaps the marker. Such a secret would
            either survive redaction or be found again in redacted output.
            The message gives the secret's position and length, never the
            secret itself.
    """
    seen: set[str] = set()
    prepared: list[str] = []
    conflicts: list[str] = []

    for position, secret in enumerate(secrets, start=1):
        if not secret or secret in seen:
            continue
        seen.add(secret)

        overlap = marker_overlap(secret, marker)
        if overlap == "inside":
            conflicts.append(
                f"secret #{position} ({len(secret)} characters) occurs inside the marker"
            )
        elif overlap == "border":
            conflicts.append(
                f"secret #{position} ({len(secret)} characters) overlaps the marker's edges"
            )
        prepared.append(secret)

    if conflicts:
        raise ConfigError(
            f"Marker {marker!r} conflicts with the secret list: "
            + "; ".join(conflicts)
            + ". Choose a different marker."
        )

    prepared.sort(key=len, reverse=True)
    return prepared


class PatternReplacer:
    """
    Streaming equivalent of ``bytes.replace`` for a single pattern.

    Holds back at most ``len(pattern) - 1`` bytes between feeds: the only
    bytes that could still be the start of a match completed by later input.
    """

    def __init__(self, pattern: bytes, replacement: bytes):
        if not pattern:
            raise ValueError("pattern must not be empty")
        self.pattern = pattern
        self.replacement = replacement
        self.count = 0
        self._pending = b""

    def feed(self, data: bytes) -> bytes:
        """Consume data and return the output that can no longer change."""
        buf = self._pending + data
        out: list[bytes] = []
        start = 0

        while True:
            idx = buf.find(self.pattern, start)
            if idx == -1:
                break
            out.append(buf[start:idx])
            out.append(self.replacement)
            start = idx + len(self.pattern)
            self.count += 1

        cut = max(start, len(buf) - (len(self.pattern) - 1))
        out.append(buf[start:cut])
        self._pending = buf[cut:]
        return b"".join(out)

    def flush(self) -> bytes:
        """Return held-back bytes at end of input."""
        rest, self._pending = self._pending, b""
        return rest


class StreamRedactor:
    """
    Chunked redaction with bounded memory.

    One PatternReplacer per secret, chained in application order, so the
    output is byte-identical to ``redact`` over the whole payload.
    """

    def __init__(
        self,
        rules: Sequence[SecretRule],
        on_finish: Callable[[dict[str, int]], None] | None = None,
    ):
        self._rules = list(rules)
        self._stages = [PatternReplacer(r.pattern, r.replacement) for r in self._rules]
        self._on_finish = on_finish
        self._finished = False

    def feed(self, chunk: bytes) -> bytes:
        """Redact a chunk; returns output that is final."""
        for stage in self._stages:
            chunk = stage.feed(chunk)
        return chunk

    def flush(self) -> bytes:
        """Drain all stages at end of input."""
        data = b""
        for stage in self._stages:
            data = stage.feed(data) + stage.flush()

        if not self._finished:
            self._finished = True
            if self._on_finish is not None:
                self._on_finish(self.counts())
        return data

    def counts(self) -> dict[str, int]:
        """Matches per rule so far."""
        counts: dict[str, int] = {}
        for rule, stage in zip(self._rules, self._stages):
            if stage.count:
                counts[rule.name] = counts.get(rule.name, 0) + stage.count
        return counts

    @property
    def changed(self) -> bool:
        return any(stage.count for stage in self._stages)


class Redactor:
    """
    Redacts a fixed secret list from blob payloads.

    Safe to share between threads: the prepared rules are immutable and the
    statistics are updated under a lock.
    """

    def __init__(
        self,
        secrets: Iterable[str],
        marker: str = DEFAULT_MARKER,
        enabled: bool = True,
    ):
        """
        Initialize the redactor.

        Args:
            secrets: Secrets to remove, ideally already ordered longest first
            marker: Replacement text
            enabled: Whether redaction is enabled

        Raises:
            ConfigError: If a secret overlaps the marker
        """
        self.enabled = enabled
        self.marker = marker
        self.secrets = prepare_secrets(secrets, marker)

        self._rules: MemoCache[str, list[SecretRule]] = MemoCache()
        self._lock = threading.Lock()
        self.redaction_counts: dict[str, int] = {}

    def rules_for(self, encoding: str = "utf-8") -> list[SecretRule]:
        """
        Get the byte rules for payloads in the given encoding.

        For non-UTF-8 encodings every secret is matched both as UTF-8 and in
        the payload's own encoding; secrets the encoding can not represent
        keep only their UTF-8 form.
        """
        return self._rules.get_or_compute(encoding, lambda: self._build_rules(encoding))

    def _build_rules(self, encoding: str) -> list[SecretRule]:
        utf8_marker = self.marker.encode("utf-8")
        rules = []

        for i, secret in enumerate(self.secrets, start=1):
            name = f"secret-{i}"
            utf8_pattern = secret.encode("utf-8")
            rules.append(SecretRule(name, utf8_pattern, utf8_marker))

            if encoding in UTF8_ENCODINGS:
                continue
            try:
                pattern = secret.encode(encoding)
                replacement = self.marker.encode(encoding)
            except (UnicodeEncodeError, LookupError):
                logger.debug("%s has no %s form, matching UTF-8 only", name, encoding)
                continue
            if pattern and pattern != utf8_pattern:
                rules.append(SecretRule(name, pattern, replacement))

        return rules

    def redact(self, content: bytes) -> tuple[bytes, bool]:
        """
        Redact secrets from a whole payload.

        Returns:
            Tuple of (content, changed); the input object when unchanged
        """
        if not self.enabled or not self.secrets:
            return content, False

        encoding = detect_encoding(content[:ENCODING_SAMPLE_SIZE])
        counts: dict[str, int] = {}
        result = content

        for rule in self.rules_for(encoding):
            n = result.count(rule.pattern)
            if n:
                counts[rule.name] = counts.get(rule.name, 0) + n
                result = result.replace(rule.pattern, rule.replacement)

        if not counts:
            return content, False

        self._record(counts)
        return result, True

    def stream(self, encoding: str = "utf-8") -> StreamRedactor:
        """Create a streaming redactor for one payload."""
        rules = self.rules_for(encoding) if self.enabled else []
        return StreamRedactor(rules, on_finish=self._record)

    def _record(self, counts: dict[str, int]) -> None:
        with self._lock:
            for name, n in counts.items():
                self.redaction_counts[name] = self.redaction_counts.get(name, 0) + n

    def get_stats(self) -> dict[str, int]:
        """Get redaction statistics."""
        with self._lock:
            return dict(sorted(self.redaction_counts.items(), key=lambda x: -x[1]))

    def reset_stats(self) -> None:
        """Reset redaction statistics."""
        with self._lock:
            self.redaction_counts.clear()


def create_redactor(
    secrets: Iterable[str],
    marker: str = DEFAULT_MARKER,
    enabled: bool = True,
) -> Redactor:
    """Factory function to create a redactor instance."""
    return Redactor(secrets, marker=marker, enabled=enabled)
