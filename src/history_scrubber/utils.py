"""
Utility functions for history-scrubber.

Includes binary detection, encoding detection and path helpers.
"""

from __future__ import annotations

import chardet


def is_binary(content: bytes) -> bool:
    """
    Check if a payload is binary.

    A single NUL byte marks the content as binary, the same heuristic git uses
    for diffs. Binary payloads are never scanned for secrets.
    """
    return b"\x00" in content


def detect_encoding(sample: bytes) -> str:
    """
    Detect the encoding of a text payload.

    Strategy:
    1. Check for BOM markers first
    2. Try UTF-8 (most common for modern source files)
    3. Fall back to chardet only if UTF-8 fails

    Args:
        sample: Leading bytes of the payload

    Returns:
        Detected encoding name (e.g., 'utf-8', 'iso-8859-1')
    """
    if not sample:
        return "utf-8"

    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"

    try:
        sample.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut off at the end of the sample is still UTF-8
        if exc.start >= len(sample) - 3 and exc.reason == "unexpected end of data":
            return "utf-8"

    result = chardet.detect(sample)
    encoding = result.get("encoding")

    if encoding is None:
        return "utf-8"

    encoding = encoding.lower()
    if encoding in ("ascii", "utf-8", "utf8"):
        return "utf-8"

    return encoding


def normalize_path(path: str) -> str:
    """Normalize a path for consistent comparison (use forward slashes)."""
    return path.replace("\\", "/")


def format_bytes(size: int) -> str:
    """Render a byte count with a binary unit suffix."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
