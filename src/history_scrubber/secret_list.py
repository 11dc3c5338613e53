"""
Secrets file loading.

The secrets file is UTF-8 text with one secret per line. Surrounding
whitespace is stripped and blank lines are ignored.
"""

from __future__ import annotations

from pathlib import Path

from .config import TieBreak
from .errors import SecretsFileError


def order_secrets(
    secrets: list[str],
    tie_break: TieBreak | str = TieBreak.INPUT,
) -> list[str]:
    """
    Sort secrets longest first.

    Longer secrets must be redacted before any shorter secret they contain,
    otherwise the shorter match would leave the rest of the longer one
    exposed.

    Args:
        secrets: Secrets in file order
        tie_break: "input" keeps file order among equal lengths, "lexical"
            sorts them alphabetically

    Returns:
        New list in application order
    """
    tie_break = TieBreak(tie_break)
    if tie_break is TieBreak.LEXICAL:
        return sorted(secrets, key=lambda s: (-len(s), s))
    return sorted(secrets, key=len, reverse=True)


def load_secrets(
    path: Path | str,
    tie_break: TieBreak | str = TieBreak.INPUT,
) -> list[str]:
    """
    Load secrets from a file.

    Args:
        path: Path to the secrets file
        tie_break: Ordering of equal-length secrets (see order_secrets)

    Returns:
        Non-empty, stripped secrets ordered longest first

    Raises:
        SecretsFileError: If the file can not be opened, read or decoded
    """
    secrets = []
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                secret = line.strip()
                if secret:
                    secrets.append(secret)
    except UnicodeDecodeError as e:
        raise SecretsFileError(path, f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise SecretsFileError(path, e.strerror or str(e)) from e

    return order_secrets(secrets, tie_break)
