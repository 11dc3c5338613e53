"""
Configuration file loader for history-scrubber.

Supports loading configuration from:
- history-scrubber.toml / .history-scrubber.toml
- scrubber.yml / .scrubber.yml / scrubber.yaml / .scrubber.yaml

CLI flags override config file values.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import ScrubberConfig, TieBreak
from .errors import ConfigError

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "history-scrubber.toml",
    ".history-scrubber.toml",
    "scrubber.yml",
    ".scrubber.yml",
    "scrubber.yaml",
    ".scrubber.yaml",
]

SECTION_NAMES = ("history-scrubber", "scrubber")


@dataclass
class ProjectConfig:
    """
    Project-level configuration loaded from config files.

    All fields are optional - CLI flags will override any values set here.
    """

    large_blob_threshold: int | None = None
    memory_threshold: float | None = None
    chunk_size: int | None = None
    command_timeout: float | None = None
    marker: str | None = None
    tie_break: str | None = None
    exclude_paths: list[str] | None = None
    max_workers: int | None = None
    secrets_file: Path | None = None

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (sorted keys for determinism)."""
        result: dict[str, Any] = {}

        for name in (
            "large_blob_threshold",
            "memory_threshold",
            "chunk_size",
            "command_timeout",
            "marker",
            "tie_break",
            "max_workers",
        ):
            value = getattr(self, name)
            if value is not None:
                result[name] = value

        if self.exclude_paths is not None:
            result["exclude_paths"] = sorted(self.exclude_paths)
        if self.secrets_file is not None:
            result["secrets_file"] = str(self.secrets_file)
        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)

        return dict(sorted(result.items()))


def find_config_file(repo_root: Path) -> Path | None:
    """
    Find a configuration file in the repository root.

    Args:
        repo_root: Root directory of the repository

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = repo_root / name
        if config_path.exists() and config_path.is_file():
            return config_path
    return None


def _unwrap_section(data: Any) -> dict[str, Any]:
    """Support both flat files and a nested [history-scrubber] section."""
    if not isinstance(data, dict):
        return {}
    for name in SECTION_NAMES:
        if isinstance(data.get(name), dict):
            return data[name]
    return data


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file."""
    with open(path, "rb") as f:
        return _unwrap_section(tomllib.load(f))


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file."""
    with open(path, encoding="utf-8") as f:
        return _unwrap_section(yaml.safe_load(f))


def _normalize_patterns(patterns: Any) -> list[str] | None:
    """Normalize exclude patterns to a list, accepting comma-separated strings."""
    if patterns is None:
        return None

    if isinstance(patterns, str):
        patterns = [p.strip() for p in patterns.split(",")]

    if not isinstance(patterns, (list, tuple, set)):
        return None

    result = [str(p).strip() for p in patterns if str(p).strip()]
    return result if result else None


def _convert(data: dict[str, Any], key: str, kind: type) -> Any:
    """Convert a config value, raising ConfigError with the key on failure."""
    try:
        return kind(data[key])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key!r}: {data[key]!r}") from e


def load_config(repo_root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Args:
        repo_root: Root directory of the repository
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None)

    Raises:
        ConfigError: If the file can not be parsed or holds invalid values
    """
    if config_path is None:
        config_path = find_config_file(repo_root)

    if config_path is None or not config_path.exists():
        return ProjectConfig()

    # Parse based on extension
    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            raise ConfigError(f"Unsupported config file type: {config_path.name}")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e

    config = ProjectConfig(_config_file=config_path)

    if "large_blob_threshold" in data:
        config.large_blob_threshold = _convert(data, "large_blob_threshold", int)
    if "memory_threshold" in data:
        config.memory_threshold = _convert(data, "memory_threshold", float)
    if "chunk_size" in data:
        config.chunk_size = _convert(data, "chunk_size", int)
    if "command_timeout" in data:
        config.command_timeout = _convert(data, "command_timeout", float)
    if "marker" in data:
        config.marker = str(data["marker"])
    if "tie_break" in data:
        config.tie_break = str(data["tie_break"]).lower()
    if "max_workers" in data:
        config.max_workers = _convert(data, "max_workers", int)
    if "secrets_file" in data:
        # Relative paths are relative to the config file
        config.secrets_file = config_path.parent / Path(data["secrets_file"])

    config.exclude_paths = _normalize_patterns(
        data.get("exclude_paths") or data.get("exclude")
    )

    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None means not specified on CLI)
    large_blob_threshold: int | None = None,
    memory_threshold: float | None = None,
    chunk_size: int | None = None,
    command_timeout: float | None = None,
    marker: str | None = None,
    tie_break: str | None = None,
    exclude_paths: str | None = None,
    max_workers: int | None = None,
) -> ScrubberConfig:
    """
    Merge CLI arguments with config file values.

    CLI arguments take precedence over config file values; anything set in
    neither place keeps the ScrubberConfig default.

    Returns:
        Validated ScrubberConfig

    Raises:
        ConfigError: If a merged value is out of range
    """
    merged = ScrubberConfig()

    def pick(cli_value: Any, file_value: Any, default: Any) -> Any:
        if cli_value is not None:
            return cli_value
        if file_value is not None:
            return file_value
        return default

    merged.large_blob_threshold = pick(
        large_blob_threshold, config.large_blob_threshold, merged.large_blob_threshold
    )
    merged.memory_threshold = pick(
        memory_threshold, config.memory_threshold, merged.memory_threshold
    )
    merged.chunk_size = pick(chunk_size, config.chunk_size, merged.chunk_size)
    merged.command_timeout = pick(command_timeout, config.command_timeout, merged.command_timeout)
    merged.marker = pick(marker, config.marker, merged.marker)
    merged.max_workers = pick(max_workers, config.max_workers, merged.max_workers)

    raw_tie_break = pick(tie_break, config.tie_break, merged.tie_break.value)
    try:
        merged.tie_break = TieBreak(raw_tie_break)
    except ValueError as e:
        raise ConfigError(
            f"tie_break must be one of {[t.value for t in TieBreak]}, got {raw_tie_break!r}"
        ) from e

    # Exclude paths: CLI overrides config
    if exclude_paths:
        merged.exclude_paths = _normalize_patterns(exclude_paths) or []
    elif config.exclude_paths is not None:
        merged.exclude_paths = list(config.exclude_paths)

    return merged.validate()
