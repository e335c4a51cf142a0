"""
Configuration Module
====================

Loads filebot settings from a YAML file. Every section falls back to
defaults suited to the public procurement mirrors filebot reads from.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DISALLOWED_PATTERNS = [
    r"\.mp4",
    r"\.m4v",
    r"\.webm",
    r"\.ogv",
    r"\.wmv",
    r"\.flv",
    r"\.zip",
]


@dataclass
class FetchConfig:
    """Download settings for attachment URLs."""

    connect_timeout: float = 2.0
    timeout: float = 30.0
    verify_tls: bool = False
    user_agent: str = "Filebot/0.1"
    allowed_schemes: list[str] = field(default_factory=lambda: ["http", "https"])

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FetchConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            connect_timeout=float(data.get("connect_timeout", 2.0)),
            timeout=float(data.get("timeout", 30.0)),
            verify_tls=bool(data.get("verify_tls", False)),
            user_agent=data.get("user_agent", "Filebot/0.1"),
            allowed_schemes=list(data.get("allowed_schemes", ["http", "https"])),
        )


@dataclass
class ExtractionConfig:
    """Settings for the text extraction service."""

    endpoint: str = "http://localhost:9998/tika"
    timeout: float = 15.0
    accept: str = "text/html"
    min_length: int = 200

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExtractionConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            endpoint=data.get("endpoint", "http://localhost:9998/tika"),
            timeout=float(data.get("timeout", 15.0)),
            accept=data.get("accept", "text/html"),
            min_length=int(data.get("min_length", 200)),
        )


@dataclass
class StorageConfig:
    """Object storage backend selection."""

    backend: str = "s3"
    region: str | None = None
    endpoint_url: str | None = None
    local_path: str = "~/.filebot/objects"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StorageConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            backend=data.get("backend", "s3"),
            region=data.get("region"),
            endpoint_url=data.get("endpoint_url"),
            local_path=data.get("local_path", "~/.filebot/objects"),
        )


@dataclass
class PersistConfig:
    """Write batching for the persister."""

    max_in_flight: int = 10
    auto_flush_at: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PersistConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            max_in_flight=int(data.get("max_in_flight", 10)),
            auto_flush_at=int(data.get("auto_flush_at", 5)),
        )


@dataclass
class FilterConfig:
    """Patterns for attachments that are never downloaded."""

    disallowed_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_DISALLOWED_PATTERNS)
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FilterConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            disallowed_patterns=list(
                data.get("disallowed_patterns", DEFAULT_DISALLOWED_PATTERNS)
            ),
        )


@dataclass
class ReadConfig:
    """Limits for reconstituting stored attachments."""

    max_fetch_size_bytes: int = 10 * 1024 * 1024

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReadConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            max_fetch_size_bytes=int(data.get("max_fetch_size_bytes", 10 * 1024 * 1024)),
        )


@dataclass
class WorkspaceConfig:
    """Where per-run working areas are created."""

    base_path: str = field(
        default_factory=lambda: str(Path(tempfile.gettempdir()) / "filebot")
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WorkspaceConfig:
        """Create from dictionary."""
        if data is None or not data.get("base_path"):
            return cls()
        return cls(base_path=data["base_path"])


@dataclass
class FilebotConfig:
    """All filebot settings."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    persist: PersistConfig = field(default_factory=PersistConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    read: ReadConfig = field(default_factory=ReadConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FilebotConfig:
        """Create from a parsed configuration mapping."""
        data = data or {}
        return cls(
            fetch=FetchConfig.from_dict(data.get("fetch")),
            extraction=ExtractionConfig.from_dict(data.get("extraction")),
            storage=StorageConfig.from_dict(data.get("storage")),
            persist=PersistConfig.from_dict(data.get("persist")),
            filters=FilterConfig.from_dict(data.get("filters")),
            read=ReadConfig.from_dict(data.get("read")),
            workspace=WorkspaceConfig.from_dict(data.get("workspace")),
        )

    @classmethod
    def load(cls, config_path: Path | str) -> FilebotConfig:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the filebot.yaml file

        Returns:
            The parsed FilebotConfig
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        config = cls.from_dict(data)
        config.config_path = config_path
        return config


# Global configuration instance
_default_config: FilebotConfig | None = None


def get_default_config() -> FilebotConfig:
    """
    Get the default configuration instance.

    Loads configuration from the path in the FILEBOT_CONFIG_PATH environment
    variable, or falls back to config/filebot.yaml, or to built-in defaults
    when neither exists.
    """
    global _default_config

    if _default_config is None:
        config_path = os.environ.get("FILEBOT_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            project_root = Path(__file__).parent.parent.parent
            path = project_root / "config" / "filebot.yaml"

        if path.exists():
            _default_config = FilebotConfig.load(path)
        else:
            _default_config = FilebotConfig()

    return _default_config


def reset_default_config() -> None:
    """Reset the default configuration (useful for testing)."""
    global _default_config
    _default_config = None
