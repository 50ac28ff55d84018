"""Configuration management for the UniTune link core."""

from __future__ import annotations

from datetime import timedelta
import os
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from unitune.core.exceptions import ConfigurationError


class UniTuneConfig(BaseSettings):
    """
    Configuration for the UniTune link core.

    Can be loaded from:
    - Environment variables (prefix: UNITUNE_)
    - YAML file
    - Direct initialization

    Durations are given in seconds.

    Example:
        >>> config = UniTuneConfig(timeout=5, max_attempts=2)
        >>> config = UniTuneConfig.from_yaml("unitune.yaml")
        >>> config = UniTuneConfig()
    """

    model_config = SettingsConfigDict(
        env_prefix="UNITUNE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    api_base_url: str = Field(
        default="https://api.unitune.art/v1-alpha.1/links",
        description="Cross-platform lookup endpoint (GET ?url=...)",
    )
    batch_api_base_url: str = Field(
        default="https://unitune-api.onrender.com",
        description="Base URL of the batch conversion service",
    )
    playlist_api_base_url: str = Field(
        default="https://api.unitune.art/v1/playlists",
        description="Hosted mini-playlist endpoint (POST to create, GET /<id> to fetch)",
    )
    share_base_url: str = Field(
        default="https://unitune.art",
        description="Base URL for outbound share links (<base>/s/<token>)",
    )
    user_agent: str = Field(
        default="unitune-core",
        description="User-Agent header sent to remote services",
    )

    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-attempt request timeout in seconds",
    )
    batch_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Batch API request timeout in seconds",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total lookup attempts including the first",
    )
    initial_backoff: float = Field(
        default=0.5,
        ge=0,
        description="Delay before the second attempt; doubles for each further retry",
    )

    link_cache_max_age: float = Field(
        default=7 * 24 * 3600,
        gt=0,
        description="Max age of resolved link cache entries in seconds (7 days)",
    )
    metadata_cache_max_age: float = Field(
        default=24 * 3600,
        gt=0,
        description="Max age of metadata-only cache entries in seconds (24 hours)",
    )
    cache_max_entries: int = Field(
        default=50,
        ge=1,
        description="Max entries kept per cache namespace",
    )
    cache_namespace: str = Field(
        default="unitune_link_cache",
        min_length=1,
        description="Store key holding the link cache",
    )
    store_path: Path | None = Field(
        default=None,
        description="JSON file backing the key/value store (None = in-memory)",
    )

    batch_max_parallel: int = Field(
        default=10,
        ge=1,
        description="Max concurrent resolutions inside one batch",
    )
    batch_use_cache: bool = Field(
        default=True,
        description="Consult the link cache for each batch item",
    )

    history_max_entries: int = Field(
        default=100,
        ge=1,
        description="Max history entries kept",
    )
    history_duplicate_window: float = Field(
        default=300.0,
        ge=0,
        description="Seconds within which a repeated URL is not re-added to history",
    )

    playlist_history_max_entries: int = Field(
        default=50,
        ge=1,
        description="Max playlists kept in each of the shared and received histories",
    )

    @field_validator("store_path")
    @classmethod
    def validate_store_path(cls, v: Path | None) -> Path | None:
        """Ensure store path is a Path object with ~ expanded."""
        if v is None:
            return None
        return Path(v).expanduser()

    @field_validator(
        "api_base_url", "batch_api_base_url", "playlist_api_base_url", "share_base_url"
    )
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @classmethod
    def find_config_yaml(cls) -> Path | None:
        """
        Search for unitune.yaml in standard locations.

        Search order:
        1. Current working directory
        2. User home directory (~/.unitune/unitune.yaml)

        Returns:
            Path to unitune.yaml if found, None otherwise
        """
        search_paths = [
            Path.cwd() / "unitune.yaml",
            Path.home() / ".unitune" / "unitune.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> UniTuneConfig:
        """
        Load configuration from YAML file. Environment variables win over YAML.

        Args:
            path: Path to YAML configuration file. If None, searches standard locations.

        Returns:
            UniTuneConfig instance

        Raises:
            FileNotFoundError: If no config file is found
            ConfigurationError: If the file is not a YAML mapping
        """
        if path is None:
            path = cls.find_config_yaml()
            if path is None:
                raise FileNotFoundError(
                    "Config file not found. Searched:\n"
                    "  1. ./unitune.yaml\n"
                    "  2. ~/.unitune/unitune.yaml"
                )
        else:
            path = Path(path)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(yaml_data, dict):
            raise ConfigurationError(f"Expected a mapping at the top of {path}")

        result_data = {}

        for key, value in yaml_data.items():
            env_key = f"UNITUNE_{key.upper()}"
            if env_key in os.environ:
                continue
            result_data[key] = value

        return cls(**result_data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    @property
    def link_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.link_cache_max_age)

    @property
    def metadata_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.metadata_cache_max_age)

    @property
    def history_window(self) -> timedelta:
        return timedelta(seconds=self.history_duplicate_window)

    @property
    def share_domain(self) -> str:
        """Host of share_base_url, used to recognize inbound share links."""
        return (urlsplit(self.share_base_url).hostname or "").lower()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"UniTuneConfig(api_base_url={self.api_base_url!r}, "
            f"max_attempts={self.max_attempts}, cache_max_entries={self.cache_max_entries})"
        )
