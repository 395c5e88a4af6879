"""
Configuration management for the video proxy.

Centralizes all configuration including:
- Upstream video API endpoint and credentials
- Default generation parameters
- Polling budget
- Storage and server settings
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class UpstreamConfig:
    """Azure OpenAI video generation API configuration."""

    endpoint: str = field(default_factory=lambda: os.getenv("AZURE_VIDEO_ENDPOINT", ""))
    api_key: str = field(default_factory=lambda: os.getenv("AZURE_VIDEO_KEY", ""))
    api_version: str = field(
        default_factory=lambda: os.getenv("AZURE_VIDEO_API_VERSION") or "preview"
    )
    http_timeout: float = field(default_factory=lambda: _env_float("VIDEO_HTTP_TIMEOUT", 600.0))

    @property
    def base_url(self) -> str:
        """Endpoint without a trailing slash."""
        return self.endpoint.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.api_key)


@dataclass
class GenerationDefaults:
    """Parameters sent with every job unless the caller overrides them."""

    model: str = field(default_factory=lambda: os.getenv("VIDEO_MODEL", "sora-2025-05-02"))
    height: int = 720
    width: int = 1280
    n_seconds: int = 5
    n_variants: int = 1


@dataclass
class PollingConfig:
    """Retry budget for the background status poller."""

    max_attempts: int = field(default_factory=lambda: _env_int("VIDEO_POLL_MAX_ATTEMPTS", 60))
    interval_seconds: float = field(
        default_factory=lambda: _env_float("VIDEO_POLL_INTERVAL_SECONDS", 10.0)
    )

    @property
    def budget_seconds(self) -> float:
        return self.max_attempts * self.interval_seconds


@dataclass
class StorageConfig:
    """Where finished videos are kept."""

    mode: str = field(default_factory=lambda: os.getenv("VIDEO_STORE_MODE", "memory"))
    video_dir: str = field(default_factory=lambda: os.getenv("VIDEO_OUTPUT_DIR", "./videos"))
    public_prefix: str = "/videos"


@dataclass
class ServerConfig:
    """HTTP server settings."""

    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 3000))
    static_dir: str = field(default_factory=lambda: os.getenv("STATIC_DIR", "./static"))


@dataclass
class Config:
    """Main configuration class."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    generation: GenerationDefaults = field(default_factory=GenerationDefaults)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.upstream.endpoint:
            issues.append("AZURE_VIDEO_ENDPOINT not configured")

        if not self.upstream.api_key:
            issues.append("AZURE_VIDEO_KEY not configured")

        if self.polling.max_attempts < 1:
            issues.append("VIDEO_POLL_MAX_ATTEMPTS must be at least 1")

        if self.polling.interval_seconds < 0:
            issues.append("VIDEO_POLL_INTERVAL_SECONDS must not be negative")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
    return _config
