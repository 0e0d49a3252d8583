"""
Telemetry Sources - Configuration.

============================================================
CONFIGURATION SOURCES
============================================================

- Default values
- Environment variables (a .env file is loaded first)
- Explicit constructor arguments / CLI flags

Every ClientConfig is validated at construction.

============================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv

from telemetry_sources.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.thingspeak.com"

PLACEHOLDER_CHANNEL_ID = "YOUR_CHANNEL_ID"
PLACEHOLDER_API_KEY = "YOUR_API_KEY"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


# ============================================================
# CLIENT CONFIGURATION
# ============================================================

@dataclass
class ClientConfig:
    """
    Configuration for ResilientChannelClient.
    
    retry_delay_seconds is a multiplier: the pause after attempt N is
    retry_delay_seconds * N.
    """
    
    base_url: str = DEFAULT_BASE_URL
    """API origin."""
    
    proxy_url: Optional[str] = None
    """Optional proxy endpoint accepting POST {url, params}."""
    
    timeout_seconds: float = 15.0
    """Bound on each network attempt."""
    
    retry_count: int = 3
    """Number of direct attempts per fetch."""
    
    retry_delay_seconds: float = 1.0
    """Backoff multiplier between attempts."""
    
    cache_enabled: bool = True
    """Whether responses are cached."""
    
    cache_duration_seconds: float = 60.0
    """Freshness window of a cached response."""
    
    debug: bool = False
    """Log per-attempt progress at INFO instead of DEBUG."""
    
    def __post_init__(self) -> None:
        """Validate configuration."""
        self.base_url = self.base_url.rstrip("/")
        if not _is_http_url(self.base_url):
            raise ConfigurationError(f"Invalid base URL: {self.base_url!r}", config_key="base_url")
        if self.proxy_url is not None and not _is_http_url(self.proxy_url):
            raise ConfigurationError(f"Invalid proxy URL: {self.proxy_url!r}", config_key="proxy_url")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive", config_key="timeout_seconds")
        if self.retry_count < 1:
            raise ConfigurationError("retry_count must be at least 1", config_key="retry_count")
        if self.retry_delay_seconds < 0:
            raise ConfigurationError(
                "retry_delay_seconds must not be negative", config_key="retry_delay_seconds",
            )
        if self.cache_duration_seconds < 0:
            raise ConfigurationError(
                "cache_duration_seconds must not be negative", config_key="cache_duration_seconds",
            )
    
    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        try:
            return cls(
                base_url=os.getenv("THINGSPEAK_BASE_URL", DEFAULT_BASE_URL),
                proxy_url=os.getenv("THINGSPEAK_PROXY_URL") or None,
                timeout_seconds=float(os.getenv("THINGSPEAK_TIMEOUT_SECONDS", "15.0")),
                retry_count=int(os.getenv("THINGSPEAK_RETRY_COUNT", "3")),
                retry_delay_seconds=float(os.getenv("THINGSPEAK_RETRY_DELAY_SECONDS", "1.0")),
                cache_enabled=_env_bool("THINGSPEAK_CACHE_ENABLED", "true"),
                cache_duration_seconds=float(os.getenv("THINGSPEAK_CACHE_DURATION_SECONDS", "60.0")),
                debug=_env_bool("THINGSPEAK_DEBUG", "false"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e
    
    def to_dict(self) -> dict[str, Any]:
        """Redacted view for status output."""
        return {
            "base_url": self.base_url,
            "proxy_url": "(configured)" if self.proxy_url else None,
            "timeout_seconds": self.timeout_seconds,
            "retry_count": self.retry_count,
            "retry_delay_seconds": self.retry_delay_seconds,
            "cache_enabled": self.cache_enabled,
            "cache_duration_seconds": self.cache_duration_seconds,
            "debug": self.debug,
        }


# ============================================================
# CHANNEL SETTINGS
# ============================================================

@dataclass
class ChannelSettings:
    """Which channel to read and with which key."""
    
    channel_id: str = ""
    api_key: str = ""
    results_to_fetch: int = 100
    
    @classmethod
    def from_env(cls) -> "ChannelSettings":
        """Load settings from environment variables."""
        load_dotenv()
        return cls(
            channel_id=os.getenv("THINGSPEAK_CHANNEL_ID", ""),
            api_key=os.getenv("THINGSPEAK_API_KEY", ""),
            results_to_fetch=int(os.getenv("THINGSPEAK_RESULTS", "100")),
        )
    
    def is_configured(self) -> bool:
        """False when a credential is missing or still a placeholder."""
        channel_id = self.channel_id.strip()
        api_key = self.api_key.strip()
        if not channel_id or not api_key:
            return False
        if channel_id == PLACEHOLDER_CHANNEL_ID or api_key == PLACEHOLDER_API_KEY:
            logger.warning("[thingspeak] Channel settings still hold placeholder values")
            return False
        return True
