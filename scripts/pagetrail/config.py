"""
Configuration for the pagetrail engine.

Provides:
- EngineConfig dataclass with defaults for every option
- camelCase option aliases (apiKey, batchSize, ...) accepted alongside snake_case
- JSON file loading with environment variable overrides
- Validation of required fields
"""

import json
import os
import sys
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigurationError


DEFAULT_API_ENDPOINT = "https://api.app.thrivestack.ai/api"
DEFAULT_GEO_IP_SERVICE_URL = "https://ipinfo.io/json"

# camelCase names used by page embeds -> field names
_ALIASES = {
    "apiKey": "api_key",
    "apiEndpoint": "api_endpoint",
    "geoIpServiceUrl": "geo_ip_service_url",
    "trackClicks": "track_clicks",
    "trackForms": "track_forms",
    "respectDoNotTrack": "respect_do_not_track",
    "doNotTrack": "do_not_track",
    "enableConsent": "enable_consent",
    "defaultConsent": "default_consent",
    "batchSize": "batch_size",
    "batchInterval": "batch_interval_ms",
    "sessionTimeout": "session_timeout_ms",
    "debounceDelay": "debounce_delay_ms",
    "retryAttempts": "retry_attempts",
    "retryDelay": "retry_delay_ms",
    "requestTimeout": "request_timeout_sec",
    "probeTimeout": "probe_timeout_ms",
    "storagePath": "storage_path",
    "piiRedaction": "pii_redaction",
}

# PAGETRAIL_* environment variables -> field names
_ENV_OVERRIDES = {
    "PAGETRAIL_API_KEY": "api_key",
    "PAGETRAIL_SOURCE": "source",
    "PAGETRAIL_API_ENDPOINT": "api_endpoint",
    "PAGETRAIL_STORAGE_PATH": "storage_path",
    "PAGETRAIL_DEBUG": "debug",
    "PAGETRAIL_RESPECT_DNT": "respect_do_not_track",
}


@dataclass
class EngineConfig:
    """Engine options. Durations are milliseconds unless suffixed otherwise."""
    api_key: str = ""
    source: str = ""
    api_endpoint: str = DEFAULT_API_ENDPOINT
    geo_ip_service_url: str = DEFAULT_GEO_IP_SERVICE_URL
    track_clicks: bool = False
    track_forms: bool = False
    respect_do_not_track: bool = True
    do_not_track: bool = False
    enable_consent: bool = False
    default_consent: bool = False
    batch_size: int = 10
    batch_interval_ms: int = 2000
    session_timeout_ms: int = 30 * 60 * 1000
    debounce_delay_ms: int = 2000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    request_timeout_sec: float = 10.0
    probe_timeout_ms: Optional[int] = None
    storage_path: Optional[str] = None
    pii_redaction: bool = False
    debug: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """
        Build a config from a dictionary of options.

        Args:
            data: Options keyed by field name or camelCase alias.
                  Unknown keys are ignored with a warning.

        Returns:
            EngineConfig instance (not yet validated)
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                print(f"Warning: Ignoring unknown config option '{key}'", file=sys.stderr)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def validate(self) -> "EngineConfig":
        """
        Check required fields and numeric ranges.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If the configuration cannot be used
        """
        if not self.api_key:
            raise ConfigurationError("Missing required API key for initialization.")
        if not self.source:
            raise ConfigurationError("Missing required source for initialization.")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.retry_attempts < 1:
            raise ConfigurationError(f"retry_attempts must be at least 1, got {self.retry_attempts}")
        for name in ("batch_interval_ms", "session_timeout_ms", "debounce_delay_ms", "retry_delay_ms"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if self.probe_timeout_ms is not None and self.probe_timeout_ms <= 0:
            raise ConfigurationError("probe_timeout_ms must be positive when set")
        return self


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(data: Dict[str, Any]):
    """Apply PAGETRAIL_* environment variable overrides in place."""
    for env_name, field_name in _ENV_OVERRIDES.items():
        if env_name not in os.environ:
            continue
        value = os.environ[env_name]
        if field_name in ("debug", "respect_do_not_track"):
            data[field_name] = _parse_bool(value)
        else:
            data[field_name] = value


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> EngineConfig:
    """
    Load configuration from file, environment and explicit overrides.

    Precedence (lowest to highest): defaults, JSON file, environment,
    overrides.

    Args:
        config_path: Path to a JSON options file (optional)
        overrides: Options that win over everything else

    Returns:
        Validated EngineConfig

    Raises:
        ConfigurationError: If required options are still missing
    """
    data: Dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            try:
                with open(config_path) as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    data.update({_ALIASES.get(k, k): v for k, v in loaded.items()})
                else:
                    print(f"Warning: Config at {config_path} is not an object, using defaults",
                          file=sys.stderr)
            except (OSError, json.JSONDecodeError) as e:
                print(f"Warning: Failed to load config from {config_path}: {e}", file=sys.stderr)

    _apply_env_overrides(data)

    if overrides:
        data.update({_ALIASES.get(k, k): v for k, v in overrides.items()})

    return EngineConfig.from_dict(data).validate()
