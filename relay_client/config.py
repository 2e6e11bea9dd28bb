"""
Configuration for the relay client.

Supports loading configuration from:
- YAML/JSON files
- Environment variables
- Command line arguments (see relay_client.main)
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_RELAY_URL = "https://smee.io"


@dataclass
class ClientConfig:
    """
    Relay client configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (prefixed with RELAY_)
    2. Configuration file (relay.json or relay.yaml)
    3. Default values

    Environment variables:
        RELAY_SOURCE_URL: Channel URL to stream from
        RELAY_URL: Relay server used to provision new channels
        RELAY_TARGET_URL: Local URL that receives forwarded webhooks
        RELAY_TARGET_TIMEOUT: Seconds to wait for the local target
        RELAY_RECONNECT_DELAY: Seconds between reconnect attempts
        RELAY_MAX_RECONNECT_DELAY: Maximum reconnect delay
        RELAY_CONNECTION_TIMEOUT: Seconds to wait for the stream to open
        RELAY_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    # Channel settings
    source_url: str = ""
    relay_url: str = DEFAULT_RELAY_URL

    # Local delivery
    target_url: str = ""
    target_timeout: float = 30.0

    # Connection settings
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 60.0
    reconnect_backoff_multiplier: float = 2.0
    connection_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # TLS settings
    verify_ssl: bool = True
    ca_cert_path: Optional[str] = None
    client_cert_path: Optional[str] = None
    client_key_path: Optional[str] = None

    @classmethod
    def from_file(cls, path: str) -> "ClientConfig":
        """Load configuration from a file."""
        file_path = Path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(file_path, "r") as f:
            if file_path.suffix in [".yaml", ".yml"]:
                import yaml

                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Create configuration from a dictionary."""
        if not isinstance(data, dict):
            raise TypeError(f"Expected dict, got {type(data).__name__}")

        config = cls()

        # Field name -> expected type(s) for validation
        _FIELD_TYPES: Dict[str, Any] = {
            "source_url": str,
            "relay_url": str,
            "target_url": str,
            "target_timeout": (int, float),
            "reconnect_delay": (int, float),
            "max_reconnect_delay": (int, float),
            "reconnect_backoff_multiplier": (int, float),
            "connection_timeout": (int, float),
            "log_level": str,
            "log_format": str,
            "verify_ssl": bool,
            "ca_cert_path": str,
            "client_cert_path": str,
            "client_key_path": str,
        }

        unknown = set(data) - set(_FIELD_TYPES)
        if unknown:
            logger.warning(f"Ignoring unknown config fields: {sorted(unknown)}")

        for field_name, expected_type in _FIELD_TYPES.items():
            if field_name in data:
                value = data[field_name]
                # bool is an int subclass; do not accept it for numeric fields
                if isinstance(value, bool) and expected_type is not bool:
                    raise TypeError(
                        f"Config field '{field_name}' expected {expected_type}, got bool"
                    )
                if value is not None and not isinstance(value, expected_type):
                    raise TypeError(
                        f"Config field '{field_name}' expected {expected_type}, "
                        f"got {type(value).__name__}"
                    )
                setattr(config, field_name, value)

        return config

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mapping = {
            "RELAY_SOURCE_URL": "source_url",
            "RELAY_URL": "relay_url",
            "RELAY_TARGET_URL": "target_url",
            "RELAY_TARGET_TIMEOUT": ("target_timeout", float),
            "RELAY_RECONNECT_DELAY": ("reconnect_delay", float),
            "RELAY_MAX_RECONNECT_DELAY": ("max_reconnect_delay", float),
            "RELAY_CONNECTION_TIMEOUT": ("connection_timeout", float),
            "RELAY_LOG_LEVEL": "log_level",
            "RELAY_VERIFY_SSL": ("verify_ssl", lambda x: x.lower() == "true"),
            "RELAY_CA_CERT_PATH": "ca_cert_path",
            "RELAY_CLIENT_CERT_PATH": "client_cert_path",
            "RELAY_CLIENT_KEY_PATH": "client_key_path",
        }

        config._env_fields = set()
        for env_var, field_info in env_mapping.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(field_info, tuple):
                    field_name, converter = field_info
                    setattr(config, field_name, converter(value))
                else:
                    field_name = field_info
                    setattr(config, field_name, value)
                config._env_fields.add(field_name)

        return config

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "ClientConfig":
        """
        Load configuration with proper precedence.

        1. Start with defaults
        2. Override with file config (if provided)
        3. Override with environment variables
        """
        config = cls()

        if config_path:
            config = cls.from_file(config_path)

        env_config = cls.from_env()

        # Merge environment overrides (only fields actually set via env vars)
        for field_name in getattr(env_config, "_env_fields", set()):
            setattr(config, field_name, getattr(env_config, field_name))

        return config

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.source_url and not self.source_url.startswith(("http://", "https://")):
            errors.append("source_url must be an http(s) URL")

        if not self.source_url and not self.relay_url:
            errors.append("Either source_url or relay_url is required")
        elif self.relay_url and not self.relay_url.startswith(("http://", "https://")):
            errors.append("relay_url must be an http(s) URL")

        if not self.target_url:
            errors.append("target_url is required")
        elif not self.target_url.startswith(("http://", "https://")):
            errors.append("target_url must be an http(s) URL")

        if self.target_timeout <= 0:
            errors.append("target_timeout must be positive")

        if self.reconnect_delay <= 0:
            errors.append("reconnect_delay must be positive")

        if self.max_reconnect_delay < self.reconnect_delay:
            errors.append("max_reconnect_delay must be >= reconnect_delay")

        if self.reconnect_backoff_multiplier < 1:
            errors.append("reconnect_backoff_multiplier must be >= 1")

        if self.connection_timeout <= 0:
            errors.append("connection_timeout must be positive")

        if self.client_key_path and not self.client_cert_path:
            errors.append("client_key_path requires client_cert_path")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (excluding certificate paths)."""
        return {
            "source_url": self.source_url,
            "relay_url": self.relay_url,
            "target_url": self.target_url,
            "target_timeout": self.target_timeout,
            "reconnect_delay": self.reconnect_delay,
            "max_reconnect_delay": self.max_reconnect_delay,
            "reconnect_backoff_multiplier": self.reconnect_backoff_multiplier,
            "connection_timeout": self.connection_timeout,
            "log_level": self.log_level,
            "verify_ssl": self.verify_ssl,
            "has_client_cert": self.client_cert_path is not None,
        }
