"""Connector configuration.

Resolves and validates the settings the connector needs before any batch is processed.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

import yaml

from .logging_config import resolve_level

LOG = logging.getLogger(__name__)

DEFAULT_ENDPOINT = 'https://ingestion.ovr.prd.f5aas.com:50443/beacon/v1/ingest-metrics'

# Environment variables that override file settings
ENV_OVERRIDES = {
    'BEACON_ENDPOINT': 'endpoint',
    'BEACON_TOKEN': 'token',
    'BEACON_SOURCE_NAME': 'source_name',
}


class ConfigError(ValueError):
    """Raised when the connector configuration is incomplete or invalid."""


def parse_tag_keys(value: Any) -> List[str]:
    """Accept a list, a JSON array string or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith('['):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ConfigError(f"tag_keys is not a valid JSON array: {text}") from e
        else:
            return [part.strip() for part in text.split(',') if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"tag_keys must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


@dataclass
class BeaconConfig:
    """Configuration for a Beacon connector instance.

    token and source_name are required, everything else has a default.
    """

    # Destination
    endpoint: str = DEFAULT_ENDPOINT
    token: Optional[str] = None
    source_name: Optional[str] = None

    # Point layout
    measurement: Optional[str] = None   # static series name, batch tag when unset
    time_key: str = 'time'
    auto_tags: bool = False
    tag_keys: List[str] = field(default_factory=list)
    sequence_tag: Optional[str] = None
    cast_number_to_float: bool = False

    # Buffering, the host groups records by these keys
    chunk_keys: List[str] = field(default_factory=lambda: ['tag'])

    # Transport
    tls_ca: Optional[str] = None
    request_timeout: Optional[float] = None

    # Connector logging, the host root logger is left alone
    log_level: Optional[str] = None
    log_file: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        for required in ('token', 'source_name'):
            if not getattr(self, required):
                raise ConfigError(f"'{required}' parameter is required")

        parsed = urlparse(self.endpoint or '')
        if parsed.scheme != 'https' or not parsed.hostname:
            raise ConfigError(f"endpoint must be an https URL: {self.endpoint}")

        self.tag_keys = parse_tag_keys(self.tag_keys)

        if 'tag' not in (self.chunk_keys or []):
            raise ConfigError("'tag' in chunk_keys is required.")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

        if self.log_level:
            try:
                resolve_level(self.log_level)
            except ValueError as e:
                raise ConfigError(str(e)) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BeaconConfig':
        """Create configuration from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            LOG.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_file(cls, config_file: str, from_env: bool = True) -> 'BeaconConfig':
        """Load configuration from a YAML or JSON file, then apply environment overrides."""
        if not os.path.exists(config_file):
            raise ConfigError(f"Config file not found: {config_file}")

        with open(config_file, 'r', encoding='utf-8') as f:
            if config_file.lower().endswith(('.yaml', '.yml')):
                data = yaml.safe_load(f) or {}
            elif config_file.lower().endswith('.json'):
                data = json.load(f)
            else:
                raise ConfigError(f"Unsupported config file format: {config_file}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {config_file}")

        if from_env:
            data = dict(data)
            for env_name, key in ENV_OVERRIDES.items():
                if os.getenv(env_name):
                    data[key] = os.getenv(env_name)

        LOG.info(f"Loaded configuration from {config_file}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dictionary, with the token redacted."""
        return {
            'endpoint': self.endpoint,
            'token': '[REDACTED]',
            'source_name': self.source_name,
            'measurement': self.measurement,
            'time_key': self.time_key,
            'auto_tags': self.auto_tags,
            'tag_keys': list(self.tag_keys),
            'sequence_tag': self.sequence_tag,
            'cast_number_to_float': self.cast_number_to_float,
            'chunk_keys': list(self.chunk_keys),
            'tls_ca': self.tls_ca,
            'request_timeout': self.request_timeout,
            'log_level': self.log_level,
            'log_file': self.log_file,
        }

    def writer_config(self) -> Dict[str, Any]:
        """Settings relevant to the delivery writer."""
        return {
            'endpoint': self.endpoint,
            'token': self.token,
            'tls_ca': self.tls_ca,
            'request_timeout': self.request_timeout,
        }
