"""Core connector package initialization."""

from .config import BeaconConfig, ConfigError
from .buffer import Chunk
from .output import BeaconOutput

__all__ = ['BeaconOutput', 'BeaconConfig', 'ConfigError', 'Chunk']
