"""F5 Beacon connector.

Converts batches of event records into line protocol metric points and posts
them to the Beacon ingestion API.
"""

from .core import BeaconOutput, BeaconConfig, ConfigError, Chunk
from .writer import DeliveryOutcome, DeliveryStatus, DeliveryError, TransportFailure

__all__ = ['BeaconOutput', 'BeaconConfig', 'ConfigError', 'Chunk',
           'DeliveryOutcome', 'DeliveryStatus', 'DeliveryError', 'TransportFailure']
