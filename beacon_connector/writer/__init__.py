"""Writer module for the Beacon connector.

Provides line protocol encoding and the ingestion endpoint writer.
"""

from .base import Writer, DeliveryOutcome, DeliveryStatus, DeliveryError, TransportFailure
from .line_protocol import LineProtocolEncoder, escape
from .delivery import DeliveryClient, TLSPolicyAdapter, create_tls_context, TLS_CIPHERS

__all__ = ['Writer', 'DeliveryOutcome', 'DeliveryStatus', 'DeliveryError', 'TransportFailure',
           'LineProtocolEncoder', 'escape', 'DeliveryClient', 'TLSPolicyAdapter',
           'create_tls_context', 'TLS_CIPHERS']
