"""
Beacon ingestion writer.

Posts line protocol payloads to the Beacon ingestion endpoint over TLS 1.2 with
mandatory certificate validation and a restricted cipher list.
"""

import logging
import os
import ssl
from typing import Dict, Any, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

from .base import Writer, DeliveryOutcome, DeliveryStatus, TransportFailure

LOG = logging.getLogger(__name__)

TOKEN_HEADER = 'X-F5-Ingestion-Token'

TLS_CIPHERS = (
    'AES128-GCM-SHA256',
    'AES128-SHA256',
    'AES256-GCM-SHA384',
    'AES256-SHA256',
    'ECDHE-RSA-AES128-GCM-SHA256',
    'ECDHE-RSA-AES128-SHA256',
    'ECDHE-RSA-AES256-GCM-SHA384',
    'ECDHE-RSA-AES256-SHA384',
)


def create_tls_context(ciphers: Sequence[str] = TLS_CIPHERS) -> ssl.SSLContext:
    """Build an SSL context pinned to TLS 1.2 with peer verification and the given ciphers."""
    context = create_urllib3_context(cert_reqs=ssl.CERT_REQUIRED, ciphers=':'.join(ciphers))
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.maximum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    return context


class TLSPolicyAdapter(HTTPAdapter):
    """HTTPAdapter that applies a fixed SSL context to every pooled connection."""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None, **kwargs):
        # init_poolmanager runs inside HTTPAdapter.__init__, so the context must exist first
        self.ssl_context = ssl_context or create_tls_context()
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs['ssl_context'] = self.ssl_context
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        proxy_kwargs['ssl_context'] = self.ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class DeliveryClient(Writer):
    """
    Writer implementation for the Beacon ingestion API.

    Handles:
    - Token header authentication
    - TLS 1.2 only, strict certificate validation, restricted ciphers
    - Mapping of HTTP results to delivery outcomes (no retries)
    """

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None):
        """Initialize the writer from a configuration mapping."""
        self.endpoint = config['endpoint']
        self.token = config['token']
        self.request_timeout = config.get('request_timeout')
        self.tls_ca = config.get('tls_ca')

        self.session = session or self._create_session()
        LOG.info(f"DeliveryClient initialized for {self.endpoint}")

    def _create_session(self) -> requests.Session:
        """Create an HTTP session enforcing the TLS policy."""
        session = requests.Session()
        session.mount('https://', TLSPolicyAdapter())

        # Custom CA bundle if provided, otherwise the default trust store
        if self.tls_ca and os.path.exists(self.tls_ca):
            LOG.info(f"Using custom CA certificate: {self.tls_ca}")
            session.verify = self.tls_ca
        else:
            if self.tls_ca:
                LOG.warning(f"CA certificate path specified but file not found: {self.tls_ca}")
            session.verify = True
        return session

    def build_headers(self) -> Dict[str, str]:
        return {
            TOKEN_HEADER: self.token,
            'Content-Type': 'text/plain',
        }

    def deliver(self, payload: str, timeout: Optional[float] = None) -> DeliveryOutcome:
        """
        POST one payload to the ingestion endpoint.

        Args:
            payload: Line protocol text
            timeout: Request deadline in seconds, defaults to the configured request_timeout

        Returns:
            DeliveryOutcome for a completed exchange

        Raises:
            TransportFailure: on connection, TLS or timeout errors
        """
        if timeout is None:
            timeout = self.request_timeout

        try:
            response = self.session.post(
                self.endpoint,
                data=payload.encode('utf-8', errors='replace'),
                headers=self.build_headers(),
                timeout=timeout,
            )
        except requests.RequestException as e:
            # The host framework owns retries, so the error is raised rather than handled
            LOG.warning(f"requests POST raises exception: {type(e).__name__}, '{e}'")
            raise TransportFailure(f"POST {self.endpoint} failed: {e}") from e

        if 200 <= response.status_code < 300:
            LOG.debug(f"Delivered {len(payload)} bytes to {self.endpoint}: HTTP {response.status_code}")
            return DeliveryOutcome(status=DeliveryStatus.DELIVERED, status_code=response.status_code)

        body = response.text
        LOG.warning(f"failed to POST {self.endpoint} ({response.status_code} {response.reason} {body})")
        return DeliveryOutcome(status=DeliveryStatus.REJECTED, status_code=response.status_code, body=body)

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session is not None:
            self.session.close()
            LOG.debug("DeliveryClient session closed")
