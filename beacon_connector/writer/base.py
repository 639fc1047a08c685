"""
Base writer interface for the Beacon connector.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Initialize logger
LOG = logging.getLogger(__name__)


class DeliveryStatus(Enum):
    """Result classes of a delivery attempt."""
    DELIVERED = "delivered"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Outcome of one payload delivery, reported back to the host framework."""
    status: DeliveryStatus
    status_code: Optional[int] = None
    body: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


class DeliveryError(Exception):
    """Base class for delivery errors raised to the host framework."""


class TransportFailure(DeliveryError):
    """The request never completed (connection, TLS handshake or timeout error)."""

    def __init__(self, message: str, outcome: Optional[DeliveryOutcome] = None):
        super().__init__(message)
        self.outcome = outcome or DeliveryOutcome(status=DeliveryStatus.TRANSPORT_FAILURE)


class Writer(ABC):
    """
    Base class for payload writers.
    """

    @abstractmethod
    def deliver(self, payload: str, timeout: Optional[float] = None) -> DeliveryOutcome:
        """
        Send one rendered payload to the destination.

        Args:
            payload: Line protocol text for a whole batch
            timeout: Optional request deadline in seconds

        Returns:
            DeliveryOutcome for a completed exchange

        Raises:
            TransportFailure: if the exchange could not be completed
        """
        pass

    def close(self) -> None:
        """
        Optional method to release resources.
        Default implementation does nothing - override in subclasses that need cleanup.
        """
        pass
