"""Connector logging settings.

Applies the configured level and optional log file to the ``beacon_connector``
logger tree, leaving the host's root logging untouched.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'beacon_connector'


def resolve_level(log_level: str) -> int:
    """Map a level name (DEBUG, INFO, WARNING, ERROR) to its numeric value."""
    level = getattr(logging, str(log_level).upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


class LoggingConfigurator:
    """Attaches and detaches the connector's logging settings."""

    def __init__(self, logger_name: str = PACKAGE_LOGGER):
        self.logger = logging.getLogger(logger_name)
        self.handler: Optional[logging.Handler] = None
        self._previous_level: Optional[int] = None

    def apply(self, log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
        """Set the package log level and attach a file handler.

        Args:
            log_level: Level for the connector loggers, unchanged when None
            log_file: Optional path to a log file for connector records
        """
        if log_level:
            self._previous_level = self.logger.level
            self.logger.setLevel(resolve_level(log_level))

        if log_file and self.handler is None:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            self.handler = logging.FileHandler(log_file, encoding='utf-8')
            self.handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(self.handler)

    def release(self) -> None:
        """Detach the file handler and restore the previous level."""
        if self.handler is not None:
            self.logger.removeHandler(self.handler)
            self.handler.close()
            self.handler = None
        if self._previous_level is not None:
            self.logger.setLevel(self._previous_level)
            self._previous_level = None
