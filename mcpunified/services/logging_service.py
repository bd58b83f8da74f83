# -*- coding: utf-8 -*-
"""Location: ./mcpunified/services/logging_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Logging Service Implementation.
Thin layer over the standard library ``logging`` module: configures the root logger once
from settings and hands out named loggers that follow the service-wide level.
"""

# Standard
import logging
from typing import Dict, Optional

# First-Party
from mcpunified.config import settings


class LoggingService:
    """Gateway logging service.

    Examples:
        >>> service = LoggingService()
        >>> service.get_logger("mcpunified.test").name
        'mcpunified.test'
        >>> service.set_level("debug")
        >>> service.get_logger("mcpunified.test").level == logging.DEBUG
        True
    """

    def __init__(self):
        """Initialize logging service."""
        self._level = settings.log_level
        self._loggers: Dict[str, logging.Logger] = {}

    def initialize(self, level: Optional[str] = None) -> None:
        """Configure the root logger.

        Args:
            level: Optional override of the configured level
        """
        if level:
            self._level = level.upper()
        # Configure root logger
        logging.basicConfig(
            level=getattr(logging, self._level, logging.INFO),
            format=settings.log_format,
        )
        self._loggers[""] = logging.getLogger()
        self.set_level(self._level)
        logging.info("Logging service initialized")

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create logger instance.

        Args:
            name: Logger name

        Returns:
            Logger instance
        """
        if name not in self._loggers:
            logger = logging.getLogger(name)

            # Set level to match service level
            logger.setLevel(getattr(logging, self._level, logging.INFO))

            self._loggers[name] = logger

        return self._loggers[name]

    def set_level(self, level: str) -> None:
        """Set minimum log level.

        This updates the level for all registered loggers.

        Args:
            level: New level name, case-insensitive
        """
        self._level = level.upper()

        log_level = getattr(logging, self._level, logging.INFO)
        for logger in self._loggers.values():
            logger.setLevel(log_level)


logging_service = LoggingService()
